# Minimal example of using BoardChat
import asyncio

from boardchat import (
    BoardChat,
    InvoiceStatus,
    Project,
    Sender,
    Settings,
    User,
    UserRole,
    create_store,
)
from boardchat.config import configure_logging, create_mailer


async def main():
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    async with BoardChat(create_store(settings), mailer=create_mailer(settings)) as app:
        # Example workspace: one admin, one client, one project
        admin = User(id="admin_1", name="Ada", email="ada@example.com", role=UserRole.ADMIN, organization_id="org_demo")
        client = User(id="client_1", name="Cleo", email="cleo@example.com", role=UserRole.CLIENT, organization_id="org_demo")
        await app.users.add_user(admin)
        await app.users.add_user(client)
        await app.projects.add_project(
            Project(id="proj_1", name="Website Redesign", organization_id="org_demo", client_ids=[client.id])
        )

        async def show_feed(notifications):
            print(f"Admin feed: {[n.message for n in notifications]}")

        feed = await app.subscribe_to_notifications(admin.id, show_feed)

        # Chat: the client posts in the project channel, the admin gets notified
        channel_id = await app.get_or_create_channel("proj_1", "org_demo")
        await app.post_message(channel_id, Sender.from_user(client), "Hello, any update on the mockups?")

        # Invoices: sending notifies the client, paying notifies the admins
        invoice = await app.invoices.create_invoice(
            "INV-001", client, "proj_1", "Website Redesign", "org_demo", total_amount=1500.0
        )
        await app.invoices.update_status(invoice.id, InvoiceStatus.SENT)
        await app.invoices.update_status(invoice.id, InvoiceStatus.PAID, actor=client)

        feed.unsubscribe()
        print(f"Client notifications: {[n.message for n in await app.list_notifications(client.id)]}")


if __name__ == "__main__":
    asyncio.run(main())
