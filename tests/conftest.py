# /tests/conftest.py
# Shared fixtures: seeded workspace, fixed clock, fake mailer

from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest
import pytest_asyncio

from boardchat import (
    BoardChat,
    EmailResult,
    EmailSender,
    MemoryDocumentStore,
    Project,
    User,
    UserRole,
)

ORG = "org_1"
START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class SteppingClock:
    """Deterministic clock: every call returns a time one second later."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(seconds=1)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class FakeEmailSender(EmailSender):
    def __init__(self, fail: bool = False):
        self.sent: List[Tuple[str, str, str]] = []
        self.fail = fail

    async def send_email(self, to: str, subject: str, html: str) -> EmailResult:
        if self.fail:
            return EmailResult(success=False, error="provider down")
        self.sent.append((to, subject, html))
        return EmailResult(success=True, message_id=f"msg_{len(self.sent)}")


USERS = [
    User(id="a1", name="Alice Admin", email="alice@example.com", role=UserRole.ADMIN, organization_id=ORG),
    User(id="a2", name="Arthur Admin", email="arthur@example.com", role=UserRole.ADMIN, organization_id=ORG),
    User(id="c1", name="Carla Client", email="carla@example.com", role=UserRole.CLIENT, organization_id=ORG),
    User(id="u1", name="Uma User", email="uma@example.com", role=UserRole.USER, organization_id=ORG),
    User(id="x1", name="Other Admin", email="x@example.com", role=UserRole.ADMIN, organization_id="org_2"),
]

PROJECT = Project(id="p1", name="Website Redesign", organization_id=ORG, client_ids=["c1"])


async def seed(app: BoardChat) -> None:
    for user in USERS:
        await app.users.add_user(user)
    await app.projects.add_project(PROJECT)


@pytest.fixture
def clock():
    return SteppingClock()


@pytest.fixture
def mailer():
    return FakeEmailSender()


@pytest_asyncio.fixture
async def app(clock, mailer):
    async with BoardChat(MemoryDocumentStore(), mailer=mailer, clock=clock) as chat:
        await seed(chat)
        yield chat


def user(user_id: str) -> User:
    return next(u for u in USERS if u.id == user_id)
