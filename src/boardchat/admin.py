# /src/boardchat/admin.py
# Maintenance commands: cleanup sweep, outbox drain, read flags

import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from .config import Settings, configure_logging, create_mailer, create_store
from .core import BoardChat

logger = logging.getLogger("boardchat.admin")


async def _run(args: argparse.Namespace, settings: Settings) -> int:
    async with BoardChat(create_store(settings), mailer=create_mailer(settings)) as app:
        if args.command == "cleanup":
            count = await app.delete_expired_notifications()
            print(f"Deleted {count} expired notifications")
        elif args.command == "drain":
            count = await app.outbox.drain(limit=args.limit, max_attempts=args.max_attempts)
            print(f"Dispatched {count} pending events")
        elif args.command == "mark-read":
            count = await app.mark_all_notifications_read(args.user_id)
            print(f"Marked {count} notifications read for {args.user_id}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="boardchat-admin", description="BoardChat maintenance tool")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("cleanup", help="Delete notifications past their expiry")

    drain = sub.add_parser("drain", help="Re-dispatch pending outbox events")
    drain.add_argument("--limit", type=int, default=100)
    drain.add_argument("--max-attempts", type=int, default=None)

    mark = sub.add_parser("mark-read", help="Mark all notifications of a user read")
    mark.add_argument("user_id")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)
    try:
        return asyncio.run(_run(args, settings))
    except Exception as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
