"""Cron entrypoint.

    python -m academy.jobs generate-monthly
    python -m academy.jobs send-reminders [--payment-id ID] [--force]
"""
import argparse
import asyncio
import json
import logging
import sys

from academy.config import settings
from academy.db import db_shutdown, db_startup
from academy.services.invoices import generate_monthly_payments
from academy.services.notify import Notifier
from academy.services.reminders import send_payment_reminders

logger = logging.getLogger("academy.jobs")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="academy.jobs", description="Scheduled payment jobs")
    sub = parser.add_subparsers(dest="job", required=True)
    sub.add_parser("generate-monthly", help="Create this month's pending payments")
    reminders = sub.add_parser("send-reminders", help="Send due-date payment reminders")
    reminders.add_argument("--payment-id", default=None, help="Only this payment")
    reminders.add_argument("--force", action="store_true", help="Send even if the bucket was already sent")
    return parser


async def run(args: argparse.Namespace) -> dict:
    await db_startup()
    try:
        if args.job == "generate-monthly":
            return await generate_monthly_payments()
        notifier = Notifier.from_settings()
        try:
            return await send_payment_reminders(notifier, payment_id=args.payment_id, force=args.force)
        finally:
            await notifier.close()
    finally:
        await db_shutdown()


def main(argv=None) -> int:
    logging.basicConfig(level=settings.log_level.upper())
    args = build_parser().parse_args(argv)
    result = asyncio.run(run(args))
    print(json.dumps(result, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
