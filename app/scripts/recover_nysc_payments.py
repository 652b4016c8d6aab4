"""
Recover NYSC payments that succeeded but never got a registration record linked.

Registration data is rebuilt from the checkout temp submission, the student's latest temp
submission, or the student profile, in that order. Existing registrations are only gap-filled.
Usage: python -m app.scripts.recover_nysc_payments [--dry-run] [--student-id ID]
"""

import argparse
import asyncio
from typing import List, Optional

from app.api.v1.payments.recovery import recover_orphan_payments
from app.core.logging import configure_logging
from app.db.session import AsyncSessionLocal


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recover orphaned successful NYSC payments")
    parser.add_argument("--dry-run", action="store_true", help="Show what would be recovered without making changes")
    parser.add_argument("--student-id", type=int, default=None, help="Recover this student only")
    return parser.parse_args(argv)


async def recover(args: argparse.Namespace) -> None:
    print("Starting NYSC payment recovery...")
    print("DRY RUN MODE - no changes will be made" if args.dry_run else "LIVE MODE - changes will be applied")
    async with AsyncSessionLocal() as session:
        report = await recover_orphan_payments(session, dry_run=args.dry_run, student_id=args.student_id)

    if report.total == 0:
        print("No orphaned successful payments found.")
        return

    for item in report.items:
        source = f" [{item.source}]" if item.source else ""
        print(f"  payment {item.payment_id} (student {item.student_id}): {item.status}{source} - {item.message}")

    print("=== Recovery Summary ===")
    print(f"Total payments processed: {report.total}")
    print(f"{'Would recover' if args.dry_run else 'Successfully recovered'}: {report.recovered}")
    print(f"Already linked elsewhere: {report.skipped}")
    print(f"Failed to recover: {report.failed}")


def main(argv: Optional[List[str]] = None) -> None:
    configure_logging()
    asyncio.run(recover(parse_args(argv)))


if __name__ == "__main__":
    main()
