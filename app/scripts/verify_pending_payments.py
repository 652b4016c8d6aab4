"""
Re-verify pending NYSC payments with Paystack.

Picks pending payments older than 5 minutes (or all of them with --force) and no older than
7 days, newest first, and runs them through the batch verifier with retries.
Usage: python -m app.scripts.verify_pending_payments [--force] [--limit N] [--dry-run]
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from app.core.exceptions import JobFailedError
from app.core.logging import configure_logging
from app.jobs.verify_pending_payments import run_verify_pending_payments


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify pending payments with Paystack")
    parser.add_argument("--force", action="store_true", help="Include payments younger than 5 minutes")
    parser.add_argument("--limit", type=int, default=50, help="Maximum number of payments to verify")
    parser.add_argument("--dry-run", action="store_true", help="List what would be verified without calling Paystack")
    return parser.parse_args(argv)


async def verify_pending(args: argparse.Namespace) -> int:
    print("Starting pending payments verification...")
    try:
        result = await run_verify_pending_payments(force=args.force, limit=args.limit, dry_run=args.dry_run)
    except JobFailedError as e:
        print(f"Verification failed: {e.message}", file=sys.stderr)
        return 1

    if args.dry_run:
        print(f"DRY RUN: {result.total} payment(s) would be verified.")
        for item in result.details:
            print(f"  payment {item.payment_id}")
        return 0

    if result.total == 0:
        print("No pending payments found to verify.")
        return 0

    print(f"Total: {result.total}")
    print(f"Verified: {result.verified}")
    print(f"Updated: {result.updated}")
    print(f"Successful: {result.successful}")
    print(f"Failed: {result.failed}")
    print(f"Errors: {result.errors}")
    for item in result.details:
        if item.status == "error":
            print(f"  ERROR payment {item.payment_id}: {item.message}", file=sys.stderr)
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    configure_logging()
    sys.exit(asyncio.run(verify_pending(parse_args(argv))))


if __name__ == "__main__":
    main()
