#!/usr/bin/env python3
"""
Charge every recurring donation that is due.

Usage: python scripts/run_due_payments.py [--limit N]
Schedule from cron; overlapping runs are safe (cycles are claimed in Redis).
"""
import argparse
import os
import sys

# Ensure giving is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from giving.tasks import process_due_recurring_donations
from giving.utils.log import configure_logging


def main():
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--limit", type=int, default=100)
    args = parser.parse_args()

    configure_logging()
    stats = process_due_recurring_donations(limit=args.limit)
    print(
        f"completed={stats['completed']} failed={stats['failed']} "
        f"skipped={stats['skipped']} errors={stats['errors']}"
    )
    return 1 if stats["errors"] else 0


if __name__ == "__main__":
    sys.exit(main())
