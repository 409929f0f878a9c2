#!/usr/bin/env python3
"""
Seed database with currencies and a demo donor.

Usage: python scripts/seed.py [--force]
Requires: migrations applied (alembic upgrade head)
"""
import os
import sys
from decimal import Decimal

# Ensure giving is on path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from giving.models.currency import upsert_currency
from giving.utils.db import get_db_connection

# exchange_rate = USD per one unit
CURRENCIES = [
    ("USD", "US Dollar", "$", Decimal("1.0")),
    ("EUR", "Euro", "€", Decimal("1.08")),
    ("GBP", "British Pound", "£", Decimal("1.27")),
    ("CAD", "Canadian Dollar", "$", Decimal("0.73")),
    ("AUD", "Australian Dollar", "$", Decimal("0.66")),
    ("JPY", "Japanese Yen", "¥", Decimal("0.0067")),
    ("NGN", "Nigerian Naira", "₦", Decimal("0.00065")),
    ("KES", "Kenyan Shilling", "KSh", Decimal("0.0078")),
]


def seed(force: bool = False):
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute("SELECT COUNT(*) FROM currencies")
        if cur.fetchone()[0] > 0 and not force:
            print("Already seeded (currencies exist). Use --force to re-seed.")
            return

        cur.execute(
            """
            INSERT INTO users (email, name)
            VALUES ('demo@example.com', 'Demo Donor')
            ON CONFLICT (email) DO NOTHING
            """
        )
        conn.commit()

    for code, name, symbol, rate in CURRENCIES:
        upsert_currency(code=code, name=name, symbol=symbol, exchange_rate=rate)
        print(f"  {code} {rate}")

    print("Seed complete. Demo donor: demo@example.com")


if __name__ == "__main__":
    seed(force="--force" in sys.argv)
