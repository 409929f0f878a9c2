from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from giving.utils.db import get_db_connection

COLS = [
    "id",
    "amount",
    "currency",
    "status",
    "payment_method",
    "transaction_id",
    "donor_name",
    "donor_email",
    "donor_phone",
    "user_id",
    "message",
    "is_anonymous",
    "converted_amount_usd",
    "recurring_donation_id",
    "ip_address",
    "country_code",
    "created_at",
    "updated_at",
]
SELECT_COLS = ", ".join(COLS)

# columns a caller may set on insert; id and timestamps come from the database
INSERT_COLS = [c for c in COLS if c not in ("id", "created_at", "updated_at")]


def create_donation(donation: Dict[str, Any]) -> Dict[str, Any]:
    sql = f"""
    INSERT INTO donations ({", ".join(INSERT_COLS)})
    VALUES ({", ".join(["%s"] * len(INSERT_COLS))})
    RETURNING {SELECT_COLS}
    """
    values = [donation.get(c) for c in INSERT_COLS]
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, values)
        row = cur.fetchone()
        conn.commit()
        return dict(zip(COLS, row))


def get_donation(donation_id: int) -> Optional[Dict[str, Any]]:
    sql = f"SELECT {SELECT_COLS} FROM donations WHERE id = %s"
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (donation_id,))
        row = cur.fetchone()
        return dict(zip(COLS, row)) if row else None


def get_donation_by_transaction(transaction_id: str) -> Optional[Dict[str, Any]]:
    sql = f"SELECT {SELECT_COLS} FROM donations WHERE transaction_id = %s"
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (transaction_id,))
        row = cur.fetchone()
        return dict(zip(COLS, row)) if row else None


def update_donation_status(donation_id: int, status: str) -> Optional[Dict[str, Any]]:
    sql = f"""
    UPDATE donations SET status = %s, updated_at = now()
     WHERE id = %s
    RETURNING {SELECT_COLS}
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (status, donation_id))
        row = cur.fetchone()
        conn.commit()
        return dict(zip(COLS, row)) if row else None


def list_user_donations(user_id: int) -> List[Dict[str, Any]]:
    sql = f"""
    SELECT {SELECT_COLS} FROM donations
     WHERE user_id = %s
     ORDER BY created_at DESC
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (user_id,))
        return [dict(zip(COLS, r)) for r in cur.fetchall()]


def list_donations_for_recurring(recurring_id: int) -> List[Dict[str, Any]]:
    sql = f"""
    SELECT {SELECT_COLS} FROM donations
     WHERE recurring_donation_id = %s
     ORDER BY created_at DESC
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (recurring_id,))
        return [dict(zip(COLS, r)) for r in cur.fetchall()]


def search_donations(
    *,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    status: Optional[str] = None,
    currency: Optional[str] = None,
    donor_email: Optional[str] = None,
    user_id: Optional[int] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    sql = f"""
    SELECT {SELECT_COLS} FROM donations
     WHERE (%(start_date)s::timestamptz IS NULL OR created_at >= %(start_date)s)
       AND (%(end_date)s::timestamptz   IS NULL OR created_at <= %(end_date)s)
       AND (%(min_amount)s::numeric     IS NULL OR amount >= %(min_amount)s)
       AND (%(max_amount)s::numeric     IS NULL OR amount <= %(max_amount)s)
       AND (%(status)s::text            IS NULL OR status = %(status)s)
       AND (%(currency)s::text          IS NULL OR currency = %(currency)s)
       AND (%(donor_email)s::text       IS NULL OR LOWER(donor_email) = LOWER(%(donor_email)s))
       AND (%(user_id)s::int            IS NULL OR user_id = %(user_id)s)
     ORDER BY created_at DESC
     LIMIT %(limit)s OFFSET %(offset)s
    """
    params = {
        "start_date": start_date,
        "end_date": end_date,
        "min_amount": min_amount,
        "max_amount": max_amount,
        "status": status,
        "currency": currency,
        "donor_email": donor_email,
        "user_id": user_id,
        "limit": limit,
        "offset": offset,
    }
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, params)
        return [dict(zip(COLS, r)) for r in cur.fetchall()]


def list_completed_donations_between(
    start: datetime,
    end: datetime,
    *,
    user_id: Optional[int] = None,
    one_time_only: bool = False,
) -> List[Dict[str, Any]]:
    """Completed donations with start <= created_at < end, newest first."""
    sql = f"""
    SELECT {SELECT_COLS} FROM donations
     WHERE status = 'completed'
       AND created_at >= %(start)s AND created_at < %(end)s
       AND (%(user_id)s::int IS NULL OR user_id = %(user_id)s)
       AND (NOT %(one_time_only)s OR recurring_donation_id IS NULL)
     ORDER BY created_at DESC
    """
    params = {"start": start, "end": end, "user_id": user_id, "one_time_only": one_time_only}
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, params)
        return [dict(zip(COLS, r)) for r in cur.fetchall()]


def donation_statistics(
    start_date: Optional[datetime] = None, end_date: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Aggregates over ``donations`` created in the window (open-ended when a
    bound is None).

    Totals, the per-currency and the monthly breakdowns count completed
    donations only, summed in the base currency except ``by_currency`` which
    sums the donated amounts. ``by_status`` counts every row.
    """
    window = """
       (%(start)s::timestamptz IS NULL OR created_at >= %(start)s)
       AND (%(end)s::timestamptz IS NULL OR created_at <= %(end)s)
    """
    totals_sql = f"""
    SELECT COALESCE(SUM(converted_amount_usd), 0), COUNT(*)
      FROM donations
     WHERE status = 'completed' AND {window}
    """
    currency_sql = f"""
    SELECT currency, SUM(amount), COUNT(*)
      FROM donations
     WHERE status = 'completed' AND {window}
     GROUP BY currency
     ORDER BY currency
    """
    status_sql = f"""
    SELECT status, COUNT(*)
      FROM donations
     WHERE {window}
     GROUP BY status
     ORDER BY status
    """
    monthly_sql = f"""
    SELECT to_char(date_trunc('month', created_at AT TIME ZONE 'UTC'), 'YYYY-MM') AS month,
           COALESCE(SUM(converted_amount_usd), 0), COUNT(*)
      FROM donations
     WHERE status = 'completed' AND {window}
     GROUP BY month
     ORDER BY month
    """
    params = {"start": start_date, "end": end_date}
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(totals_sql, params)
        total_amount, total_count = cur.fetchone()

        cur.execute(currency_sql, params)
        by_currency = [
            dict(zip(["currency", "total_amount", "count"], r)) for r in cur.fetchall()
        ]

        cur.execute(status_sql, params)
        by_status = [dict(zip(["status", "count"], r)) for r in cur.fetchall()]

        cur.execute(monthly_sql, params)
        monthly = [dict(zip(["month", "total_amount", "count"], r)) for r in cur.fetchall()]

    return {
        "total_amount": total_amount,
        "total_count": total_count,
        "by_currency": by_currency,
        "by_status": by_status,
        "monthly": monthly,
    }
