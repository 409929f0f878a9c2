from datetime import datetime
from typing import Any, Dict, List, Optional
from giving.utils.db import get_db_connection

COLS = [
    "id",
    "user_id",
    "amount",
    "currency",
    "frequency",
    "payment_method",
    "payment_method_id",
    "status",
    "start_date",
    "next_payment_date",
    "end_date",
    "total_payments_count",
    "completed_payments_count",
    "last_payment_date",
    "ended_at",
    "created_at",
    "updated_at",
]
SELECT_COLS = ", ".join(COLS)

INSERT_COLS = [
    "user_id",
    "amount",
    "currency",
    "frequency",
    "payment_method",
    "payment_method_id",
    "status",
    "start_date",
    "next_payment_date",
    "end_date",
    "total_payments_count",
    "completed_payments_count",
]


def _one(sql: str, params) -> Optional[Dict[str, Any]]:
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, params)
        row = cur.fetchone()
        conn.commit()
        return dict(zip(COLS, row)) if row else None


def create_recurring_donation(recurring: Dict[str, Any]) -> Dict[str, Any]:
    sql = f"""
    INSERT INTO recurring_donations ({", ".join(INSERT_COLS)})
    VALUES ({", ".join(["%s"] * len(INSERT_COLS))})
    RETURNING {SELECT_COLS}
    """
    values = [recurring.get(c) for c in INSERT_COLS]
    values[INSERT_COLS.index("completed_payments_count")] = (
        recurring.get("completed_payments_count") or 0
    )
    return _one(sql, values)


def get_recurring_donation(recurring_id: int) -> Optional[Dict[str, Any]]:
    sql = f"SELECT {SELECT_COLS} FROM recurring_donations WHERE id = %s"
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (recurring_id,))
        row = cur.fetchone()
        return dict(zip(COLS, row)) if row else None


def list_user_recurring_donations(user_id: int) -> List[Dict[str, Any]]:
    sql = f"""
    SELECT {SELECT_COLS} FROM recurring_donations
     WHERE user_id = %s
     ORDER BY created_at DESC
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (user_id,))
        return [dict(zip(COLS, r)) for r in cur.fetchall()]


def list_due_recurring_donations(now: datetime, limit: int = 100) -> List[Dict[str, Any]]:
    sql = f"""
    SELECT {SELECT_COLS} FROM recurring_donations
     WHERE status = 'completed'
       AND ended_at IS NULL
       AND next_payment_date <= %s
     ORDER BY next_payment_date ASC
     LIMIT %s
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (now, limit))
        return [dict(zip(COLS, r)) for r in cur.fetchall()]


def update_recurring_payment_count(recurring_id: int, count: int) -> Optional[Dict[str, Any]]:
    sql = f"""
    UPDATE recurring_donations
       SET completed_payments_count = %s,
           last_payment_date = now(),
           updated_at = now()
     WHERE id = %s
    RETURNING {SELECT_COLS}
    """
    return _one(sql, (count, recurring_id))


def update_next_payment_date(recurring_id: int, next_date: datetime) -> Optional[Dict[str, Any]]:
    sql = f"""
    UPDATE recurring_donations
       SET next_payment_date = %s, updated_at = now()
     WHERE id = %s
    RETURNING {SELECT_COLS}
    """
    return _one(sql, (next_date, recurring_id))


def update_recurring_status(recurring_id: int, status: str) -> Optional[Dict[str, Any]]:
    sql = f"""
    UPDATE recurring_donations
       SET status = %s, updated_at = now()
     WHERE id = %s
    RETURNING {SELECT_COLS}
    """
    return _one(sql, (status, recurring_id))


def complete_recurring_donation(recurring_id: int) -> Optional[Dict[str, Any]]:
    sql = f"""
    UPDATE recurring_donations
       SET status = 'completed', ended_at = now(), updated_at = now()
     WHERE id = %s
    RETURNING {SELECT_COLS}
    """
    return _one(sql, (recurring_id,))


def list_recurring_charged_between(
    start: datetime, end: datetime, *, user_id: Optional[int] = None
) -> List[Dict[str, Any]]:
    """Series with at least one completed payment in start <= created_at < end."""
    cols = ", ".join(f"r.{c}" for c in COLS)
    sql = f"""
    SELECT {cols} FROM recurring_donations r
     WHERE (%(user_id)s::int IS NULL OR r.user_id = %(user_id)s)
       AND EXISTS (
         SELECT 1 FROM donations d
          WHERE d.recurring_donation_id = r.id
            AND d.status = 'completed'
            AND d.created_at >= %(start)s AND d.created_at < %(end)s
       )
     ORDER BY r.created_at DESC
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, {"start": start, "end": end, "user_id": user_id})
        return [dict(zip(COLS, r)) for r in cur.fetchall()]
