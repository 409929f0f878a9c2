from typing import Any, Dict, List, Optional
from giving.utils.db import get_db_connection

COLS = [
    "id",
    "receipt_number",
    "donation_id",
    "recurring_donation_id",
    "user_id",
    "tax_year",
    "amount",
    "currency",
    "issued_at",
    "created_at",
]
SELECT_COLS = ", ".join(COLS)

INSERT_COLS = [
    "receipt_number",
    "donation_id",
    "recurring_donation_id",
    "user_id",
    "tax_year",
    "amount",
    "currency",
]


def create_receipt(receipt: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """
    Insert a receipt; returns None when the donation (or series) already has
    one for that tax year.
    """
    sql = f"""
    INSERT INTO donation_receipts ({", ".join(INSERT_COLS)})
    VALUES ({", ".join(["%s"] * len(INSERT_COLS))})
    ON CONFLICT DO NOTHING
    RETURNING {SELECT_COLS}
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, [receipt.get(c) for c in INSERT_COLS])
        row = cur.fetchone()
        conn.commit()
        return dict(zip(COLS, row)) if row else None


def find_receipt(
    *,
    tax_year: int,
    donation_id: Optional[int] = None,
    recurring_donation_id: Optional[int] = None,
) -> Optional[Dict[str, Any]]:
    sql = f"""
    SELECT {SELECT_COLS} FROM donation_receipts
     WHERE tax_year = %s
       AND donation_id IS NOT DISTINCT FROM %s
       AND recurring_donation_id IS NOT DISTINCT FROM %s
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (tax_year, donation_id, recurring_donation_id))
        row = cur.fetchone()
        return dict(zip(COLS, row)) if row else None


def get_receipt_by_number(receipt_number: str) -> Optional[Dict[str, Any]]:
    sql = f"SELECT {SELECT_COLS} FROM donation_receipts WHERE receipt_number = %s"
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (receipt_number,))
        row = cur.fetchone()
        return dict(zip(COLS, row)) if row else None


def list_receipts_for_donation(donation_id: int) -> List[Dict[str, Any]]:
    sql = f"""
    SELECT {SELECT_COLS} FROM donation_receipts
     WHERE donation_id = %s
     ORDER BY issued_at DESC
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (donation_id,))
        return [dict(zip(COLS, r)) for r in cur.fetchall()]


def list_receipts_for_recurring(recurring_id: int) -> List[Dict[str, Any]]:
    sql = f"""
    SELECT {SELECT_COLS} FROM donation_receipts
     WHERE recurring_donation_id = %s
     ORDER BY issued_at DESC
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (recurring_id,))
        return [dict(zip(COLS, r)) for r in cur.fetchall()]


def list_receipts_by_tax_year(tax_year: int, user_id: Optional[int] = None) -> List[Dict[str, Any]]:
    sql = f"""
    SELECT {SELECT_COLS} FROM donation_receipts
     WHERE tax_year = %s
       AND (%s::int IS NULL OR user_id = %s)
     ORDER BY issued_at DESC, id DESC
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (tax_year, user_id, user_id))
        return [dict(zip(COLS, r)) for r in cur.fetchall()]
