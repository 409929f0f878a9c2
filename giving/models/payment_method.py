from typing import Any, Dict, List, Optional
from giving.utils.db import get_db_connection

COLS = [
    "id",
    "user_id",
    "payment_type",
    "provider_payment_id",
    "provider_customer_id",
    "last_four",
    "expiry_date",
    "card_brand",
    "is_default",
    "is_active",
    "billing_address_line1",
    "billing_address_line2",
    "billing_city",
    "billing_state",
    "billing_postal_code",
    "billing_country",
    "created_at",
    "updated_at",
]
SELECT_COLS = ", ".join(COLS)
INSERT_COLS = [c for c in COLS if c not in ("id", "created_at", "updated_at")]


def create_payment_method(method: Dict[str, Any]) -> Dict[str, Any]:
    sql = f"""
    INSERT INTO user_payment_methods ({", ".join(INSERT_COLS)})
    VALUES ({", ".join(["%s"] * len(INSERT_COLS))})
    RETURNING {SELECT_COLS}
    """
    values = [method.get(c) for c in INSERT_COLS]
    values[INSERT_COLS.index("is_default")] = bool(method.get("is_default"))
    values[INSERT_COLS.index("is_active")] = method.get("is_active", True)
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, values)
        row = cur.fetchone()
        conn.commit()
        return dict(zip(COLS, row))


def list_user_payment_methods(user_id: int) -> List[Dict[str, Any]]:
    sql = f"""
    SELECT {SELECT_COLS} FROM user_payment_methods
     WHERE user_id = %s AND is_active = true
     ORDER BY is_default DESC, created_at DESC
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (user_id,))
        return [dict(zip(COLS, r)) for r in cur.fetchall()]


def get_payment_method(method_id: int, user_id: int) -> Optional[Dict[str, Any]]:
    sql = f"""
    SELECT {SELECT_COLS} FROM user_payment_methods
     WHERE id = %s AND user_id = %s AND is_active = true
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (method_id, user_id))
        row = cur.fetchone()
        return dict(zip(COLS, row)) if row else None


def set_default_payment_method(method_id: int, user_id: int) -> Optional[Dict[str, Any]]:
    """
    Make one active method the user's default. The old default is cleared
    first, in the same transaction, so the one-default-per-user index never
    sees two rows at once.
    """
    clear_sql = """
    UPDATE user_payment_methods
       SET is_default = false, updated_at = now()
     WHERE user_id = %s AND id <> %s AND is_default = true
    """
    set_sql = f"""
    UPDATE user_payment_methods
       SET is_default = true, updated_at = now()
     WHERE id = %s AND user_id = %s AND is_active = true
    RETURNING {SELECT_COLS}
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(clear_sql, (user_id, method_id))
        cur.execute(set_sql, (method_id, user_id))
        row = cur.fetchone()
        if not row:
            conn.rollback()
            return None
        conn.commit()
        return dict(zip(COLS, row))


def deactivate_payment_method(method_id: int, user_id: int) -> Optional[Dict[str, Any]]:
    sql = f"""
    UPDATE user_payment_methods
       SET is_active = false, is_default = false, updated_at = now()
     WHERE id = %s AND user_id = %s
    RETURNING {SELECT_COLS}
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (method_id, user_id))
        row = cur.fetchone()
        conn.commit()
        return dict(zip(COLS, row)) if row else None
