from decimal import Decimal
from typing import Any, Dict, List, Optional
from giving.utils.db import get_db_connection

COLS = ["code", "name", "symbol", "is_active", "exchange_rate", "last_updated_at"]
RETURNING = ", ".join(COLS)


def get_currency(code: str) -> Optional[Dict[str, Any]]:
    sql = f"SELECT {RETURNING} FROM currencies WHERE code = %s"
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (code,))
        row = cur.fetchone()
        return dict(zip(COLS, row)) if row else None


def list_active_currencies() -> List[Dict[str, Any]]:
    sql = f"SELECT {RETURNING} FROM currencies WHERE is_active = true ORDER BY code"
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql)
        return [dict(zip(COLS, r)) for r in cur.fetchall()]


def upsert_currency(
    *,
    code: str,
    name: str,
    symbol: str,
    exchange_rate: Decimal,
    is_active: bool = True,
) -> Dict[str, Any]:
    sql = f"""
    INSERT INTO currencies (code, name, symbol, is_active, exchange_rate)
    VALUES (%s, %s, %s, %s, %s)
    ON CONFLICT (code) DO UPDATE SET
      name            = EXCLUDED.name,
      symbol          = EXCLUDED.symbol,
      is_active       = EXCLUDED.is_active,
      exchange_rate   = EXCLUDED.exchange_rate,
      last_updated_at = now()
    RETURNING {RETURNING}
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (code, name, symbol, is_active, exchange_rate))
        row = cur.fetchone()
        conn.commit()
        return dict(zip(COLS, row))


def update_exchange_rate(code: str, new_rate: Decimal) -> Optional[Dict[str, Any]]:
    sql = f"""
    UPDATE currencies
       SET exchange_rate = %s, last_updated_at = now()
     WHERE code = %s
    RETURNING {RETURNING}
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (new_rate, code))
        row = cur.fetchone()
        conn.commit()
        return dict(zip(COLS, row)) if row else None


def set_currency_active(code: str, active: bool) -> Optional[Dict[str, Any]]:
    sql = f"UPDATE currencies SET is_active = %s WHERE code = %s RETURNING {RETURNING}"
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (active, code))
        row = cur.fetchone()
        conn.commit()
        return dict(zip(COLS, row)) if row else None
