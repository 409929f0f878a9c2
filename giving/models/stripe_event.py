from typing import Any
from psycopg2.extras import Json
from giving.utils.db import get_db_connection


def mark_event_processed(event_id: str, event_type: str, raw_event: dict[str, Any]) -> bool:
    """
    Record a provider webhook event. Returns False when the event id was
    already recorded, so redelivered webhooks are acknowledged without being
    applied twice.
    """
    sql = """
    INSERT INTO stripe_events (event_id, type, raw)
    VALUES (%s, %s, %s)
    ON CONFLICT (event_id) DO NOTHING
    RETURNING event_id
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(sql, (event_id, event_type, Json(raw_event)))
        inserted = cur.fetchone() is not None
        conn.commit()
        return inserted


def forget_event(event_id: str) -> None:
    """Drop a recorded event so the provider's next redelivery is applied."""
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute("DELETE FROM stripe_events WHERE event_id = %s", (event_id,))
        conn.commit()
