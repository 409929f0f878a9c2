from typing import Optional
from giving.utils.db import get_db_connection


def get_user_email(user_id: int) -> Optional[str]:
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute("SELECT email FROM users WHERE id = %s", (user_id,))
        row = cur.fetchone()
        return row[0] if row else None


def log_email(
    *,
    user_id: Optional[int],
    reference_id: Optional[int],
    email_to: Optional[str],
    email_from: str,
    subject: str,
    body: str,
    status: str,
    error_message: Optional[str] = None,
) -> None:
    sql = """
    INSERT INTO email_logs
        (user_id, reference_id, email_to, email_from, subject, body, status, error_message, sent_at)
    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, now())
    """
    with get_db_connection() as conn, conn.cursor() as cur:
        cur.execute(
            sql,
            (user_id, reference_id, email_to, email_from, subject, body, status, error_message),
        )
        conn.commit()
