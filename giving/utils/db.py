import psycopg2
import os
from dotenv import load_dotenv

load_dotenv()

APPLICATION_NAME = "church-giving"
CONNECT_TIMEOUT = int(os.getenv("DB_CONNECT_TIMEOUT", "10"))


def get_db_connection():
    """
    Connect to PostgreSQL. Uses DATABASE_URL if set, otherwise DB_HOST,
    DB_NAME, DB_USER, DB_PASSWORD and DB_PORT. Connections are tagged with
    the application name so sweeps show up in pg_stat_activity.
    """
    extra = {"connect_timeout": CONNECT_TIMEOUT, "application_name": APPLICATION_NAME}
    url = os.getenv("DATABASE_URL")
    if url:
        return psycopg2.connect(url, **extra)
    return psycopg2.connect(
        host=os.getenv("DB_HOST", "127.0.0.1"),
        database=os.getenv("DB_NAME", "church_giving_dev"),
        user=os.getenv("DB_USER", "dev"),
        password=os.getenv("DB_PASSWORD", "dev"),
        port=os.getenv("DB_PORT", "65432"),
        **extra,
    )
