# config/db_config.py
import logging
import os
import threading
from contextlib import contextmanager

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

logger = logging.getLogger(__name__)

DB_CONFIG = {
    "dbname": os.getenv("PGDATABASE", "examhub"),
    "user": os.getenv("PGUSER", "examhub"),
    "password": os.getenv("PGPASSWORD", ""),
    "host": os.getenv("PGHOST", "localhost"),
    "port": int(os.getenv("PGPORT", "5432")),
}

MIN_POOL = int(os.getenv("DB_POOL_MIN", "1"))
MAX_POOL = int(os.getenv("DB_POOL_MAX", "10"))

connection_pool = None
_pool_lock = threading.Lock()


def _conninfo(d):
    return (
        f"dbname={d['dbname']} "
        f"user={d['user']} "
        f"password={d['password']} "
        f"host={d['host']} "
        f"port={d['port']}"
    )


def init_pool():
    """Create the pool on first use so importing the app never touches the network."""
    global connection_pool
    with _pool_lock:
        if connection_pool is None:
            connection_pool = ConnectionPool(
                conninfo=_conninfo(DB_CONFIG),
                min_size=MIN_POOL,
                max_size=MAX_POOL,
                timeout=30,   # wait up to 30s for a free connection
                open=True,
            )
            logger.info("DB pool created (%s:%s/%s)", DB_CONFIG["host"], DB_CONFIG["port"], DB_CONFIG["dbname"])
    return connection_pool


def close_pool():
    global connection_pool
    with _pool_lock:
        if connection_pool is not None:
            connection_pool.close()
            connection_pool = None
            logger.info("DB pool closed")


def get_connection():
    """Get a database connection from the pool"""
    return init_pool().getconn()


def release_connection(conn):
    """Release the connection back to the pool"""
    if connection_pool is not None and conn is not None:
        connection_pool.putconn(conn)


@contextmanager
def get_db_cursor(commit: bool = False):
    """
    Usage:
        with get_db_cursor() as cur:
            cur.execute("SELECT 1")
            row = cur.fetchone()     # dict: {"?column?": 1}

        with get_db_cursor(commit=True) as cur:
            cur.execute("INSERT ...")
    """
    conn = get_connection()
    try:
        with conn.cursor(row_factory=dict_row) as cur:
            yield cur
        if commit:
            conn.commit()
        else:
            conn.rollback()
    except Exception:
        conn.rollback()
        raise
    finally:
        release_connection(conn)
