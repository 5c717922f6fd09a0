# persistence.py - Table-oriented query helpers over the psycopg pool
"""
Generic select / insert / update with equality filters and simple ordering,
plus the one join the session core needs (a student's running attempt).

Identifiers are always composed with psycopg.sql, values always bound.
"""
from typing import Any, Dict, Iterable, List, Optional, Union

from psycopg import sql
from psycopg.types.json import Jsonb  # re-exported for json/jsonb columns

from config.db_config import get_db_cursor

Filters = Optional[Dict[str, Any]]


def _where(filters: Filters) -> sql.Composable:
    if not filters:
        return sql.SQL("")
    clauses = []
    for column, value in filters.items():
        if value is None:
            clauses.append(sql.SQL("{} IS NULL").format(sql.Identifier(column)))
        else:
            clauses.append(sql.SQL("{} = {}").format(sql.Identifier(column), sql.Placeholder(column)))
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses)


def _params(filters: Filters) -> Dict[str, Any]:
    return {k: v for k, v in (filters or {}).items() if v is not None}


def select(table: str, columns: Union[str, Iterable[str]] = "*", filters: Filters = None,
           order_by: Optional[str] = None, descending: bool = False,
           limit: Optional[int] = None) -> List[Dict[str, Any]]:
    if columns == "*":
        cols = sql.SQL("*")
    else:
        cols = sql.SQL(", ").join(sql.Identifier(c) for c in columns)

    query = sql.SQL("SELECT {cols} FROM {table}").format(cols=cols, table=sql.Identifier(table))
    query += _where(filters)
    if order_by:
        query += sql.SQL(" ORDER BY {} {}").format(
            sql.Identifier(order_by), sql.SQL("DESC" if descending else "ASC")
        )
    params = _params(filters)
    if limit is not None:
        query += sql.SQL(" LIMIT {}").format(sql.Placeholder("_limit"))
        params["_limit"] = int(limit)

    with get_db_cursor() as cur:
        cur.execute(query, params)
        return cur.fetchall()


def select_one(table: str, columns: Union[str, Iterable[str]] = "*", filters: Filters = None,
               order_by: Optional[str] = None, descending: bool = False) -> Optional[Dict[str, Any]]:
    rows = select(table, columns, filters, order_by, descending, limit=1)
    return rows[0] if rows else None


def insert(table: str, record: Dict[str, Any]) -> Dict[str, Any]:
    if not record:
        raise ValueError("insert needs at least one column")
    query = sql.SQL("INSERT INTO {table} ({cols}) VALUES ({vals}) RETURNING *").format(
        table=sql.Identifier(table),
        cols=sql.SQL(", ").join(sql.Identifier(c) for c in record),
        vals=sql.SQL(", ").join(sql.Placeholder(c) for c in record),
    )
    with get_db_cursor(commit=True) as cur:
        cur.execute(query, record)
        return cur.fetchone()


def update(table: str, patch: Dict[str, Any], filters: Filters) -> int:
    """Returns the number of updated rows. Refuses to run without filters."""
    if not patch:
        raise ValueError("update needs at least one column")
    if not filters:
        raise ValueError("update without filters is not allowed")

    # patch placeholders are prefixed so they never collide with filter names
    assignments = sql.SQL(", ").join(
        sql.SQL("{} = {}").format(sql.Identifier(c), sql.Placeholder(f"set_{c}")) for c in patch
    )
    query = sql.SQL("UPDATE {table} SET {assignments}").format(
        table=sql.Identifier(table), assignments=assignments
    )
    query += _where(filters)
    params = {f"set_{k}": v for k, v in patch.items()}
    params.update(_params(filters))

    with get_db_cursor(commit=True) as cur:
        cur.execute(query, params)
        return cur.rowcount


def fetch_active_attempt(student_id: Any) -> Optional[Dict[str, Any]]:
    """Most recent in-progress attempt of a student, joined with its exam."""
    with get_db_cursor() as cur:
        cur.execute(
            """
            SELECT a.id AS attempt_id,
                   a.exam_id,
                   a.start_time,
                   a.status,
                   e.title AS exam_title,
                   e.duration
            FROM exam_attempts a
            JOIN exams e ON e.id = a.exam_id
            WHERE a.student_id = %s
              AND a.status = 'in_progress'
            ORDER BY a.start_time DESC
            LIMIT 1;
            """,
            (student_id,),
        )
        return cur.fetchone()


def expire_stale_otps() -> int:
    """Retire unused OTP codes whose expiry has passed."""
    with get_db_cursor(commit=True) as cur:
        cur.execute(
            """
            UPDATE admin_otp_codes
            SET is_used = TRUE
            WHERE is_used = FALSE
              AND expires_at < CURRENT_TIMESTAMP;
            """
        )
        return cur.rowcount
