import os
import json
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

import psycopg2
from psycopg2 import pool as pg_pool
from psycopg2.extras import Json, RealDictCursor
from contextlib import contextmanager


_POOL: Optional[pg_pool.AbstractConnectionPool] = None

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS documents (
        collection VARCHAR(64) NOT NULL,
        id VARCHAR(64) NOT NULL,
        data JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        PRIMARY KEY (collection, id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)",
    "CREATE INDEX IF NOT EXISTS idx_documents_data ON documents USING GIN (data jsonb_path_ops)",
)


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _connect_kwargs() -> Dict[str, Any]:
    """Keyword arguments shared by pooled and direct connections.

    - connect_timeout: DB_CONNECT_TIMEOUT, 10 seconds when unset
    - keepalives: on unless DB_KEEPALIVES is "0"/"false"
    - DB_KEEPALIVES_IDLE / _INTERVAL / _COUNT forwarded when present
    """
    kwargs: Dict[str, Any] = {}
    timeout = _env_int("DB_CONNECT_TIMEOUT")
    kwargs["connect_timeout"] = timeout if timeout is not None else 10

    flag = os.environ.get("DB_KEEPALIVES")
    if flag is None:
        kwargs["keepalives"] = 1
    else:
        kwargs["keepalives"] = 0 if str(flag).lower() in ("0", "false") else 1

    for env_name, key in (
        ("DB_KEEPALIVES_IDLE", "keepalives_idle"),
        ("DB_KEEPALIVES_INTERVAL", "keepalives_interval"),
        ("DB_KEEPALIVES_COUNT", "keepalives_count"),
    ):
        value = _env_int(env_name)
        if value is not None:
            kwargs[key] = value
    return kwargs


def init_pool(minconn: int = 1, maxconn: int = 10) -> None:
    """Create the process-wide connection pool from DATABASE_URL.

    Calling again once a pool exists does nothing. Without DATABASE_URL the
    pool stays unset and every operation opens a direct connection.
    """
    global _POOL
    if _POOL is not None:
        return
    url = os.environ.get("DATABASE_URL")
    if not url:
        return
    _POOL = pg_pool.ThreadedConnectionPool(minconn, maxconn, dsn=url, **_connect_kwargs())


def _quiet_rollback(conn) -> None:
    # A broken connection cannot roll back; the caller's exception matters more
    try:
        conn.rollback()
    except psycopg2.Error:
        pass


def _ping(conn) -> bool:
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
        if not getattr(conn, "autocommit", False):
            conn.rollback()
        return True
    except (psycopg2.OperationalError, psycopg2.InterfaceError):
        return False


@contextmanager
def _get_conn():
    """Yield a healthy connection, pooled when a pool exists.

    A pooled connection that fails the ``SELECT 1`` ping is discarded and
    one more checkout is attempted before giving up. Any exception raised
    inside the block rolls the connection back before it is released.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set; configure a PostgreSQL connection string")
    if _POOL is None:
        conn = psycopg2.connect(url, **_connect_kwargs())
        try:
            try:
                yield conn
            except Exception:
                _quiet_rollback(conn)
                raise
        finally:
            conn.close()
        return

    conn = None
    for _attempt in range(2):
        candidate = _POOL.getconn()
        if _ping(candidate):
            conn = candidate
            break
        _POOL.putconn(candidate, close=True)
    if conn is None:
        raise psycopg2.OperationalError("Failed to acquire healthy DB connection after retry")

    try:
        try:
            yield conn
        except Exception:
            _quiet_rollback(conn)
            raise
    finally:
        # status 1 = active, 2 = in transaction, 3 = in error
        if getattr(conn, "closed", 0) == 0 and getattr(conn, "status", 0) in (1, 2, 3):
            if not getattr(conn, "autocommit", False):
                _quiet_rollback(conn)
        _POOL.putconn(conn)


def ensure_schema() -> None:
    """Create the documents table and its indexes when missing."""
    with _get_conn() as conn:
        with conn.cursor() as cur:
            for statement in SCHEMA_STATEMENTS:
                cur.execute(statement)
        conn.commit()


def new_id() -> str:
    return uuid.uuid4().hex


def _filters_to_containment(filters: Iterable[Tuple[str, str, Any]]) -> Optional[Dict[str, Any]]:
    """Fold ANDed equality filters into one JSONB containment document.

    Returns None when two filters pin the same field to different values,
    which no document can satisfy.
    """
    probe: Dict[str, Any] = {}
    for field, op, value in filters:
        if op != "==":
            raise ValueError(f"Unsupported filter operator {op!r}; only '==' is available")
        if field in probe and probe[field] != value:
            return None
        probe[field] = value
    return probe


def _row_to_doc(row: Dict[str, Any]) -> Dict[str, Any]:
    data = row.get("data") or {}
    if isinstance(data, str):
        data = json.loads(data)
    return {**data, "id": row.get("id")}


def create(collection: str, record: Dict[str, Any]) -> str:
    doc_id = new_id()
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute(
            "INSERT INTO documents (collection, id, data) VALUES (%s, %s, %s)",
            (collection, doc_id, Json(record)),
        )
        conn.commit()
    return doc_id


def query(collection: str, filters: Iterable[Tuple[str, str, Any]]) -> List[Dict[str, Any]]:
    """Return every document of ``collection`` matching all equality filters.

    Result order is whatever PostgreSQL yields; callers sort explicitly.
    """
    probe = _filters_to_containment(filters)
    if probe is None:
        return []
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        if probe:
            cur.execute(
                "SELECT id, data FROM documents WHERE collection = %s AND data @> %s",
                (collection, Json(probe)),
            )
        else:
            cur.execute("SELECT id, data FROM documents WHERE collection = %s", (collection,))
        rows = cur.fetchall() or []
    return [_row_to_doc(r) for r in rows]


def get(collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(
            "SELECT id, data FROM documents WHERE collection = %s AND id = %s",
            (collection, doc_id),
        )
        row = cur.fetchone()
    return _row_to_doc(row) if row else None


def update(collection: str, doc_id: str, partial: Dict[str, Any]) -> bool:
    """Merge ``partial`` into an existing document.

    Returns False when no document with that id exists.
    """
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute(
            """
            UPDATE documents
            SET data = data || %s, updated_at = now()
            WHERE collection = %s AND id = %s
            """,
            (Json(partial), collection, doc_id),
        )
        touched = cur.rowcount
        conn.commit()
    return bool(touched)


def set_doc(collection: str, doc_id: str, record: Dict[str, Any], merge: bool = False) -> None:
    """Write a document at a caller-chosen id (profiles, accounts)."""
    if merge:
        conflict = "data = documents.data || EXCLUDED.data"
    else:
        conflict = "data = EXCLUDED.data"
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute(
            f"""
            INSERT INTO documents (collection, id, data) VALUES (%s, %s, %s)
            ON CONFLICT (collection, id) DO UPDATE SET {conflict}, updated_at = now()
            """,
            (collection, doc_id, Json(record)),
        )
        conn.commit()


def delete(collection: str, doc_id: str) -> None:
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute("DELETE FROM documents WHERE collection = %s AND id = %s", (collection, doc_id))
        conn.commit()


def import_documents(collection: str, docs: Dict[str, Dict[str, Any]]) -> int:
    """Upsert ``{id: body}`` documents into a collection; returns the count."""
    count = 0
    with _get_conn() as conn, conn.cursor() as cur:
        for doc_id, body in docs.items():
            cur.execute(
                """
                INSERT INTO documents (collection, id, data) VALUES (%s, %s, %s)
                ON CONFLICT (collection, id) DO UPDATE SET data = EXCLUDED.data, updated_at = now()
                """,
                (collection, str(doc_id), Json(body or {})),
            )
            count += 1
        conn.commit()
    return count
