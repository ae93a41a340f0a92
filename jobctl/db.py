import asyncio
import re
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .utils import to_iso

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT
);
CREATE TABLE IF NOT EXISTS profiles (
    id TEXT PRIMARY KEY,
    display_name TEXT,
    email_favorites_digest_enabled INTEGER NOT NULL DEFAULT 1,
    email_seller_weekly_enabled INTEGER NOT NULL DEFAULT 1
);
CREATE TABLE IF NOT EXISTS sales (
    id TEXT PRIMARY KEY,
    owner_id TEXT NOT NULL,
    title TEXT,
    address TEXT,
    city TEXT,
    state TEXT,
    date_start TEXT,
    time_start TEXT,
    date_end TEXT,
    time_end TEXT,
    status TEXT NOT NULL DEFAULT 'draft',
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS items (
    id TEXT PRIMARY KEY,
    sale_id TEXT,
    name TEXT,
    image_url TEXT
);
CREATE TABLE IF NOT EXISTS favorites (
    user_id TEXT NOT NULL,
    sale_id TEXT NOT NULL,
    start_soon_notified_at TEXT,
    created_at TEXT,
    PRIMARY KEY (user_id, sale_id)
);
CREATE TABLE IF NOT EXISTS analytics_events (
    id TEXT PRIMARY KEY,
    sale_id TEXT,
    owner_id TEXT,
    event_type TEXT NOT NULL,
    ts TEXT NOT NULL,
    is_test INTEGER NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_sales_created ON sales(created_at);
CREATE INDEX IF NOT EXISTS idx_favorites_notified ON favorites(start_soon_notified_at);
CREATE INDEX IF NOT EXISTS idx_events_ts ON analytics_events(ts);
"""

_IDENT = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class DataStoreError(RuntimeError):
    pass


@dataclass
class Account:
    id: str
    email: Optional[str]


def _ident(name: str) -> str:
    if not _IDENT.match(name):
        raise ValueError(f"Invalid identifier: {name!r}")
    return name


def _param(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_iso(value)
    return value


def _where(
    eq: Optional[Mapping[str, Any]] = None,
    in_: Optional[Mapping[str, Iterable[Any]]] = None,
    is_null: Iterable[str] = (),
    gte: Optional[Mapping[str, Any]] = None,
    lt: Optional[Mapping[str, Any]] = None,
) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    for op, filters in (("=", eq), (">=", gte), ("<", lt)):
        for col, value in (filters or {}).items():
            clauses.append(f"{_ident(col)} {op} ?")
            params.append(_param(value))
    for col, values in (in_ or {}).items():
        values = list(values)
        if not values:
            clauses.append("0")
            continue
        clauses.append(f"{_ident(col)} IN ({', '.join('?' for _ in values)})")
        params.extend(_param(v) for v in values)
    for col in is_null:
        clauses.append(f"{_ident(col)} IS NULL")
    if not clauses:
        return "", params
    return " WHERE " + " AND ".join(clauses), params


class DataStore:
    """Relational store used by handlers (privileged; no row-level rules)."""

    async def select(self, table: str, columns: Sequence[str] = ("*",), *,
                     eq=None, in_=None, is_null=(), gte=None, lt=None,
                     limit: Optional[int] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError

    async def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> int:
        raise NotImplementedError

    async def update(self, table: str, values: Mapping[str, Any], *,
                     eq=None, in_=None, is_null=()) -> int:
        raise NotImplementedError

    async def delete(self, table: str, *, eq=None, in_=None, is_null=()) -> int:
        raise NotImplementedError


def connect_db(path: str) -> sqlite3.Connection:
    conn = sqlite3.connect(path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    with conn:
        conn.executescript(SCHEMA)


class SqliteDataStore(DataStore):
    """sqlite3 adapter. Calls run in a worker thread, one at a time."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn
        self._lock = threading.Lock()

    @classmethod
    def open(cls, path: str) -> "SqliteDataStore":
        conn = connect_db(path)
        init_db(conn)
        return cls(conn)

    def _run(self, sql: str, params: Sequence[Any], fetch: bool):
        with self._lock:
            try:
                with self.conn:
                    cur = self.conn.execute(sql, params)
                    if fetch:
                        return [dict(r) for r in cur.fetchall()]
                    return cur.rowcount
            except sqlite3.Error as e:
                raise DataStoreError(str(e)) from e

    def _run_many(self, sql: str, rows: Sequence[Sequence[Any]]) -> int:
        with self._lock:
            try:
                with self.conn:
                    return self.conn.executemany(sql, rows).rowcount
            except sqlite3.Error as e:
                raise DataStoreError(str(e)) from e

    async def select(self, table, columns=("*",), *, eq=None, in_=None, is_null=(),
                     gte=None, lt=None, limit=None):
        cols = ", ".join(c if c == "*" else _ident(c) for c in columns)
        where, params = _where(eq, in_, is_null, gte, lt)
        sql = f"SELECT {cols} FROM {_ident(table)}{where}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))
        return await asyncio.to_thread(self._run, sql, params, True)

    async def insert(self, table, rows):
        rows = list(rows)
        if not rows:
            return 0
        cols = list(rows[0].keys())
        sql = (
            f"INSERT INTO {_ident(table)} ({', '.join(_ident(c) for c in cols)}) "
            f"VALUES ({', '.join('?' for _ in cols)})"
        )
        values = [[_param(r.get(c)) for c in cols] for r in rows]
        return await asyncio.to_thread(self._run_many, sql, values)

    async def update(self, table, values, *, eq=None, in_=None, is_null=()):
        if not values:
            raise ValueError("update requires at least one column")
        sets = ", ".join(f"{_ident(c)} = ?" for c in values)
        where, params = _where(eq, in_, is_null)
        sql = f"UPDATE {_ident(table)} SET {sets}{where}"
        return await asyncio.to_thread(
            self._run, sql, [_param(v) for v in values.values()] + params, False
        )

    async def delete(self, table, *, eq=None, in_=None, is_null=()):
        where, params = _where(eq, in_, is_null)
        if not where:
            raise ValueError("delete without a filter is not allowed")
        return await asyncio.to_thread(self._run, f"DELETE FROM {_ident(table)}{where}", params, False)

    async def close(self):
        self.conn.close()


class AccountDirectory:
    """Bulk account listing. There is no id filter; callers filter client-side."""

    async def list_accounts(self) -> List[Account]:
        raise NotImplementedError


class SqliteAccountDirectory(AccountDirectory):
    def __init__(self, store: SqliteDataStore):
        self._store = store

    async def list_accounts(self):
        rows = await self._store.select("users", ("id", "email"))
        return [Account(id=r["id"], email=r["email"]) for r in rows]
