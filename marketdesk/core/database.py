"""
Database
========

Pooled SQLite access for every MarketDesk module.

There is no ORM: callers write their own SQL and pass values through
``?`` placeholders. Identifiers are never taken from user input except
through ``order_by_clause``, which checks them against a whitelist.
"""

import json
import logging
import math
import os
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.pool import QueuePool

logger = logging.getLogger(__name__)

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), 'schema.sql')

MAX_PAGE_SIZE = 100


@dataclass
class QueryResult:
    """Rows returned by a statement plus the number of rows it touched"""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None

    def scalar(self, default=None):
        row = self.first()
        if not row:
            return default
        value = next(iter(row.values()))
        return default if value is None else value


def _execute(conn, sql, params=()):
    cursor = conn.execute(sql, tuple(params or ()))
    try:
        if cursor.description is not None:
            rows = [dict(row) for row in cursor.fetchall()]
            # RETURNING clauses report the rows they produced
            return QueryResult(rows=rows, row_count=len(rows))
        return QueryResult(rows=[], row_count=max(cursor.rowcount, 0))
    finally:
        cursor.close()


class Transaction:
    """A connection checked out for the lifetime of one transaction"""

    def __init__(self, conn):
        self._conn = conn

    def query(self, sql, params=()) -> QueryResult:
        return _execute(self._conn, sql, params)


class Database:
    """
    Connection pool over a single SQLite file.

    Constructed once by the application's composition root and handed to
    every store function. Pooling is SQLAlchemy's ``QueuePool``: at most
    ``pool_size`` connections are opened, lazily, and a checkout waits up
    to ``timeout`` seconds for one to come back. ``close()`` disposes them.
    """

    def __init__(self, path: str, pool_size: int = 5, timeout: float = 30.0):
        self.path = path
        self.pool_size = max(1, int(pool_size))
        self.timeout = float(timeout)
        self._pool = QueuePool(
            self._connect,
            pool_size=self.pool_size,
            max_overflow=0,
            timeout=self.timeout,
            use_lifo=True,
        )
        self._closed = False

        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)

    def _connect(self):
        conn = sqlite3.connect(
            self.path,
            timeout=self.timeout,
            check_same_thread=False,
            isolation_level=None,
        )
        conn.row_factory = sqlite3.Row
        conn.execute('PRAGMA foreign_keys = ON')
        conn.execute('PRAGMA journal_mode = WAL')
        return conn

    @contextmanager
    def connection(self):
        """Check out a raw sqlite3 connection; it is rolled back and returned on exit"""
        if self._closed:
            raise sqlite3.ProgrammingError("Database pool is closed")
        pooled = self._pool.connect()
        try:
            yield pooled.dbapi_connection
        finally:
            pooled.close()

    def query(self, sql: str, params: Sequence = ()) -> QueryResult:
        """Execute one parameterised statement on a pooled connection"""
        with self.connection() as conn:
            return _execute(conn, sql, params)

    @contextmanager
    def transaction(self):
        """Run several statements atomically (BEGIN IMMEDIATE takes the write lock up front)"""
        with self.connection() as conn:
            conn.execute('BEGIN IMMEDIATE')
            try:
                yield Transaction(conn)
            except BaseException:
                conn.execute('ROLLBACK')
                raise
            conn.execute('COMMIT')

    def init_schema(self):
        """Create all tables and indexes (idempotent)"""
        with open(SCHEMA_PATH, 'r', encoding='utf-8') as f:
            script = f.read()
        with self.connection() as conn:
            conn.executescript(script)
        logger.info(f"Marketing database schema created/verified at {self.path}")

    def close(self):
        """Close every pooled connection"""
        self._closed = True
        self._pool.dispose()
        logger.info(f"Closed database pool for {self.path}")


def get_db() -> Database:
    """The Database owned by the MarketDesk extension of the current app"""
    from flask import current_app
    return current_app.extensions['marketdesk'].db


# ===================
# QUERY HELPERS
# ===================

def order_by_clause(sort_by, sort_order, allowed: Iterable[str], default: str = 'created_at',
                    prefix: str = '') -> str:
    """Build a safe ORDER BY fragment from whitelisted column and direction"""
    allowed = set(allowed)
    column = sort_by if sort_by in allowed else default
    direction = 'ASC' if str(sort_order or '').lower() == 'asc' else 'DESC'
    return f'ORDER BY {prefix}"{column}" {direction}'


def json_overlap(column: str) -> str:
    """SQL predicate: the JSON array in ``column`` shares an element with the JSON array parameter"""
    return (
        f"EXISTS (SELECT 1 FROM json_each({column}) AS a "
        f"JOIN json_each(?) AS b ON a.value = b.value)"
    )


def placeholders(count: int) -> str:
    return ', '.join('?' for _ in range(count))


def to_json(value) -> str:
    return json.dumps(value if value is not None else [])


def from_json(value, default=None):
    if value is None or value == '':
        return default
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except (json.JSONDecodeError, TypeError):
        return default


@dataclass
class Pagination:
    page: int = 1
    limit: int = 10
    sort_by: str = 'created_at'
    sort_order: str = 'desc'

    @classmethod
    def from_args(cls, args, default_sort='created_at'):
        """Build from a request args mapping, clamping page and limit"""
        def _int(name, fallback):
            try:
                return int(args.get(name, fallback))
            except (TypeError, ValueError):
                return fallback

        return cls(
            page=_int('page', 1),
            limit=_int('limit', 10),
            sort_by=args.get('sort_by') or default_sort,
            sort_order=args.get('sort_order') or 'desc',
        ).normalized()

    def normalized(self):
        self.page = max(1, int(self.page or 1))
        self.limit = min(MAX_PAGE_SIZE, max(1, int(self.limit or 10)))
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


@dataclass
class Page:
    data: List[Dict[str, Any]]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self):
        return {
            'data': self.data,
            'total': self.total,
            'page': self.page,
            'limit': self.limit,
            'total_pages': self.total_pages,
        }


def paginate(db, select_sql: str, count_sql: str, params: Sequence, order_sql: str,
             pagination: Pagination) -> Page:
    """Run a COUNT plus a LIMIT/OFFSET page query sharing the same WHERE params"""
    pagination = pagination.normalized()
    total = db.query(count_sql, params).scalar(0)
    rows = db.query(
        f"{select_sql} {order_sql} LIMIT ? OFFSET ?",
        list(params) + [pagination.limit, pagination.offset],
    ).rows
    return Page(data=rows, total=int(total), page=pagination.page, limit=pagination.limit)
