"""
=============================================================================
STORAGE
=============================================================================

A thin layer over sqlite3: one lazily opened connection per Database,
rows as dicts, and a small query builder for equality filters.

    db = Database("storage/db/app.db")
    db.migrate()

    user = db.table("users").where("email", "a@b.c").first()
    users = db.table("users").limit(10).offset(20).get()
    new_id = db.table("users").insert({"email": "a@b.c", ...})

=============================================================================
SHARED STATE
=============================================================================

The connection is shared by every request thread of the process, so it is
opened with check_same_thread=False and every statement runs under one
lock. Table and column names cannot be bound as parameters; they are
checked against IDENTIFIER before they go into SQL text.

=============================================================================
"""

from typing import Any, Dict, List, Optional, Tuple
import logging
import os
import re
import sqlite3
import threading
import time


logger = logging.getLogger(__name__)


IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


# (name, SQL) in execution order; applied once each
MIGRATIONS: List[Tuple[str, str]] = [
    (
        "001_create_users_table",
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            email TEXT UNIQUE NOT NULL,
            password TEXT NOT NULL,
            name TEXT NOT NULL,
            role TEXT DEFAULT 'user',
            created_at INTEGER NOT NULL
        )
        """,
    ),
]


def check_identifier(name: str) -> str:
    if not IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def _dict_factory(cursor: sqlite3.Cursor, row: tuple) -> Dict[str, Any]:
    return {column[0]: value for column, value in zip(cursor.description, row)}


class Database:
    """
    SQLite database handle.

    Args:
        path: Database file (parent directories are created), or ":memory:"
    """

    def __init__(self, path: str):
        self.path = path
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        with self._lock:
            if self._connection is None:
                if self.path != ":memory:":
                    directory = os.path.dirname(os.path.abspath(self.path))
                    os.makedirs(directory, exist_ok=True)
                try:
                    conn = sqlite3.connect(self.path, check_same_thread=False)
                except sqlite3.Error as e:
                    logger.error(f"Database connection failed: {e}")
                    raise
                conn.row_factory = _dict_factory
                self._connection = conn
                logger.debug(f"Opened database {self.path}")
            return self._connection

    def execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        with self._lock:
            cursor = self.connection.execute(sql, params)
            self.connection.commit()
            return cursor

    def fetch_all(self, sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
        with self._lock:
            return self.connection.execute(sql, params).fetchall()

    def fetch_one(self, sql: str, params: tuple = ()) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self.connection.execute(sql, params).fetchone()

    def table(self, name: str) -> "QueryBuilder":
        return QueryBuilder(self, name)

    def migrate(self) -> List[str]:
        """
        Apply pending migrations.

        Returns:
            Names of the migrations applied by this call
        """
        applied = []
        with self._lock:
            self.execute(
                """
                CREATE TABLE IF NOT EXISTS migrations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    migration TEXT UNIQUE NOT NULL,
                    executed_at INTEGER NOT NULL
                )
                """
            )
            done = {row["migration"] for row in self.fetch_all("SELECT migration FROM migrations")}
            for name, sql in MIGRATIONS:
                if name in done:
                    continue
                self.execute(sql)
                self.table("migrations").insert({"migration": name, "executed_at": int(time.time())})
                logger.info(f"Applied migration {name}")
                applied.append(name)
        return applied

    def close(self) -> None:
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


class QueryBuilder:
    """Equality filters, limit and offset over one table."""

    def __init__(self, db: Database, table: str):
        self.db = db
        self.table = check_identifier(table)
        self._wheres: List[str] = []
        self._bindings: List[Any] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    def where(self, column: str, value: Any) -> "QueryBuilder":
        self._wheres.append(f"{check_identifier(column)} = ?")
        self._bindings.append(value)
        return self

    def limit(self, limit: int) -> "QueryBuilder":
        self._limit = int(limit)
        return self

    def offset(self, offset: int) -> "QueryBuilder":
        self._offset = int(offset)
        return self

    def to_sql(self) -> Tuple[str, tuple]:
        sql = f"SELECT * FROM {self.table}"
        if self._wheres:
            sql += " WHERE " + " AND ".join(self._wheres)
        if self._limit is not None:
            sql += f" LIMIT {self._limit}"
        if self._offset is not None:
            if self._limit is None:
                # SQLite only accepts OFFSET after LIMIT
                sql += " LIMIT -1"
            sql += f" OFFSET {self._offset}"
        return sql, tuple(self._bindings)

    def get(self) -> List[Dict[str, Any]]:
        sql, params = self.to_sql()
        return self.db.fetch_all(sql, params)

    def first(self) -> Optional[Dict[str, Any]]:
        rows = self.limit(1).get()
        return rows[0] if rows else None

    def insert(self, data: Dict[str, Any]) -> int:
        """Insert one row; returns the new row id."""
        if not data:
            raise ValueError("Nothing to insert")
        columns = [check_identifier(c) for c in data]
        placeholders = ", ".join("?" for _ in columns)
        sql = f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES ({placeholders})"
        cursor = self.db.execute(sql, tuple(data.values()))
        return int(cursor.lastrowid)
