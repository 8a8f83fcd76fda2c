"""
Persistence interface for the billing engine.

The engine never touches storage directly: every read and write goes through
a BillingStore. Rows are plain dicts of JSON-compatible values (money as
decimal strings). Stores own the two atomic guarantees the engine relies on:

- a unique constraint on invoices.invoice_number
- conditional updates (compare-and-swap on expected column values)

Filters map column names to values for equality, or use the suffixes
``__lt``, ``__lte``, ``__gt`` and ``__gte`` for ranges.
"""

import copy
import json
import logging
import sqlite3
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

from .errors import DuplicateKeyError, StorageError

logger = logging.getLogger(__name__)

TABLES = (
    "companies",
    "pricing_plans",
    "invoices",
    "billing_settings",
    "profiles",
    "audit_logs",
    "payment_transactions",
    "payments",
)

UNIQUE_COLUMNS = {
    "invoices": ("invoice_number",),
}

RANGE_OPERATORS = {
    "lt": "<",
    "lte": "<=",
    "gt": ">",
    "gte": ">=",
}


def _split_filter(key: str) -> tuple[str, str]:
    column, _, op = key.partition("__")
    if op and op not in RANGE_OPERATORS:
        raise StorageError(f"Unsupported filter operator: {op}")
    return column, op


def _check_table(table: str) -> None:
    if table not in TABLES:
        raise StorageError(f"Unknown table: {table}")


def _check_limit(limit: Optional[int]) -> None:
    if limit is not None and limit < 0:
        raise StorageError(f"Invalid limit: {limit}")


class BillingStore(ABC):
    """Row-based CRUD against the billing tables."""

    @abstractmethod
    def insert(self, table: str, row: dict) -> dict:
        """Insert a row, assigning an id when missing. Returns the stored row."""

    @abstractmethod
    def get(self, table: str, row_id: str) -> Optional[dict]:
        """Fetch a row by id."""

    @abstractmethod
    def select(
        self,
        table: str,
        filters: Optional[dict] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Return rows matching every filter."""

    @abstractmethod
    def count(self, table: str, filters: Optional[dict] = None) -> int:
        """Count rows matching every filter."""

    @abstractmethod
    def update(self, table: str, row_id: str, values: dict, expected: Optional[dict] = None) -> bool:
        """
        Apply values to a row.

        When expected is given, the write only happens if every expected
        column still holds that value. Returns False when no row was written.
        """

    @abstractmethod
    def delete(self, table: str, row_id: str) -> bool:
        """Delete a row. Returns False when it did not exist."""

    def first(self, table: str, filters: Optional[dict] = None, **kwargs) -> Optional[dict]:
        rows = self.select(table, filters, limit=1, **kwargs)
        return rows[0] if rows else None


# =============================================================================
# IN-MEMORY STORE
# =============================================================================


def _sort_key(value: Any):
    # None sorts first, like SQLite NULLs.
    return (value is not None, value)


class InMemoryStore(BillingStore):
    """Thread-safe dict-backed store, used for tests and local development."""

    def __init__(self):
        self._tables: dict[str, dict[str, dict]] = {name: {} for name in TABLES}
        self._lock = threading.Lock()

    def insert(self, table: str, row: dict) -> dict:
        _check_table(table)
        row = copy.deepcopy(row)
        row["id"] = row.get("id") or uuid.uuid4().hex

        with self._lock:
            rows = self._tables[table]
            if row["id"] in rows:
                raise DuplicateKeyError(table, "id", row["id"])
            for column in UNIQUE_COLUMNS.get(table, ()):
                value = row.get(column)
                if any(existing.get(column) == value for existing in rows.values()):
                    raise DuplicateKeyError(table, column, value)
            rows[row["id"]] = row

        return copy.deepcopy(row)

    def get(self, table: str, row_id: str) -> Optional[dict]:
        _check_table(table)
        with self._lock:
            row = self._tables[table].get(row_id)
            return copy.deepcopy(row) if row is not None else None

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        _check_table(table)
        _check_limit(limit)
        self._check_filters(filters)
        with self._lock:
            rows = [copy.deepcopy(r) for r in self._tables[table].values() if self._matches(r, filters)]

        if order_by:
            rows.sort(key=lambda r: _sort_key(r.get(order_by)), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return rows

    def count(self, table, filters=None) -> int:
        _check_table(table)
        self._check_filters(filters)
        with self._lock:
            return sum(1 for r in self._tables[table].values() if self._matches(r, filters))

    def update(self, table, row_id, values, expected=None) -> bool:
        _check_table(table)
        with self._lock:
            row = self._tables[table].get(row_id)
            if row is None:
                return False
            if expected and any(row.get(k) != v for k, v in expected.items()):
                return False
            for column in UNIQUE_COLUMNS.get(table, ()):
                if column in values and any(
                    other_id != row_id and other.get(column) == values[column]
                    for other_id, other in self._tables[table].items()
                ):
                    raise DuplicateKeyError(table, column, values[column])
            row.update(copy.deepcopy(values))
            return True

    def delete(self, table, row_id) -> bool:
        _check_table(table)
        with self._lock:
            return self._tables[table].pop(row_id, None) is not None

    @staticmethod
    def _check_filters(filters: Optional[dict]) -> None:
        for key in filters or ():
            _split_filter(key)

    @staticmethod
    def _matches(row: dict, filters: Optional[dict]) -> bool:
        if not filters:
            return True
        for key, expected in filters.items():
            column, op = _split_filter(key)
            actual = row.get(column)
            if not op:
                if actual != expected:
                    return False
                continue
            if actual is None or expected is None:
                return False
            if op == "lt" and not actual < expected:
                return False
            if op == "lte" and not actual <= expected:
                return False
            if op == "gt" and not actual > expected:
                return False
            if op == "gte" and not actual >= expected:
                return False
        return True


# =============================================================================
# SQLITE STORE
# =============================================================================


class SqliteStore(BillingStore):
    """
    SQLite-backed store.

    Each table keeps the row as a JSON document next to its primary key.
    Columns listed in UNIQUE_COLUMNS are mirrored into real columns carrying a
    UNIQUE constraint, so uniqueness holds across processes sharing the file.
    """

    def __init__(self, path: str = ":memory:"):
        self.path = path
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(path, check_same_thread=False)
            self._create_schema()
        except sqlite3.Error as e:
            raise StorageError(f"Could not open billing database at {path}: {e}") from e
        logger.info(f"Opened billing database: {path}")

    def _create_schema(self) -> None:
        with self._conn:
            for table in TABLES:
                extra = "".join(f", {col} TEXT NOT NULL UNIQUE" for col in UNIQUE_COLUMNS.get(table, ()))
                self._conn.execute(
                    f"CREATE TABLE IF NOT EXISTS {table} (id TEXT PRIMARY KEY, data TEXT NOT NULL{extra})"
                )

    def close(self) -> None:
        self._conn.close()

    def _execute(self, sql: str, params: tuple = ()) -> tuple[list, int]:
        """Run one statement in its own transaction. Returns (rows, rowcount)."""
        try:
            with self._lock, self._conn:
                cursor = self._conn.execute(sql, params)
                return cursor.fetchall(), cursor.rowcount
        except sqlite3.IntegrityError as e:
            raise self._integrity_error(str(e)) from e
        except sqlite3.Error as e:
            logger.error(f"SQLite error: {e}")
            raise StorageError(str(e)) from e

    @staticmethod
    def _integrity_error(message: str) -> StorageError:
        # sqlite reports "UNIQUE constraint failed: invoices.invoice_number"
        if "UNIQUE constraint failed:" in message:
            qualified = message.split(":", 1)[1].strip()
            table, _, column = qualified.partition(".")
            return DuplicateKeyError(table, column, None)
        return StorageError(message)

    @staticmethod
    def _where(filters: Optional[dict]) -> tuple[str, list]:
        if not filters:
            return "", []
        clauses, params = [], []
        for key, value in filters.items():
            column, op = _split_filter(key)
            path = f"json_extract(data, '$.{column}')"
            if op:
                clauses.append(f"{path} {RANGE_OPERATORS[op]} ?")
            else:
                clauses.append(f"{path} IS ?")
            params.append(value)
        return " WHERE " + " AND ".join(clauses), params

    def insert(self, table, row):
        _check_table(table)
        row = dict(row)
        row["id"] = row.get("id") or uuid.uuid4().hex
        unique = UNIQUE_COLUMNS.get(table, ())
        columns = ["id", "data", *unique]
        params = [row["id"], json.dumps(row), *(row.get(col) for col in unique)]
        placeholders = ", ".join("?" for _ in columns)
        self._execute(f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})", tuple(params))
        return copy.deepcopy(row)

    def get(self, table, row_id):
        _check_table(table)
        rows, _ = self._execute(f"SELECT data FROM {table} WHERE id = ?", (row_id,))
        return json.loads(rows[0][0]) if rows else None

    def select(self, table, filters=None, order_by=None, descending=False, limit=None):
        _check_table(table)
        _check_limit(limit)
        where, params = self._where(filters)
        sql = f"SELECT data FROM {table}{where}"
        if order_by:
            sql += f" ORDER BY json_extract(data, '$.{order_by}') {'DESC' if descending else 'ASC'}"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        rows, _ = self._execute(sql, tuple(params))
        return [json.loads(r[0]) for r in rows]

    def count(self, table, filters=None):
        _check_table(table)
        where, params = self._where(filters)
        rows, _ = self._execute(f"SELECT COUNT(*) FROM {table}{where}", tuple(params))
        return rows[0][0]

    def update(self, table, row_id, values, expected=None):
        _check_table(table)
        # Read-modify-write inside one transaction under the connection lock.
        try:
            with self._lock, self._conn:
                where, params = self._where(expected)
                where = where.replace(" WHERE ", " AND ", 1)
                found = self._conn.execute(
                    f"SELECT data FROM {table} WHERE id = ?{where}", (row_id, *params)
                ).fetchone()
                if found is None:
                    return False
                row = json.loads(found[0])
                row.update(values)
                unique = UNIQUE_COLUMNS.get(table, ())
                assignments = ", ".join(["data = ?", *(f"{col} = ?" for col in unique)])
                cursor = self._conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ?{where}",
                    (json.dumps(row), *(row.get(col) for col in unique), row_id, *params),
                )
                return cursor.rowcount == 1
        except sqlite3.IntegrityError as e:
            raise self._integrity_error(str(e)) from e
        except sqlite3.Error as e:
            logger.error(f"SQLite error: {e}")
            raise StorageError(str(e)) from e

    def delete(self, table, row_id):
        _check_table(table)
        _, rowcount = self._execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
        return rowcount == 1


def create_store(path: str = "") -> BillingStore:
    """Build the configured store: SQLite when a path is set, else in-memory."""
    if path:
        return SqliteStore(path)
    return InMemoryStore()
