"""
SQLite Subscription Database Adapter.

Local implementation of the hosted email_subscriptions table.
Designed to be Postgres-compatible (uses standard SQL patterns), so the
same queries work against the hosted service's relational backend.

The table is keyed uniquely on the normalized address; a collision on
insert surfaces as DuplicateSubscriptionError.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from src.components.subscription.models import (
    DuplicateSubscriptionError,
    Subscription,
    SubscriptionRepoError,
    SubscriptionStatus,
)

logger = logging.getLogger(__name__)

TABLE_NAME = "email_subscriptions"

SCHEMA_SQL = f"""
CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    status TEXT NOT NULL DEFAULT 'active'
        CHECK(status IN ('pending', 'active', 'unsubscribed')),
    source TEXT NOT NULL DEFAULT 'web',
    unsubscribe_token TEXT NOT NULL UNIQUE,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    unsubscribed_at TEXT,
    confirmation_token TEXT UNIQUE,
    confirmation_expires_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_email_subscriptions_status ON {TABLE_NAME}(status);
CREATE INDEX IF NOT EXISTS idx_email_subscriptions_source ON {TABLE_NAME}(source);
"""

EXPECTED_COLUMNS: tuple[str, ...] = (
    "id",
    "email",
    "status",
    "source",
    "unsubscribe_token",
    "created_at",
    "updated_at",
    "unsubscribed_at",
    "confirmation_token",
    "confirmation_expires_at",
)

# -----------------------------------------------------------------------------
# Helper functions
# -----------------------------------------------------------------------------


def dict_factory(cursor: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    """Convert SQLite row to dictionary."""
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def parse_dt(s: str | None) -> datetime | None:
    """Parse ISO datetime string."""
    return datetime.fromisoformat(s) if s else None


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def ensure_schema(db_path: str) -> None:
    """Create the subscriptions table and indexes if missing."""
    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(SCHEMA_SQL)
        conn.commit()
    finally:
        conn.close()
    logger.info("Schema ensured for %s in %s", TABLE_NAME, db_path)


@dataclass
class SchemaReport:
    """Result of inspecting the subscriptions table."""

    table_exists: bool
    columns: list[str] = field(default_factory=list)
    missing_columns: list[str] = field(default_factory=list)
    row_count: int = 0
    active_count: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.table_exists and not self.missing_columns and self.error is None


def inspect_schema(db_path: str) -> SchemaReport:
    """
    Inspect the subscriptions table.

    Never raises for a missing or unreadable database; the problem is
    reported in SchemaReport.error instead.
    """
    try:
        conn = sqlite3.connect(f"file:{db_path}?mode=ro", uri=True)
    except sqlite3.Error as e:
        return SchemaReport(table_exists=False, error=str(e))

    try:
        exists = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (TABLE_NAME,),
        ).fetchone()
        if not exists:
            return SchemaReport(table_exists=False)

        columns = [row[1] for row in conn.execute(f"PRAGMA table_info({TABLE_NAME})")]
        row_count = conn.execute(f"SELECT COUNT(*) FROM {TABLE_NAME}").fetchone()[0]
        active_count = 0
        if "status" in columns:
            active_count = conn.execute(
                f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE status = 'active'"
            ).fetchone()[0]

        return SchemaReport(
            table_exists=True,
            columns=columns,
            missing_columns=[c for c in EXPECTED_COLUMNS if c not in columns],
            row_count=row_count,
            active_count=active_count,
        )
    except sqlite3.Error as e:
        return SchemaReport(table_exists=False, error=str(e))
    finally:
        conn.close()


# -----------------------------------------------------------------------------
# Base SQLite Repository
# -----------------------------------------------------------------------------


class SQLiteRepoBase:
    """
    Base class for SQLite repositories.

    An externally supplied connection must use dict_factory rows.
    """

    def __init__(self, db_path: str, connection: sqlite3.Connection | None = None):
        self.db_path = db_path
        self._external_conn = connection

    def _get_conn(self) -> sqlite3.Connection:
        """Get database connection (uses external if provided)."""
        if self._external_conn is not None:
            return self._external_conn

        conn = sqlite3.connect(self.db_path)
        conn.row_factory = dict_factory
        return conn

    def _should_close(self) -> bool:
        """Whether to close connection after use."""
        return self._external_conn is None

    def ping(self) -> None:
        """Cheap connectivity check; raises on failure."""
        conn = self._get_conn()
        try:
            conn.execute(f"SELECT 1 FROM {TABLE_NAME} LIMIT 1").fetchall()
        finally:
            if self._should_close():
                conn.close()


# -----------------------------------------------------------------------------
# Subscription Repository
# -----------------------------------------------------------------------------


class SQLiteSubscriptionRepo(SQLiteRepoBase):
    """SQLite implementation of SubscriptionRepoPort."""

    def _map_row(self, row: dict[str, Any]) -> Subscription:
        created_at = parse_dt(row["created_at"])
        updated_at = parse_dt(row["updated_at"])
        assert created_at is not None and updated_at is not None
        return Subscription(
            id=UUID(row["id"]),
            email=row["email"],
            unsubscribe_token=row["unsubscribe_token"],
            status=SubscriptionStatus(row["status"]),
            source=row["source"],
            created_at=created_at,
            updated_at=updated_at,
            unsubscribed_at=parse_dt(row["unsubscribed_at"]),
            confirmation_token=row["confirmation_token"],
            confirmation_expires_at=parse_dt(row["confirmation_expires_at"]),
        )

    def get_by_email(self, email: str) -> Subscription | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                f"SELECT * FROM {TABLE_NAME} WHERE email = ?", (email,)
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def get_by_unsubscribe_token(self, token: str) -> Subscription | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                f"SELECT * FROM {TABLE_NAME} WHERE unsubscribe_token = ?", (token,)
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def get_by_confirmation_token(self, token: str) -> Subscription | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                f"SELECT * FROM {TABLE_NAME} WHERE confirmation_token = ?", (token,)
            ).fetchone()
            return self._map_row(row) if row else None
        finally:
            if self._should_close():
                conn.close()

    def insert(self, subscription: Subscription) -> Subscription:
        conn = self._get_conn()
        try:
            conn.execute(
                f"""
                INSERT INTO {TABLE_NAME} (
                    id, email, status, source, unsubscribe_token,
                    created_at, updated_at, unsubscribed_at,
                    confirmation_token, confirmation_expires_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(subscription.id),
                    subscription.email,
                    subscription.status.value,
                    subscription.source,
                    subscription.unsubscribe_token,
                    subscription.created_at.isoformat(),
                    subscription.updated_at.isoformat(),
                    subscription.unsubscribed_at.isoformat()
                    if subscription.unsubscribed_at
                    else None,
                    subscription.confirmation_token,
                    _iso(subscription.confirmation_expires_at),
                ),
            )
            if self._should_close():
                conn.commit()
            return subscription
        except sqlite3.IntegrityError as e:
            if f"{TABLE_NAME}.email" in str(e):
                raise DuplicateSubscriptionError(subscription.email) from e
            raise SubscriptionRepoError(f"Insert failed: {e}") from e
        finally:
            if self._should_close():
                conn.close()

    def save(self, subscription: Subscription) -> Subscription:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                f"""
                UPDATE {TABLE_NAME} SET
                    status = ?,
                    source = ?,
                    updated_at = ?,
                    unsubscribed_at = ?,
                    confirmation_token = ?,
                    confirmation_expires_at = ?
                WHERE id = ?
                """,
                (
                    subscription.status.value,
                    subscription.source,
                    subscription.updated_at.isoformat(),
                    subscription.unsubscribed_at.isoformat()
                    if subscription.unsubscribed_at
                    else None,
                    subscription.confirmation_token,
                    _iso(subscription.confirmation_expires_at),
                    str(subscription.id),
                ),
            )
            if cursor.rowcount == 0:
                raise SubscriptionRepoError(f"Subscription {subscription.id} not found")
            if self._should_close():
                conn.commit()
            return subscription
        finally:
            if self._should_close():
                conn.close()

    def count_by_status(self, status: SubscriptionStatus) -> int:
        conn = self._get_conn()
        try:
            row = conn.execute(
                f"SELECT COUNT(*) AS n FROM {TABLE_NAME} WHERE status = ?",
                (status.value,),
            ).fetchone()
            return int(row["n"]) if isinstance(row, dict) else int(row[0])
        finally:
            if self._should_close():
                conn.close()
