"""
Abstract Storage Interface

DESIGN DECISION: We define abstract interfaces for the three stores the
migrator touches:
1. The legacy key-value table (read once, in full)
2. The relational destination tables (upsert by key, simple lookups)
3. The audit log (append-only)

This allows us to:
- Run against Supabase in production
- Use in-memory storage for testing
- Keep the migration logic decoupled from the client library

The interface is intentionally simple - we're not building a full ORM.
Just the operations the migration needs.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel

from finance_migrator.models.audit import AuditEvent


class KVRow(BaseModel):
    """One row of the legacy key-value table."""

    key: str
    value: Any = None


class KVSourceInterface(ABC):
    """
    Read access to the legacy key-value table.
    """

    @abstractmethod
    async def read_all(self) -> list[KVRow]:
        """
        Read every row of the key-value table.

        The whole table is loaded into memory. The migration is a bounded,
        one-time administrative job, so no streaming is offered.

        Returns:
            All rows, in storage order

        Raises:
            StorageError: If the table cannot be read
        """
        pass


class RelationalStoreInterface(ABC):
    """
    Write and lookup access to the destination tables.
    """

    @abstractmethod
    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        on_conflict: str,
    ) -> None:
        """
        Insert a row, or update the existing row with the same conflict key.

        Args:
            table: Destination table name
            row: Column values
            on_conflict: Comma-separated conflict key columns

        Raises:
            UpsertError: If the backend rejects the row
        """
        pass

    @abstractmethod
    async def insert_if_absent(
        self,
        table: str,
        row: dict[str, Any],
        key: str,
    ) -> bool:
        """
        Insert a row unless one with the same key already exists.

        Must be a single atomic operation (insert ... on conflict do nothing),
        not a lookup followed by an insert.

        Returns:
            True if a row was inserted, False if it already existed

        Raises:
            UpsertError: If the backend rejects the row
        """
        pass

    @abstractmethod
    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """
        Select rows whose columns equal the given filter values.

        Args:
            table: Table name
            columns: Comma-separated column list, or "*"
            filters: {column: value} equality filters

        Returns:
            Matching rows

        Raises:
            StorageError: If the lookup fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (one migration run).

        Returns:
            List of related events in chronological order
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class UpsertError(StorageError):
    """The backend rejected a row."""

    def __init__(self, table: str, message: str):
        super().__init__(message)
        self.table = table
