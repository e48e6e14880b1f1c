"""
In-Memory Storage Implementation

Instance-scoped stand-ins for the Supabase tables. Every store is an
explicit object handed to whoever needs it; nothing is kept at module
level, so two stores never share state.

Used by the test suite and by create_app_components(use_storage=False)
for local dry runs of the HTTP endpoint.
"""

from collections import defaultdict
from typing import Any, Callable, Iterable, Optional, Union
from uuid import UUID

from finance_migrator.models.audit import AuditEvent
from finance_migrator.services.storage.interface import (
    AuditStorageInterface,
    KVRow,
    KVSourceInterface,
    RelationalStoreInterface,
    StorageError,
    UpsertError,
)


RowPredicate = Callable[[dict[str, Any]], bool]


def _matches(stored: Any, wanted: Any) -> bool:
    if stored is None or wanted is None:
        return stored is wanted
    return str(stored) == str(wanted)


class InMemoryKVSource(KVSourceInterface):
    """
    Legacy key-value table held in a list.

    Rows keep insertion order, like a table scan would.
    """

    def __init__(
        self,
        rows: Optional[Union[Iterable[KVRow], dict[str, Any]]] = None,
    ):
        self._rows: list[KVRow] = []
        self.read_error: Optional[str] = None

        if isinstance(rows, dict):
            rows = [KVRow(key=key, value=value) for key, value in rows.items()]
        for row in rows or []:
            self._rows.append(row)

    def set(self, key: str, value: Any) -> None:
        """Insert or replace the value under a key."""
        for idx, row in enumerate(self._rows):
            if row.key == key:
                self._rows[idx] = KVRow(key=key, value=value)
                return
        self._rows.append(KVRow(key=key, value=value))

    async def read_all(self) -> list[KVRow]:
        if self.read_error:
            raise StorageError(self.read_error)
        return list(self._rows)


class InMemoryRelationalStore(RelationalStoreInterface):
    """
    Destination tables as dicts keyed by their conflict key.

    Enforces what the real schema would: a row whose key columns are
    missing is rejected, and a repeated key updates in place.
    Write failures can be injected per table with fail_on(), lookup
    failures with fail_select_on(). Select filters compare as text, like
    PostgREST query parameters.
    """

    def __init__(self):
        self._tables: dict[str, dict[tuple, dict[str, Any]]] = defaultdict(dict)
        self._failures: list[tuple[str, RowPredicate, str]] = []
        self._select_failures: list[tuple[str, RowPredicate, str]] = []
        self.write_count = 0

    def fail_on(
        self,
        table: str,
        message: str = "simulated failure",
        when: Optional[RowPredicate] = None,
    ) -> None:
        """Make writes to a table fail (optionally only for matching rows)."""
        self._failures.append((table, when or (lambda row: True), message))

    def fail_select_on(
        self,
        table: str,
        message: str = "simulated failure",
        when: Optional[RowPredicate] = None,
    ) -> None:
        """Make lookups on a table fail (optionally only for matching filters)."""
        self._select_failures.append((table, when or (lambda filters: True), message))

    def rows(self, table: str) -> list[dict[str, Any]]:
        """Copy of all rows currently in a table."""
        return [dict(row) for row in self._tables[table].values()]

    def seed(self, table: str, row: dict[str, Any], key: str = "id") -> None:
        """Put a row in place directly, bypassing failure injection."""
        self._tables[table][self._key_for(table, row, key)] = dict(row)

    def _check_failure(self, table: str, row: dict[str, Any]) -> None:
        for failing_table, predicate, message in self._failures:
            if failing_table == table and predicate(row):
                raise UpsertError(table, message)

    def _key_for(self, table: str, row: dict[str, Any], key: str) -> tuple:
        values = []
        for column in key.split(","):
            value = row.get(column)
            if value is None:
                raise UpsertError(
                    table,
                    f'null value in column "{column}" of relation "{table}" '
                    "violates not-null constraint",
                )
            values.append(value)
        return tuple(values)

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        on_conflict: str,
    ) -> None:
        self._check_failure(table, row)
        key = self._key_for(table, row, on_conflict)
        existing = self._tables[table].get(key, {})
        self._tables[table][key] = {**existing, **row}
        self.write_count += 1

    async def insert_if_absent(
        self,
        table: str,
        row: dict[str, Any],
        key: str,
    ) -> bool:
        self._check_failure(table, row)
        row_key = self._key_for(table, row, key)
        if row_key in self._tables[table]:
            return False
        self._tables[table][row_key] = dict(row)
        self.write_count += 1
        return True

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        filters = filters or {}
        for failing_table, predicate, message in self._select_failures:
            if failing_table == table and predicate(filters):
                raise StorageError(message)

        matches = [
            row for row in self._tables[table].values()
            if all(_matches(row.get(column), value) for column, value in filters.items())
        ]

        if columns.strip() == "*":
            return [dict(row) for row in matches]

        wanted = [column.strip() for column in columns.split(",")]
        return [{column: row.get(column) for column in wanted} for row in matches]


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events
