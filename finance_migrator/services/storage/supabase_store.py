"""
Supabase Storage Implementation

DESIGN DECISION: Both sides of the migration live in the same Supabase
project: the legacy key-value table and the new relational tables. We talk
to both through PostgREST with the service role key, because the migration
writes rows on behalf of every user and must bypass row level security.

TRADEOFFS:
- No transactions across rows (every write is an idempotent upsert instead)
- The KV table is read page by page, PostgREST caps rows per request
- The client is synchronous; calls block the event loop for their duration,
  which is acceptable for a rarely-run administrative job
"""

import json
from typing import Any, Optional
from uuid import UUID

import structlog
from postgrest.exceptions import APIError
from supabase import Client, create_client
from tenacity import Retrying, retry, stop_after_attempt, wait_exponential

from finance_migrator.config import SupabaseSettings, get_settings
from finance_migrator.models.audit import AuditEvent
from finance_migrator.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    KVRow,
    KVSourceInterface,
    RelationalStoreInterface,
    StorageError,
    UpsertError,
)


logger = structlog.get_logger()


def _error_message(error: Exception) -> str:
    """Prefer the PostgREST message over the exception repr."""
    if isinstance(error, APIError) and error.message:
        return error.message
    return str(error)


class SupabaseClient:
    """
    Low-level Supabase client wrapper.

    Handles client creation and provides retry logic for connecting.
    """

    def __init__(self, settings: Optional[SupabaseSettings] = None):
        self._client: Optional[Client] = None
        self._auth_client: Optional[Client] = None
        self._settings = settings or get_settings().supabase

    @property
    def settings(self) -> SupabaseSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> Client:
        """
        Create the service role client.

        The service role key is required: the migration writes rows for
        every user in the project.
        """
        if self._client is None:
            try:
                self._client = create_client(
                    self._settings.url,
                    self._settings.service_role_key,
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Supabase: {e}")

        return self._client

    def auth_client(self) -> Client:
        """Client used to verify caller session tokens."""
        if self._auth_client is None:
            key = self._settings.anon_key or self._settings.service_role_key
            try:
                self._auth_client = create_client(self._settings.url, key)
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Supabase auth: {e}")
        return self._auth_client

    def table(self, name: str):
        """Query builder for a table."""
        return self.connect().table(name)


class SupabaseKVSource(KVSourceInterface):
    """
    Reads the legacy key-value table.

    Pages are requested with range() until a short page comes back.
    Each page read is retried, reads have no side effects.
    """

    def __init__(
        self,
        client: Optional[SupabaseClient] = None,
        retry_attempts: Optional[int] = None,
    ):
        self._client = client or SupabaseClient()
        self._retry_attempts = retry_attempts or get_settings().app.retry_attempts

    def _fetch_page(self, start: int, end: int) -> list[dict[str, Any]]:
        for attempt in Retrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        ):
            with attempt:
                response = (
                    self._client.table(self._client.settings.kv_table)
                    .select("key, value")
                    .order("key")
                    .range(start, end)
                    .execute()
                )
        return response.data or []

    async def read_all(self) -> list[KVRow]:
        """Read every row of the KV table."""
        page_size = self._client.settings.page_size
        rows: list[KVRow] = []
        start = 0

        try:
            while True:
                page = self._fetch_page(start, start + page_size - 1)
                rows.extend(KVRow(key=item["key"], value=item.get("value")) for item in page)
                if len(page) < page_size:
                    break
                start += page_size
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read KV store: {_error_message(e)}")

        return rows


class SupabaseRelationalStore(RelationalStoreInterface):
    """
    Writes destination rows through PostgREST upserts.
    """

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def upsert(
        self,
        table: str,
        row: dict[str, Any],
        on_conflict: str,
    ) -> None:
        try:
            self._client.table(table).upsert(row, on_conflict=on_conflict).execute()
        except StorageError:
            raise
        except Exception as e:
            raise UpsertError(table, _error_message(e))

    async def insert_if_absent(
        self,
        table: str,
        row: dict[str, Any],
        key: str,
    ) -> bool:
        """
        insert ... on conflict do nothing.

        PostgREST only returns the rows it actually inserted.
        """
        try:
            response = (
                self._client.table(table)
                .upsert(row, on_conflict=key, ignore_duplicates=True)
                .execute()
            )
        except StorageError:
            raise
        except Exception as e:
            raise UpsertError(table, _error_message(e))

        return bool(response.data)

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        try:
            query = self._client.table(table).select(columns)
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            response = query.execute()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {table}: {_error_message(e)}")

        return list(response.data or [])


class SupabaseAuditStorage(AuditStorageInterface):
    """
    Audit events persisted to a Supabase table.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    @property
    def _table_name(self) -> str:
        return self._client.settings.audit_table

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._client.table(self._table_name).insert(event.to_table_row()).execute()
            return True
        except Exception as e:
            # Audit logging must not break the migration
            logger.warning(
                "audit_event_write_failed",
                error=_error_message(e),
                event_id=str(event.event_id),
            )
            return False

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            response = (
                self._client.table(self._table_name)
                .select("*")
                .eq("correlation_id", str(correlation_id))
                .order("timestamp")
                .execute()
            )
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {_error_message(e)}")

        events = []
        for row in response.data or []:
            row = dict(row)
            row["details"] = json.loads(row["details"]) if row.get("details") else {}
            try:
                events.append(AuditEvent.model_validate(row))
            except ValueError:
                logger.warning("audit_row_unreadable", event_id=row.get("event_id"))
        return events
