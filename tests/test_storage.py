"""
Tests for the storage layer

The Supabase adapters are exercised against MagicMock query builders;
no network calls are made.
"""

import asyncio
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from postgrest.exceptions import APIError

from finance_migrator.config import SupabaseSettings
from finance_migrator.models.audit import AuditEventBuilder
from finance_migrator.services.storage import (
    InMemoryAuditStorage,
    InMemoryKVSource,
    InMemoryRelationalStore,
    KVRow,
    StorageError,
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseKVSource,
    SupabaseRelationalStore,
    UpsertError,
)


def run_async(coro):
    """Helper to run async functions in plain tests."""
    return asyncio.run(coro)


@pytest.fixture
def supabase_settings():
    return SupabaseSettings(
        url="https://example.supabase.co/",
        service_role_key="service-key",
        page_size=2,
    )


@pytest.fixture
def fake_client():
    return MagicMock()


@pytest.fixture
def client(supabase_settings, fake_client, monkeypatch):
    """SupabaseClient whose connection is a MagicMock."""
    client = SupabaseClient(supabase_settings)
    monkeypatch.setattr(client, "connect", lambda: fake_client)
    return client


def response(data):
    return MagicMock(data=data)


class TestInMemoryKVSource:
    """Tests for the in-memory KV source."""

    def test_dict_rows_keep_order(self):
        source = InMemoryKVSource({"b": 1, "a": 2})
        rows = run_async(source.read_all())
        assert [row.key for row in rows] == ["b", "a"]

    def test_set_replaces_value(self):
        source = InMemoryKVSource([KVRow(key="k", value=1)])
        source.set("k", 2)
        source.set("other", 3)
        rows = run_async(source.read_all())
        assert [(row.key, row.value) for row in rows] == [("k", 2), ("other", 3)]

    def test_read_error(self):
        source = InMemoryKVSource()
        source.read_error = "boom"
        with pytest.raises(StorageError, match="boom"):
            run_async(source.read_all())


class TestInMemoryRelationalStore:
    """Tests for the in-memory destination tables."""

    def test_upsert_updates_in_place(self):
        """Test a repeated key merges into the existing row."""
        store = InMemoryRelationalStore()
        run_async(store.upsert("accounts", {"id": "a1", "balance": 1, "name": "x"}, "id"))
        run_async(store.upsert("accounts", {"id": "a1", "balance": 2}, "id"))

        assert store.rows("accounts") == [{"id": "a1", "balance": 2, "name": "x"}]
        assert store.write_count == 2

    def test_composite_key(self):
        store = InMemoryRelationalStore()
        key = "household_id,user_id"
        run_async(store.upsert("household_members", {"household_id": "h1", "user_id": "u1"}, key))
        run_async(store.upsert("household_members", {"household_id": "h2", "user_id": "u1"}, key))
        run_async(store.upsert("household_members", {"household_id": "h1", "user_id": "u1"}, key))

        assert len(store.rows("household_members")) == 2

    def test_null_key_rejected(self):
        store = InMemoryRelationalStore()
        with pytest.raises(UpsertError, match="not-null") as exc_info:
            run_async(store.upsert("goals", {"id": None, "name": "x"}, "id"))
        assert exc_info.value.table == "goals"

    def test_insert_if_absent(self):
        """Test only the first insert for a key reports True."""
        store = InMemoryRelationalStore()
        assert run_async(store.insert_if_absent("users", {"id": "u1", "name": "A"}, "id"))
        assert not run_async(store.insert_if_absent("users", {"id": "u1", "name": "B"}, "id"))
        assert store.rows("users") == [{"id": "u1", "name": "A"}]

    def test_fail_on_with_predicate(self):
        store = InMemoryRelationalStore()
        store.fail_on("debts", "bad debt", when=lambda row: row["id"] == "d2")

        run_async(store.upsert("debts", {"id": "d1"}, "id"))
        with pytest.raises(UpsertError, match="bad debt"):
            run_async(store.upsert("debts", {"id": "d2"}, "id"))

    def test_select_filters_and_columns(self):
        store = InMemoryRelationalStore()
        key = "household_id,user_id"
        store.seed("household_members", {"household_id": "h1", "user_id": "u1", "role": "owner"}, key)
        store.seed("household_members", {"household_id": "h1", "user_id": "u2", "role": "partner"}, key)

        rows = run_async(store.select("household_members", "role", {"user_id": "u2"}))
        assert rows == [{"role": "partner"}]

        everything = run_async(store.select("household_members"))
        assert len(everything) == 2

    def test_select_filters_compare_as_text(self):
        """Test a numeric column matches a text filter, and None only matches None."""
        store = InMemoryRelationalStore()
        key = "household_id,user_id"
        store.seed("household_members", {"household_id": 7, "user_id": "u1", "role": "owner"}, key)

        rows = run_async(store.select("household_members", "role", {"household_id": "7"}))
        assert rows == [{"role": "owner"}]
        assert run_async(store.select("household_members", "role", {"role": None})) == []

    def test_fail_select_on_with_predicate(self):
        store = InMemoryRelationalStore()
        store.seed("household_members", {"household_id": "h1", "user_id": "u1"}, "household_id,user_id")
        store.fail_select_on(
            "household_members", "statement timeout",
            when=lambda filters: filters.get("user_id") == "u2",
        )

        assert len(run_async(store.select("household_members", "*", {"user_id": "u1"}))) == 1
        with pytest.raises(StorageError, match="statement timeout"):
            run_async(store.select("household_members", "*", {"user_id": "u2"}))
        assert run_async(store.select("accounts")) == []


class TestInMemoryAuditStorage:

    def test_events_by_correlation_id(self):
        storage = InMemoryAuditStorage()
        correlation_id = uuid4()
        run_async(storage.append_event(AuditEventBuilder.migration_started(correlation_id)))
        run_async(storage.append_event(AuditEventBuilder.migration_started(uuid4())))

        events = run_async(storage.get_events_by_correlation_id(correlation_id))
        assert len(events) == 1


class TestSupabaseSettings:

    def test_url_trailing_slash_stripped(self, supabase_settings):
        assert supabase_settings.url == "https://example.supabase.co"
        assert supabase_settings.kv_table == "kv_store_d9780f4d"

    def test_url_must_be_http(self):
        with pytest.raises(ValueError, match="http"):
            SupabaseSettings(url="example.supabase.co", service_role_key="k")


class TestSupabaseKVSource:
    """Tests for paged reads of the KV table."""

    def test_reads_all_pages(self, client, fake_client):
        """Test paging stops at the first short page."""
        data = [{"key": f"k{i}", "value": {"n": i}} for i in range(5)]
        query = fake_client.table.return_value.select.return_value.order.return_value
        query.range.side_effect = lambda start, end: MagicMock(
            execute=MagicMock(return_value=response(data[start:end + 1]))
        )

        rows = run_async(SupabaseKVSource(client, retry_attempts=1).read_all())

        assert [row.key for row in rows] == ["k0", "k1", "k2", "k3", "k4"]
        assert rows[3].value == {"n": 3}
        fake_client.table.assert_called_with("kv_store_d9780f4d")
        assert [c.args for c in query.range.call_args_list] == [(0, 1), (2, 3), (4, 5)]

    def test_exact_multiple_reads_one_empty_page(self, client, fake_client):
        data = [{"key": "a", "value": 1}, {"key": "b", "value": 2}]
        query = fake_client.table.return_value.select.return_value.order.return_value
        query.range.side_effect = lambda start, end: MagicMock(
            execute=MagicMock(return_value=response(data[start:end + 1]))
        )

        rows = run_async(SupabaseKVSource(client, retry_attempts=1).read_all())

        assert len(rows) == 2
        assert query.range.call_count == 2

    def test_read_failure_raises_storage_error(self, client, fake_client):
        """Test an unreadable table surfaces as StorageError."""
        query = fake_client.table.return_value.select.return_value.order.return_value
        query.range.return_value.execute.side_effect = APIError(
            {"message": 'relation "kv_store_d9780f4d" does not exist'}
        )

        with pytest.raises(StorageError, match="does not exist"):
            run_async(SupabaseKVSource(client, retry_attempts=1).read_all())


class TestSupabaseRelationalStore:
    """Tests for upserts and lookups through PostgREST."""

    def test_upsert_passes_conflict_key(self, client, fake_client):
        store = SupabaseRelationalStore(client)
        row = {"household_id": "h1", "month": "2024-05"}

        run_async(store.upsert("monthly_snapshots", row, "household_id,month"))

        fake_client.table.assert_called_with("monthly_snapshots")
        fake_client.table.return_value.upsert.assert_called_with(
            row, on_conflict="household_id,month"
        )

    def test_upsert_error_uses_api_message(self, client, fake_client):
        """Test APIError becomes UpsertError with the PostgREST message."""
        fake_client.table.return_value.upsert.return_value.execute.side_effect = APIError(
            {"message": "insert or update violates foreign key constraint", "code": "23503"}
        )
        store = SupabaseRelationalStore(client)

        with pytest.raises(UpsertError) as exc_info:
            run_async(store.upsert("accounts", {"id": "a1"}, "id"))

        assert str(exc_info.value) == "insert or update violates foreign key constraint"
        assert exc_info.value.table == "accounts"

    def test_insert_if_absent_inserted(self, client, fake_client):
        upsert = fake_client.table.return_value.upsert
        upsert.return_value.execute.return_value = response([{"id": "u1"}])
        store = SupabaseRelationalStore(client)

        inserted = run_async(store.insert_if_absent("users", {"id": "u1"}, "id"))

        assert inserted is True
        upsert.assert_called_with({"id": "u1"}, on_conflict="id", ignore_duplicates=True)

    def test_insert_if_absent_existing(self, client, fake_client):
        """Test an ignored duplicate returns no rows and reports False."""
        fake_client.table.return_value.upsert.return_value.execute.return_value = response([])
        store = SupabaseRelationalStore(client)

        assert run_async(store.insert_if_absent("users", {"id": "u1"}, "id")) is False

    def test_select_applies_filters(self, client, fake_client):
        select = fake_client.table.return_value.select
        first_eq = select.return_value.eq
        second_eq = first_eq.return_value.eq
        second_eq.return_value.execute.return_value = response([{"role": "owner"}])
        store = SupabaseRelationalStore(client)

        rows = run_async(store.select(
            "household_members", "role", {"household_id": "h1", "user_id": "u1"}
        ))

        assert rows == [{"role": "owner"}]
        select.assert_called_with("role")
        first_eq.assert_called_with("household_id", "h1")
        second_eq.assert_called_with("user_id", "u1")

    def test_select_error(self, client, fake_client):
        fake_client.table.return_value.select.return_value.eq.return_value.execute.side_effect = (
            RuntimeError("timeout")
        )
        store = SupabaseRelationalStore(client)

        with pytest.raises(StorageError, match="household_members: timeout"):
            run_async(store.select("household_members", "household_id", {"user_id": "u1"}))


class TestSupabaseAuditStorage:

    def test_append_event(self, client, fake_client):
        storage = SupabaseAuditStorage(client)
        event = AuditEventBuilder.source_read(3, uuid4())

        assert run_async(storage.append_event(event)) is True
        fake_client.table.assert_called_with("migration_audit_log")
        inserted = fake_client.table.return_value.insert.call_args.args[0]
        assert inserted["event_type"] == "source_read"

    def test_append_failure_returns_false(self, client, fake_client):
        """Test a failed audit write does not raise."""
        fake_client.table.return_value.insert.return_value.execute.side_effect = RuntimeError("down")
        storage = SupabaseAuditStorage(client)

        assert run_async(storage.append_event(AuditEventBuilder.migration_started(uuid4()))) is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
