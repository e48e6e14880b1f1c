"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Supabase is the production backend; the in-memory backend serves tests
and local dry runs.
"""

from finance_migrator.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    KVRow,
    KVSourceInterface,
    RelationalStoreInterface,
    StorageError,
    UpsertError,
)
from finance_migrator.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryKVSource,
    InMemoryRelationalStore,
)
from finance_migrator.services.storage.supabase_store import (
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseKVSource,
    SupabaseRelationalStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "KVRow",
    "KVSourceInterface",
    "RelationalStoreInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    "UpsertError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryKVSource",
    "InMemoryRelationalStore",
    # Supabase implementation
    "SupabaseAuditStorage",
    "SupabaseClient",
    "SupabaseKVSource",
    "SupabaseRelationalStore",
]
