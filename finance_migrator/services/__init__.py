"""Services package."""

from finance_migrator.services.auth import (
    AuthenticatedUser,
    AuthenticationError,
    AuthorizationError,
    AuthServiceInterface,
    StaticTokenAuthService,
    SupabaseAuthService,
    authorize_admin,
    extract_bearer_token,
)
from finance_migrator.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    InMemoryAuditStorage,
    InMemoryKVSource,
    InMemoryRelationalStore,
    KVRow,
    KVSourceInterface,
    RelationalStoreInterface,
    StorageError,
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseKVSource,
    SupabaseRelationalStore,
    UpsertError,
)

__all__ = [
    # Auth
    "AuthenticatedUser",
    "AuthenticationError",
    "AuthorizationError",
    "AuthServiceInterface",
    "StaticTokenAuthService",
    "SupabaseAuthService",
    "authorize_admin",
    "extract_bearer_token",
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "InMemoryAuditStorage",
    "InMemoryKVSource",
    "InMemoryRelationalStore",
    "KVRow",
    "KVSourceInterface",
    "RelationalStoreInterface",
    "StorageError",
    "SupabaseAuditStorage",
    "SupabaseClient",
    "SupabaseKVSource",
    "SupabaseRelationalStore",
    "UpsertError",
]
