"""
Main Orchestrator for the Finance Migrator

This module ties together all the components and defines the
end-to-end migration flow:

    bearer token -> authenticate -> authorize -> run -> summary

DESIGN DECISION: The orchestrator enforces the boundaries:
- No run starts without an authenticated, allowed caller
- The runner never sees the caller
- Every step is audited
"""

from typing import Any, Optional
from uuid import UUID

from finance_migrator.audit import AuditLogger, create_correlation_id
from finance_migrator.config import MigrationSettings, get_settings
from finance_migrator.migration import MigrationRunner
from finance_migrator.models.summary import MigrationSummary
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
    InMemoryAuditStorage,
    InMemoryKVSource,
    InMemoryRelationalStore,
    SupabaseAuditStorage,
    SupabaseClient,
    SupabaseKVSource,
    SupabaseRelationalStore,
)


class MigrationFlow:
    """
    Orchestrates a triggered migration.

    Flow:
    1. Extract the bearer token from the request
    2. Authenticate it (Supabase Auth)
    3. Authorize the user against the admin allowlist
    4. Run the migration
    5. Return the summary

    Steps 1-3 failing raise AuthenticationError / AuthorizationError
    before anything is read or written.
    """

    def __init__(
        self,
        runner: MigrationRunner,
        auth_service: AuthServiceInterface,
        audit_logger: Optional[AuditLogger] = None,
        migration_settings: Optional[MigrationSettings] = None,
    ):
        self._runner = runner
        self._auth_service = auth_service
        self._audit_logger = audit_logger
        self._migration_settings = migration_settings

    async def authorize(
        self,
        authorization: Optional[str],
        correlation_id: UUID,
    ) -> AuthenticatedUser:
        """
        Resolve and check the caller.

        Raises:
            AuthenticationError: No valid session
            AuthorizationError: Session is valid but not an admin
        """
        try:
            token = extract_bearer_token(authorization)
            user = await self._auth_service.authenticate(token)
            authorize_admin(
                user,
                self._migration_settings or get_settings().migration,
            )
        except AuthenticationError as e:
            if self._audit_logger:
                await self._audit_logger.log_auth_rejected(str(e), 401, correlation_id)
            raise
        except AuthorizationError as e:
            if self._audit_logger:
                await self._audit_logger.log_auth_rejected(str(e), 403, correlation_id)
            raise

        if self._audit_logger:
            await self._audit_logger.log_migration_requested(
                user_id=user.id,
                email=user.email,
                correlation_id=correlation_id,
            )
        return user

    async def run(
        self,
        authorization: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> MigrationSummary:
        """Authorize the caller, then migrate."""
        correlation_id = correlation_id or create_correlation_id()
        await self.authorize(authorization, correlation_id)
        return await self._runner.run(correlation_id)


def create_app_components(
    use_storage: bool = True,
    tokens: Optional[dict[str, AuthenticatedUser]] = None,
    kv_rows: Optional[dict[str, Any]] = None,
) -> tuple[MigrationFlow, Optional[SupabaseClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to connect to Supabase.
                    Set to False for in-memory stores (testing, local runs).
        tokens: Bearer token -> user mapping accepted by the in-memory
                components. Ignored when use_storage is True.
        kv_rows: Initial legacy KV rows for the in-memory source.
                Ignored when use_storage is True.

    Returns:
        (migration_flow, supabase_client)
    """
    supabase_client = None

    if use_storage:
        supabase_client = SupabaseClient()
        source = SupabaseKVSource(supabase_client)
        store = SupabaseRelationalStore(supabase_client)
        auth_service = SupabaseAuthService(supabase_client)

        if get_settings().migration.persist_audit_events:
            audit_logger = AuditLogger(SupabaseAuditStorage(supabase_client))
        else:
            audit_logger = AuditLogger()  # Local-only logging
    else:
        source = InMemoryKVSource(kv_rows)
        store = InMemoryRelationalStore()
        auth_service = StaticTokenAuthService(tokens)
        audit_logger = AuditLogger(InMemoryAuditStorage())

    runner = MigrationRunner(source, store, audit_logger)
    flow = MigrationFlow(
        runner=runner,
        auth_service=auth_service,
        audit_logger=audit_logger,
    )

    return flow, supabase_client
