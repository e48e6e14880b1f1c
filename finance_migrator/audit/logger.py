"""
Audit Logger

DESIGN DECISION: Every significant step of a migration is logged.
This provides:
1. Complete traceability of each run
2. Enough context to re-investigate failed records by hand
3. A history of who triggered migrations

The audit logger:
- Is async, like the storage it writes to
- Gracefully handles failures (a failed audit write never stops a run)
- Supports correlation IDs to tie the events of one run together
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_migrator.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from finance_migrator.services.storage import AuditStorageInterface


# JSON lines on the stdlib logging handlers
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

_LOG_LEVELS = {
    AuditSeverity.DEBUG: "debug",
    AuditSeverity.INFO: "info",
    AuditSeverity.WARNING: "warning",
    AuditSeverity.ERROR: "error",
    AuditSeverity.CRITICAL: "error",
}


class AuditLogger:
    """
    Writes migration audit events.

    Every event goes to the structlog output. When an audit storage is
    given, it is appended there as well.
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        self._storage = storage
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Emit one event.

        Returns:
            False only when a configured storage rejected the event
        """
        level = _LOG_LEVELS.get(event.severity, "info")
        getattr(self._logger, level)("audit_event", **event.to_log_dict())

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_append_failed",
                    error=str(e),
                    event_type=event.event_type.value,
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_migration_requested(
        self,
        user_id: str,
        email: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """Log an accepted trigger request."""
        await self.log(AuditEventBuilder.migration_requested(
            user_id=user_id,
            email=email,
            correlation_id=correlation_id,
        ))

    async def log_auth_rejected(
        self,
        reason: str,
        status_code: int,
        correlation_id: UUID,
    ) -> None:
        """Log a rejected trigger request."""
        await self.log(AuditEventBuilder.auth_rejected(
            reason=reason,
            status_code=status_code,
            correlation_id=correlation_id,
        ))

    async def log_migration_started(self, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.migration_started(correlation_id))

    async def log_source_read(self, row_count: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.source_read(row_count, correlation_id))

    async def log_key_parse_failed(
        self,
        key: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a KV value that could not be parsed."""
        await self.log(AuditEventBuilder.key_parse_failed(
            key=key,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_record_failed(
        self,
        table: str,
        record_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a destination write the backend rejected."""
        await self.log(AuditEventBuilder.record_failed(
            table=table,
            record_id=record_id,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_migration_completed(
        self,
        counts: dict[str, int],
        error_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.migration_completed(
            counts=counts,
            error_count=error_count,
            correlation_id=correlation_id,
        ))

    async def log_migration_failed(
        self,
        error_type: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.migration_failed(
            error_type=error_type,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    New id shared by every event of one migration request.
    """
    return uuid4()
