"""
Audit Models for the Finance Migrator

Every significant step of a migration run is logged for audit purposes.
This provides:
1. Traceability of who triggered a run and what it wrote
2. Enough context to re-investigate a failed record by hand
3. A record of rejected trigger attempts

DESIGN DECISION: Audit events are only ever appended, never edited or removed.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Trigger
    MIGRATION_REQUESTED = "migration_requested"
    AUTH_REJECTED = "auth_rejected"

    # Run lifecycle
    MIGRATION_STARTED = "migration_started"
    SOURCE_READ = "source_read"
    MIGRATION_COMPLETED = "migration_completed"
    MIGRATION_FAILED = "migration_failed"

    # Per-key and per-record failures
    KEY_PARSE_FAILED = "key_parse_failed"
    RECORD_FAILED = "record_failed"


class AuditSeverity(str, Enum):
    """How loudly an event is logged."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    """
    One step of a migration run, as written to the log and the audit table.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Event id"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="Creation time, timezone-aware UTC"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="What happened"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Log level used for this event"
    )

    # Subject of the event
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'households', 'kv_key', 'user')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="KV key, record id or user id"
    )

    # Ties together the events of one run
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (all events of one run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="One-line summary for humans"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Structured context (counts, status codes, keys)"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="True for events caused directly by the caller"
    )

    def to_log_dict(self) -> dict:
        """
        Flat dict of JSON-safe values for structlog.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_table_row(self) -> dict:
        """
        Convert to a row for the audit table.

        details is stored as a JSON text column.
        """
        row = self.to_log_dict()
        row["details"] = json.dumps(self.details) if self.details else None
        return row


class AuditEventBuilder:
    """
    Constructors for every event the migrator emits.

    Usage:
        event = AuditEventBuilder.migration_started(correlation_id)
        event = AuditEventBuilder.record_failed("accounts", "a1", msg, correlation_id)
    """

    @staticmethod
    def migration_requested(
        user_id: str,
        email: Optional[str],
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_REQUESTED,
            entity_type="user",
            entity_id=user_id,
            correlation_id=correlation_id,
            description=f"Migration requested by {email or user_id}",
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def auth_rejected(
        reason: str,
        status_code: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTH_REJECTED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Migration trigger rejected ({status_code})",
            error_message=reason,
            details={"status_code": status_code},
            is_user_action=True,
        )

    @staticmethod
    def migration_started(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_STARTED,
            correlation_id=correlation_id,
            description="Migration run started",
        )

    @staticmethod
    def source_read(row_count: int, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SOURCE_READ,
            correlation_id=correlation_id,
            description=f"Found {row_count} KV records to process",
            details={"row_count": row_count},
        )

    @staticmethod
    def key_parse_failed(
        key: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.KEY_PARSE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="kv_key",
            entity_id=key,
            correlation_id=correlation_id,
            description=f"Could not parse payload under {key}"[:500],
            error_message=error_message,
        )

    @staticmethod
    def record_failed(
        table: str,
        record_id: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=table,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Write to {table} failed for {record_id}"[:500],
            error_message=error_message,
        )

    @staticmethod
    def migration_completed(
        counts: dict[str, int],
        error_count: int,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_COMPLETED,
            severity=AuditSeverity.WARNING if error_count else AuditSeverity.INFO,
            correlation_id=correlation_id,
            description=(
                f"Migration completed: {sum(counts.values())} rows written, "
                f"{error_count} errors"
            ),
            details={"counts": counts, "error_count": error_count},
        )

    @staticmethod
    def migration_failed(
        error_type: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MIGRATION_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"Migration failed: {error_type}",
            error_message=error_message,
            details={"error_type": error_type},
        )
