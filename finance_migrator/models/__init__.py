"""
Data Models Package

This package contains all Pydantic models used by the migrator:
the legacy KV documents it reads, the relational records it writes,
the run summary, and audit events.
"""

from finance_migrator.models.legacy import (
    LegacyAccount,
    LegacyDebt,
    LegacyFinance,
    LegacyGoal,
    LegacyHousehold,
    LegacyIncomeSource,
    LegacyMember,
    LegacyRecurringCost,
    LegacySnapshot,
    LegacyUserSettings,
    MalformedPayloadError,
    decode_document,
    decode_value,
    item_label,
    parse_document,
    parse_item,
)
from finance_migrator.models.records import (
    AccountRecord,
    DebtRecord,
    DestinationRecord,
    GoalRecord,
    HouseholdRecord,
    IncomeSourceRecord,
    MemberRecord,
    RecurringCostRecord,
    SnapshotRecord,
    UserRecord,
    UserSettingsRecord,
)
from finance_migrator.models.summary import MigrationSummary
from finance_migrator.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Legacy documents
    "LegacyAccount",
    "LegacyDebt",
    "LegacyFinance",
    "LegacyGoal",
    "LegacyHousehold",
    "LegacyIncomeSource",
    "LegacyMember",
    "LegacyRecurringCost",
    "LegacySnapshot",
    "LegacyUserSettings",
    "MalformedPayloadError",
    "decode_document",
    "decode_value",
    "item_label",
    "parse_document",
    "parse_item",
    # Destination records
    "AccountRecord",
    "DebtRecord",
    "DestinationRecord",
    "GoalRecord",
    "HouseholdRecord",
    "IncomeSourceRecord",
    "MemberRecord",
    "RecurringCostRecord",
    "SnapshotRecord",
    "UserRecord",
    "UserSettingsRecord",
    # Summary
    "MigrationSummary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
