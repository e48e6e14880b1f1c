"""
KV to Relational Migration Runner

Moves the legacy key-value data into the relational tables in one
sequential pass:

1. Read the whole KV table
2. Household pass: households, members, users, income sources, snapshots
3. Finance pass: accounts, recurring costs, debts, goals, user settings

DESIGN DECISION: The household pass must finish before the finance pass
starts. Finance records look up the user's household through the member
rows the household pass writes.

FAILURE HANDLING:
- Source unreadable -> the run fails, the error propagates, no summary
- Value under one key not a JSON object -> one error for that key, next key
- One item unreadable or one record rejected -> one error for that record,
  next record
- Anything unexpected while migrating a key -> one error for that key,
  next key

Nothing is rolled back. Every write is an upsert on a stable key, so
running the migration again converges on the same rows.
"""

from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import structlog

from finance_migrator.audit import AuditLogger, create_correlation_id
from finance_migrator.migration.keys import KeyKind, KeyMatch, classify_key
from finance_migrator.models.legacy import (
    LegacyAccount,
    LegacyDebt,
    LegacyFinance,
    LegacyGoal,
    LegacyHousehold,
    LegacyIncomeSource,
    LegacyMember,
    LegacyModel,
    LegacyRecurringCost,
    LegacySnapshot,
    LegacyUserSettings,
    MalformedPayloadError,
    decode_document,
    item_label,
    parse_document,
    parse_item,
)
from finance_migrator.models.records import (
    OWNER_ROLE,
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
from finance_migrator.services.storage import (
    KVRow,
    KVSourceInterface,
    RelationalStoreInterface,
    StorageError,
)


logger = structlog.get_logger()

KeyMigration = Callable[[KeyMatch, KVRow, MigrationSummary, UUID], Awaitable[None]]


class MigrationRunner:
    """
    Runs the KV to relational migration.

    The caller is trusted: authorization is checked before run() is
    called, never inside it.
    """

    def __init__(
        self,
        source: KVSourceInterface,
        store: RelationalStoreInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._source = source
        self._store = store
        self._audit_logger = audit_logger

    async def run(self, correlation_id: Optional[UUID] = None) -> MigrationSummary:
        """
        Migrate every recognised key.

        Returns:
            Counters of rows written plus per-record errors

        Raises:
            StorageError: If the KV table cannot be read at all
        """
        correlation_id = correlation_id or create_correlation_id()
        summary = MigrationSummary()

        if self._audit_logger:
            await self._audit_logger.log_migration_started(correlation_id)

        try:
            rows = await self._source.read_all()
        except Exception as e:
            if self._audit_logger:
                await self._audit_logger.log_migration_failed(
                    error_type=type(e).__name__,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_source_read(len(rows), correlation_id)

        households: list[tuple[KeyMatch, KVRow]] = []
        finances: list[tuple[KeyMatch, KVRow]] = []
        for row in rows:
            match = classify_key(row.key)
            if match is None:
                continue
            if match.kind == KeyKind.HOUSEHOLD:
                households.append((match, row))
            else:
                finances.append((match, row))

        logger.info(
            "migration_keys_classified",
            total=len(rows),
            households=len(households),
            finances=len(finances),
        )

        for match, row in households:
            await self._migrate_key(
                self._migrate_household, "household", match, row, summary, correlation_id
            )

        for match, row in finances:
            await self._migrate_key(
                self._migrate_finance, "user", match, row, summary, correlation_id
            )

        if self._audit_logger:
            await self._audit_logger.log_migration_completed(
                counts={name: getattr(summary, name) for name in summary.counter_names()},
                error_count=len(summary.errors),
                correlation_id=correlation_id,
            )

        return summary

    async def _migrate_key(
        self,
        migrate: KeyMigration,
        kind_label: str,
        match: KeyMatch,
        row: KVRow,
        summary: MigrationSummary,
        correlation_id: UUID,
    ) -> None:
        """Migrate one key; an unexpected error costs only this key."""
        try:
            await migrate(match, row, summary, correlation_id)
        except Exception as e:
            logger.exception("key_migration_failed", key=match.key)
            await self._parse_failure(
                f"Parse {kind_label} {match.entity_id}: {e}", match, summary, correlation_id
            )

    # -------------------------------------------------------------------------
    # Household pass
    # -------------------------------------------------------------------------

    async def _migrate_household(
        self,
        match: KeyMatch,
        row: KVRow,
        summary: MigrationSummary,
        correlation_id: UUID,
    ) -> None:
        try:
            household = parse_document(row.value, LegacyHousehold)
        except MalformedPayloadError as e:
            await self._parse_failure(
                f"Parse household {match.entity_id}: {e}", match, summary, correlation_id
            )
            return

        await self._write(HouseholdRecord.from_legacy(household), summary, correlation_id)

        for raw_member in household.members:
            member = await self._parse_item(
                raw_member, LegacyMember, MemberRecord, item_label(raw_member),
                summary, correlation_id,
            )
            if member is None:
                continue

            await self._write(
                MemberRecord.from_legacy(household.id, member), summary, correlation_id
            )
            await self._ensure_user(UserRecord.from_legacy(member), summary, correlation_id)

            for raw_source in member.income_sources:
                source = await self._parse_item(
                    raw_source, LegacyIncomeSource, IncomeSourceRecord,
                    item_label(raw_source), summary, correlation_id,
                )
                if source is not None:
                    await self._write(
                        IncomeSourceRecord.from_legacy(member.id, source),
                        summary,
                        correlation_id,
                    )

        for raw_snapshot in household.monthly_snapshots:
            snapshot = await self._parse_item(
                raw_snapshot, LegacySnapshot, SnapshotRecord,
                item_label(raw_snapshot, "month"), summary, correlation_id,
            )
            if snapshot is not None:
                await self._write(
                    SnapshotRecord.from_legacy(household.id, snapshot),
                    summary,
                    correlation_id,
                )

    async def _ensure_user(
        self,
        record: UserRecord,
        summary: MigrationSummary,
        correlation_id: UUID,
    ) -> None:
        """Create the user unless one with this id already exists."""
        try:
            inserted = await self._store.insert_if_absent(
                record.table, record.to_row(), record.on_conflict
            )
        except StorageError as e:
            await self._record_failure(
                type(record), record.error_id, str(e), summary, correlation_id
            )
            return

        if inserted:
            summary.record_success(record.counter)

    # -------------------------------------------------------------------------
    # Finance pass
    # -------------------------------------------------------------------------

    async def _migrate_finance(
        self,
        match: KeyMatch,
        row: KVRow,
        summary: MigrationSummary,
        correlation_id: UUID,
    ) -> None:
        user_id = match.entity_id
        try:
            document = decode_document(row.value)
            finance = parse_document(document, LegacyFinance)
        except MalformedPayloadError as e:
            await self._parse_failure(
                f"Parse user {user_id}: {e}", match, summary, correlation_id
            )
            return

        household_id = await self._resolve_household(user_id, summary)

        for raw_account in finance.accounts:
            account = await self._parse_item(
                raw_account, LegacyAccount, AccountRecord, item_label(raw_account),
                summary, correlation_id,
            )
            if account is not None:
                await self._write(
                    AccountRecord.from_legacy(account, user_id, household_id),
                    summary,
                    correlation_id,
                )

        for raw_cost in finance.recurring_costs:
            cost = await self._parse_item(
                raw_cost, LegacyRecurringCost, RecurringCostRecord, item_label(raw_cost),
                summary, correlation_id,
            )
            if cost is not None:
                await self._write(
                    RecurringCostRecord.from_legacy(cost, user_id, household_id),
                    summary,
                    correlation_id,
                )

        for raw_debt in finance.debts:
            debt = await self._parse_item(
                raw_debt, LegacyDebt, DebtRecord, item_label(raw_debt),
                summary, correlation_id,
            )
            if debt is not None:
                await self._write(
                    DebtRecord.from_legacy(debt, user_id, household_id),
                    summary,
                    correlation_id,
                )

        # Goals belong to the household; only the owner's copy is migrated.
        # The role is looked up again here, not carried over from the
        # household pass.
        if finance.goals and household_id:
            role = await self._lookup_role(household_id, user_id, summary)
            if role == OWNER_ROLE:
                for raw_goal in finance.goals:
                    goal = await self._parse_item(
                        raw_goal, LegacyGoal, GoalRecord, item_label(raw_goal),
                        summary, correlation_id,
                    )
                    if goal is not None:
                        await self._write(
                            GoalRecord.from_legacy(goal, household_id),
                            summary,
                            correlation_id,
                        )
            else:
                logger.info(
                    "goals_skipped_not_owner",
                    user_id=user_id,
                    household_id=household_id,
                    goal_count=len(finance.goals),
                )

        settings = await self._parse_item(
            document, LegacyUserSettings, UserSettingsRecord, user_id,
            summary, correlation_id,
        )
        if settings is not None:
            await self._write(
                UserSettingsRecord.from_legacy(settings, user_id), summary, correlation_id
            )

    async def _select_single(
        self,
        table: str,
        columns: str,
        filters: dict[str, str],
    ) -> Optional[dict]:
        """Exactly one matching row, or None for zero or several."""
        rows = await self._store.select(table, columns, filters)
        if len(rows) != 1:
            if rows:
                logger.warning("lookup_ambiguous", table=table, matches=len(rows), **filters)
            return None
        return rows[0]

    async def _resolve_household(
        self,
        user_id: str,
        summary: MigrationSummary,
    ) -> Optional[str]:
        """Household id from the user's member row, None if there is none."""
        try:
            membership = await self._select_single(
                MemberRecord.table, "household_id", {"user_id": user_id}
            )
        except StorageError as e:
            summary.record_error(f"Membership {user_id}: {e}")
            return None

        household_id = membership.get("household_id") if membership else None
        return str(household_id) if household_id is not None else None

    async def _lookup_role(
        self,
        household_id: str,
        user_id: str,
        summary: MigrationSummary,
    ) -> Optional[str]:
        try:
            member = await self._select_single(
                MemberRecord.table,
                "role",
                {"household_id": household_id, "user_id": user_id},
            )
        except StorageError as e:
            summary.record_error(f"Role {user_id}: {e}")
            return None

        return member.get("role") if member else None

    # -------------------------------------------------------------------------
    # Reads, writes and error bookkeeping
    # -------------------------------------------------------------------------

    async def _parse_item(
        self,
        raw: Any,
        model: type[LegacyModel],
        record_type: type[DestinationRecord],
        record_id: str,
        summary: MigrationSummary,
        correlation_id: UUID,
    ) -> Optional[LegacyModel]:
        """Validate one item; an unreadable item is recorded against its record."""
        try:
            return parse_item(raw, model)
        except MalformedPayloadError as e:
            await self._record_failure(
                record_type, record_id, str(e), summary, correlation_id
            )
            return None

    async def _write(
        self,
        record: DestinationRecord,
        summary: MigrationSummary,
        correlation_id: UUID,
    ) -> bool:
        """Upsert one record; count it, or record why it failed."""
        try:
            await self._store.upsert(record.table, record.to_row(), record.on_conflict)
        except StorageError as e:
            await self._record_failure(
                type(record), record.error_id, str(e), summary, correlation_id
            )
            return False

        summary.record_success(record.counter)
        return True

    async def _record_failure(
        self,
        record_type: type[DestinationRecord],
        record_id: str,
        message: str,
        summary: MigrationSummary,
        correlation_id: UUID,
    ) -> None:
        summary.record_error(f"{record_type.label} {record_id}: {message}")
        if self._audit_logger:
            await self._audit_logger.log_record_failed(
                table=record_type.table,
                record_id=record_id,
                error_message=message,
                correlation_id=correlation_id,
            )

    async def _parse_failure(
        self,
        message: str,
        match: KeyMatch,
        summary: MigrationSummary,
        correlation_id: UUID,
    ) -> None:
        summary.record_error(message)
        if self._audit_logger:
            await self._audit_logger.log_key_parse_failed(
                key=match.key,
                error_message=message,
                correlation_id=correlation_id,
            )
