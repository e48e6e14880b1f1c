"""
Destination Records for the Relational Schema

Every record model maps to exactly one destination table. Each carries:
- the table it is written to
- the conflict key its upsert targets (primary key or composite unique key)
- the summary counter it increments when the write succeeds
- the label used in error messages

DESIGN DECISION: Identifiers are carried over from the legacy documents,
never generated here. That is what makes re-running the migration converge
on the same rows instead of duplicating them.
"""

from typing import Any, ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict

from finance_migrator.models.legacy import (
    LegacyAccount,
    LegacyDebt,
    LegacyGoal,
    LegacyHousehold,
    LegacyIncomeSource,
    LegacyMember,
    LegacyRecurringCost,
    LegacySnapshot,
    LegacyUserSettings,
)


# Defaults applied when the legacy document leaves a field out
DEFAULT_CURRENCY = "EUR"
DEFAULT_THEME = "light"
DEFAULT_EMERGENCY_FUND_GOAL = 10000
OWNER_ROLE = "owner"


def _default(value: Any, fallback: Any) -> Any:
    return fallback if value is None else value


class DestinationRecord(BaseModel):
    """Base class for rows written to the relational schema."""

    model_config = ConfigDict(frozen=True)

    table: ClassVar[str]
    conflict_key: ClassVar[tuple[str, ...]]
    counter: ClassVar[str]
    label: ClassVar[str]

    @property
    def on_conflict(self) -> str:
        """Conflict target in PostgREST notation (comma separated)."""
        return ",".join(self.conflict_key)

    @property
    def error_id(self) -> str:
        """Identifier shown in error messages."""
        return str(getattr(self, self.conflict_key[-1]))

    def to_row(self) -> dict[str, Any]:
        """Column dict for the destination table."""
        return self.model_dump()


# =============================================================================
# HOUSEHOLD PASS
# =============================================================================

class HouseholdRecord(DestinationRecord):
    table: ClassVar[str] = "households"
    conflict_key: ClassVar[tuple[str, ...]] = ("id",)
    counter: ClassVar[str] = "households"
    label: ClassVar[str] = "Household"

    id: Optional[str]
    name: Optional[str] = None
    join_code: Optional[str] = None
    owner_id: Optional[str] = None

    @classmethod
    def from_legacy(cls, household: LegacyHousehold) -> "HouseholdRecord":
        return cls(
            id=household.id,
            name=household.name,
            join_code=household.join_code,
            owner_id=household.owner_id,
        )


class MemberRecord(DestinationRecord):
    """Join row between a household and a user."""

    table: ClassVar[str] = "household_members"
    conflict_key: ClassVar[tuple[str, ...]] = ("household_id", "user_id")
    counter: ClassVar[str] = "members"
    label: ClassVar[str] = "Member"

    household_id: Optional[str]
    user_id: Optional[str]
    role: Optional[str] = None

    @classmethod
    def from_legacy(cls, household_id: Optional[str], member: LegacyMember) -> "MemberRecord":
        return cls(household_id=household_id, user_id=member.id, role=member.role)


class UserRecord(DestinationRecord):
    """Created only when no user with this id exists yet."""

    table: ClassVar[str] = "users"
    conflict_key: ClassVar[tuple[str, ...]] = ("id",)
    counter: ClassVar[str] = "users"
    label: ClassVar[str] = "User"

    id: Optional[str]
    name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_legacy(cls, member: LegacyMember) -> "UserRecord":
        return cls(id=member.id, name=member.name, email=member.email)


class IncomeSourceRecord(DestinationRecord):
    table: ClassVar[str] = "income_sources"
    conflict_key: ClassVar[tuple[str, ...]] = ("id",)
    counter: ClassVar[str] = "income_sources"
    label: ClassVar[str] = "Income"

    id: Optional[str]
    user_id: Optional[str]
    name: Optional[str] = None
    amount: Optional[float] = None

    @classmethod
    def from_legacy(
        cls, user_id: Optional[str], source: LegacyIncomeSource
    ) -> "IncomeSourceRecord":
        return cls(
            id=source.id,
            user_id=user_id,
            name=source.name,
            amount=source.amount,
        )


class SnapshotRecord(DestinationRecord):
    """Monthly net worth snapshot, unique per (household, month)."""

    table: ClassVar[str] = "monthly_snapshots"
    conflict_key: ClassVar[tuple[str, ...]] = ("household_id", "month")
    counter: ClassVar[str] = "snapshots"
    label: ClassVar[str] = "Snapshot"

    household_id: Optional[str]
    month: Optional[str]
    net_worth: Optional[float] = None
    total_cash: Optional[float] = None
    timestamp: Optional[Union[str, int, float]] = None

    @classmethod
    def from_legacy(
        cls, household_id: Optional[str], snapshot: LegacySnapshot
    ) -> "SnapshotRecord":
        return cls(
            household_id=household_id,
            month=snapshot.month,
            net_worth=snapshot.net_worth,
            total_cash=snapshot.total_cash,
            timestamp=snapshot.timestamp,
        )


# =============================================================================
# FINANCE PASS
# =============================================================================

class AccountRecord(DestinationRecord):
    table: ClassVar[str] = "accounts"
    conflict_key: ClassVar[tuple[str, ...]] = ("id",)
    counter: ClassVar[str] = "accounts"
    label: ClassVar[str] = "Account"

    id: Optional[str]
    name: Optional[str] = None
    balance: Optional[float] = None
    institution: Optional[str] = None
    type: Optional[str] = None
    currency: Optional[str] = None
    owner_id: str
    household_id: Optional[str] = None
    include_in_household: bool = True
    apy: float = 0

    @classmethod
    def from_legacy(
        cls, account: LegacyAccount, owner_id: str, household_id: Optional[str]
    ) -> "AccountRecord":
        return cls(
            id=account.id,
            name=account.name,
            balance=account.balance,
            institution=account.institution,
            type=account.account_type,
            currency=account.currency,
            owner_id=owner_id,
            household_id=household_id,
            include_in_household=_default(account.include_in_household, True),
            apy=_default(account.apy, 0),
        )


class RecurringCostRecord(DestinationRecord):
    table: ClassVar[str] = "recurring_costs"
    conflict_key: ClassVar[tuple[str, ...]] = ("id",)
    counter: ClassVar[str] = "recurring_costs"
    label: ClassVar[str] = "Cost"

    id: Optional[str]
    name: Optional[str] = None
    amount: Optional[float] = None
    category: Optional[str] = None
    owner_id: str
    household_id: Optional[str] = None
    include_in_household: bool = True

    @classmethod
    def from_legacy(
        cls, cost: LegacyRecurringCost, owner_id: str, household_id: Optional[str]
    ) -> "RecurringCostRecord":
        return cls(
            id=cost.id,
            name=cost.name,
            amount=cost.amount,
            category=cost.category,
            owner_id=owner_id,
            household_id=household_id,
            include_in_household=_default(cost.include_in_household, True),
        )


class DebtRecord(DestinationRecord):
    table: ClassVar[str] = "debts"
    conflict_key: ClassVar[tuple[str, ...]] = ("id",)
    counter: ClassVar[str] = "debts"
    label: ClassVar[str] = "Debt"

    id: Optional[str]
    name: Optional[str] = None
    total_amount: Optional[float] = None
    remaining_amount: Optional[float] = None
    monthly_payment: Optional[float] = None
    interest_rate: float = 0
    owner_id: str
    household_id: Optional[str] = None
    include_in_household: bool = True

    @classmethod
    def from_legacy(
        cls, debt: LegacyDebt, owner_id: str, household_id: Optional[str]
    ) -> "DebtRecord":
        return cls(
            id=debt.id,
            name=debt.name,
            total_amount=debt.total_amount,
            remaining_amount=debt.remaining_amount,
            monthly_payment=debt.monthly_payment,
            interest_rate=_default(debt.interest_rate, 0),
            owner_id=owner_id,
            household_id=household_id,
            include_in_household=_default(debt.include_in_household, True),
        )


class GoalRecord(DestinationRecord):
    """Household goal. Only household owners' goals are migrated."""

    table: ClassVar[str] = "goals"
    conflict_key: ClassVar[tuple[str, ...]] = ("id",)
    counter: ClassVar[str] = "goals"
    label: ClassVar[str] = "Goal"

    id: Optional[str]
    household_id: str
    name: Optional[str] = None
    category: Optional[str] = None
    is_main: bool = False
    target_amount: Optional[float] = None
    current_amount: float = 0
    deadline: Optional[str] = None
    property_value: Optional[float] = None

    @classmethod
    def from_legacy(cls, goal: LegacyGoal, household_id: str) -> "GoalRecord":
        return cls(
            id=goal.id,
            household_id=household_id,
            name=goal.name,
            category=goal.category,
            is_main=_default(goal.is_main, False),
            target_amount=goal.target_amount,
            current_amount=_default(goal.current_amount, 0),
            deadline=goal.deadline,
            property_value=goal.property_value,
        )


class UserSettingsRecord(DestinationRecord):
    table: ClassVar[str] = "user_settings"
    conflict_key: ClassVar[tuple[str, ...]] = ("user_id",)
    counter: ClassVar[str] = "settings"
    label: ClassVar[str] = "Settings"

    user_id: str
    currency: str = DEFAULT_CURRENCY
    theme: str = DEFAULT_THEME
    emergency_fund_goal: float = DEFAULT_EMERGENCY_FUND_GOAL
    is_variable_income: bool = False
    variable_spending: float = 0

    @classmethod
    def from_legacy(
        cls, settings: LegacyUserSettings, user_id: str
    ) -> "UserSettingsRecord":
        return cls(
            user_id=user_id,
            currency=_default(settings.currency, DEFAULT_CURRENCY),
            theme=_default(settings.theme, DEFAULT_THEME),
            emergency_fund_goal=_default(
                settings.emergency_fund_goal, DEFAULT_EMERGENCY_FUND_GOAL
            ),
            is_variable_income=_default(settings.is_variable_income, False),
            variable_spending=_default(settings.variable_spending, 0),
        )
