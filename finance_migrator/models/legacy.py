"""
Legacy Key-Value Document Models

These models describe the JSON documents stored in the old key-value table
before the move to the relational schema. The data was written by several
generations of the web client, so the schemas are deliberately lenient:

1. Every field is optional
2. Unknown fields are ignored
3. Identifiers and text fields written as numbers are read as strings
4. List fields that are missing or not lists are read as empty

A value that is not JSON, or not a JSON object, is a malformed payload and
is reported for the whole key. List items are kept raw on the documents and
validated one at a time with parse_item(), so one bad item only costs its
own row.
"""

import json
from typing import Annotated, Any, Optional, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)
from pydantic.alias_generators import to_camel


def _coerce_text(value: Any) -> Any:
    """Legacy ids were sometimes written as numbers."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return value


LegacyText = Annotated[str, BeforeValidator(_coerce_text)]

# Timestamps were written both as ISO strings and epoch milliseconds
LegacyTimestamp = Union[str, int, float]


class MalformedPayloadError(ValueError):
    """A stored value cannot be read as the expected document or item."""
    pass


class LegacyModel(BaseModel):
    """Base for all legacy documents (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _list_or_empty(value: Any) -> Any:
    return value if isinstance(value, list) else []


# =============================================================================
# HOUSEHOLD DOCUMENT - household/{householdId}/data
# =============================================================================

class LegacyIncomeSource(LegacyModel):
    id: Optional[LegacyText] = None
    name: Optional[LegacyText] = None
    amount: Optional[float] = None


class LegacyMember(LegacyModel):
    """
    A household member as embedded in the household document.

    income_sources holds the raw items; see parse_item().
    """

    id: Optional[LegacyText] = None
    role: Optional[LegacyText] = None
    name: Optional[LegacyText] = None
    email: Optional[LegacyText] = None
    income_sources: list[Any] = Field(default_factory=list)

    @field_validator("income_sources", mode="before")
    @classmethod
    def income_defaults_to_empty(cls, v: Any) -> Any:
        return _list_or_empty(v)


class LegacySnapshot(LegacyModel):
    """Month-end net worth snapshot."""

    month: Optional[LegacyText] = None
    net_worth: Optional[float] = None
    total_cash: Optional[float] = None
    timestamp: Optional[LegacyTimestamp] = None


class LegacyHousehold(LegacyModel):
    """
    The shared household document.

    Members carry their own income sources; snapshots belong to the household.
    Both lists hold raw items.
    """

    id: Optional[LegacyText] = None
    name: Optional[LegacyText] = None
    join_code: Optional[LegacyText] = None
    members: list[Any] = Field(default_factory=list)
    monthly_snapshots: list[Any] = Field(default_factory=list)

    @field_validator("members", "monthly_snapshots", mode="before")
    @classmethod
    def lists_default_to_empty(cls, v: Any) -> Any:
        return _list_or_empty(v)

    @property
    def owner_id(self) -> Optional[str]:
        """Id of the first member whose role is owner."""
        for member in self.members:
            if isinstance(member, dict) and member.get("role") == "owner":
                return _coerce_text(member.get("id"))
        return None


# =============================================================================
# FINANCE DOCUMENT - user/{userId}/finance
# =============================================================================

class LegacyAccount(LegacyModel):
    id: Optional[LegacyText] = None
    name: Optional[LegacyText] = None
    balance: Optional[float] = None
    institution: Optional[LegacyText] = None
    account_type: Optional[LegacyText] = Field(default=None, alias="type")
    currency: Optional[LegacyText] = None
    include_in_household: Optional[bool] = None
    apy: Optional[float] = None


class LegacyRecurringCost(LegacyModel):
    id: Optional[LegacyText] = None
    name: Optional[LegacyText] = None
    amount: Optional[float] = None
    category: Optional[LegacyText] = None
    include_in_household: Optional[bool] = None


class LegacyDebt(LegacyModel):
    id: Optional[LegacyText] = None
    name: Optional[LegacyText] = None
    total_amount: Optional[float] = None
    remaining_amount: Optional[float] = None
    monthly_payment: Optional[float] = None
    interest_rate: Optional[float] = None
    include_in_household: Optional[bool] = None


class LegacyGoal(LegacyModel):
    id: Optional[LegacyText] = None
    name: Optional[LegacyText] = None
    category: Optional[LegacyText] = None
    is_main: Optional[bool] = None
    target_amount: Optional[float] = None
    current_amount: Optional[float] = None
    deadline: Optional[LegacyText] = None
    property_value: Optional[float] = None


class LegacyUserSettings(LegacyModel):
    """Scalar settings stored at the top level of the finance document."""

    currency: Optional[LegacyText] = None
    theme: Optional[LegacyText] = None
    emergency_fund_goal: Optional[float] = None
    is_variable_income: Optional[bool] = None
    variable_spending: Optional[float] = None


class LegacyFinance(LegacyModel):
    """
    A user's personal finance document.

    The item lists hold raw items. The scalar settings next to them are
    read separately as LegacyUserSettings from the same object.
    """

    accounts: list[Any] = Field(default_factory=list)
    recurring_costs: list[Any] = Field(default_factory=list)
    debts: list[Any] = Field(default_factory=list)
    goals: list[Any] = Field(default_factory=list)

    @field_validator("accounts", "recurring_costs", "debts", "goals", mode="before")
    @classmethod
    def lists_default_to_empty(cls, v: Any) -> Any:
        return _list_or_empty(v)


def decode_value(value: Any) -> Any:
    """
    Decode a raw KV value.

    Strings hold JSON text; anything else was stored already parsed.
    """
    if isinstance(value, (str, bytes, bytearray)):
        try:
            return json.loads(value)
        except json.JSONDecodeError as e:
            raise MalformedPayloadError(f"Invalid JSON: {e}") from e
    return value


def decode_document(value: Any) -> dict[str, Any]:
    """
    Decode a raw KV value that must hold a JSON object.

    Raises:
        MalformedPayloadError: If the value is not JSON or not an object
    """
    data = decode_value(value)
    if not isinstance(data, dict):
        raise MalformedPayloadError(
            f"Expected a JSON object, got {type(data).__name__}"
        )
    return data


def _validate(data: dict[str, Any], model: type[LegacyModel]) -> LegacyModel:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        first = e.errors()[0]
        raise MalformedPayloadError(
            f"Unexpected shape ({e.error_count()} errors): {first['loc']} {first['msg']}"
        ) from e


def parse_document(value: Any, model: type[LegacyModel]) -> LegacyModel:
    """
    Decode and validate a raw KV value as the given document model.

    Raises:
        MalformedPayloadError: If the value is not a JSON object or does
            not fit the model
    """
    return _validate(decode_document(value), model)


def parse_item(value: Any, model: type[LegacyModel]) -> LegacyModel:
    """
    Validate one list item of a document.

    Raises:
        MalformedPayloadError: If the item is not an object or does not
            fit the model
    """
    if not isinstance(value, dict):
        raise MalformedPayloadError(
            f"Expected a JSON object, got {type(value).__name__}"
        )
    return _validate(value, model)


def item_label(value: Any, field: str = "id") -> str:
    """Identifier of a raw item for error messages, even if it is invalid."""
    if isinstance(value, dict):
        return str(_coerce_text(value.get(field)))
    return str(None)
