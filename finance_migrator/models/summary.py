"""
Migration Summary

The in-band report of one migration run: how many rows of each kind were
written and which individual records failed. Partial failures are normal
and never abort a run, so a summary can carry counts and errors together.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MigrationSummary(BaseModel):
    """
    Per-entity success counters plus an error list.

    Serialized with camelCase keys, which is the shape the admin
    panel reads (incomeSources, recurringCosts, ...).
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    users: int = Field(default=0, ge=0)
    households: int = Field(default=0, ge=0)
    members: int = Field(default=0, ge=0)
    income_sources: int = Field(default=0, ge=0)
    accounts: int = Field(default=0, ge=0)
    recurring_costs: int = Field(default=0, ge=0)
    debts: int = Field(default=0, ge=0)
    goals: int = Field(default=0, ge=0)
    snapshots: int = Field(default=0, ge=0)
    settings: int = Field(default=0, ge=0)
    errors: list[str] = Field(default_factory=list)

    def record_success(self, counter: str) -> None:
        """Increment one of the entity counters by field name."""
        if counter not in self.counter_names():
            raise KeyError(f"Unknown summary counter: {counter}")
        setattr(self, counter, getattr(self, counter) + 1)

    def record_error(self, message: str) -> None:
        self.errors.append(message)

    @classmethod
    def counter_names(cls) -> list[str]:
        return [name for name in cls.model_fields if name != "errors"]

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    @property
    def total_records(self) -> int:
        """Total rows written across all tables."""
        return sum(getattr(self, name) for name in self.counter_names())

    def to_response(self) -> dict:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(by_alias=True)
