"""
Legacy key classification.

Only two key layouts carry data that moves to the relational schema:

    household/{householdId}/data   shared household document
    user/{userId}/finance          personal finance document

Everything else in the KV table (join-code lookups, user -> household
pointers, keys in the older colon notation) is ignored by the migration.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class KeyKind(str, Enum):
    HOUSEHOLD = "household"
    USER_FINANCE = "user_finance"


_PATTERNS = {
    KeyKind.HOUSEHOLD: ("household/", "/data"),
    KeyKind.USER_FINANCE: ("user/", "/finance"),
}


class KeyMatch(BaseModel):
    """A recognised key and the id embedded in it."""

    model_config = ConfigDict(frozen=True)

    kind: KeyKind
    entity_id: str
    key: str


def classify_key(key: str) -> Optional[KeyMatch]:
    """
    Match a key against the migrated layouts.

    The id is the second path segment. A key needs at least three segments
    and a non-empty id, so "household/data" is not a household key.

    Returns:
        The match, or None for keys the migration ignores
    """
    parts = key.split("/")
    if len(parts) < 3 or not parts[1]:
        return None

    for kind, (prefix, suffix) in _PATTERNS.items():
        if key.startswith(prefix) and key.endswith(suffix):
            return KeyMatch(kind=kind, entity_id=parts[1], key=key)

    return None
