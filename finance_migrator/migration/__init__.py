"""KV to relational migration."""

from finance_migrator.migration.keys import KeyKind, KeyMatch, classify_key
from finance_migrator.migration.runner import MigrationRunner

__all__ = ["KeyKind", "KeyMatch", "MigrationRunner", "classify_key"]
