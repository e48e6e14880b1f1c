"""
Finance Migrator - Source Package

One-time migration of the household finance app's data from the legacy
key-value table to the relational schema.

DESIGN PRINCIPLES:
1. Every write is an upsert on a stable key, so re-runs converge
2. One bad record never stops the run
3. Failures are reported, never silently corrected
4. Every step must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Household Finance Team"
