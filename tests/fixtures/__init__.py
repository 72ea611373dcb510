"""
Shared test helpers for the mfa_migration tests.

Usage:
    from tests.fixtures import DEADLINE, LEGACY, NEW, collect_sums, contact
"""

from tests.fixtures.campaign import DEADLINE, LEGACY, NEW, contact
from tests.fixtures.metrics import collect_sums

__all__ = [
    "DEADLINE",
    "LEGACY",
    "NEW",
    "contact",
    "collect_sums",
]
