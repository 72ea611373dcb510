"""
Repository implementations for mfa_migration.

- **Record cache**: local cache of UserMigrationRecords in front of the
  identity directory

Each repository type provides:
- A Protocol (interface) defining the contract
- PostgreSQL implementation for shared deployments
- SQLite implementation for lightweight deployments
- In-memory implementation for single processes and testing
"""

from mfa_migration.repositories.record_cache import (
    TABLE_NAME,
    InMemoryRecordCache,
    PostgreSQLRecordCache,
    RecordCache,
    SQLiteRecordCache,
)

__all__ = [
    "TABLE_NAME",
    "RecordCache",
    "InMemoryRecordCache",
    "SQLiteRecordCache",
    "PostgreSQLRecordCache",
]
