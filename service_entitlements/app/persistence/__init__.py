"""
Persistence package.

Storage collaborators consumed by the engine:

- base: EntitlementStore and UserDirectory contracts.
- postgres: asyncpg implementations (``user_features`` table, read-only
  ``users`` lookups).
- memory: In-process implementations for local runs and tests.
"""

from .base import EntitlementStore, UserDirectory
from .memory import InMemoryEntitlementStore, InMemoryUserDirectory
from .postgres import PostgreSQLEntitlementStore, PostgreSQLUserDirectory

__all__ = [
    "EntitlementStore",
    "InMemoryEntitlementStore",
    "InMemoryUserDirectory",
    "PostgreSQLEntitlementStore",
    "PostgreSQLUserDirectory",
    "UserDirectory",
]
