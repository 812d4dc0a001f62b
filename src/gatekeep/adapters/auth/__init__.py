"""Auth storage adapters."""

from gatekeep.adapters.auth.history import AuditLoginHistoryProvider
from gatekeep.adapters.auth.memory import (
    InMemoryOrganizationStore,
    InMemoryPasswordHistory,
    InMemoryRevocationStore,
    InMemoryUserStore,
)
from gatekeep.adapters.auth.postgres import (
    PostgresOrganizationStore,
    PostgresPasswordHistory,
    PostgresRevocationStore,
    PostgresUserStore,
)

__all__ = [
    "AuditLoginHistoryProvider",
    "InMemoryOrganizationStore",
    "InMemoryPasswordHistory",
    "InMemoryRevocationStore",
    "InMemoryUserStore",
    "PostgresOrganizationStore",
    "PostgresPasswordHistory",
    "PostgresRevocationStore",
    "PostgresUserStore",
]
