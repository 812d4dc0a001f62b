"""In-memory auth stores.

Used by the test suite and by single-process deployments. Each store keeps
its own asyncio lock; the user store applies the same optimistic version
check as the PostgreSQL store.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

from gatekeep.core.auth.password import BcryptPasswordHasher
from gatekeep.core.auth.types import Account, normalize_email
from gatekeep.core.exceptions import ConcurrentUpdateError, DuplicateAccountError
from gatekeep.core.interfaces import PasswordHasher


def _utc_now() -> datetime:
    return datetime.now(UTC)


class InMemoryUserStore:
    """Accounts keyed by id, with a unique normalized-email index."""

    def __init__(self) -> None:
        self._accounts: dict[UUID, Account] = {}
        self._by_email: dict[str, UUID] = {}
        self._lock = asyncio.Lock()

    async def find_by_email(self, email: str) -> Account | None:
        account_id = self._by_email.get(normalize_email(email))
        if account_id is None:
            return None
        return self._accounts[account_id].model_copy(deep=True)

    async def find_by_id(self, account_id: UUID) -> Account | None:
        account = self._accounts.get(account_id)
        return account.model_copy(deep=True) if account else None

    async def exists_by_email(self, email: str) -> bool:
        return normalize_email(email) in self._by_email

    async def save(self, account: Account) -> Account:
        """Insert or update an account.

        Raises:
            DuplicateAccountError: If a new account's email is already taken.
            ConcurrentUpdateError: If the stored version moved on since load.
        """
        async with self._lock:
            current = self._accounts.get(account.id)
            if current is None:
                if account.email in self._by_email:
                    raise DuplicateAccountError("User with this email already exists")
            elif current.version != account.version:
                raise ConcurrentUpdateError(account.id, account.version)
            elif current.email != account.email:
                if account.email in self._by_email:
                    raise DuplicateAccountError("User with this email already exists")
                del self._by_email[current.email]

            stored = account.model_copy(update={"version": account.version + 1}, deep=True)
            self._accounts[stored.id] = stored
            self._by_email[stored.email] = stored.id
            return stored.model_copy(deep=True)


class InMemoryOrganizationStore:
    """Organization names keyed by id."""

    def __init__(self) -> None:
        self.organizations: dict[UUID, str] = {}

    async def create_organization(self, name: str) -> UUID:
        organization_id = uuid4()
        self.organizations[organization_id] = name
        return organization_id


class InMemoryRevocationStore:
    """Revoked token ids and per-subject revoke-all cutoffs."""

    def __init__(
        self,
        clock: Callable[[], datetime] | None = None,
        max_token_lifetime: timedelta = timedelta(days=30),
    ) -> None:
        """Initialize the store.

        Args:
            clock: Source of the current time for revoke-all cutoffs.
            max_token_lifetime: Subject cutoffs older than this no longer
                affect any live token and are dropped by purge_expired.
        """
        self._clock = clock or _utc_now
        self._max_token_lifetime = max_token_lifetime
        self._revoked: dict[str, datetime | None] = {}
        self._subjects: dict[str, datetime] = {}

    async def is_revoked(self, token_id: str) -> bool:
        return token_id in self._revoked

    async def revoke(
        self,
        token_id: str,
        subject_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        self._revoked[token_id] = expires_at

    async def revoke_all_for_subject(self, subject_id: str) -> None:
        now = self._clock()
        previous = self._subjects.get(subject_id)
        self._subjects[subject_id] = max(previous, now) if previous else now

    async def subject_revoked_at(self, subject_id: str) -> datetime | None:
        return self._subjects.get(subject_id)

    async def purge_expired(self, now: datetime) -> int:
        expired = [
            token_id
            for token_id, expires_at in self._revoked.items()
            if expires_at is not None and expires_at < now
        ]
        for token_id in expired:
            del self._revoked[token_id]

        stale_before = now - self._max_token_lifetime
        stale = [s for s, revoked_at in self._subjects.items() if revoked_at < stale_before]
        for subject_id in stale:
            del self._subjects[subject_id]
        return len(expired) + len(stale)


class InMemoryPasswordHistory:
    """Most recent password hashes per account."""

    def __init__(self, depth: int = 5, hasher: PasswordHasher | None = None) -> None:
        self.depth = depth
        self._hasher = hasher or BcryptPasswordHasher()
        self._hashes: dict[UUID, list[str]] = {}

    async def is_reused(self, account_id: UUID, password: str) -> bool:
        recent = self._hashes.get(account_id, [])[-self.depth :]
        return any(self._hasher.verify(password, stored) for stored in recent)

    async def remember(self, account_id: UUID, password_hash: str) -> None:
        hashes = self._hashes.setdefault(account_id, [])
        hashes.append(password_hash)
        del hashes[: -self.depth]
