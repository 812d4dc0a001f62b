"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from gatekeep.adapters.audit import AuditLogService, InMemoryAuditRepository
from gatekeep.adapters.auth import (
    AuditLoginHistoryProvider,
    InMemoryOrganizationStore,
    InMemoryPasswordHistory,
    InMemoryRevocationStore,
    InMemoryUserStore,
)
from gatekeep.config import Settings, TokenSettings
from gatekeep.core.auth.service import AuthService
from gatekeep.core.auth.types import Account, RequestContext, UserRole

STRONG_PASSWORD = "Str0ng!Passw0rd"  # pragma: allowlist secret
OTHER_PASSWORD = "An0ther!Secret"  # pragma: allowlist secret


class FrozenClock:
    """Manually advanced clock for deterministic time-dependent tests.

    Starts one minute behind real time: signed tokens are still checked
    against the real clock, so small advances keep them valid.
    """

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(UTC) - timedelta(minutes=1)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class PlainHasher:
    """Fast, reversible stand-in for bcrypt in unit tests."""

    def hash(self, password: str) -> str:
        return f"plain${password}"

    def verify(self, plain_password: str, password_hash: str) -> bool:
        return password_hash == f"plain${plain_password}"


@pytest.fixture
def clock() -> FrozenClock:
    """Frozen clock shared by the stores and the service."""
    return FrozenClock()


@pytest.fixture
def hasher() -> PlainHasher:
    return PlainHasher()


@pytest.fixture
def settings() -> Settings:
    """Default settings with a test signing key."""
    return Settings(tokens=TokenSettings(secret_key="test-secret-key"))  # pragma: allowlist secret


@pytest.fixture
def context() -> RequestContext:
    return RequestContext(
        ip_address="203.0.113.10",
        user_agent="pytest",
        request_id="req-1",
    )


@pytest.fixture
def user_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def revocation_store(clock: FrozenClock) -> InMemoryRevocationStore:
    return InMemoryRevocationStore(clock=clock)


@pytest.fixture
def audit_repo(clock: FrozenClock) -> InMemoryAuditRepository:
    return InMemoryAuditRepository(clock=clock)


@pytest.fixture
def notifications() -> MagicMock:
    """NotificationSender mock whose sends all succeed."""
    sender = MagicMock()
    sender.send_verification_email = AsyncMock(return_value=True)
    sender.send_welcome_email = AsyncMock(return_value=True)
    sender.send_password_reset_email = AsyncMock(return_value=True)
    sender.send_account_locked_email = AsyncMock(return_value=True)
    return sender


@pytest.fixture
def auth_service(
    user_store: InMemoryUserStore,
    revocation_store: InMemoryRevocationStore,
    audit_repo: InMemoryAuditRepository,
    notifications: MagicMock,
    settings: Settings,
    hasher: PlainHasher,
    clock: FrozenClock,
) -> AuthService:
    """AuthService wired to in-memory adapters, a fast hasher and a frozen clock."""
    return AuthService(
        users=user_store,
        revocations=revocation_store,
        audit=AuditLogService(audit_repo),
        notifications=notifications,
        history=AuditLoginHistoryProvider.from_settings(
            audit_repo, settings.detection, clock=clock
        ),
        organizations=InMemoryOrganizationStore(),
        password_history=InMemoryPasswordHistory(depth=5, hasher=hasher),
        settings=settings,
        hasher=hasher,
        clock=clock,
    )


def _make_account(
    clock: FrozenClock | None = None,
    password_hash: str = f"plain${STRONG_PASSWORD}",
    **overrides: object,
) -> Account:
    """Build an account with sensible defaults."""
    now = clock() if clock else datetime.now(UTC)
    values: dict[str, object] = {
        "organization_id": uuid4(),
        "email": "user@example.com",
        "password_hash": password_hash,
        "role": UserRole.MANAGER,
        "first_name": "Test",
        "last_name": "User",
        "created_at": now,
        "updated_at": now,
    }
    values.update(overrides)
    return Account(**values)  # type: ignore[arg-type]


@pytest.fixture
def make_account(clock: FrozenClock) -> Callable[..., Account]:
    """Factory for accounts stamped with the frozen clock."""

    def factory(**overrides: object) -> Account:
        return _make_account(clock, **overrides)

    return factory

