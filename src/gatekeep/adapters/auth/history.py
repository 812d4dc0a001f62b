"""Login history derived from the audit trail."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID

from gatekeep.config import DetectionSettings
from gatekeep.core.audit import AuditLogEntry
from gatekeep.core.auth.types import normalize_email
from gatekeep.core.detection.types import LoginAttempt


class LoginAuditReader(Protocol):
    """Audit repository query used for login history."""

    async def list_login_attempts(
        self,
        since: datetime,
        email: str | None = None,
        ip_address: str | None = None,
    ) -> list[AuditLogEntry]: ...


def _entry_to_attempt(entry: AuditLogEntry) -> LoginAttempt:
    metadata = entry.metadata or {}
    account_id: UUID | None
    try:
        account_id = UUID(entry.resource_id) if entry.resource_id else None
    except ValueError:
        account_id = None
    return LoginAttempt(
        email=metadata.get("email", ""),
        ip_address=entry.actor_ip,
        user_agent=entry.actor_user_agent,
        timestamp=entry.timestamp,
        success=entry.success,
        account_id=account_id,
    )


class AuditLoginHistoryProvider:
    """LoginHistoryProvider that reads LOGIN entries from the audit log."""

    def __init__(
        self,
        repository: LoginAuditReader,
        window_minutes: int = 60,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            repository: Audit repository to query.
            window_minutes: How far back to look.
            clock: Source of the current time.
        """
        self._repository = repository
        self.window = timedelta(minutes=window_minutes)
        self._clock = clock or (lambda: datetime.now(UTC))

    @classmethod
    def from_settings(
        cls,
        repository: LoginAuditReader,
        settings: DetectionSettings,
        clock: Callable[[], datetime] | None = None,
    ) -> AuditLoginHistoryProvider:
        """Build a provider whose window is the configured detection history window."""
        return cls(repository, window_minutes=settings.history_window_minutes, clock=clock)

    async def recent_attempts(
        self, email: str, ip_address: str | None = None
    ) -> list[LoginAttempt]:
        since = self._clock() - self.window
        entries = await self._repository.list_login_attempts(
            since, email=normalize_email(email), ip_address=ip_address
        )
        return [_entry_to_attempt(entry) for entry in entries]
