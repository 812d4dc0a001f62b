"""Protocol definitions for all external dependencies.

The core only depends on these protocols, never on concrete adapters.
In-memory and PostgreSQL implementations live in gatekeep.adapters.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import UUID

if TYPE_CHECKING:
    from gatekeep.core.audit import AuditAction, AuditLogCreate, AuditResourceType
    from gatekeep.core.auth.types import Account, RequestContext
    from gatekeep.core.detection.types import LoginAttempt


@runtime_checkable
class UserStore(Protocol):
    """Durable account storage.

    Implementations must persist every Account field, including the
    lockout fields, and must serialize writes per account id (the
    provided stores use the ``version`` field for optimistic locking and
    raise ConcurrentUpdateError on a lost race).
    """

    async def find_by_email(self, email: str) -> Account | None:
        """Get account by normalized email."""
        ...

    async def find_by_id(self, account_id: UUID) -> Account | None:
        """Get account by ID."""
        ...

    async def save(self, account: Account) -> Account:
        """Insert or update an account and return the stored copy."""
        ...

    async def exists_by_email(self, email: str) -> bool:
        """Check whether an email is already registered."""
        ...


@runtime_checkable
class OrganizationStore(Protocol):
    """Creates organizations during registration."""

    async def create_organization(self, name: str) -> UUID:
        """Create an organization and return its ID."""
        ...


@runtime_checkable
class AuditSink(Protocol):
    """Append-only recorder of security events. Must never raise."""

    async def record(
        self,
        action: AuditAction,
        resource_type: AuditResourceType | str = "USER",
        resource_id: str | None = None,
        success: bool = True,
        error_message: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        context: RequestContext | None = None,
    ) -> None:
        """Record a single audit event."""
        ...

    async def record_batch(self, entries: Sequence[AuditLogCreate]) -> None:
        """Record several audit events at once."""
        ...


@runtime_checkable
class RevocationStore(Protocol):
    """Set of revoked token ids plus per-subject revoke-all cutoffs."""

    async def is_revoked(self, token_id: str) -> bool:
        """Check whether a token id has been revoked."""
        ...

    async def revoke(
        self,
        token_id: str,
        subject_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        """Revoke one token id. expires_at allows later purging."""
        ...

    async def revoke_all_for_subject(self, subject_id: str) -> None:
        """Revoke every token issued to a subject up to now."""
        ...

    async def subject_revoked_at(self, subject_id: str) -> datetime | None:
        """Get the latest revoke-all cutoff for a subject, if any."""
        ...

    async def purge_expired(self, now: datetime) -> int:
        """Drop entries whose tokens have expired anyway. Returns count removed."""
        ...


@runtime_checkable
class LoginHistoryProvider(Protocol):
    """Source of recent login attempts for the detection rules."""

    async def recent_attempts(
        self, email: str, ip_address: str | None = None
    ) -> list[LoginAttempt]:
        """Get recent attempts for an email or IP, already bounded to a recency window."""
        ...


@runtime_checkable
class NotificationSender(Protocol):
    """Outbound account emails. Called fire-and-forget by the core."""

    async def send_verification_email(self, email: str, token: str, verify_url: str) -> bool:
        """Send the email-verification link."""
        ...

    async def send_welcome_email(self, email: str, first_name: str) -> bool:
        """Send the post-verification welcome email."""
        ...

    async def send_password_reset_email(self, email: str, token: str, reset_url: str) -> bool:
        """Send the password reset link."""
        ...

    async def send_account_locked_email(self, email: str, locked_until: datetime) -> bool:
        """Tell the owner their account was locked."""
        ...


@runtime_checkable
class PasswordHasher(Protocol):
    """Opaque hashing capability. Comparison must be constant-time."""

    def hash(self, password: str) -> str:
        """Hash a plain text password."""
        ...

    def verify(self, plain_password: str, password_hash: str) -> bool:
        """Check a plain text password against a hash."""
        ...


@runtime_checkable
class PasswordHistoryChecker(Protocol):
    """Prevents reuse of recent passwords."""

    async def is_reused(self, account_id: UUID, password: str) -> bool:
        """Check a candidate password against the most recent hashes."""
        ...

    async def remember(self, account_id: UUID, password_hash: str) -> None:
        """Record a newly set password hash."""
        ...
