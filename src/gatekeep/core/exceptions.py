"""Domain-specific exceptions.

All exceptions in the gatekeep system inherit from GatekeepError,
making it easy to catch all system errors while still being able
to handle specific error types.

Authentication failures are normally carried as AuthFailure values
(see gatekeep.core.auth.results). The AuthError subclasses below are
only raised when a caller unwraps a failed result at its outer boundary.
"""

from __future__ import annotations

from datetime import datetime


class GatekeepError(Exception):
    """Base exception for all gatekeep errors."""

    pass


class ConfigurationError(GatekeepError):
    """Invalid security configuration.

    Raised at startup for settings that would weaken verification,
    such as an algorithm outside the allow-list or an empty signing key.
    """

    pass


class AuthError(GatekeepError):
    """Base class for authentication failures surfaced to a caller.

    The message is always the generic, non-enumerating text. The specific
    cause is only recorded in the audit trail.
    """

    pass


class InvalidCredentialsError(AuthError):
    """Unknown email or wrong password. Both are reported identically."""

    pass


class AccountLockedError(AuthError):
    """Login rejected because the account is temporarily locked.

    Attributes:
        locked_until: When the current lock expires.
        lockout_count: How many times the account has been locked.
    """

    def __init__(
        self,
        message: str,
        locked_until: datetime | None = None,
        lockout_count: int = 0,
    ) -> None:
        """Initialize AccountLockedError.

        Args:
            message: Caller-facing error description.
            locked_until: When the lock expires.
            lockout_count: Number of lockouts so far.
        """
        super().__init__(message)
        self.locked_until = locked_until
        self.lockout_count = lockout_count


class AccountInactiveError(AuthError):
    """The account exists and the password matched, but it is disabled."""

    pass


class TokenInvalidError(AuthError):
    """Malformed, expired, revoked, mis-signed or stale token.

    Every one of those causes is reported with the same message.
    """

    pass


class DuplicateAccountError(AuthError):
    """Registration conflict: the email is already registered."""

    pass


class ValidationFailureError(AuthError):
    """Malformed input rejected by the core.

    Attributes:
        errors: Individual validation messages.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        """Initialize ValidationFailureError.

        Args:
            message: Summary description.
            errors: Individual validation messages.
        """
        super().__init__(message)
        self.errors = errors or []


class InfrastructureError(GatekeepError):
    """A backing store failed. These always propagate to the caller."""

    pass


class StoreUnavailableError(InfrastructureError):
    """The store could not be reached or returned an unexpected error."""

    pass


class ConcurrentUpdateError(InfrastructureError):
    """An account was modified by another request between load and save.

    Raised by stores that implement optimistic versioning. The caller
    may retry the whole request.
    """

    def __init__(self, account_id: object, expected_version: int) -> None:
        """Initialize ConcurrentUpdateError.

        Args:
            account_id: Account that failed to save.
            expected_version: Version the caller loaded.
        """
        super().__init__(
            f"Account {account_id} was modified concurrently (expected version {expected_version})"
        )
        self.account_id = account_id
        self.expected_version = expected_version
