"""Typed success/failure values returned by the auth core.

Authentication failures are expected outcomes, not exceptional ones, so the
core returns them as values. AuthResult.unwrap() converts a failure to the
matching AuthError subclass for callers that prefer exceptions at their
outer boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, TypeVar

from gatekeep.core.exceptions import (
    AccountInactiveError,
    AccountLockedError,
    AuthError,
    DuplicateAccountError,
    InvalidCredentialsError,
    TokenInvalidError,
    ValidationFailureError,
)

T = TypeVar("T")

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
ACCOUNT_LOCKED_MESSAGE = "Account is temporarily locked due to multiple failed login attempts"
ACCOUNT_INACTIVE_MESSAGE = "Account is disabled"
TOKEN_INVALID_MESSAGE = "Invalid or expired credential"
DUPLICATE_ACCOUNT_MESSAGE = "User with this email already exists"


class AuthErrorKind(str, Enum):
    """Caller-visible failure categories."""

    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_INACTIVE = "account_inactive"
    TOKEN_INVALID = "token_invalid"
    DUPLICATE_ACCOUNT = "duplicate_account"
    VALIDATION_FAILURE = "validation_failure"


@dataclass(frozen=True)
class AuthFailure:
    """A failed auth operation.

    Attributes:
        kind: Failure category.
        message: Generic caller-facing message.
        reason: Specific cause, for the audit trail and logs only.
        locked_until: Lock expiry, for ACCOUNT_LOCKED.
        lockout_count: Lockouts so far, for ACCOUNT_LOCKED.
        errors: Individual messages, for VALIDATION_FAILURE.
    """

    kind: AuthErrorKind
    message: str
    reason: str = ""
    locked_until: datetime | None = None
    lockout_count: int | None = None
    errors: tuple[str, ...] = ()

    @classmethod
    def invalid_credentials(cls, reason: str) -> AuthFailure:
        return cls(AuthErrorKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS_MESSAGE, reason)

    @classmethod
    def token_invalid(cls, reason: str) -> AuthFailure:
        return cls(AuthErrorKind.TOKEN_INVALID, TOKEN_INVALID_MESSAGE, reason)

    @classmethod
    def account_locked(cls, locked_until: datetime | None, lockout_count: int) -> AuthFailure:
        return cls(
            AuthErrorKind.ACCOUNT_LOCKED,
            ACCOUNT_LOCKED_MESSAGE,
            "Account locked",
            locked_until=locked_until,
            lockout_count=lockout_count,
        )

    @classmethod
    def account_inactive(cls) -> AuthFailure:
        return cls(AuthErrorKind.ACCOUNT_INACTIVE, ACCOUNT_INACTIVE_MESSAGE, "Account inactive")

    @classmethod
    def duplicate_account(cls) -> AuthFailure:
        return cls(
            AuthErrorKind.DUPLICATE_ACCOUNT, DUPLICATE_ACCOUNT_MESSAGE, "Email already registered"
        )

    @classmethod
    def validation(cls, message: str, errors: list[str] | None = None) -> AuthFailure:
        return cls(
            AuthErrorKind.VALIDATION_FAILURE,
            message,
            message,
            errors=tuple(errors or ()),
        )

    def to_exception(self) -> AuthError:
        """Build the exception matching this failure. The reason is not included."""
        if self.kind is AuthErrorKind.INVALID_CREDENTIALS:
            return InvalidCredentialsError(self.message)
        if self.kind is AuthErrorKind.ACCOUNT_LOCKED:
            return AccountLockedError(self.message, self.locked_until, self.lockout_count or 0)
        if self.kind is AuthErrorKind.ACCOUNT_INACTIVE:
            return AccountInactiveError(self.message)
        if self.kind is AuthErrorKind.TOKEN_INVALID:
            return TokenInvalidError(self.message)
        if self.kind is AuthErrorKind.DUPLICATE_ACCOUNT:
            return DuplicateAccountError(self.message)
        return ValidationFailureError(self.message, list(self.errors))


@dataclass(frozen=True)
class AuthResult(Generic[T]):
    """Outcome of an auth operation: either a value or an AuthFailure."""

    value: T | None = None
    error: AuthFailure | None = field(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> AuthResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: AuthFailure) -> AuthResult[T]:
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value, or raise the AuthError matching the failure."""
        if self.error is not None:
            raise self.error.to_exception()
        return self.value  # type: ignore[return-value]
