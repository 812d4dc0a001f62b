"""Tests for typed auth results."""

from datetime import UTC, datetime

import pytest

from gatekeep.core.auth.results import (
    INVALID_CREDENTIALS_MESSAGE,
    AuthErrorKind,
    AuthFailure,
    AuthResult,
)
from gatekeep.core.exceptions import (
    AccountInactiveError,
    AccountLockedError,
    AuthError,
    DuplicateAccountError,
    InvalidCredentialsError,
    ValidationFailureError,
)


class TestAuthResult:
    """Test AuthResult success and failure values."""

    def test_success(self) -> None:
        result = AuthResult.success(42)

        assert result.ok
        assert result.unwrap() == 42

    def test_failure_unwrap_raises_matching_error(self) -> None:
        failure = AuthFailure.invalid_credentials("User not found")
        result: AuthResult[int] = AuthResult.failure(failure)

        assert not result.ok
        with pytest.raises(InvalidCredentialsError) as exc_info:
            result.unwrap()
        assert str(exc_info.value) == INVALID_CREDENTIALS_MESSAGE

    def test_reason_not_exposed_by_exception(self) -> None:
        """The audit-only reason never reaches the caller-facing error."""
        failure = AuthFailure.invalid_credentials("User not found")

        assert "not found" not in str(failure.to_exception())

    def test_locked_failure_carries_lock_details(self) -> None:
        until = datetime(2024, 1, 1, tzinfo=UTC)
        error = AuthFailure.account_locked(until, 2).to_exception()

        assert isinstance(error, AccountLockedError)
        assert error.locked_until == until
        assert error.lockout_count == 2

    def test_validation_failure_carries_errors(self) -> None:
        error = AuthFailure.validation("Bad input", ["a", "b"]).to_exception()

        assert isinstance(error, ValidationFailureError)
        assert error.errors == ["a", "b"]

    @pytest.mark.parametrize(
        ("failure", "error_type"),
        [
            (AuthFailure.account_inactive(), AccountInactiveError),
            (AuthFailure.duplicate_account(), DuplicateAccountError),
        ],
    )
    def test_kinds_map_to_errors(self, failure: AuthFailure, error_type: type[AuthError]) -> None:
        assert isinstance(failure.to_exception(), error_type)

    def test_kind_values(self) -> None:
        assert AuthFailure.token_invalid("x").kind is AuthErrorKind.TOKEN_INVALID
