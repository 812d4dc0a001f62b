"""Tests for one-time verification and reset tokens."""

from datetime import UTC, datetime, timedelta

from gatekeep.core.auth.tokens import (
    generate_account_token,
    get_token_expiry,
    hash_token,
    is_token_expired,
    token_matches,
)


class TestAccountTokens:
    """Test token generation and hashing."""

    def test_tokens_are_unique(self) -> None:
        assert len({generate_account_token() for _ in range(50)}) == 50

    def test_token_length(self) -> None:
        """32 random bytes encode to 43 URL-safe characters."""
        assert len(generate_account_token()) == 43

    def test_hash_is_deterministic_sha256(self) -> None:
        token = generate_account_token()

        assert hash_token(token) == hash_token(token)
        assert len(hash_token(token)) == 64

    def test_token_matches(self) -> None:
        token = generate_account_token()
        stored = hash_token(token)

        assert token_matches(token, stored) is True
        assert token_matches(generate_account_token(), stored) is False
        assert token_matches(token, None) is False
        assert token_matches("", stored) is False


class TestTokenExpiry:
    """Test expiry helpers."""

    def test_expiry_from_reference_time(self) -> None:
        now = datetime(2024, 1, 1, tzinfo=UTC)

        assert get_token_expiry(24, now) == now + timedelta(hours=24)

    def test_is_token_expired(self) -> None:
        now = datetime(2024, 1, 1, 12, tzinfo=UTC)

        assert is_token_expired(now - timedelta(seconds=1), now) is True
        assert is_token_expired(now + timedelta(hours=1), now) is False

    def test_naive_expiry_treated_as_utc(self) -> None:
        now = datetime(2024, 1, 1, 12, tzinfo=UTC)

        assert is_token_expired(datetime(2024, 1, 1, 11), now) is True
