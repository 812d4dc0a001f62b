"""One-time tokens for email verification and password reset."""

import hashlib
import hmac
import secrets
from datetime import UTC, datetime, timedelta

# Token configuration
ACCOUNT_TOKEN_BYTES = 32  # 256 bits of entropy


def generate_account_token() -> str:
    """Generate a cryptographically secure one-time token.

    Returns:
        URL-safe base64 encoded token string.
    """
    return secrets.token_urlsafe(ACCOUNT_TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Hash a token for secure storage.

    Uses SHA-256 for fast lookup while maintaining security.
    The token itself has enough entropy that rainbow tables are infeasible.

    Args:
        token: The plaintext token to hash.

    Returns:
        Hex-encoded SHA-256 hash of the token.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def token_matches(token: str, stored_hash: str | None) -> bool:
    """Compare a presented token with a stored hash in constant time."""
    if not token or not stored_hash:
        return False
    return hmac.compare_digest(hash_token(token), stored_hash)


def get_token_expiry(hours: int, now: datetime | None = None) -> datetime:
    """Calculate token expiry timestamp.

    Args:
        hours: Number of hours until expiry.
        now: Reference time. Defaults to the current UTC time.

    Returns:
        UTC datetime when the token expires.
    """
    return (now or datetime.now(UTC)) + timedelta(hours=hours)


def is_token_expired(expires_at: datetime, now: datetime | None = None) -> bool:
    """Check if a token has expired.

    Args:
        expires_at: The token's expiry timestamp.
        now: Reference time. Defaults to the current UTC time.

    Returns:
        True if the token has expired.
    """
    now = now or datetime.now(UTC)
    # Handle timezone-naive datetimes
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    return now > expires_at
