"""Password hashing, verification and strength rules."""

from __future__ import annotations

import re

import bcrypt
import structlog

from gatekeep.config import BCRYPT_MAX_BYTES, PasswordPolicy
from gatekeep.core.interfaces import PasswordHasher

logger = structlog.get_logger()

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")
_SYMBOL = re.compile(r"[^A-Za-z0-9]")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt.

    Args:
        password: Plain text password

    Returns:
        Bcrypt hash string

    Raises:
        ValueError: If the password is longer than bcrypt accepts. Callers
            validate with validate_password_strength first.
    """
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash.

    Args:
        plain_password: Plain text password to check
        hashed_password: Bcrypt hash to check against

    Returns:
        True if password matches hash. Malformed hashes never match.
    """
    if not plain_password or not hashed_password:
        return False
    candidate = plain_password.encode("utf-8")
    if len(candidate) > BCRYPT_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(candidate, hashed_password.encode("utf-8"))
    except ValueError:
        logger.warning("password_hash_malformed")
        return False


class BcryptPasswordHasher:
    """PasswordHasher backed by bcrypt (constant-time comparison)."""

    def hash(self, password: str) -> str:
        return hash_password(password)

    def verify(self, plain_password: str, password_hash: str) -> bool:
        return verify_password(plain_password, password_hash)


class CredentialVerifier:
    """Stateless password check over an injected hashing capability."""

    def __init__(self, hasher: PasswordHasher | None = None) -> None:
        """Initialize the verifier.

        Args:
            hasher: Hashing capability. Defaults to bcrypt.
        """
        self._hasher: PasswordHasher = hasher or BcryptPasswordHasher()

    def verify(self, plain_password: str, stored_hash: str | None) -> bool:
        """Return True when the password matches the stored hash.

        Never raises on mismatch or on a hasher error; both read as False.
        """
        if not plain_password or not stored_hash:
            return False
        try:
            return bool(self._hasher.verify(plain_password, stored_hash))
        except Exception as e:
            logger.error("credential_verification_error", error=str(e))
            return False

    def hash(self, plain_password: str) -> str:
        return self._hasher.hash(plain_password)


def validate_password_strength(password: str, policy: PasswordPolicy | None = None) -> list[str]:
    """Check a candidate password against the strength policy.

    Args:
        password: Candidate password.
        policy: Policy to apply. Uses defaults if not provided.

    Returns:
        List of violated rules. Empty when the password is acceptable.
    """
    policy = policy or PasswordPolicy()
    errors: list[str] = []

    if len(password) < policy.min_length:
        errors.append(f"Password must be at least {policy.min_length} characters")
    if len(password.encode("utf-8")) > policy.max_length:
        errors.append(f"Password must be at most {policy.max_length} bytes")
    if policy.require_upper and not _UPPER.search(password):
        errors.append("Password must include at least 1 uppercase letter")
    if policy.require_lower and not _LOWER.search(password):
        errors.append("Password must include at least 1 lowercase letter")
    if policy.require_digit and not _DIGIT.search(password):
        errors.append("Password must include at least 1 number")
    if policy.require_symbol and not _SYMBOL.search(password):
        errors.append("Password must include at least 1 symbol")

    return errors
