"""Settings and security policies loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache

from gatekeep.core.exceptions import ConfigurationError

ALLOWED_JWT_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
BCRYPT_MAX_BYTES = 72


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class LockoutPolicy:
    """Progressive lockout policy.

    Attributes:
        max_failed_attempts: Consecutive failures that lock the account.
        base_lockout_minutes: Duration of the first lockout.
        multiplier: Growth factor applied per additional lockout.
        max_lockout_minutes: Ceiling for any single lockout.
    """

    max_failed_attempts: int = 5
    base_lockout_minutes: int = 30
    multiplier: float = 2.0
    max_lockout_minutes: int = 30 * 24 * 60  # 30 days

    def __post_init__(self) -> None:
        if self.max_failed_attempts < 1:
            raise ConfigurationError("max_failed_attempts must be at least 1")
        if self.base_lockout_minutes <= 0:
            raise ConfigurationError("base_lockout_minutes must be positive")
        if self.multiplier <= 1.0:
            raise ConfigurationError("multiplier must be greater than 1.0")
        if self.max_lockout_minutes < self.base_lockout_minutes:
            raise ConfigurationError("max_lockout_minutes must be >= base_lockout_minutes")


@dataclass(frozen=True)
class TokenSettings:
    """Signed-token configuration.

    Attributes:
        secret_key: HMAC signing key.
        algorithm: Signing algorithm, restricted to ALLOWED_JWT_ALGORITHMS.
        access_token_expire_minutes: Access token lifetime.
        refresh_token_expire_days: Refresh token lifetime.
        remember_me_refresh_token_expire_days: Refresh lifetime with remember-me.
        revoke_refresh_on_rotation: Revoke the presented refresh token on refresh.
        issuer: Optional ``iss`` claim, verified when set.
    """

    secret_key: str = "dev-secret-change-in-production"  # pragma: allowlist secret
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    remember_me_refresh_token_expire_days: int = 30
    revoke_refresh_on_rotation: bool = True
    issuer: str | None = None

    def __post_init__(self) -> None:
        if self.algorithm not in ALLOWED_JWT_ALGORITHMS:
            raise ConfigurationError(
                f"Unsupported JWT algorithm {self.algorithm!r}; "
                f"expected one of {sorted(ALLOWED_JWT_ALGORITHMS)}"
            )
        if not self.secret_key:
            raise ConfigurationError("JWT secret key must not be empty")
        if self.access_token_expire_minutes <= 0 or self.refresh_token_expire_days <= 0:
            raise ConfigurationError("Token lifetimes must be positive")


@dataclass(frozen=True)
class PasswordPolicy:
    """Password strength and reuse policy.

    ``max_length`` is measured in UTF-8 bytes, the unit bcrypt limits.
    """

    min_length: int = 8
    max_length: int = BCRYPT_MAX_BYTES
    require_upper: bool = True
    require_lower: bool = True
    require_digit: bool = True
    require_symbol: bool = True
    history_depth: int = 5

    def __post_init__(self) -> None:
        if not 0 < self.min_length <= self.max_length:
            raise ConfigurationError("Password min_length must be positive and <= max_length")
        if self.max_length > BCRYPT_MAX_BYTES:
            raise ConfigurationError(f"Password max_length cannot exceed {BCRYPT_MAX_BYTES} bytes")


@dataclass(frozen=True)
class DetectionSettings:
    """Suspicious-login detection settings.

    Attributes:
        history_window_minutes: How far back the history provider looks.
        timeout_seconds: Upper bound on history fetch plus evaluation.
    """

    history_window_minutes: int = 60
    timeout_seconds: float = 2.0


@dataclass(frozen=True)
class AccountTokenSettings:
    """Lifetimes of one-time email verification and password reset tokens."""

    email_verification_expire_hours: int = 24
    password_reset_expire_hours: int = 1


@dataclass(frozen=True)
class EmailSettings:
    """SMTP settings for the notification adapter."""

    smtp_host: str = "localhost"
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    from_email: str = "no-reply@example.com"
    from_name: str = "Gatekeep"
    use_tls: bool = True


@dataclass(frozen=True)
class Settings:
    """Top-level settings container."""

    tokens: TokenSettings = field(default_factory=TokenSettings)
    lockout: LockoutPolicy = field(default_factory=LockoutPolicy)
    passwords: PasswordPolicy = field(default_factory=PasswordPolicy)
    detection: DetectionSettings = field(default_factory=DetectionSettings)
    account_tokens: AccountTokenSettings = field(default_factory=AccountTokenSettings)
    email: EmailSettings = field(default_factory=EmailSettings)
    database_url: str = "postgresql://localhost:5432/gatekeep"
    frontend_url: str = "http://localhost:3000"
    audit_retention_days: int = 730

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment variables."""
        tokens = TokenSettings(
            secret_key=os.getenv("JWT_SECRET_KEY", TokenSettings.secret_key),
            algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            access_token_expire_minutes=int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "15")),
            refresh_token_expire_days=int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7")),
            remember_me_refresh_token_expire_days=int(
                os.getenv("REMEMBER_ME_REFRESH_TOKEN_EXPIRE_DAYS", "30")
            ),
            revoke_refresh_on_rotation=_env_bool("REVOKE_REFRESH_ON_ROTATION", True),
            issuer=os.getenv("JWT_ISSUER") or None,
        )
        lockout = LockoutPolicy(
            max_failed_attempts=int(os.getenv("LOCKOUT_MAX_FAILED_ATTEMPTS", "5")),
            base_lockout_minutes=int(os.getenv("LOCKOUT_BASE_MINUTES", "30")),
            multiplier=float(os.getenv("LOCKOUT_MULTIPLIER", "2.0")),
            max_lockout_minutes=int(os.getenv("LOCKOUT_MAX_MINUTES", str(30 * 24 * 60))),
        )
        passwords = PasswordPolicy(
            min_length=int(os.getenv("PASSWORD_MIN_LENGTH", "8")),
            max_length=int(os.getenv("PASSWORD_MAX_LENGTH", "72")),
            require_upper=_env_bool("PASSWORD_REQUIRE_UPPER", True),
            require_lower=_env_bool("PASSWORD_REQUIRE_LOWER", True),
            require_digit=_env_bool("PASSWORD_REQUIRE_DIGIT", True),
            require_symbol=_env_bool("PASSWORD_REQUIRE_SYMBOL", True),
            history_depth=int(os.getenv("PASSWORD_HISTORY_DEPTH", "5")),
        )
        detection = DetectionSettings(
            history_window_minutes=int(os.getenv("DETECTION_HISTORY_WINDOW_MINUTES", "60")),
            timeout_seconds=float(os.getenv("DETECTION_TIMEOUT_SECONDS", "2.0")),
        )
        account_tokens = AccountTokenSettings(
            email_verification_expire_hours=int(
                os.getenv("EMAIL_VERIFICATION_EXPIRE_HOURS", "24")
            ),
            password_reset_expire_hours=int(os.getenv("PASSWORD_RESET_EXPIRE_HOURS", "1")),
        )
        email = EmailSettings(
            smtp_host=os.getenv("SMTP_HOST", "localhost"),
            smtp_port=int(os.getenv("SMTP_PORT", "587")),
            smtp_user=os.getenv("SMTP_USER") or None,
            smtp_password=os.getenv("SMTP_PASSWORD") or None,
            from_email=os.getenv("SMTP_FROM_EMAIL", "no-reply@example.com"),
            from_name=os.getenv("SMTP_FROM_NAME", "Gatekeep"),
            use_tls=_env_bool("SMTP_USE_TLS", True),
        )
        return cls(
            tokens=tokens,
            lockout=lockout,
            passwords=passwords,
            detection=detection,
            account_tokens=account_tokens,
            email=email,
            database_url=os.getenv("DATABASE_URL", "postgresql://localhost:5432/gatekeep"),
            frontend_url=os.getenv("FRONTEND_URL", "http://localhost:3000"),
            audit_retention_days=int(os.getenv("AUDIT_RETENTION_DAYS", "730")),
        )


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings, loaded once from the environment."""
    return Settings.from_env()
