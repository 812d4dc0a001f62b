"""Auth domain types."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


def normalize_email(email: str) -> str:
    """Normalize an email address for lookup and uniqueness checks."""
    return email.strip().lower()


class UserRole(str, Enum):
    """Account roles."""

    OWNER = "owner"
    MANAGER = "manager"
    PUMPER = "pumper"


class TokenKind(str, Enum):
    """Signed token types."""

    ACCESS = "access"
    REFRESH = "refresh"


class LockState(str, Enum):
    """Lockout state of an account at a given instant."""

    UNLOCKED = "unlocked"
    LOCKED = "locked"


class Account(BaseModel):
    """Account domain model: identity plus security state."""

    id: UUID = Field(default_factory=uuid4)
    organization_id: UUID
    email: EmailStr
    password_hash: str
    role: UserRole = UserRole.PUMPER
    first_name: str = ""
    last_name: str = ""
    phone: str | None = None
    failed_login_attempts: int = Field(default=0, ge=0)
    lockout_count: int = Field(default=0, ge=0)
    locked_until: datetime | None = None
    email_verified: bool = False
    email_verification_token_hash: str | None = None
    email_verification_expires_at: datetime | None = None
    password_reset_token_hash: str | None = None
    password_reset_expires_at: datetime | None = None
    last_login_at: datetime | None = None
    is_active: bool = True
    created_at: datetime
    updated_at: datetime
    version: int = 0  # optimistic concurrency counter, managed by stores

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: object) -> object:
        if isinstance(value, str):
            return normalize_email(value)
        return value


class RequestContext(BaseModel):
    """Per-request caller context, built once at the edge and passed explicitly."""

    model_config = ConfigDict(frozen=True)

    ip_address: str | None = None
    user_agent: str | None = None
    request_id: str | None = None
    session_id: str | None = None
    correlation_id: str | None = None
    actor_id: UUID | None = None
    organization_id: UUID | None = None


class TokenPayload(BaseModel):
    """JWT token payload claims."""

    sub: str  # account id
    email: str
    org_id: str
    role: str
    jti: str
    type: TokenKind
    exp: float  # expiration timestamp
    iat: float  # issued at timestamp
    rme: bool = False  # remember-me, carried on refresh tokens


class IssuedToken(BaseModel):
    """A freshly signed token and its identifying metadata."""

    model_config = ConfigDict(frozen=True)

    token: str
    token_id: str
    kind: TokenKind
    expires_at: datetime


class TokenPair(BaseModel):
    """Access and refresh tokens handed to a client."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # access token lifetime in seconds


class Principal(BaseModel):
    """Normalized identity of a verified token holder."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    email: str
    organization_id: UUID
    role: UserRole
    first_name: str = ""
    last_name: str = ""
    email_verified: bool = False
    last_login_at: datetime | None = None
    token_id: str
    token_expires_at: datetime


class RegistrationRequest(BaseModel):
    """Input for account registration.

    Either organization_id (join an existing organization) or
    organization_name (create one first) must be provided.
    """

    email: EmailStr
    password: str
    password_confirmation: str | None = None
    first_name: str
    last_name: str
    role: UserRole = UserRole.OWNER
    phone: str | None = None
    organization_id: UUID | None = None
    organization_name: str | None = None

    @field_validator("email", mode="before")
    @classmethod
    def _normalize_email(cls, value: object) -> object:
        if isinstance(value, str):
            return normalize_email(value)
        return value


class AuthenticatedSession(BaseModel):
    """Tokens issued to a verified principal (login or refresh)."""

    model_config = ConfigDict(frozen=True)

    principal: Principal
    tokens: TokenPair


class AccountSummary(BaseModel):
    """Public view of an account, without credentials or security state."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    organization_id: UUID
    email: str
    role: UserRole
    first_name: str = ""
    last_name: str = ""
    email_verified: bool = False
    created_at: datetime

    @classmethod
    def from_account(cls, account: Account) -> AccountSummary:
        return cls(
            id=account.id,
            organization_id=account.organization_id,
            email=account.email,
            role=account.role,
            first_name=account.first_name,
            last_name=account.last_name,
            email_verified=account.email_verified,
            created_at=account.created_at,
        )
