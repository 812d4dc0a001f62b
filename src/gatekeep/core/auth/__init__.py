"""Authentication core: credentials, lockout, tokens and the auth service."""

from gatekeep.core.auth.jwt import TokenError, TokenManager
from gatekeep.core.auth.lockout import AccountLockout
from gatekeep.core.auth.password import (
    BcryptPasswordHasher,
    CredentialVerifier,
    hash_password,
    validate_password_strength,
    verify_password,
)
from gatekeep.core.auth.results import AuthErrorKind, AuthFailure, AuthResult
from gatekeep.core.auth.service import AuthService, LoginResult
from gatekeep.core.auth.types import (
    Account,
    AccountSummary,
    AuthenticatedSession,
    LockState,
    Principal,
    RegistrationRequest,
    RequestContext,
    TokenKind,
    TokenPair,
    TokenPayload,
    UserRole,
)

__all__ = [
    "Account",
    "AccountLockout",
    "AccountSummary",
    "AuthErrorKind",
    "AuthFailure",
    "AuthResult",
    "AuthService",
    "AuthenticatedSession",
    "BcryptPasswordHasher",
    "CredentialVerifier",
    "LockState",
    "LoginResult",
    "Principal",
    "RegistrationRequest",
    "RequestContext",
    "TokenError",
    "TokenKind",
    "TokenManager",
    "TokenPair",
    "TokenPayload",
    "UserRole",
    "hash_password",
    "validate_password_strength",
    "verify_password",
]
