"""JWT token lifecycle: issue, verify, rotate and revoke."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from uuid import UUID

import jwt
import structlog
from pydantic import ValidationError

from gatekeep.config import TokenSettings
from gatekeep.core.auth.lockout import AccountLockout
from gatekeep.core.auth.results import AuthFailure, AuthResult
from gatekeep.core.auth.types import (
    Account,
    AuthenticatedSession,
    IssuedToken,
    Principal,
    TokenKind,
    TokenPair,
    TokenPayload,
)
from gatekeep.core.exceptions import GatekeepError
from gatekeep.core.interfaces import RevocationStore, UserStore

logger = structlog.get_logger()

REQUIRED_CLAIMS = ["sub", "jti", "exp", "iat", "type"]


class TokenError(GatekeepError):
    """Raised internally when a token cannot be decoded."""

    pass


def _utc_now() -> datetime:
    return datetime.now(UTC)


class TokenManager:
    """Issues and verifies signed access/refresh tokens.

    Verification checks, in order: signature, expiry and required claims
    (PyJWT, with an explicit algorithm allow-list), token type, token-id
    revocation, subject-wide revocation, then the live account: it must
    exist, be active, not be locked, and still carry the email and
    organization recorded in the token. Every failure is reported as the
    same generic TOKEN_INVALID failure; the specific cause is only kept
    in the failure's ``reason``.
    """

    def __init__(
        self,
        users: UserStore,
        revocations: RevocationStore,
        settings: TokenSettings | None = None,
        lockout: AccountLockout | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the token manager.

        Args:
            users: Account store, used to re-load the token subject.
            revocations: Revoked token ids and subject cutoffs.
            settings: Signing key, algorithm and lifetimes.
            lockout: Lockout state machine used to reject locked accounts.
            clock: Source of the current time.
        """
        self._users = users
        self._revocations = revocations
        self.settings = settings or TokenSettings()
        self._lockout = lockout or AccountLockout()
        self._clock = clock or _utc_now

    @property
    def access_token_lifetime(self) -> timedelta:
        return timedelta(minutes=self.settings.access_token_expire_minutes)

    def _lifetime(self, kind: TokenKind, remember_me: bool) -> timedelta:
        if kind is TokenKind.ACCESS:
            return self.access_token_lifetime
        if remember_me:
            return timedelta(days=self.settings.remember_me_refresh_token_expire_days)
        return timedelta(days=self.settings.refresh_token_expire_days)

    def issue(
        self,
        account: Account,
        kind: TokenKind = TokenKind.ACCESS,
        remember_me: bool = False,
    ) -> IssuedToken:
        """Sign a new token for an account.

        Args:
            account: Token subject.
            kind: Access or refresh.
            remember_me: Use the extended refresh lifetime.

        Returns:
            The signed token with its unique id and expiry.
        """
        now = self._clock()
        expires_at = now + self._lifetime(kind, remember_me)
        token_id = uuid.uuid4().hex

        payload: dict[str, object] = {
            "sub": str(account.id),
            "email": account.email,
            "org_id": str(account.organization_id),
            "role": account.role.value,
            "jti": token_id,
            "type": kind.value,
            "iat": now.timestamp(),
            "exp": expires_at.timestamp(),
        }
        if kind is TokenKind.REFRESH:
            payload["rme"] = remember_me
        if self.settings.issuer:
            payload["iss"] = self.settings.issuer

        token = jwt.encode(payload, self.settings.secret_key, algorithm=self.settings.algorithm)
        return IssuedToken(token=token, token_id=token_id, kind=kind, expires_at=expires_at)

    def issue_pair(self, account: Account, remember_me: bool = False) -> TokenPair:
        """Issue an access token and a refresh token with distinct ids."""
        access = self.issue(account, TokenKind.ACCESS)
        refresh = self.issue(account, TokenKind.REFRESH, remember_me=remember_me)
        return TokenPair(
            access_token=access.token,
            refresh_token=refresh.token,
            expires_in=int(self.access_token_lifetime.total_seconds()),
        )

    def decode(self, token: str, verify_exp: bool = True) -> TokenPayload:
        """Decode and validate a JWT token.

        Args:
            token: Encoded JWT string
            verify_exp: Reject expired tokens. Disabled only to revoke a token on logout.

        Returns:
            Decoded token payload

        Raises:
            TokenError: If token is invalid or expired
        """
        try:
            claims = jwt.decode(
                token,
                self.settings.secret_key,
                algorithms=[self.settings.algorithm],
                issuer=self.settings.issuer,
                options={"require": REQUIRED_CLAIMS, "verify_exp": verify_exp},
            )
            return TokenPayload.model_validate(claims)
        except jwt.ExpiredSignatureError:
            raise TokenError("Token has expired") from None
        except jwt.InvalidTokenError as e:
            raise TokenError(f"Invalid token: {e}") from None
        except ValidationError as e:
            raise TokenError(f"Malformed claims: {e.error_count()} errors") from None

    async def _authenticate(
        self, token: str, kind: TokenKind
    ) -> tuple[TokenPayload, Account] | AuthFailure:
        try:
            payload = self.decode(token)
        except TokenError as e:
            return AuthFailure.token_invalid(str(e))

        if payload.type is not kind:
            return AuthFailure.token_invalid(
                f"Expected {kind.value} token, got {payload.type.value}"
            )

        if await self._revocations.is_revoked(payload.jti):
            return AuthFailure.token_invalid("Token revoked")

        cutoff = await self._revocations.subject_revoked_at(payload.sub)
        if cutoff is not None and payload.iat <= cutoff.timestamp():
            return AuthFailure.token_invalid("All tokens revoked for subject")

        try:
            account_id = UUID(payload.sub)
        except ValueError:
            return AuthFailure.token_invalid("Malformed subject")

        account = await self._users.find_by_id(account_id)
        if account is None:
            return AuthFailure.token_invalid("Account not found")
        if not account.is_active:
            return AuthFailure.token_invalid("Account inactive")
        if self._lockout.is_locked(account, self._clock()):
            return AuthFailure.token_invalid("Account locked")
        if account.email != payload.email or str(account.organization_id) != payload.org_id:
            return AuthFailure.token_invalid("Token identity no longer matches account")

        return payload, account

    def _principal(self, account: Account, payload: TokenPayload) -> Principal:
        return Principal(
            id=account.id,
            email=account.email,
            organization_id=account.organization_id,
            role=account.role,
            first_name=account.first_name,
            last_name=account.last_name,
            email_verified=account.email_verified,
            last_login_at=account.last_login_at,
            token_id=payload.jti,
            token_expires_at=datetime.fromtimestamp(payload.exp, UTC),
        )

    def principal_for(self, account: Account, access: IssuedToken) -> Principal:
        """Build the principal for a token that was just issued."""
        return Principal(
            id=account.id,
            email=account.email,
            organization_id=account.organization_id,
            role=account.role,
            first_name=account.first_name,
            last_name=account.last_name,
            email_verified=account.email_verified,
            last_login_at=account.last_login_at,
            token_id=access.token_id,
            token_expires_at=access.expires_at,
        )

    async def verify(self, token: str, kind: TokenKind = TokenKind.ACCESS) -> AuthResult[Principal]:
        """Verify a token and return the live principal behind it."""
        outcome = await self._authenticate(token, kind)
        if isinstance(outcome, AuthFailure):
            logger.info("token_rejected", reason=outcome.reason, kind=kind.value)
            return AuthResult.failure(outcome)
        payload, account = outcome
        return AuthResult.success(self._principal(account, payload))

    async def refresh(self, refresh_token: str) -> AuthResult[AuthenticatedSession]:
        """Rotate a refresh token into a new access/refresh pair.

        When ``revoke_refresh_on_rotation`` is enabled the presented token
        id is revoked, so each refresh token can be used once.
        """
        outcome = await self._authenticate(refresh_token, TokenKind.REFRESH)
        if isinstance(outcome, AuthFailure):
            logger.info("refresh_rejected", reason=outcome.reason)
            return AuthResult.failure(outcome)
        payload, account = outcome

        if self.settings.revoke_refresh_on_rotation:
            await self._revocations.revoke(
                payload.jti,
                subject_id=payload.sub,
                expires_at=datetime.fromtimestamp(payload.exp, UTC),
            )

        access = self.issue(account, TokenKind.ACCESS)
        refresh = self.issue(account, TokenKind.REFRESH, remember_me=payload.rme)
        tokens = TokenPair(
            access_token=access.token,
            refresh_token=refresh.token,
            expires_in=int(self.access_token_lifetime.total_seconds()),
        )
        logger.info("tokens_rotated", account_id=str(account.id))
        return AuthResult.success(
            AuthenticatedSession(principal=self.principal_for(account, access), tokens=tokens)
        )

    async def revoke(
        self,
        token_id: str,
        subject_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        await self._revocations.revoke(token_id, subject_id=subject_id, expires_at=expires_at)

    async def revoke_token(self, token: str) -> TokenPayload | None:
        """Revoke a token by value (logout).

        Expired tokens are still accepted here so that logout always works.

        Returns:
            The revoked token's payload, or None if the token could not be decoded.
        """
        try:
            payload = self.decode(token, verify_exp=False)
        except TokenError as e:
            logger.warning("token_revocation_undecodable", error=str(e))
            return None
        await self._revocations.revoke(
            payload.jti,
            subject_id=payload.sub,
            expires_at=datetime.fromtimestamp(payload.exp, UTC),
        )
        return payload

    async def revoke_all(self, subject_id: str) -> None:
        """Revoke every token issued to a subject so far (logout everywhere)."""
        await self._revocations.revoke_all_for_subject(subject_id)
        logger.info("tokens_revoked_for_subject", subject_id=subject_id)
