"""Auth service for registration, login, token and password management.

Every operation takes the caller's RequestContext and returns an
AuthResult. Audit entries and notification emails are scheduled as
background tasks so their latency or failure never affects the response;
call drain() to wait for them (shutdown, tests).
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlencode
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict

from gatekeep.config import Settings
from gatekeep.core.audit import AuditAction, AuditResourceType
from gatekeep.core.auth.jwt import TokenManager
from gatekeep.core.auth.lockout import AccountLockout
from gatekeep.core.auth.password import CredentialVerifier, validate_password_strength
from gatekeep.core.auth.results import AuthFailure, AuthResult
from gatekeep.core.auth.tokens import (
    generate_account_token,
    get_token_expiry,
    hash_token,
    is_token_expired,
    token_matches,
)
from gatekeep.core.auth.types import (
    Account,
    AccountSummary,
    AuthenticatedSession,
    Principal,
    RegistrationRequest,
    RequestContext,
    TokenKind,
    TokenPair,
    normalize_email,
)
from gatekeep.core.detection.detector import SuspiciousActivityDetector
from gatekeep.core.detection.types import DetectionVerdict, LoginAttempt
from gatekeep.core.exceptions import ConfigurationError, DuplicateAccountError
from gatekeep.core.interfaces import (
    AuditSink,
    LoginHistoryProvider,
    NotificationSender,
    OrganizationStore,
    PasswordHasher,
    PasswordHistoryChecker,
    RevocationStore,
    UserStore,
)

logger = structlog.get_logger()

UNKNOWN_RESOURCE = "unknown"
PASSWORD_REUSED_MESSAGE = "Password was used recently"


class LoginResult(BaseModel):
    """Successful login: the principal, its tokens and the detection verdict."""

    model_config = ConfigDict(frozen=True)

    principal: Principal
    tokens: TokenPair
    verdict: DetectionVerdict


def _utc_now() -> datetime:
    return datetime.now(UTC)


class AuthService:
    """Coordinates credentials, lockout, tokens and detection per request."""

    def __init__(
        self,
        users: UserStore,
        revocations: RevocationStore,
        audit: AuditSink,
        notifications: NotificationSender,
        history: LoginHistoryProvider,
        organizations: OrganizationStore | None = None,
        password_history: PasswordHistoryChecker | None = None,
        settings: Settings | None = None,
        hasher: PasswordHasher | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            users: Account store.
            revocations: Token revocation store.
            audit: Audit sink for security events.
            notifications: Outbound account emails.
            history: Recent login history for detection.
            organizations: Needed to register into a new organization.
            password_history: Reuse check. Without it only the current
                password is rejected as a new password.
            settings: Policies and lifetimes. Uses defaults if not provided.
            hasher: Password hashing capability. Defaults to bcrypt.
            clock: Source of the current time.
        """
        self.settings = settings or Settings()
        self._users = users
        self._audit_sink = audit
        self._notifications = notifications
        self._organizations = organizations
        self._password_history = password_history
        self._clock = clock or _utc_now

        self.verifier = CredentialVerifier(hasher)
        self.lockout = AccountLockout(self.settings.lockout)
        self.tokens = TokenManager(
            users, revocations, self.settings.tokens, self.lockout, self._clock
        )
        self.detector = SuspiciousActivityDetector(history, self.settings.detection)

        self._pending: set[asyncio.Task[Any]] = set()
        self._dummy_hash: str | None = None

    # Background side effects

    def _background(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._pending.add(task)
        task.add_done_callback(self._side_effect_done)

    def _side_effect_done(self, task: asyncio.Task[Any]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("side_effect_failed", task=task.get_name(), error=str(exc))

    async def drain(self) -> None:
        """Wait for all pending audit and notification tasks."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _audit(
        self,
        action: AuditAction,
        context: RequestContext,
        resource_id: str | None,
        success: bool = True,
        error_message: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._background(
            self._audit_sink.record(
                action,
                resource_type=AuditResourceType.USER,
                resource_id=resource_id,
                success=success,
                error_message=error_message,
                old_values=old_values,
                new_values=new_values,
                metadata=metadata,
                context=context,
            ),
            name=f"audit:{action.value}",
        )

    async def _deliver(self, kind: str, send: Coroutine[Any, Any, bool]) -> None:
        if not await send:
            logger.warning("notification_not_sent", kind=kind)

    def _notify(self, kind: str, send: Coroutine[Any, Any, bool]) -> None:
        self._background(self._deliver(kind, send), name=f"notify:{kind}")

    def _link(self, path: str, token: str, email: str) -> str:
        query = urlencode({"token": token, "email": email})
        return f"{self.settings.frontend_url.rstrip('/')}/{path}?{query}"

    # Helpers

    def _burn_password_check(self, password: str) -> None:
        """Run one hash comparison so unknown emails cost the same as known ones."""
        if self._dummy_hash is None:
            self._dummy_hash = self.verifier.hash(generate_account_token())
        self.verifier.verify(password, self._dummy_hash)

    async def _score(
        self,
        email: str,
        account: Account | None,
        now: datetime,
        success: bool,
        context: RequestContext,
    ) -> DetectionVerdict:
        attempt = LoginAttempt(
            email=email,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            timestamp=now,
            success=success,
            account_id=account.id if account else None,
        )
        return await self.detector.analyze_login_attempt(attempt)

    def _password_errors(self, password: str, confirmation: str | None = None) -> list[str]:
        errors: list[str] = []
        if confirmation is not None and confirmation != password:
            errors.append("Passwords do not match")
        errors.extend(validate_password_strength(password, self.settings.passwords))
        return errors

    async def _is_reused(self, account: Account, password: str) -> bool:
        if self.verifier.verify(password, account.password_hash):
            return True
        if self._password_history is None:
            return False
        return await self._password_history.is_reused(account.id, password)

    async def _remember_password(self, account: Account) -> None:
        if self._password_history is not None:
            await self._password_history.remember(account.id, account.password_hash)

    # Registration

    async def register(
        self, request: RegistrationRequest, context: RequestContext
    ) -> AuthResult[AccountSummary]:
        """Register a new, unverified account and send its verification email.

        Args:
            request: Registration details.
            context: Caller context.

        Returns:
            The created account, or VALIDATION_FAILURE / DUPLICATE_ACCOUNT.
        """
        errors = self._password_errors(request.password, request.password_confirmation)
        if request.organization_id is None and not request.organization_name:
            errors.append("Organization is required")
        if errors:
            logger.info("registration_rejected", errors=len(errors))
            return AuthResult.failure(
                AuthFailure.validation("Registration validation failed", errors)
            )

        if await self._users.exists_by_email(request.email):
            self._audit(
                AuditAction.CREATE,
                context,
                UNKNOWN_RESOURCE,
                success=False,
                error_message="Email already registered",
                metadata={"email": request.email},
            )
            return AuthResult.failure(AuthFailure.duplicate_account())

        organization_id = request.organization_id
        if organization_id is None:
            if self._organizations is None:
                raise ConfigurationError("Creating organizations requires an organization store")
            organization_id = await self._organizations.create_organization(
                request.organization_name or ""
            )

        now = self._clock()
        verification_token = generate_account_token()
        account = Account(
            organization_id=organization_id,
            email=request.email,
            password_hash=self.verifier.hash(request.password),
            role=request.role,
            first_name=request.first_name,
            last_name=request.last_name,
            phone=request.phone,
            email_verification_token_hash=hash_token(verification_token),
            email_verification_expires_at=get_token_expiry(
                self.settings.account_tokens.email_verification_expire_hours, now
            ),
            created_at=now,
            updated_at=now,
        )

        try:
            saved = await self._users.save(account)
        except DuplicateAccountError:
            return AuthResult.failure(AuthFailure.duplicate_account())
        await self._remember_password(saved)

        self._notify(
            "verification",
            self._notifications.send_verification_email(
                saved.email,
                verification_token,
                self._link("verify-email", verification_token, saved.email),
            ),
        )
        self._audit(
            AuditAction.CREATE,
            context,
            str(saved.id),
            new_values={
                "email": saved.email,
                "role": saved.role.value,
                "organization_id": str(saved.organization_id),
                "first_name": saved.first_name,
                "last_name": saved.last_name,
            },
        )
        logger.info("account_registered", account_id=str(saved.id))
        return AuthResult.success(AccountSummary.from_account(saved))

    # Login, refresh, logout

    def _login_failed(
        self,
        context: RequestContext,
        email: str,
        resource_id: str,
        failure: AuthFailure,
        verdict: DetectionVerdict,
        **metadata: Any,
    ) -> AuthResult[LoginResult]:
        self._audit(
            AuditAction.LOGIN,
            context,
            resource_id,
            success=False,
            error_message=failure.reason,
            metadata={"email": email, "detection": verdict.to_metadata(), **metadata},
        )
        logger.info("login_failed", reason=failure.reason, risk_level=verdict.risk_level.value)
        return AuthResult.failure(failure)

    async def login(
        self,
        email: str,
        password: str,
        context: RequestContext,
        remember_me: bool = False,
    ) -> AuthResult[LoginResult]:
        """Authenticate with email and password.

        Unknown emails and wrong passwords produce the same failure. A
        locked account is rejected before its password is checked. Every
        attempt is scored by the detector and audited once, with the
        verdict in the entry's metadata.

        Args:
            email: Account email, normalized before lookup.
            password: Plain text password.
            context: Caller context.
            remember_me: Issue a long-lived refresh token.

        Returns:
            Tokens, principal and verdict; or INVALID_CREDENTIALS,
            ACCOUNT_LOCKED or ACCOUNT_INACTIVE.
        """
        email = normalize_email(email)
        now = self._clock()
        account = await self._users.find_by_email(email)

        if account is None:
            self._burn_password_check(password)
            verdict = await self._score(email, None, now, False, context)
            return self._login_failed(
                context,
                email,
                UNKNOWN_RESOURCE,
                AuthFailure.invalid_credentials("User not found"),
                verdict,
            )

        resource_id = str(account.id)

        if self.lockout.is_locked(account, now):
            verdict = await self._score(email, account, now, False, context)
            return self._login_failed(
                context,
                email,
                resource_id,
                AuthFailure.account_locked(account.locked_until, account.lockout_count),
                verdict,
                locked_until=account.locked_until.isoformat() if account.locked_until else None,
                lockout_count=account.lockout_count,
            )

        if not self.verifier.verify(password, account.password_hash):
            saved = await self._users.save(self.lockout.record_failure(account, now))
            tripped = saved.lockout_count > account.lockout_count
            if tripped and saved.locked_until is not None:
                logger.warning(
                    "account_locked",
                    account_id=resource_id,
                    lockout_count=saved.lockout_count,
                    locked_until=saved.locked_until.isoformat(),
                )
                self._notify(
                    "account_locked",
                    self._notifications.send_account_locked_email(saved.email, saved.locked_until),
                )
            verdict = await self._score(email, account, now, False, context)
            return self._login_failed(
                context,
                email,
                resource_id,
                AuthFailure.invalid_credentials("Invalid password"),
                verdict,
                failed_login_attempts=saved.failed_login_attempts,
                is_locked=self.lockout.is_locked(saved, now),
            )

        if not account.is_active:
            verdict = await self._score(email, account, now, False, context)
            return self._login_failed(
                context, email, resource_id, AuthFailure.account_inactive(), verdict
            )

        saved = await self._users.save(self.lockout.record_success(account, now))
        verdict = await self._score(email, saved, now, True, context)

        access = self.tokens.issue(saved, TokenKind.ACCESS)
        refresh = self.tokens.issue(saved, TokenKind.REFRESH, remember_me=remember_me)
        tokens = TokenPair(
            access_token=access.token,
            refresh_token=refresh.token,
            expires_in=int(self.tokens.access_token_lifetime.total_seconds()),
        )

        self._audit(
            AuditAction.LOGIN,
            context,
            resource_id,
            metadata={
                "email": email,
                "remember_me": remember_me,
                "detection": verdict.to_metadata(),
            },
        )
        logger.info(
            "login_succeeded",
            account_id=resource_id,
            suspicious=verdict.is_suspicious,
            risk_level=verdict.risk_level.value,
        )
        return AuthResult.success(
            LoginResult(
                principal=self.tokens.principal_for(saved, access),
                tokens=tokens,
                verdict=verdict,
            )
        )

    async def refresh(
        self, refresh_token: str, context: RequestContext
    ) -> AuthResult[AuthenticatedSession]:
        """Rotate a refresh token into a new token pair."""
        result = await self.tokens.refresh(refresh_token)
        if result.error is not None:
            self._audit(
                AuditAction.UPDATE,
                context,
                UNKNOWN_RESOURCE,
                success=False,
                error_message=result.error.reason,
                metadata={"event": "token_refresh"},
            )
            return result

        session = result.unwrap()
        self._audit(
            AuditAction.UPDATE,
            context,
            str(session.principal.id),
            metadata={"event": "token_refresh"},
        )
        return result

    async def logout(
        self,
        access_token: str,
        context: RequestContext,
        refresh_token: str | None = None,
        everywhere: bool = False,
    ) -> AuthResult[None]:
        """Revoke the presented tokens, or every token of the subject.

        Expired tokens are accepted so that logout always succeeds for a
        token this service signed.
        """
        payload = await self.tokens.revoke_token(access_token)
        if payload is None:
            return AuthResult.failure(AuthFailure.token_invalid("Undecodable access token"))

        if refresh_token is not None:
            await self.tokens.revoke_token(refresh_token)
        if everywhere:
            await self.tokens.revoke_all(payload.sub)

        self._audit(
            AuditAction.LOGOUT,
            context,
            payload.sub,
            metadata={"everywhere": everywhere},
        )
        logger.info("logout", account_id=payload.sub, everywhere=everywhere)
        return AuthResult.success(None)

    async def authenticate(self, access_token: str) -> AuthResult[Principal]:
        """Verify an access token and return its live principal."""
        return await self.tokens.verify(access_token, TokenKind.ACCESS)

    # Email verification

    async def verify_email(
        self, email: str, token: str, context: RequestContext
    ) -> AuthResult[AccountSummary]:
        """Mark an account verified using its emailed token.

        Already verified accounts succeed without changes.
        """
        account = await self._users.find_by_email(email)
        if account is None:
            return AuthResult.failure(AuthFailure.token_invalid("Account not found"))
        if account.email_verified:
            return AuthResult.success(AccountSummary.from_account(account))

        now = self._clock()
        expires_at = account.email_verification_expires_at
        if (
            not token_matches(token, account.email_verification_token_hash)
            or expires_at is None
            or is_token_expired(expires_at, now)
        ):
            self._audit(
                AuditAction.UPDATE,
                context,
                str(account.id),
                success=False,
                error_message="Invalid or expired verification token",
                metadata={"event": "email_verification"},
            )
            return AuthResult.failure(AuthFailure.token_invalid("Invalid verification token"))

        saved = await self._users.save(
            account.model_copy(
                update={
                    "email_verified": True,
                    "email_verification_token_hash": None,
                    "email_verification_expires_at": None,
                    "updated_at": now,
                }
            )
        )
        self._notify(
            "welcome", self._notifications.send_welcome_email(saved.email, saved.first_name)
        )
        self._audit(
            AuditAction.UPDATE,
            context,
            str(saved.id),
            old_values={"email_verified": False},
            new_values={"email_verified": True},
            metadata={"event": "email_verification"},
        )
        logger.info("email_verified", account_id=str(saved.id))
        return AuthResult.success(AccountSummary.from_account(saved))

    async def resend_verification(self, email: str, context: RequestContext) -> AuthResult[None]:
        """Issue a fresh verification token. Silent for unknown or verified emails."""
        account = await self._users.find_by_email(email)
        if account is None or account.email_verified or not account.is_active:
            logger.info("verification_resend_skipped")
            return AuthResult.success(None)

        now = self._clock()
        token = generate_account_token()
        saved = await self._users.save(
            account.model_copy(
                update={
                    "email_verification_token_hash": hash_token(token),
                    "email_verification_expires_at": get_token_expiry(
                        self.settings.account_tokens.email_verification_expire_hours, now
                    ),
                    "updated_at": now,
                }
            )
        )
        self._notify(
            "verification",
            self._notifications.send_verification_email(
                saved.email, token, self._link("verify-email", token, saved.email)
            ),
        )
        self._audit(
            AuditAction.UPDATE,
            context,
            str(saved.id),
            metadata={"event": "verification_resent"},
        )
        return AuthResult.success(None)

    # Administration

    async def unlock_account(
        self, account_id: UUID, context: RequestContext
    ) -> AuthResult[AccountSummary]:
        """Administrative unlock, effective immediately."""
        account = await self._users.find_by_id(account_id)
        if account is None:
            return AuthResult.failure(AuthFailure.validation("Account not found"))

        saved = await self._users.save(self.lockout.manual_unlock(account, self._clock()))
        self._audit(
            AuditAction.UPDATE,
            context,
            str(saved.id),
            old_values={
                "failed_login_attempts": account.failed_login_attempts,
                "locked_until": account.locked_until.isoformat() if account.locked_until else None,
            },
            new_values={"failed_login_attempts": 0, "locked_until": None},
            metadata={"event": "account_unlocked", "lockout_count": saved.lockout_count},
        )
        logger.info(
            "account_unlocked",
            account_id=str(saved.id),
            actor_id=str(context.actor_id) if context.actor_id else None,
        )
        return AuthResult.success(AccountSummary.from_account(saved))

    # Passwords

    async def change_password(
        self,
        account_id: UUID,
        current_password: str,
        new_password: str,
        context: RequestContext,
        new_password_confirmation: str | None = None,
    ) -> AuthResult[None]:
        """Change a password after checking the current one.

        Every token issued to the account so far is revoked.
        """
        account = await self._users.find_by_id(account_id)
        if account is None:
            return AuthResult.failure(AuthFailure.invalid_credentials("Account not found"))

        if not self.verifier.verify(current_password, account.password_hash):
            self._audit(
                AuditAction.UPDATE,
                context,
                str(account.id),
                success=False,
                error_message="Current password incorrect",
                metadata={"event": "password_change"},
            )
            return AuthResult.failure(
                AuthFailure.invalid_credentials("Current password incorrect")
            )

        failure = await self._check_new_password(account, new_password, new_password_confirmation)
        if failure is not None:
            return AuthResult.failure(failure)

        now = self._clock()
        saved = await self._users.save(
            account.model_copy(
                update={"password_hash": self.verifier.hash(new_password), "updated_at": now}
            )
        )
        await self._remember_password(saved)
        await self.tokens.revoke_all(str(saved.id))

        self._audit(
            AuditAction.UPDATE,
            context,
            str(saved.id),
            new_values={"password_changed": True},
            metadata={"event": "password_change"},
        )
        logger.info("password_changed", account_id=str(saved.id))
        return AuthResult.success(None)

    async def _check_new_password(
        self, account: Account, password: str, confirmation: str | None
    ) -> AuthFailure | None:
        errors = self._password_errors(password, confirmation)
        if errors:
            return AuthFailure.validation("Password does not meet requirements", errors)
        if await self._is_reused(account, password):
            depth = self.settings.passwords.history_depth
            return AuthFailure.validation(
                PASSWORD_REUSED_MESSAGE,
                [f"Password must differ from the last {depth} passwords"],
            )
        return None

    async def request_password_reset(self, email: str, context: RequestContext) -> AuthResult[None]:
        """Send a password reset link.

        Always succeeds, whether or not the email belongs to an account.
        """
        account = await self._users.find_by_email(email)
        if account is None or not account.is_active:
            logger.info("password_reset_requested_unknown")
            return AuthResult.success(None)

        now = self._clock()
        token = generate_account_token()
        saved = await self._users.save(
            account.model_copy(
                update={
                    "password_reset_token_hash": hash_token(token),
                    "password_reset_expires_at": get_token_expiry(
                        self.settings.account_tokens.password_reset_expire_hours, now
                    ),
                    "updated_at": now,
                }
            )
        )
        self._notify(
            "password_reset",
            self._notifications.send_password_reset_email(
                saved.email, token, self._link("reset-password", token, saved.email)
            ),
        )
        self._audit(
            AuditAction.UPDATE,
            context,
            str(saved.id),
            metadata={"event": "password_reset_requested"},
        )
        logger.info("password_reset_requested", account_id=str(saved.id))
        return AuthResult.success(None)

    async def reset_password(
        self,
        email: str,
        token: str,
        new_password: str,
        context: RequestContext,
        new_password_confirmation: str | None = None,
    ) -> AuthResult[None]:
        """Set a new password using an emailed reset token.

        Clears failed attempts and any lock, and revokes every token issued
        to the account so far.
        """
        account = await self._users.find_by_email(email)
        if account is None:
            return AuthResult.failure(AuthFailure.token_invalid("Account not found"))

        now = self._clock()
        expires_at = account.password_reset_expires_at
        if (
            not token_matches(token, account.password_reset_token_hash)
            or expires_at is None
            or is_token_expired(expires_at, now)
        ):
            self._audit(
                AuditAction.UPDATE,
                context,
                str(account.id),
                success=False,
                error_message="Invalid or expired reset token",
                metadata={"event": "password_reset"},
            )
            return AuthResult.failure(AuthFailure.token_invalid("Invalid reset token"))

        failure = await self._check_new_password(account, new_password, new_password_confirmation)
        if failure is not None:
            return AuthResult.failure(failure)

        saved = await self._users.save(
            account.model_copy(
                update={
                    "password_hash": self.verifier.hash(new_password),
                    "password_reset_token_hash": None,
                    "password_reset_expires_at": None,
                    "failed_login_attempts": 0,
                    "locked_until": None,
                    "updated_at": now,
                }
            )
        )
        await self._remember_password(saved)
        await self.tokens.revoke_all(str(saved.id))

        self._audit(
            AuditAction.UPDATE,
            context,
            str(saved.id),
            old_values={
                "failed_login_attempts": account.failed_login_attempts,
                "locked_until": account.locked_until.isoformat() if account.locked_until else None,
            },
            new_values={"password_changed": True, "failed_login_attempts": 0, "locked_until": None},
            metadata={"event": "password_reset"},
        )
        logger.info("password_reset", account_id=str(saved.id))
        return AuthResult.success(None)
