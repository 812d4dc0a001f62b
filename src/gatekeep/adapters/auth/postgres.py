"""PostgreSQL implementations of the auth stores."""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import asyncpg
import structlog

from gatekeep.adapters.db.app_db import AppDatabase, affected_rows
from gatekeep.core.auth.password import BcryptPasswordHasher
from gatekeep.core.auth.types import Account, UserRole, normalize_email
from gatekeep.core.exceptions import ConcurrentUpdateError, DuplicateAccountError
from gatekeep.core.interfaces import PasswordHasher

logger = structlog.get_logger()

_ACCOUNT_COLUMNS = (
    "id",
    "organization_id",
    "email",
    "password_hash",
    "role",
    "first_name",
    "last_name",
    "phone",
    "failed_login_attempts",
    "lockout_count",
    "locked_until",
    "email_verified",
    "email_verification_token_hash",
    "email_verification_expires_at",
    "password_reset_token_hash",
    "password_reset_expires_at",
    "last_login_at",
    "is_active",
    "created_at",
    "updated_at",
)


class PostgresUserStore:
    """PostgreSQL implementation of UserStore with optimistic versioning."""

    def __init__(self, db: AppDatabase) -> None:
        """Initialize with database connection.

        Args:
            db: Application database instance.
        """
        self._db = db

    def _row_to_account(self, row: dict[str, Any]) -> Account:
        """Convert database row to Account model."""
        values = {column: row[column] for column in _ACCOUNT_COLUMNS}
        values["role"] = UserRole(row["role"])
        values["version"] = row["version"]
        return Account(**values)

    def _params(self, account: Account) -> list[Any]:
        params: list[Any] = [getattr(account, column) for column in _ACCOUNT_COLUMNS]
        params[_ACCOUNT_COLUMNS.index("role")] = account.role.value
        return params

    async def find_by_email(self, email: str) -> Account | None:
        """Get account by normalized email."""
        row = await self._db.fetch_one(
            "SELECT * FROM users WHERE email = $1",
            normalize_email(email),
        )
        return self._row_to_account(row) if row else None

    async def find_by_id(self, account_id: UUID) -> Account | None:
        """Get account by ID."""
        row = await self._db.fetch_one("SELECT * FROM users WHERE id = $1", account_id)
        return self._row_to_account(row) if row else None

    async def exists_by_email(self, email: str) -> bool:
        """Check whether an email is already registered."""
        found = await self._db.fetch_value(
            "SELECT EXISTS(SELECT 1 FROM users WHERE email = $1)",
            normalize_email(email),
        )
        return bool(found)

    async def save(self, account: Account) -> Account:
        """Insert a new account (version 0) or update an existing one.

        Updates only apply when the stored version still matches the
        loaded one, and bump it by one.

        Raises:
            DuplicateAccountError: If the email is already taken.
            ConcurrentUpdateError: If another writer saved the account first.
        """
        params = self._params(account)
        try:
            if account.version == 0:
                placeholders = ", ".join(f"${i}" for i in range(1, len(params) + 1))
                row = await self._db.execute_returning(
                    f"""INSERT INTO users ({", ".join(_ACCOUNT_COLUMNS)}, version)
                        VALUES ({placeholders}, 1)
                        ON CONFLICT (id) DO NOTHING
                        RETURNING *""",
                    *params,
                )
            else:
                assignments = ", ".join(
                    f"{column} = ${i}" for i, column in enumerate(_ACCOUNT_COLUMNS, start=1)
                    if column != "id"
                )
                version_idx = len(params) + 1
                row = await self._db.execute_returning(
                    f"""UPDATE users SET {assignments}, version = version + 1
                        WHERE id = $1 AND version = ${version_idx}
                        RETURNING *""",
                    *params,
                    account.version,
                )
        except asyncpg.UniqueViolationError as e:
            raise DuplicateAccountError("User with this email already exists") from e

        if row is None:
            logger.warning(
                "account_concurrent_update",
                account_id=str(account.id),
                expected_version=account.version,
            )
            raise ConcurrentUpdateError(account.id, account.version)
        return self._row_to_account(row)


class PostgresOrganizationStore:
    """PostgreSQL implementation of OrganizationStore."""

    def __init__(self, db: AppDatabase) -> None:
        self._db = db

    async def create_organization(self, name: str) -> UUID:
        """Create an organization and return its ID."""
        organization_id = uuid4()
        await self._db.execute(
            "INSERT INTO organizations (id, name) VALUES ($1, $2)",
            organization_id,
            name,
        )
        return organization_id


class PostgresRevocationStore:
    """PostgreSQL implementation of RevocationStore."""

    def __init__(self, db: AppDatabase, max_token_lifetime: timedelta = timedelta(days=30)) -> None:
        """Initialize the store.

        Args:
            db: Application database instance.
            max_token_lifetime: Subject cutoffs older than this no longer
                affect any live token and are dropped by purge_expired.
        """
        self._db = db
        self._max_token_lifetime = max_token_lifetime

    async def is_revoked(self, token_id: str) -> bool:
        found = await self._db.fetch_value(
            "SELECT EXISTS(SELECT 1 FROM revoked_tokens WHERE token_id = $1)",
            token_id,
        )
        return bool(found)

    async def revoke(
        self,
        token_id: str,
        subject_id: str | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        await self._db.execute(
            """INSERT INTO revoked_tokens (token_id, subject_id, expires_at)
               VALUES ($1, $2, $3)
               ON CONFLICT (token_id) DO NOTHING""",
            token_id,
            subject_id,
            expires_at,
        )

    async def revoke_all_for_subject(self, subject_id: str) -> None:
        # Cutoffs use the application clock so they compare with token iat claims
        await self._db.execute(
            """INSERT INTO subject_revocations (subject_id, revoked_at)
               VALUES ($1, $2)
               ON CONFLICT (subject_id)
               DO UPDATE SET revoked_at = GREATEST(subject_revocations.revoked_at, $2)""",
            subject_id,
            datetime.now(UTC),
        )

    async def subject_revoked_at(self, subject_id: str) -> datetime | None:
        value: datetime | None = await self._db.fetch_value(
            "SELECT revoked_at FROM subject_revocations WHERE subject_id = $1",
            subject_id,
        )
        return value

    async def purge_expired(self, now: datetime) -> int:
        tokens = await self._db.execute(
            "DELETE FROM revoked_tokens WHERE expires_at IS NOT NULL AND expires_at < $1",
            now,
        )
        subjects = await self._db.execute(
            "DELETE FROM subject_revocations WHERE revoked_at < $1",
            now - self._max_token_lifetime,
        )
        return affected_rows(tokens) + affected_rows(subjects)


class PostgresPasswordHistory:
    """PostgreSQL implementation of PasswordHistoryChecker."""

    def __init__(
        self, db: AppDatabase, depth: int = 5, hasher: PasswordHasher | None = None
    ) -> None:
        self._db = db
        self.depth = depth
        self._hasher = hasher or BcryptPasswordHasher()

    async def is_reused(self, account_id: UUID, password: str) -> bool:
        """Check a candidate password against the most recent hashes."""
        rows = await self._db.fetch_all(
            """SELECT password_hash FROM password_history
               WHERE user_id = $1
               ORDER BY created_at DESC, id DESC
               LIMIT $2""",
            account_id,
            self.depth,
        )
        return any(self._hasher.verify(password, row["password_hash"]) for row in rows)

    async def remember(self, account_id: UUID, password_hash: str) -> None:
        """Record a newly set password hash and trim older ones."""
        await self._db.execute(
            "INSERT INTO password_history (user_id, password_hash) VALUES ($1, $2)",
            account_id,
            password_hash,
        )
        await self._db.execute(
            """DELETE FROM password_history
               WHERE user_id = $1 AND id NOT IN (
                   SELECT id FROM password_history
                   WHERE user_id = $1
                   ORDER BY created_at DESC, id DESC
                   LIMIT $2
               )""",
            account_id,
            self.depth,
        )
