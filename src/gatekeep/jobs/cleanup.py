"""Security data cleanup job.

Purges revocation entries for tokens that have expired anyway, and audit
log entries past the retention period.

Run via: python -m gatekeep.jobs.cleanup
"""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Protocol

import structlog

from gatekeep.adapters.audit.repository import PostgresAuditRepository
from gatekeep.adapters.auth.postgres import PostgresRevocationStore
from gatekeep.adapters.db.app_db import AppDatabase
from gatekeep.config import Settings, get_settings
from gatekeep.core.exceptions import StoreUnavailableError
from gatekeep.core.interfaces import RevocationStore

logger = structlog.get_logger()


class AuditRetention(Protocol):
    """Audit storage that can drop old entries."""

    async def delete_before(self, cutoff: datetime) -> int: ...


async def run_cleanup(
    revocations: RevocationStore,
    audit: AuditRetention,
    retention_days: int,
    now: datetime | None = None,
) -> tuple[int, int]:
    """Purge expired revocations and old audit entries.

    Args:
        revocations: Revocation store to purge.
        audit: Audit storage to trim.
        retention_days: Audit entries older than this are deleted.
        now: Reference time. Defaults to the current UTC time.

    Returns:
        Tuple of (revocation entries purged, audit entries deleted).
    """
    now = now or datetime.now(UTC)

    purged = await revocations.purge_expired(now)
    logger.info("revocations_purged", count=purged)

    cutoff = now - timedelta(days=retention_days)
    deleted = await audit.delete_before(cutoff)
    logger.info("audit_logs_purged", count=deleted, cutoff=cutoff.isoformat())

    return purged, deleted


async def main(settings: Settings | None = None) -> None:
    """Run the cleanup against the configured database."""
    settings = settings or get_settings()

    db = AppDatabase(settings.database_url, min_size=1, max_size=2)
    try:
        await db.connect()
    except StoreUnavailableError as e:
        logger.error("cleanup_database_unavailable", error=str(e))
        return

    try:
        max_lifetime = timedelta(days=settings.tokens.remember_me_refresh_token_expire_days)
        await run_cleanup(
            PostgresRevocationStore(db, max_token_lifetime=max_lifetime),
            PostgresAuditRepository(db),
            settings.audit_retention_days,
        )
    finally:
        await db.close()


if __name__ == "__main__":
    asyncio.run(main())
