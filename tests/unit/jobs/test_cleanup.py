"""Tests for the security data cleanup job."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from gatekeep.adapters.audit import AuditAction, AuditLogCreate, InMemoryAuditRepository
from gatekeep.adapters.auth import InMemoryRevocationStore
from gatekeep.config import Settings
from gatekeep.core.exceptions import StoreUnavailableError
from gatekeep.jobs.cleanup import main, run_cleanup

NOW = datetime(2024, 3, 5, 12, 0, tzinfo=UTC)


class TestRunCleanup:
    """Tests for run_cleanup."""

    @pytest.mark.asyncio
    async def test_purges_revocations_and_old_audit_entries(self) -> None:
        revocations = InMemoryRevocationStore(clock=lambda: NOW)
        await revocations.revoke("expired", expires_at=NOW - timedelta(hours=1))
        await revocations.revoke("live", expires_at=NOW + timedelta(hours=1))

        timestamp = NOW - timedelta(days=100)
        audit = InMemoryAuditRepository(clock=lambda: timestamp)
        await audit.record(AuditLogCreate(action=AuditAction.LOGIN))
        timestamp = NOW - timedelta(days=10)
        await audit.record(AuditLogCreate(action=AuditAction.LOGIN))

        purged, deleted = await run_cleanup(revocations, audit, retention_days=30, now=NOW)

        assert (purged, deleted) == (1, 1)
        assert await revocations.is_revoked("live")
        assert not await revocations.is_revoked("expired")
        assert len(audit.entries) == 1

    @pytest.mark.asyncio
    async def test_cutoff_is_retention_days_before_now(self) -> None:
        revocations = MagicMock()
        revocations.purge_expired = AsyncMock(return_value=0)
        audit = MagicMock()
        audit.delete_before = AsyncMock(return_value=0)

        await run_cleanup(revocations, audit, retention_days=730, now=NOW)

        revocations.purge_expired.assert_awaited_once_with(NOW)
        audit.delete_before.assert_awaited_once_with(NOW - timedelta(days=730))


class TestMain:
    """Tests for the job entry point."""

    @pytest.mark.asyncio
    async def test_database_unavailable_is_logged(self) -> None:
        with (
            patch("gatekeep.jobs.cleanup.AppDatabase") as mock_db_cls,
            patch("gatekeep.jobs.cleanup.logger") as mock_logger,
        ):
            mock_db_cls.return_value.connect = AsyncMock(
                side_effect=StoreUnavailableError("refused")
            )

            await main(Settings())

        assert mock_logger.error.call_args.args[0] == "cleanup_database_unavailable"

    @pytest.mark.asyncio
    async def test_closes_database(self) -> None:
        with (
            patch("gatekeep.jobs.cleanup.AppDatabase") as mock_db_cls,
            patch("gatekeep.jobs.cleanup.run_cleanup", new=AsyncMock(return_value=(0, 0))),
        ):
            db = mock_db_cls.return_value
            db.connect = AsyncMock()
            db.close = AsyncMock()

            await main(Settings())

        db.close.assert_awaited_once()
