"""Tests for the audit-backed login history provider."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from gatekeep.adapters.audit import AuditAction, AuditLogCreate, InMemoryAuditRepository
from gatekeep.adapters.auth import AuditLoginHistoryProvider
from gatekeep.config import DetectionSettings

NOW = datetime(2024, 3, 5, 12, 0, tzinfo=UTC)


class TestAuditLoginHistoryProvider:
    """Tests for AuditLoginHistoryProvider."""

    @pytest.mark.asyncio
    async def test_converts_login_entries(self) -> None:
        repository = InMemoryAuditRepository(clock=lambda: NOW)
        account_id = uuid4()
        await repository.record(
            AuditLogCreate(
                action=AuditAction.LOGIN,
                resource_id=str(account_id),
                success=True,
                actor_ip="10.0.0.1",
                actor_user_agent="curl/8.0",
                metadata={"email": "user@example.com"},
            )
        )
        await repository.record(
            AuditLogCreate(
                action=AuditAction.LOGIN,
                resource_id="unknown",
                success=False,
                actor_ip="10.0.0.1",
                metadata={"email": "user@example.com"},
            )
        )
        provider = AuditLoginHistoryProvider(repository, clock=lambda: NOW)

        attempts = await provider.recent_attempts("User@Example.com", "10.0.0.1")

        assert len(attempts) == 2
        assert attempts[0].success is True
        assert attempts[0].account_id == account_id
        assert attempts[0].user_agent == "curl/8.0"
        assert attempts[0].timestamp == NOW
        assert attempts[1].account_id is None

    @pytest.mark.asyncio
    async def test_queries_window_with_normalized_email(self) -> None:
        repository = MagicMock()
        repository.list_login_attempts = AsyncMock(return_value=[])
        provider = AuditLoginHistoryProvider(repository, window_minutes=15, clock=lambda: NOW)

        assert await provider.recent_attempts(" USER@example.com", None) == []

        repository.list_login_attempts.assert_awaited_once_with(
            NOW - timedelta(minutes=15), email="user@example.com", ip_address=None
        )

    @pytest.mark.asyncio
    async def test_window_comes_from_detection_settings(self) -> None:
        repository = MagicMock()
        repository.list_login_attempts = AsyncMock(return_value=[])
        provider = AuditLoginHistoryProvider.from_settings(
            repository, DetectionSettings(history_window_minutes=30), clock=lambda: NOW
        )

        await provider.recent_attempts("user@example.com", "10.0.0.1")

        since = repository.list_login_attempts.await_args.args[0]
        assert since == NOW - timedelta(minutes=30)
