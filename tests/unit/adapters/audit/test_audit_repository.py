"""Tests for the audit repositories."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from gatekeep.adapters.audit import (
    AuditAction,
    AuditLogCreate,
    InMemoryAuditRepository,
    PostgresAuditRepository,
)

NOW = datetime(2024, 3, 5, 12, 0, tzinfo=UTC)


def login(email: str, ip: str, success: bool = False) -> AuditLogCreate:
    return AuditLogCreate(
        action=AuditAction.LOGIN,
        success=success,
        actor_ip=ip,
        metadata={"email": email},
    )


class TestInMemoryAuditRepository:
    """Tests for InMemoryAuditRepository."""

    @pytest.mark.asyncio
    async def test_record_stamps_id_and_time(self) -> None:
        repository = InMemoryAuditRepository(clock=lambda: NOW)

        entry_id = await repository.record(login("a@example.com", "10.0.0.1"))

        (entry,) = repository.entries
        assert entry.id == entry_id
        assert entry.timestamp == NOW

    @pytest.mark.asyncio
    async def test_list_login_attempts_matches_email_or_ip(self) -> None:
        repository = InMemoryAuditRepository(clock=lambda: NOW)
        await repository.record(login("a@example.com", "10.0.0.1"))
        await repository.record(login("b@example.com", "10.0.0.2"))
        await repository.record(login("c@example.com", "10.0.0.3"))
        await repository.record(AuditLogCreate(action=AuditAction.LOGOUT, actor_ip="10.0.0.2"))

        entries = await repository.list_login_attempts(
            NOW - timedelta(hours=1), email="a@example.com", ip_address="10.0.0.2"
        )

        assert [(e.metadata or {})["email"] for e in entries] == [
            "a@example.com",
            "b@example.com",
        ]

    @pytest.mark.asyncio
    async def test_list_login_attempts_respects_since(self) -> None:
        now = NOW
        repository = InMemoryAuditRepository(clock=lambda: now)
        await repository.record(login("a@example.com", "10.0.0.1"))
        now = NOW + timedelta(hours=2)
        await repository.record(login("a@example.com", "10.0.0.1", success=True))

        entries = await repository.list_login_attempts(
            NOW + timedelta(hours=1), email="a@example.com"
        )

        assert len(entries) == 1
        assert entries[0].success is True

    @pytest.mark.asyncio
    async def test_delete_before(self) -> None:
        now = NOW - timedelta(days=800)
        repository = InMemoryAuditRepository(clock=lambda: now)
        await repository.record(login("old@example.com", "10.0.0.1"))
        now = NOW
        await repository.record(login("new@example.com", "10.0.0.1"))

        deleted = await repository.delete_before(NOW - timedelta(days=730))

        assert deleted == 1
        assert len(repository.entries) == 1


class TestPostgresAuditRepository:
    """Tests for PostgresAuditRepository."""

    @pytest.fixture
    def mock_db(self) -> MagicMock:
        """Create a mock application database."""
        db = MagicMock()
        db.execute_returning = AsyncMock()
        db.execute_many = AsyncMock()
        db.fetch_all = AsyncMock(return_value=[])
        db.execute = AsyncMock()
        return db

    @pytest.fixture
    def repository(self, mock_db: MagicMock) -> PostgresAuditRepository:
        return PostgresAuditRepository(mock_db)

    @pytest.mark.asyncio
    async def test_record_returns_id(
        self, repository: PostgresAuditRepository, mock_db: MagicMock
    ) -> None:
        """Test recording an audit log entry."""
        entry_id = uuid4()
        mock_db.execute_returning.return_value = {"id": entry_id}

        result = await repository.record(login("a@example.com", "10.0.0.1"))

        assert result == entry_id
        query, *params = mock_db.execute_returning.call_args.args
        assert "INSERT INTO audit_logs" in query
        assert "RETURNING id" in query
        assert params[0] == "LOGIN"
        assert json.loads(params[-1]) == {"email": "a@example.com"}

    @pytest.mark.asyncio
    async def test_record_without_row_raises(
        self, repository: PostgresAuditRepository, mock_db: MagicMock
    ) -> None:
        mock_db.execute_returning.return_value = None

        with pytest.raises(RuntimeError):
            await repository.record(login("a@example.com", "10.0.0.1"))

    @pytest.mark.asyncio
    async def test_record_many_single_call(
        self, repository: PostgresAuditRepository, mock_db: MagicMock
    ) -> None:
        await repository.record_many(
            [login("a@example.com", "10.0.0.1"), login("b@example.com", "10.0.0.2")]
        )

        mock_db.execute_many.assert_awaited_once()
        assert len(mock_db.execute_many.call_args.args[1]) == 2

    @pytest.mark.asyncio
    async def test_record_many_empty_is_noop(
        self, repository: PostgresAuditRepository, mock_db: MagicMock
    ) -> None:
        await repository.record_many([])

        mock_db.execute_many.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_list_login_attempts_decodes_rows(
        self, repository: PostgresAuditRepository, mock_db: MagicMock
    ) -> None:
        """JSONB columns arrive as text and are decoded."""
        mock_db.fetch_all.return_value = [
            {
                "id": uuid4(),
                "timestamp": NOW,
                "action": "LOGIN",
                "resource_type": "USER",
                "resource_id": "unknown",
                "success": False,
                "error_message": "User not found",
                "actor_id": None,
                "organization_id": None,
                "actor_ip": "10.0.0.1",
                "actor_user_agent": None,
                "request_id": None,
                "session_id": None,
                "correlation_id": None,
                "old_values": None,
                "new_values": None,
                "metadata": '{"email": "a@example.com"}',
            }
        ]

        entries = await repository.list_login_attempts(NOW, email="a@example.com")

        assert entries[0].action is AuditAction.LOGIN
        assert entries[0].metadata == {"email": "a@example.com"}
        args = mock_db.fetch_all.call_args.args
        assert args[1:] == ("LOGIN", NOW, "a@example.com", None)

    @pytest.mark.asyncio
    async def test_list_login_attempts_without_filters(
        self, repository: PostgresAuditRepository, mock_db: MagicMock
    ) -> None:
        assert await repository.list_login_attempts(NOW) == []
        mock_db.fetch_all.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete_before_parses_status(
        self, repository: PostgresAuditRepository, mock_db: MagicMock
    ) -> None:
        mock_db.execute.return_value = "DELETE 42"

        assert await repository.delete_before(NOW) == 42
