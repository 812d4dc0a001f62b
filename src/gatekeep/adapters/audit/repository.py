"""PostgreSQL audit log repository."""

from collections.abc import Sequence
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog

from gatekeep.adapters.db.app_db import AppDatabase, affected_rows, dump_json, load_json
from gatekeep.core.audit import AuditAction, AuditLogCreate, AuditLogEntry

logger = structlog.get_logger()

_INSERT = """
    INSERT INTO audit_logs (
        action, resource_type, resource_id, success, error_message,
        actor_id, organization_id, actor_ip, actor_user_agent,
        request_id, session_id, correlation_id,
        old_values, new_values, metadata
    ) VALUES (
        $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15
    )
"""


def _params(entry: AuditLogCreate) -> tuple[Any, ...]:
    return (
        entry.action.value,
        entry.resource_type,
        entry.resource_id,
        entry.success,
        entry.error_message,
        entry.actor_id,
        entry.organization_id,
        entry.actor_ip,
        entry.actor_user_agent,
        entry.request_id,
        entry.session_id,
        entry.correlation_id,
        dump_json(entry.old_values),
        dump_json(entry.new_values),
        dump_json(entry.metadata),
    )


def _row_to_entry(row: dict[str, Any]) -> AuditLogEntry:
    return AuditLogEntry(
        id=row["id"],
        timestamp=row["timestamp"],
        action=AuditAction(row["action"]),
        resource_type=row["resource_type"],
        resource_id=row["resource_id"],
        success=row["success"],
        error_message=row["error_message"],
        actor_id=row["actor_id"],
        organization_id=row["organization_id"],
        actor_ip=row["actor_ip"],
        actor_user_agent=row["actor_user_agent"],
        request_id=row["request_id"],
        session_id=row["session_id"],
        correlation_id=row["correlation_id"],
        old_values=load_json(row["old_values"]),
        new_values=load_json(row["new_values"]),
        metadata=load_json(row["metadata"]),
    )


class PostgresAuditRepository:
    """Repository for audit log operations."""

    def __init__(self, db: AppDatabase) -> None:
        """Initialize the repository.

        Args:
            db: Application database.
        """
        self._db = db

    async def record(self, entry: AuditLogCreate) -> UUID:
        """Record an audit log entry.

        Args:
            entry: Audit log entry to record.

        Returns:
            ID of the created entry.
        """
        row = await self._db.execute_returning(_INSERT + " RETURNING id", *_params(entry))
        if row is None:
            raise RuntimeError("Failed to record audit log entry")
        entry_id: UUID = row["id"]
        return entry_id

    async def record_many(self, entries: Sequence[AuditLogCreate]) -> None:
        """Record several entries in one transaction."""
        if not entries:
            return
        await self._db.execute_many(_INSERT, [_params(entry) for entry in entries])

    async def list_login_attempts(
        self,
        since: datetime,
        email: str | None = None,
        ip_address: str | None = None,
    ) -> list[AuditLogEntry]:
        """List LOGIN entries since a point in time matching the email or the IP.

        Args:
            since: Earliest timestamp to include.
            email: Normalized email recorded in the entry's metadata.
            ip_address: Caller IP recorded on the entry.

        Returns:
            Matching entries, oldest first.
        """
        if email is None and ip_address is None:
            return []

        rows = await self._db.fetch_all(
            """SELECT * FROM audit_logs
               WHERE action = $1
                 AND timestamp >= $2
                 AND (metadata->>'email' = $3 OR actor_ip = $4)
               ORDER BY timestamp ASC""",
            AuditAction.LOGIN.value,
            since,
            email,
            ip_address,
        )
        return [_row_to_entry(row) for row in rows]

    async def delete_before(self, cutoff: datetime) -> int:
        """Delete entries older than the cutoff.

        Args:
            cutoff: Delete entries before this date.

        Returns:
            Number of deleted entries.
        """
        status = await self._db.execute("DELETE FROM audit_logs WHERE timestamp < $1", cutoff)
        deleted = affected_rows(status)
        logger.info("audit_logs_deleted", count=deleted, cutoff=cutoff.isoformat())
        return deleted
