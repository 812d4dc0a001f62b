"""In-memory audit repository, for tests and single-process use."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from uuid import UUID, uuid4

from gatekeep.core.audit import AuditAction, AuditLogCreate, AuditLogEntry


class InMemoryAuditRepository:
    """Append-only list of audit entries."""

    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self.entries: list[AuditLogEntry] = []
        self._lock = asyncio.Lock()
        self._clock = clock or (lambda: datetime.now(UTC))

    async def record(self, entry: AuditLogCreate) -> UUID:
        stored = AuditLogEntry(id=uuid4(), timestamp=self._clock(), **entry.model_dump())
        async with self._lock:
            self.entries.append(stored)
        return stored.id

    async def record_many(self, entries: Sequence[AuditLogCreate]) -> list[UUID]:
        return [await self.record(entry) for entry in entries]

    async def list_login_attempts(
        self,
        since: datetime,
        email: str | None = None,
        ip_address: str | None = None,
    ) -> list[AuditLogEntry]:
        """LOGIN entries since a point in time matching the email or the IP."""
        matches = []
        for entry in self.entries:
            if entry.action is not AuditAction.LOGIN or entry.timestamp < since:
                continue
            entry_email = (entry.metadata or {}).get("email")
            if (email is not None and entry_email == email) or (
                ip_address is not None and entry.actor_ip == ip_address
            ):
                matches.append(entry)
        return sorted(matches, key=lambda e: e.timestamp)

    async def delete_before(self, cutoff: datetime) -> int:
        async with self._lock:
            kept = [entry for entry in self.entries if entry.timestamp >= cutoff]
            deleted = len(self.entries) - len(kept)
            self.entries = kept
        return deleted
