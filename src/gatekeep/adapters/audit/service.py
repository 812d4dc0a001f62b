"""Audit sink that writes security events to an audit repository.

Audit writes must never break the operation being audited, so every
storage error is logged and dropped here.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Protocol
from uuid import UUID

import structlog

from gatekeep.core.audit import AuditAction, AuditLogCreate, AuditResourceType

if TYPE_CHECKING:
    from gatekeep.core.auth.types import RequestContext

logger = structlog.get_logger()


class AuditRepository(Protocol):
    """Storage used by AuditLogService."""

    async def record(self, entry: AuditLogCreate) -> UUID: ...

    async def record_many(self, entries: Sequence[AuditLogCreate]) -> Any: ...


def build_entry(
    action: AuditAction,
    resource_type: AuditResourceType | str = AuditResourceType.USER,
    resource_id: str | None = None,
    success: bool = True,
    error_message: str | None = None,
    old_values: dict[str, Any] | None = None,
    new_values: dict[str, Any] | None = None,
    metadata: dict[str, Any] | None = None,
    context: RequestContext | None = None,
) -> AuditLogCreate:
    """Build an audit entry, copying caller details from the request context."""
    if isinstance(resource_type, AuditResourceType):
        resource_type = resource_type.value
    return AuditLogCreate(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        success=success,
        error_message=error_message,
        actor_id=context.actor_id if context else None,
        organization_id=context.organization_id if context else None,
        actor_ip=context.ip_address if context else None,
        actor_user_agent=context.user_agent if context else None,
        request_id=context.request_id if context else None,
        session_id=context.session_id if context else None,
        correlation_id=context.correlation_id if context else None,
        old_values=old_values,
        new_values=new_values,
        metadata=metadata,
    )


class AuditLogService:
    """AuditSink backed by an audit repository."""

    def __init__(self, repository: AuditRepository) -> None:
        self._repository = repository

    async def record(
        self,
        action: AuditAction,
        resource_type: AuditResourceType | str = AuditResourceType.USER,
        resource_id: str | None = None,
        success: bool = True,
        error_message: str | None = None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        context: RequestContext | None = None,
    ) -> None:
        """Record a single audit event. Never raises."""
        try:
            entry = build_entry(
                action,
                resource_type=resource_type,
                resource_id=resource_id,
                success=success,
                error_message=error_message,
                old_values=old_values,
                new_values=new_values,
                metadata=metadata,
                context=context,
            )
            await self._repository.record(entry)
        except Exception as e:
            logger.error(
                "audit_record_failed",
                action=getattr(action, "value", action),
                resource_id=resource_id,
                error=str(e),
            )

    async def record_batch(self, entries: Sequence[AuditLogCreate]) -> None:
        """Record several audit events. Never raises."""
        try:
            await self._repository.record_many(entries)
        except Exception as e:
            logger.error("audit_batch_failed", count=len(entries), error=str(e))
