"""Audit log types shared by the core and the audit adapters."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AuditAction(str, Enum):
    """Audited actions."""

    CREATE = "CREATE"
    READ = "READ"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"


class AuditResourceType(str, Enum):
    """Audited resource types."""

    USER = "USER"
    ORGANIZATION = "ORGANIZATION"
    SYSTEM = "SYSTEM"


class AuditLogCreate(BaseModel):
    """Request to create an audit log entry."""

    model_config = ConfigDict(frozen=True)

    action: AuditAction
    resource_type: str = AuditResourceType.USER.value
    resource_id: str | None = None
    success: bool = True
    error_message: str | None = None
    actor_id: UUID | None = None
    organization_id: UUID | None = None
    actor_ip: str | None = None
    actor_user_agent: str | None = None
    request_id: str | None = None
    session_id: str | None = None
    correlation_id: str | None = None
    old_values: dict[str, Any] | None = None
    new_values: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


class AuditLogEntry(AuditLogCreate):
    """Audit log entry as stored."""

    id: UUID
    timestamp: datetime
