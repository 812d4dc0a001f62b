"""Audit logging adapters."""

from gatekeep.adapters.audit.memory import InMemoryAuditRepository
from gatekeep.adapters.audit.repository import PostgresAuditRepository
from gatekeep.adapters.audit.service import AuditLogService, build_entry
from gatekeep.core.audit import (
    AuditAction,
    AuditLogCreate,
    AuditLogEntry,
    AuditResourceType,
)

__all__ = [
    "AuditAction",
    "AuditLogCreate",
    "AuditLogEntry",
    "AuditLogService",
    "AuditResourceType",
    "InMemoryAuditRepository",
    "PostgresAuditRepository",
    "build_entry",
]
