"""Adapters - Infrastructure implementations of core interfaces.

This package contains the concrete implementations of the Protocol
interfaces defined in gatekeep.core.interfaces.

Adapters are organized by type:
- auth/: Account, organization, revocation and password-history stores
- audit/: Audit sink and audit log repositories
- db/: asyncpg connection pool and schema
- notifications/: SMTP email delivery
"""
