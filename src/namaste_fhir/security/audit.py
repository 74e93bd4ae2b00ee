"""
Audit logging module for NAMASTE FHIR Gateway.

Records who did what to which resource: logins, Bundle assembly and
AI-proposed mappings.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from namaste_fhir.db.models import AuditLog

logger = logging.getLogger(__name__)


async def record_audit(
    db: AsyncSession,
    actor: str,
    action: str,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    detail: Optional[Dict[str, Any]] = None
) -> str:
    """
    Record an audit log entry.

    Args:
        db: Database session
        actor: Actor performing the action (ABHA id, system, etc.)
        action: Action performed (login, create, propose)
        resource_type: Type of resource affected (Mapping, Bundle, User, etc.)
        resource_id: ID of the resource affected
        detail: Additional details about the action

    Returns:
        Audit log ID
    """
    try:
        audit_entry = AuditLog(
            actor=actor,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            detail=detail or {}
        )

        db.add(audit_entry)
        await db.commit()

        return str(audit_entry.id)

    except Exception:
        await db.rollback()
        logger.exception("Error recording audit log for %s %s", actor, action)
        raise


class AuditRecorder:
    """Writes audit entries, one short-lived session per entry."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(
        self,
        actor: str,
        action: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        detail: Optional[Dict[str, Any]] = None
    ) -> str:
        async with self.session_factory() as session:
            return await record_audit(session, actor, action, resource_type, resource_id, detail)


# Common action constants
ACTIONS = {
    "CREATE": "create",
    "UPDATE": "update",
    "PROPOSE": "propose",
    "LOGIN": "login",
}

# Common resource type constants
RESOURCE_TYPES = {
    "MAPPING": "Mapping",
    "BUNDLE": "Bundle",
    "USER": "User",
}


def create_audit_detail(
    endpoint: Optional[str] = None,
    method: Optional[str] = None,
    error_message: Optional[str] = None,
    **kwargs
) -> Dict[str, Any]:
    """
    Create a standardized audit detail dictionary.

    Args:
        endpoint: API endpoint accessed
        method: HTTP method used
        error_message: Error message if any
        **kwargs: Additional details

    Returns:
        Dictionary with audit details, None values removed
    """
    detail = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "endpoint": endpoint,
        "method": method,
        "error_message": error_message
    }

    detail.update(kwargs)

    return {k: v for k, v in detail.items() if v is not None}
