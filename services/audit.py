"""
Audit Trail

Append-only records of affiliation changes and NDA lifecycle events.
Entries are added to the caller's session so they commit atomically with
the transition they describe.
"""

import uuid
from typing import Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession

from database.models import CompanyJoinAudit, NdaAuditTrail
from schemas.results import ClientInfo


def log_join_event(
    db: AsyncSession,
    action: str,
    user_id: Optional[uuid.UUID],
    company_id: Optional[uuid.UUID],
    performed_by: Optional[uuid.UUID] = None,
    join_method: Optional[str] = None,
    from_role: Optional[str] = None,
    to_role: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None
) -> CompanyJoinAudit:
    """
    Record an affiliation change.

    Args:
        db: Session of the enclosing transition
        action: e.g. 'joined', 'auto_joined', 'left', 'admin_assigned',
            'admin_removed', 'role_changed', 'settings_updated'
        user_id: User whose affiliation changed
        company_id: Company involved
        performed_by: Actor, when different from the user
        join_method: How the user joined (see JoinMethod)
        from_role: Previous company role
        to_role: New company role
        details: Additional context
    """
    entry = CompanyJoinAudit(
        user_id=user_id,
        company_id=company_id,
        action=action,
        join_method=join_method,
        from_role=from_role,
        to_role=to_role,
        performed_by=performed_by,
        details=details or {}
    )
    db.add(entry)
    return entry


def log_nda_event(
    db: AsyncSession,
    nda_id: uuid.UUID,
    nda_kind: str,
    action: str,
    created_by: Optional[uuid.UUID],
    details: Optional[Dict[str, Any]] = None,
    client: Optional[ClientInfo] = None
) -> NdaAuditTrail:
    """Record an NDA lifecycle event ('signed', 'countersigned', 'rejected')."""
    payload = dict(details or {})
    if client:
        payload["ip_address"] = client.ip_address
        payload["user_agent"] = client.user_agent

    entry = NdaAuditTrail(
        nda_id=nda_id,
        nda_kind=nda_kind,
        action=action,
        details=payload,
        created_by=created_by
    )
    db.add(entry)
    return entry
