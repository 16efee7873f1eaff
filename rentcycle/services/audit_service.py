"""Structured audit events for system-initiated operations."""
from __future__ import annotations

from typing import Any, Dict, Optional

from ..extensions import db
from ..models import AuditEvent

SYSTEM_ACTOR = "system"


def record_audit_event(
    *,
    entity_type: str,
    entity_id: Any,
    action: str,
    owner_id: Optional[int] = None,
    actor_id: str = SYSTEM_ACTOR,
    actor_type: str = SYSTEM_ACTOR,
    metadata: Optional[Dict[str, Any]] = None,
    commit: bool = True,
) -> AuditEvent:
    audit = AuditEvent(
        owner_id=owner_id,
        entity_type=entity_type,
        entity_id=str(entity_id),
        action=action,
        actor_id=actor_id,
        actor_type=actor_type,
        event_metadata=metadata,
    )
    db.session.add(audit)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return audit
