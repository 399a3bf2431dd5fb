# Overview: Append-only audit trail for sensitive POS actions.

from __future__ import annotations

from ..extensions import db
from ..models import AuditLog


def record(
    *,
    entity_type: str,
    entity_id: int,
    action: str,
    actor_id: int | None,
    metadata: dict | None = None,
) -> AuditLog:
    """
    Add an audit row to the current session.

    Does not commit: the caller's transaction decides whether the audited
    change (and therefore its audit row) persists.
    """
    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        actor_id=actor_id,
        metadata_json=metadata or None,
    )
    db.session.add(entry)
    return entry


def list_for_entity(entity_type: str, entity_id: int) -> list[AuditLog]:
    return (
        db.session.query(AuditLog)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditLog.id.asc())
        .all()
    )
