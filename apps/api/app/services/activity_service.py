from sqlalchemy import select
from sqlalchemy.orm import Session

from app.auth.dependencies import AuthContext
from app.models.activity_log import ActivityLogEntry


def append_activity(
    db: Session,
    actor: AuthContext,
    action: str,
    entity_id: str,
    details: str | None = None,
    entity_type: str = "order",
) -> ActivityLogEntry:
    """Stage an audit entry in the caller's transaction; never updated afterwards."""
    entry = ActivityLogEntry(
        staff_id=actor.user_id,
        staff_name=actor.name,
        staff_role=actor.role,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
    )
    db.add(entry)
    return entry


def list_activity(
    db: Session,
    entity_id: str | None = None,
    action: str | None = None,
    limit: int = 100,
    newest_first: bool = False,
) -> list[ActivityLogEntry]:
    """Per-order trails read chronologically; the admin feed wants the latest entries."""
    query = select(ActivityLogEntry)
    if entity_id:
        query = query.where(ActivityLogEntry.entity_id == entity_id)
    if action:
        query = query.where(ActivityLogEntry.action == action)
    if newest_first:
        query = query.order_by(ActivityLogEntry.created_at.desc(), ActivityLogEntry.id.desc())
    else:
        query = query.order_by(ActivityLogEntry.created_at.asc(), ActivityLogEntry.id.asc())
    return list(db.scalars(query.limit(limit)))
