"""
Audit Service

Append-only audit trail for state-changing actions. Writing an entry never
commits; it joins the caller's transaction so the entry exists exactly when
the change it describes does.

The trail is also the workflow history: there is no separate history table,
timelines are rebuilt from entries for a PO number.
"""
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session

from po_workflow.exceptions import ValidationError
from po_workflow.logging_config import get_logger
from po_workflow.models.audit_log import AuditLog

logger = get_logger(__name__)


def record(
    db: Session,
    actor_id: str,
    action: str,
    entity_type: str,
    entity_id: Optional[str],
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """
    Record an audit entry.

    Args:
        db: Database session
        actor_id: User who performed the action
        action: Action tag (e.g. submit_purchase_order)
        entity_type: Kind of entity (e.g. purchase_order)
        entity_id: Business identifier of the entity (PO number)
        details: Structured payload, interpreted per action

    Returns:
        The created AuditLog instance (flushed, not committed)
    """
    entry = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
    )
    db.add(entry)
    # Don't commit - the calling operation owns the transaction
    db.flush()
    return entry


def list_by_filter(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    actor_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[AuditLog]:
    """Audit entries matching the filters, newest first."""
    query = db.query(AuditLog)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if actor_id:
        query = query.filter(AuditLog.actor_id == actor_id)
    if action:
        query = query.filter(AuditLog.action == action)

    return (
        query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def workflow_history(db: Session, entity_type: str, entity_id: str) -> List[AuditLog]:
    """All entries for one entity, oldest first."""
    return (
        db.query(AuditLog)
        .filter(AuditLog.entity_type == entity_type, AuditLog.entity_id == entity_id)
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        .all()
    )


def last_entry(
    db: Session,
    entity_type: str,
    entity_id: str,
    action: str,
) -> Optional[AuditLog]:
    """Most recent entry with the given action for an entity."""
    return (
        db.query(AuditLog)
        .filter(
            AuditLog.entity_type == entity_type,
            AuditLog.entity_id == entity_id,
            AuditLog.action == action,
        )
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .first()
    )


def bulk_delete(
    db: Session,
    ids: Optional[Sequence[int]] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[str] = None,
    actor_id: Optional[str] = None,
) -> int:
    """
    Administrative delete of audit entries, all or nothing.

    Not used by the workflow. Commits on success and rolls back on any
    failure, so either every matching entry is gone or none is.

    Returns:
        Number of entries deleted
    """
    if not ids and not (entity_type or entity_id or actor_id):
        raise ValidationError("Refusing to delete audit entries without ids or a filter")

    query = db.query(AuditLog)
    if ids:
        query = query.filter(AuditLog.id.in_(list(ids)))
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)
    if actor_id:
        query = query.filter(AuditLog.actor_id == actor_id)

    try:
        deleted = query.delete(synchronize_session=False)
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Audit bulk delete failed, rolled back")
        raise

    logger.warning(
        f"Deleted {deleted} audit log entries",
        extra={"ids": list(ids) if ids else None, "entity_type": entity_type,
               "entity_id": entity_id, "actor_id": actor_id},
    )
    return deleted
