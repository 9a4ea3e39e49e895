"""
Audit Log Model

Append-only record of every state-changing action. Purchase order entries
key on the PO number (entity_id) so the trail follows the business
identifier. This table is also the source for workflow timelines.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON

from po_workflow.db.base import Base, utcnow


class AuditLog(Base):
    """Audit log entry"""
    __tablename__ = "audit_logs"

    # Integer key doubles as the tie-breaker for entries in the same instant
    id = Column(Integer, primary_key=True, index=True)

    actor_id = Column(String(36), nullable=False, index=True)

    # e.g. submit_purchase_order, manager_reject_purchase_order
    action = Column(String(100), nullable=False, index=True)

    entity_type = Column(String(50), nullable=False, index=True)
    entity_id = Column(String(100), nullable=True, index=True)

    # Free-form payload; readers branch on action to interpret it
    details = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} on {self.entity_type}:{self.entity_id}>"
