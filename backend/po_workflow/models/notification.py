"""
Notification and device token models
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Boolean, JSON, UniqueConstraint

from po_workflow.db.base import Base, new_id, utcnow


class Notification(Base):
    """Per-recipient notification, persisted whether or not push delivery works"""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)

    # po_created, po_status_changed, po_approved, po_rejected, po_completed
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    body = Column(Text, nullable=True)
    data = Column(JSON, nullable=True)

    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    def __repr__(self):
        return f"<Notification {self.type} for {self.user_id}>"


class DeviceToken(Base):
    """Push registration token for one of a user's devices"""
    __tablename__ = "device_tokens"
    __table_args__ = (
        UniqueConstraint("user_id", "token", name="uq_device_tokens_user_token"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    token = Column(String(512), nullable=False, index=True)
    device_info = Column(String(255), nullable=True)

    last_used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<DeviceToken user={self.user_id}>"
