"""
User model backing the database user directory
"""
from sqlalchemy import Column, String, Boolean, DateTime

from po_workflow.db.base import Base, new_id, utcnow


class User(Base):
    """
    Directory entry for a person who can act on purchase orders.

    Only the fields the workflow needs: identity, contact and role.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)

    # employee, assistant_manager, manager, finance_manager, ...
    role = Column(String(50), nullable=False, index=True)
    department = Column(String(100), nullable=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
