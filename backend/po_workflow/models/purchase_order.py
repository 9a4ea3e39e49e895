"""
Purchase Order models for the approval workflow
"""
from sqlalchemy import Column, Integer, String, DateTime, Text, Numeric, ForeignKey, Date
from sqlalchemy.orm import relationship

from po_workflow.db.base import Base, new_id, utcnow


class PurchaseOrder(Base):
    """Purchase Order header model"""
    __tablename__ = "purchase_orders"

    id = Column(String(36), primary_key=True, default=new_id)

    # PO Number - generated per month (PO-25-03-0001)
    number = Column(String(30), unique=True, nullable=False, index=True)

    # Request metadata
    request_date = Column(Date, nullable=False)
    department = Column(String(100), nullable=False)
    request_type = Column(String(20), nullable=False, default="purchase")  # purchase, maintenance
    requester_name = Column(String(200), nullable=False)

    # Workflow status, see core/status_config.py
    status = Column(String(50), nullable=False, index=True)

    notes = Column(Text, nullable=True)

    # Catalog reference (vendors live outside this service)
    supplier_id = Column(String(36), nullable=True, index=True)
    execution_date = Column(Date, nullable=True)

    # Financials - total_amount is the sum of item line totals
    total_amount = Column(Numeric(18, 4), nullable=True)
    currency = Column(String(3), nullable=True)  # SYP, USD

    # Owner (user directory id)
    created_by = Column(String(36), nullable=False, index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    items = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.position",
    )
    attachments = relationship(
        "PurchaseOrderAttachment",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderAttachment.position",
    )

    @property
    def attachment_urls(self):
        return [attachment.url for attachment in self.attachments]

    def __repr__(self):
        return f"<PurchaseOrder {self.number}: {self.status}>"


class PurchaseOrderItem(Base):
    """Purchase Order line item model"""
    __tablename__ = "purchase_order_items"

    id = Column(String(36), primary_key=True, default=new_id)

    # Parent PO
    purchase_order_id = Column(
        String(36), ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Line order within the PO
    position = Column(Integer, nullable=False, default=0)

    # Catalog reference plus a snapshot of code/name so old POs stay stable
    item_id = Column(String(36), nullable=True)
    item_code = Column(String(100), nullable=True)
    item_name = Column(String(255), nullable=False)

    # Quantities
    quantity = Column(Numeric(18, 4), nullable=False)
    unit = Column(String(30), nullable=False)
    received_quantity = Column(Numeric(18, 4), nullable=True)

    # Pricing
    price = Column(Numeric(18, 4), nullable=True)
    line_total = Column(Numeric(18, 4), nullable=True)  # price * quantity unless supplied
    currency = Column(String(3), nullable=True)

    purchase_order = relationship("PurchaseOrder", back_populates="items")

    def __repr__(self):
        return f"<PurchaseOrderItem {self.item_name}: {self.quantity} {self.unit}>"


class PurchaseOrderAttachment(Base):
    """Uploaded evidence attached to a purchase order, with uploader metadata"""
    __tablename__ = "purchase_order_attachments"

    id = Column(Integer, primary_key=True, index=True)
    purchase_order_id = Column(
        String(36), ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False, default=0)
    url = Column(String(1000), nullable=False)

    # NULL when the URL came from a caller and could not be attributed
    uploaded_by = Column(String(36), nullable=True, index=True)
    uploaded_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    purchase_order = relationship("PurchaseOrder", back_populates="attachments")

    def __repr__(self):
        return f"<PurchaseOrderAttachment {self.url}>"


class PurchaseOrderNote(Base):
    """Reviewer note on a purchase order, kept apart from the requester-visible notes text"""
    __tablename__ = "purchase_order_notes"

    id = Column(Integer, primary_key=True, index=True)
    purchase_order_id = Column(
        String(36), ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String(36), nullable=False, index=True)
    note = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    def __repr__(self):
        return f"<PurchaseOrderNote {self.id} by {self.user_id}>"


class PurchaseOrderSequence(Base):
    """Per-month counter backing purchase order numbers"""
    __tablename__ = "purchase_order_sequences"

    # YY-MM
    period = Column(String(5), primary_key=True)
    last_value = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<PurchaseOrderSequence {self.period}: {self.last_value}>"
