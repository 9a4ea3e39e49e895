"""
Purchasing Pydantic Schemas

Covers:
- Purchase Orders
- PO Items
- Workflow actions (notes, rejections, procurement updates)
- Attachments and workflow history
"""
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional, List
from datetime import datetime, date
from decimal import Decimal

from po_workflow.core.status_config import Currency, PurchaseOrderStatus, RequestType


# ============================================================================
# Purchase Order Item Schemas
# ============================================================================

class POItemBase(BaseModel):
    """Base PO item fields"""
    item_id: Optional[str] = Field(None, max_length=36, description="Catalog item ID")
    item_code: Optional[str] = Field(None, max_length=100)
    item_name: str = Field(..., min_length=1, max_length=255)
    quantity: Decimal = Field(..., gt=0, description="Requested quantity")
    unit: str = Field(..., min_length=1, max_length=30)
    received_quantity: Optional[Decimal] = Field(None, ge=0)
    price: Optional[Decimal] = Field(None, ge=0, description="Price per unit")
    line_total: Optional[Decimal] = Field(None, ge=0, description="Computed from price when omitted")
    currency: Optional[Currency] = None


class POItemCreate(POItemBase):
    """Create a PO item"""
    pass


class POItemResponse(POItemBase):
    """PO item response"""
    id: str
    purchase_order_id: str
    position: int

    class Config:
        from_attributes = True


# ============================================================================
# Purchase Order Schemas
# ============================================================================

class PurchaseOrderBase(BaseModel):
    """Base PO header fields"""
    request_date: date
    department: str = Field(..., min_length=1, max_length=100)
    request_type: RequestType = RequestType.PURCHASE
    requester_name: str = Field(..., min_length=1, max_length=200)
    notes: Optional[str] = None
    supplier_id: Optional[str] = Field(None, max_length=36, description="Catalog vendor ID")
    execution_date: Optional[date] = None
    total_amount: Optional[Decimal] = Field(None, ge=0, description="Ignored when items are given")
    currency: Optional[Currency] = None


class PurchaseOrderCreate(PurchaseOrderBase):
    """Create a new purchase order"""
    items: List[POItemCreate] = []
    attachment_urls: List[str] = []
    save_as_draft: bool = Field(False, description="Keep as draft instead of sending for review")


class PurchaseOrderUpdate(BaseModel):
    """Update a purchase order (only fields that are set are changed)"""
    request_date: Optional[date] = None
    department: Optional[str] = Field(None, min_length=1, max_length=100)
    request_type: Optional[RequestType] = None
    requester_name: Optional[str] = Field(None, min_length=1, max_length=200)
    notes: Optional[str] = None
    supplier_id: Optional[str] = Field(None, max_length=36)
    execution_date: Optional[date] = None
    total_amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[Currency] = None
    items: Optional[List[POItemCreate]] = Field(None, description="Replaces all items when given")
    attachment_urls: Optional[List[str]] = Field(
        None, description="Replaces the caller's own attachments when given; other uploads are kept"
    )


class PurchaseOrderListResponse(BaseModel):
    """PO list summary"""
    id: str
    number: str
    request_date: date
    department: str
    request_type: str
    requester_name: str
    status: str
    supplier_id: Optional[str] = None
    total_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    created_by: str
    created_at: datetime

    class Config:
        from_attributes = True


class PurchaseOrderResponse(BaseModel):
    """Full PO details"""
    id: str
    number: str
    request_date: date
    department: str
    request_type: str
    requester_name: str
    status: str
    notes: Optional[str] = None
    supplier_id: Optional[str] = None
    execution_date: Optional[date] = None
    attachment_urls: List[str] = []
    total_amount: Optional[Decimal] = None
    currency: Optional[str] = None
    created_by: str
    created_at: datetime
    updated_at: datetime
    items: List[POItemResponse] = []
    allowed_operations: List[str] = []

    class Config:
        from_attributes = True


# ============================================================================
# Workflow Action Schemas
# ============================================================================

class WorkflowNoteRequest(BaseModel):
    """Optional note appended to the PO notes"""
    note: Optional[str] = Field(None, max_length=2000)


class RejectRequest(BaseModel):
    """Rejection with an optional reason"""
    reason: Optional[str] = Field(None, max_length=2000)


class ProcurementItem(POItemBase):
    """Item as bought by procurement"""
    pass


class ProcurementUpdateRequest(BaseModel):
    """Procurement update: actual items, supplier and execution date"""
    items: Optional[List[ProcurementItem]] = None
    supplier_id: Optional[str] = Field(None, max_length=36)
    execution_date: Optional[date] = None
    currency: Optional[Currency] = None
    note: Optional[str] = Field(None, max_length=2000)


# ============================================================================
# Attachments & History
# ============================================================================

class AttachmentResponse(BaseModel):
    """Attachment visible to the caller"""
    url: str
    uploaded_by: Optional[str] = None
    uploaded_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class WorkflowHistoryEntry(BaseModel):
    """One step of the PO timeline"""
    id: int
    action: str
    actor_id: str
    actor_name: Optional[str] = None
    from_status: Optional[PurchaseOrderStatus] = None
    to_status: Optional[PurchaseOrderStatus] = None
    details: Dict[str, Any] = {}
    created_at: datetime

    class Config:
        from_attributes = True


# ============================================================================
# Reviewer Notes
# ============================================================================

class PurchaseOrderNoteCreate(BaseModel):
    """Reviewer note; blank text is rejected by the workflow"""
    note: str = Field(..., max_length=2000)


class PurchaseOrderNoteResponse(BaseModel):
    """Reviewer note with its author's name"""
    id: int
    purchase_order_id: str
    user_id: str
    user_name: Optional[str] = None
    note: str
    created_at: datetime

    class Config:
        from_attributes = True
