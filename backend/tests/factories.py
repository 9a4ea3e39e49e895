"""
Test data factories for the PO workflow.

Provides functions to create test entities with sensible defaults. They
write rows directly (bypassing the workflow) so a test can start from any
status.

Usage:
    from tests.factories import create_test_purchase_order

    def test_something(db_session):
        po = create_test_purchase_order(db_session, status="under_manager_review")
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session

from po_workflow.db.base import utcnow


# =============================================================================
# SEQUENCE MANAGEMENT
# =============================================================================

_sequences: Dict[str, int] = {}


def reset_sequences():
    """Reset all sequences. Call between tests for predictable IDs."""
    global _sequences
    _sequences = {}


def _next(name: str) -> int:
    """Get next sequence number for a given entity type."""
    _sequences[name] = _sequences.get(name, 0) + 1
    return _sequences[name]


# =============================================================================
# PAYLOADS
# =============================================================================

def po_payload(**overrides) -> Dict[str, Any]:
    """Workflow create payload: two items, qty 2 @ 50 and qty 1 @ 100."""
    data = {
        "request_date": date(2025, 3, 10),
        "department": "IT",
        "request_type": "purchase",
        "requester_name": "Omar Employee",
        "items": [
            {"item_name": "Printer paper", "quantity": 2, "unit": "box", "price": 50},
            {"item_name": "Toner", "quantity": 1, "unit": "pcs", "price": 100},
        ],
    }
    data.update(overrides)
    return data


def po_json(**overrides) -> Dict[str, Any]:
    """Same payload shaped for the HTTP API."""
    data = po_payload(**overrides)
    if isinstance(data.get("request_date"), date):
        data["request_date"] = data["request_date"].isoformat()
    return data


# =============================================================================
# USER FACTORY
# =============================================================================

def create_test_user(
    db: Session,
    role: str = "employee",
    email: Optional[str] = None,
    **overrides
) -> "User":
    """
    Create a user row for the database user directory.

    Args:
        db: Database session
        role: Workflow role
        email: Email (auto-generated if not provided)
        **overrides: Additional field overrides

    Returns:
        Created User instance
    """
    from po_workflow.models.user import User

    seq = _next("user")
    user = User(
        name=overrides.pop("name", f"Test User {seq}"),
        email=email or f"testuser{seq}@example.com",
        role=role,
        department=overrides.pop("department", "IT"),
        active=overrides.pop("active", True),
        **overrides
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


# =============================================================================
# PURCHASE ORDER FACTORY
# =============================================================================

def create_test_purchase_order(
    db: Session,
    created_by: str = "emp-1",
    status: str = "under_assistant_review",
    number: Optional[str] = None,
    items: Optional[List[Dict[str, Any]]] = None,
    **overrides
) -> "PurchaseOrder":
    """
    Create a purchase order with items in any status.

    Line totals are price x quantity unless an item supplies line_total.

    Args:
        db: Database session
        created_by: Owner user ID
        status: Starting status
        number: PO number (auto-generated in period 00-01 if not provided)
        items: Item dicts (item_name, quantity, unit, price, ...)
        **overrides: Additional header field overrides

    Returns:
        Created PurchaseOrder instance
    """
    from po_workflow.models.purchase_order import PurchaseOrder, PurchaseOrderItem

    seq = _next("purchase_order")
    if items is None:
        items = [{"item_name": "Printer paper", "quantity": 2, "unit": "box", "price": 50}]

    po = PurchaseOrder(
        number=number or f"PO-00-01-{seq:04d}",
        request_date=overrides.pop("request_date", date(2025, 3, 10)),
        department=overrides.pop("department", "IT"),
        request_type=overrides.pop("request_type", "purchase"),
        requester_name=overrides.pop("requester_name", "Test Requester"),
        status=status,
        notes=overrides.pop("notes", ""),
        created_by=created_by,
        **overrides
    )

    total = Decimal("0")
    for position, item in enumerate(items):
        price = Decimal(str(item["price"])) if item.get("price") is not None else None
        quantity = Decimal(str(item["quantity"]))
        line_total = item.get("line_total")
        if line_total is None and price is not None:
            line_total = price * quantity
        if line_total is not None:
            total += Decimal(str(line_total))
        po.items.append(PurchaseOrderItem(
            position=position,
            item_name=item["item_name"],
            quantity=quantity,
            unit=item.get("unit", "pcs"),
            received_quantity=item.get("received_quantity"),
            price=price,
            line_total=line_total,
        ))
    if items and "total_amount" not in overrides:
        po.total_amount = total

    db.add(po)
    db.commit()
    db.refresh(po)
    return po


def create_test_attachment(
    db: Session,
    po: "PurchaseOrder",
    url: Optional[str] = None,
    uploaded_by: Optional[str] = None,
    uploaded_at: Optional[datetime] = None,
) -> "PurchaseOrderAttachment":
    """Attach a URL to a purchase order with explicit metadata."""
    from po_workflow.models.purchase_order import PurchaseOrderAttachment

    seq = _next("attachment")
    attachment = PurchaseOrderAttachment(
        purchase_order_id=po.id,
        position=seq,
        url=url or f"https://files.test/uploads/plain/file-{seq}.pdf",
        uploaded_by=uploaded_by,
        uploaded_at=uploaded_at,
    )
    db.add(attachment)
    db.commit()
    db.refresh(attachment)
    return attachment


# =============================================================================
# AUDIT / NOTIFICATION FACTORIES
# =============================================================================

def create_test_audit_entry(
    db: Session,
    action: str = "submit_purchase_order",
    entity_id: str = "PO-00-01-0001",
    actor_id: str = "emp-1",
    entity_type: str = "purchase_order",
    details: Optional[Dict[str, Any]] = None,
    created_at: Optional[datetime] = None,
) -> "AuditLog":
    from po_workflow.models.audit_log import AuditLog

    entry = AuditLog(
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
        created_at=created_at or utcnow(),
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def create_test_device_token(
    db: Session,
    user_id: str = "emp-1",
    token: Optional[str] = None,
) -> "DeviceToken":
    from po_workflow.models.notification import DeviceToken

    seq = _next("device_token")
    row = DeviceToken(user_id=user_id, token=token or f"token-{user_id}-{seq}")
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def create_test_notification(
    db: Session,
    user_id: str = "emp-1",
    type: str = "po_status_changed",
    is_read: bool = False,
    created_at: Optional[datetime] = None,
) -> "Notification":
    from po_workflow.models.notification import Notification

    seq = _next("notification")
    row = Notification(
        user_id=user_id,
        type=type,
        title=f"Notification {seq}",
        body=None,
        data={},
        is_read=is_read,
        created_at=created_at or utcnow(),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row
