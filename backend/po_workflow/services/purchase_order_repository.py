"""
Purchase Order Persistence

Create/read/update of the purchase order aggregate (header, line items and
attachment rows) plus its reviewer notes. Nothing here commits: the workflow
engine owns the transaction and commits after its audit write, or rolls back
on failure.

Status changes are conditional updates keyed on the expected current status.
Zero affected rows means another request moved the order first, which is
reported as a StateConflictError.
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import case, or_
from sqlalchemy.orm import Session, selectinload

from po_workflow.db.base import utcnow
from po_workflow.exceptions import NotFoundError, StateConflictError
from po_workflow.models.purchase_order import (
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderAttachment,
    PurchaseOrderNote,
)

NOTES_SEPARATOR = "\n\n"

# Header columns callers may set through insert/update_draft
HEADER_FIELDS = (
    "request_date",
    "department",
    "request_type",
    "requester_name",
    "notes",
    "supplier_id",
    "execution_date",
    "total_amount",
    "currency",
)

ITEM_FIELDS = (
    "item_id",
    "item_code",
    "item_name",
    "quantity",
    "unit",
    "received_quantity",
    "price",
    "currency",
)


# =============================================================================
# Line totals
# =============================================================================

def _to_decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def compute_line_total(item: Dict[str, Any], use_received: bool = False) -> Optional[Decimal]:
    """
    Line total for one item.

    A supplied line_total is kept verbatim. Otherwise price x quantity, or
    price x received_quantity for procurement updates (falling back to the
    requested quantity when nothing was received yet). None when unpriced.
    """
    supplied = _to_decimal(item.get("line_total"))
    if supplied is not None:
        return supplied

    price = _to_decimal(item.get("price"))
    quantity = _to_decimal(item.get("quantity"))
    if use_received and item.get("received_quantity") is not None:
        quantity = _to_decimal(item.get("received_quantity"))

    if price is None or quantity is None:
        return None
    return price * quantity


def compute_total(line_totals: Iterable[Optional[Decimal]]) -> Decimal:
    """Sum of line totals; unpriced lines count as zero."""
    return sum((lt for lt in line_totals if lt is not None), Decimal("0"))


def build_items(
    items: Sequence[Dict[str, Any]],
    use_received: bool = False,
) -> Tuple[List[PurchaseOrderItem], Decimal]:
    """Build item rows (not yet attached to a PO) and their total."""
    rows = []
    for position, item in enumerate(items):
        values = {key: item.get(key) for key in ITEM_FIELDS}
        for key in ("quantity", "received_quantity", "price"):
            values[key] = _to_decimal(values[key])
        values["currency"] = getattr(values["currency"], "value", values["currency"])
        rows.append(
            PurchaseOrderItem(
                position=position,
                line_total=compute_line_total(item, use_received=use_received),
                **values,
            )
        )
    return rows, compute_total(row.line_total for row in rows)


# =============================================================================
# Reads
# =============================================================================

def _aggregate_query(db: Session):
    return db.query(PurchaseOrder).options(
        selectinload(PurchaseOrder.items),
        selectinload(PurchaseOrder.attachments),
    )


def get_by_id(
    db: Session,
    po_id: str,
    owner_id: Optional[str] = None,
    refresh: bool = False,
) -> Optional[PurchaseOrder]:
    """
    Load a purchase order with its items and attachments.

    Args:
        db: Database session
        po_id: Purchase order ID
        owner_id: When given, only return the PO if this user created it
        refresh: Overwrite any stale copy already in the session

    Returns:
        The PurchaseOrder, or None when missing (or not owned by owner_id)
    """
    query = _aggregate_query(db).filter(PurchaseOrder.id == po_id)
    if owner_id is not None:
        query = query.filter(PurchaseOrder.created_by == owner_id)
    if refresh:
        query = query.populate_existing()
    return query.first()


def get_by_number(db: Session, number: str) -> Optional[PurchaseOrder]:
    return _aggregate_query(db).filter(PurchaseOrder.number == number).first()


def list_purchase_orders(
    db: Session,
    *,
    owner_id: Optional[str] = None,
    status: Optional[str] = None,
    statuses: Optional[Sequence[str]] = None,
    supplier_id: Optional[str] = None,
    department: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[PurchaseOrder]:
    """List purchase orders newest first with optional filters."""
    query = _aggregate_query(db)

    if owner_id is not None:
        query = query.filter(PurchaseOrder.created_by == owner_id)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if statuses:
        query = query.filter(PurchaseOrder.status.in_(list(statuses)))
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if department:
        query = query.filter(PurchaseOrder.department == department)
    if start_date:
        query = query.filter(PurchaseOrder.request_date >= start_date)
    if end_date:
        query = query.filter(PurchaseOrder.request_date <= end_date)

    return (
        query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.number.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


# =============================================================================
# Writes
# =============================================================================

def insert(
    db: Session,
    *,
    number: str,
    status: str,
    created_by: str,
    fields: Dict[str, Any],
    items: Sequence[Dict[str, Any]],
) -> PurchaseOrder:
    """
    Insert a purchase order and its line items.

    total_amount is the sum of item line totals when items are given;
    otherwise the caller's total (if any) is kept.
    """
    header = {key: fields.get(key) for key in HEADER_FIELDS}
    header["total_amount"] = _to_decimal(header["total_amount"])
    if header["notes"] is None:
        header["notes"] = ""

    rows, total = build_items(items)
    if rows:
        header["total_amount"] = total

    po = PurchaseOrder(number=number, status=status, created_by=created_by, **header)
    po.items = rows
    db.add(po)
    db.flush()

    return get_by_id(db, po.id, refresh=True)


def _missing_or_conflict(
    db: Session,
    po_id: str,
    expected_status: str,
    operation: Optional[str],
) -> Exception:
    current = db.query(PurchaseOrder.status).filter(PurchaseOrder.id == po_id).scalar()
    if current is None:
        return NotFoundError("Purchase order", po_id)
    return StateConflictError(
        f"Purchase order is no longer in status '{expected_status}'",
        operation=operation,
        current_status=current,
        allowed_statuses=[expected_status],
    )


def _append_notes(block: str):
    return case(
        (or_(PurchaseOrder.notes.is_(None), PurchaseOrder.notes == ""), block),
        else_=PurchaseOrder.notes + (NOTES_SEPARATOR + block),
    )


def transition_status(
    db: Session,
    po_id: str,
    expected_status: str,
    new_status: str,
    notes_append: Optional[str] = None,
    operation: Optional[str] = None,
) -> PurchaseOrder:
    """
    Move a purchase order from expected_status to new_status.

    Single conditional UPDATE (WHERE id = :id AND status = :expected), with
    the optional note block appended in the same statement.

    Raises:
        NotFoundError: PO does not exist
        StateConflictError: PO is no longer in expected_status
    """
    values: Dict[Any, Any] = {
        PurchaseOrder.status: new_status,
        PurchaseOrder.updated_at: utcnow(),
    }
    if notes_append:
        values[PurchaseOrder.notes] = _append_notes(notes_append)

    updated = (
        db.query(PurchaseOrder)
        .filter(PurchaseOrder.id == po_id, PurchaseOrder.status == expected_status)
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        raise _missing_or_conflict(db, po_id, expected_status, operation)

    return get_by_id(db, po_id, refresh=True)


def update_draft(
    db: Session,
    po_id: str,
    expected_status: str,
    fields: Dict[str, Any],
    items: Optional[Sequence[Dict[str, Any]]] = None,
    *,
    new_status: Optional[str] = None,
    notes_append: Optional[str] = None,
    use_received: bool = False,
    operation: Optional[str] = None,
) -> PurchaseOrder:
    """
    Update header fields and optionally replace all line items.

    Guarded by the same conditional update as transition_status. When items
    are supplied they replace the existing ones wholesale and total_amount is
    recomputed; a caller-supplied total is ignored while the PO has items.
    """
    values: Dict[Any, Any] = {
        getattr(PurchaseOrder, key): value
        for key, value in fields.items()
        if key in HEADER_FIELDS
    }
    if PurchaseOrder.total_amount in values:
        values[PurchaseOrder.total_amount] = _to_decimal(values[PurchaseOrder.total_amount])
    if new_status is not None:
        values[PurchaseOrder.status] = new_status
    if notes_append:
        values[PurchaseOrder.notes] = _append_notes(notes_append)
    values[PurchaseOrder.updated_at] = utcnow()

    updated = (
        db.query(PurchaseOrder)
        .filter(PurchaseOrder.id == po_id, PurchaseOrder.status == expected_status)
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        raise _missing_or_conflict(db, po_id, expected_status, operation)

    po = get_by_id(db, po_id, refresh=True)
    if items is not None:
        replace_items(
            db, po, items,
            use_received=use_received,
            keep_total="total_amount" in fields,
        )
    elif po.items:
        po.total_amount = compute_total(item.line_total for item in po.items)
        db.flush()

    return get_by_id(db, po_id, refresh=True)


def replace_items(
    db: Session,
    po: PurchaseOrder,
    items: Sequence[Dict[str, Any]],
    use_received: bool = False,
    keep_total: bool = False,
) -> PurchaseOrder:
    """
    Delete all line items of a PO and insert the given ones.

    Emptying the item list resets total_amount to 0 unless keep_total is set
    (the caller supplied its own total).
    """
    had_items = bool(po.items)
    rows, total = build_items(items, use_received=use_received)
    po.items = rows  # delete-orphan removes the old rows on flush
    if rows:
        po.total_amount = total
    elif had_items and not keep_total:
        po.total_amount = Decimal("0")
    db.flush()
    return po


def add_attachments(
    db: Session,
    po: PurchaseOrder,
    attachments: Sequence[Dict[str, Any]],
) -> List[PurchaseOrderAttachment]:
    """
    Append attachment rows after the PO's existing ones.

    Each entry carries url and optionally uploaded_by / uploaded_at.
    """
    start = max((a.position for a in po.attachments), default=-1) + 1
    rows = []
    for offset, attachment in enumerate(attachments):
        row = PurchaseOrderAttachment(
            position=start + offset,
            url=attachment["url"],
            uploaded_by=attachment.get("uploaded_by"),
            uploaded_at=attachment.get("uploaded_at"),
        )
        po.attachments.append(row)
        rows.append(row)
    db.flush()
    return rows


def touch(db: Session, po: PurchaseOrder, when: Optional[datetime] = None) -> None:
    po.updated_at = when or utcnow()
    db.flush()


def replace_attachments(
    db: Session,
    po: PurchaseOrder,
    attachments: Sequence[Dict[str, Any]],
    retained: Iterable[str] = (),
) -> List[PurchaseOrderAttachment]:
    """
    Set the PO's attachment list to the given URLs, in order.

    Existing rows whose URL is in retained stay attached (ahead of the given
    URLs) whether or not they are listed. Rows for URLs that were already
    attached keep their uploader metadata.
    """
    retained = set(retained)
    existing = {a.url: a for a in po.attachments}
    rows = [a for a in po.attachments if a.url in retained]
    seen = {row.url for row in rows}
    for attachment in attachments:
        url = attachment["url"]
        if url in seen:
            continue
        seen.add(url)
        row = existing.get(url)
        if row is None:
            row = PurchaseOrderAttachment(
                url=url,
                uploaded_by=attachment.get("uploaded_by"),
                uploaded_at=attachment.get("uploaded_at"),
            )
        rows.append(row)
    for position, row in enumerate(rows):
        row.position = position
    po.attachments = rows
    db.flush()
    return rows


def insert_note(db: Session, po: PurchaseOrder, user_id: str, text: str) -> PurchaseOrderNote:
    note = PurchaseOrderNote(purchase_order_id=po.id, user_id=user_id, note=text)
    db.add(note)
    db.flush()
    return note


def list_notes(db: Session, po_id: str) -> List[PurchaseOrderNote]:
    """Reviewer notes of a PO, oldest first"""
    return (
        db.query(PurchaseOrderNote)
        .filter(PurchaseOrderNote.purchase_order_id == po_id)
        .order_by(PurchaseOrderNote.created_at.asc(), PurchaseOrderNote.id.asc())
        .all()
    )
