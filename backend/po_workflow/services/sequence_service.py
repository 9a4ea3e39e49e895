"""
Purchase Order Number Sequence

Generates order numbers in the format PO-YY-MM-NNNN where YY-MM is the
current month in the configured numbering timezone and NNNN is a per-month
counter.

The counter lives in purchase_order_sequences and is advanced with a single
UPDATE ... SET last_value = last_value + 1, so two creators in the same month
can never draw the same value. The first number of a month seeds the row
from the POs already numbered in that month.
"""
from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from po_workflow.core.config import settings
from po_workflow.db.base import utcnow
from po_workflow.exceptions import DatabaseError
from po_workflow.logging_config import get_logger
from po_workflow.models.purchase_order import PurchaseOrder, PurchaseOrderSequence

logger = get_logger(__name__)

PO_NUMBER_PREFIX = "PO"

# Seeding can lose to a concurrent creator once; the retried UPDATE then wins
_MAX_ATTEMPTS = 3


def current_period(now: Optional[datetime] = None, tz_name: Optional[str] = None) -> str:
    """
    Return the YY-MM period for a moment in the numbering timezone.

    Naive datetimes are treated as UTC.
    """
    tz = ZoneInfo(tz_name or settings.PO_NUMBER_TIMEZONE)
    if now is None:
        return datetime.now(tz).strftime("%y-%m")
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz).strftime("%y-%m")


def format_po_number(period: str, value: int) -> str:
    return f"{PO_NUMBER_PREFIX}-{period}-{value:04d}"


def count_for_month(db: Session, period: str) -> int:
    """Count purchase orders already numbered in a YY-MM period."""
    return (
        db.query(PurchaseOrder)
        .filter(PurchaseOrder.number.like(f"{PO_NUMBER_PREFIX}-{period}-%"))
        .count()
    )


def _increment(db: Session, period: str) -> Optional[int]:
    updated = (
        db.query(PurchaseOrderSequence)
        .filter(PurchaseOrderSequence.period == period)
        .update(
            {
                PurchaseOrderSequence.last_value: PurchaseOrderSequence.last_value + 1,
                PurchaseOrderSequence.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
    )
    if not updated:
        return None
    return (
        db.query(PurchaseOrderSequence.last_value)
        .filter(PurchaseOrderSequence.period == period)
        .scalar()
    )


def next_value(db: Session, period: str) -> int:
    """
    Atomically draw the next counter value for a period.

    Runs inside the caller's transaction; the value is only consumed if that
    transaction commits.
    """
    for attempt in range(1, _MAX_ATTEMPTS + 1):
        value = _increment(db, period)
        if value is not None:
            return value

        seed = count_for_month(db, period) + 1
        try:
            with db.begin_nested():
                db.add(PurchaseOrderSequence(period=period, last_value=seed))
            logger.info(
                f"Started purchase order sequence for {period} at {seed}",
                extra={"period": period, "seed": seed},
            )
            return seed
        except IntegrityError:
            # Another transaction created the row first; increment it instead
            logger.info(
                "Purchase order sequence row created concurrently, retrying",
                extra={"period": period, "attempt": attempt},
            )

    raise DatabaseError(
        "Could not allocate a purchase order number",
        details={"period": period},
    )


def next_po_number(db: Session, now: Optional[datetime] = None) -> str:
    """
    Generate the next purchase order number.

    Args:
        db: Database session (the caller owns the transaction)
        now: Moment to number for; defaults to the current time

    Returns:
        Order number such as PO-25-03-0007
    """
    period = current_period(now)
    return format_po_number(period, next_value(db, period))
