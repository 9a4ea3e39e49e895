"""
Notification Orchestrator

Fans purchase order events out to users:

1. Resolve recipients (reviewers on creation, the creator on status changes)
2. Persist one Notification row per recipient and commit it
3. Resolve the recipients' device tokens and push in batches
4. Prune tokens the gateway reports as permanently invalid

The Notification row is the durable record. Pushes are a best-effort nudge:
gateway failures are logged and dropped, never retried.

Also holds the inbox and device token operations used by the notification
endpoints.
"""
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from po_workflow.core.status_config import PurchaseOrderStatus, REVIEWER_ROLES
from po_workflow.db.base import utcnow
from po_workflow.logging_config import get_logger
from po_workflow.models.notification import DeviceToken, Notification
from po_workflow.models.purchase_order import PurchaseOrder
from po_workflow.services.push_gateway import PushGateway, PushMessage
from po_workflow.services.user_directory import UserDirectory

logger = get_logger(__name__)

DEFAULT_BATCH_SIZE = 500

TYPE_CREATED = "po_created"
TYPE_STATUS_CHANGED = "po_status_changed"
TYPE_APPROVED = "po_approved"
TYPE_REJECTED = "po_rejected"
TYPE_COMPLETED = "po_completed"

# resulting status -> (type, title template, body template); None body keeps the default
STATUS_MESSAGES: Dict[PurchaseOrderStatus, Tuple[str, str, Optional[str]]] = {
    PurchaseOrderStatus.UNDER_ASSISTANT_REVIEW: (
        TYPE_STATUS_CHANGED, "Purchase order {number} sent to the assistant manager for review", None,
    ),
    PurchaseOrderStatus.UNDER_MANAGER_REVIEW: (
        TYPE_STATUS_CHANGED, "Purchase order {number} sent to the manager for review", None,
    ),
    PurchaseOrderStatus.UNDER_FINANCE_REVIEW: (
        TYPE_STATUS_CHANGED, "Purchase order {number} sent to finance for review", None,
    ),
    PurchaseOrderStatus.UNDER_GENERAL_MANAGER_REVIEW: (
        TYPE_STATUS_CHANGED, "Purchase order {number} sent to the general manager for review", None,
    ),
    PurchaseOrderStatus.IN_PROGRESS: (
        TYPE_APPROVED, "Purchase order {number} approved", "Execution has started",
    ),
    PurchaseOrderStatus.REJECTED_BY_ASSISTANT: (
        TYPE_REJECTED, "Purchase order {number} rejected by the assistant manager", "",
    ),
    PurchaseOrderStatus.REJECTED_BY_MANAGER: (
        TYPE_REJECTED, "Purchase order {number} rejected by the manager", "",
    ),
    PurchaseOrderStatus.REJECTED_BY_FINANCE: (
        TYPE_REJECTED, "Purchase order {number} rejected by finance", "",
    ),
    PurchaseOrderStatus.REJECTED_BY_GENERAL_MANAGER: (
        TYPE_REJECTED, "Purchase order {number} rejected by the general manager", "",
    ),
    PurchaseOrderStatus.COMPLETED: (
        TYPE_COMPLETED, "Purchase order {number} completed", "",
    ),
}

GENERIC_TITLE = "Purchase order {number} status changed"
GENERIC_BODY = "{previous} -> {next}"


def _status_value(status: Any) -> str:
    return getattr(status, "value", status)


def status_message(number: str, previous: Any, next_status: Any) -> Tuple[str, str, str]:
    """(type, title, body) for a status change; unmapped statuses get the generic message."""
    previous, next_status = _status_value(previous), _status_value(next_status)
    default_body = GENERIC_BODY.format(previous=previous, next=next_status)
    try:
        mapped = STATUS_MESSAGES.get(PurchaseOrderStatus(next_status))
    except ValueError:
        mapped = None
    if mapped is None:
        return TYPE_STATUS_CHANGED, GENERIC_TITLE.format(number=number), default_body
    message_type, title, body = mapped
    return message_type, title.format(number=number), default_body if body is None else body


def build_notification_data(po: PurchaseOrder) -> Dict[str, str]:
    """Push data payload for a PO; every value is a string."""
    def _s(value: Any) -> str:
        return "" if value is None else str(_status_value(value))

    return {
        "id": _s(po.id),
        "number": _s(po.number),
        "status": _s(po.status),
        "department": _s(po.department),
        "requester_name": _s(po.requester_name),
        "request_type": _s(po.request_type),
        "total_amount": _s(po.total_amount),
        "currency": _s(po.currency),
    }


def chunked(values: Sequence[str], size: int) -> List[List[str]]:
    return [list(values[i:i + size]) for i in range(0, len(values), size)]


class NotificationOrchestrator:
    """
    Persists and pushes purchase order notifications.

    Commits its own work: it runs after the workflow transaction has already
    committed.
    """

    def __init__(
        self,
        db: Session,
        directory: UserDirectory,
        gateway: PushGateway,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        self.db = db
        self.directory = directory
        self.gateway = gateway
        self.batch_size = max(1, min(batch_size, DEFAULT_BATCH_SIZE))

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on_created(self, po: PurchaseOrder) -> List[Notification]:
        """Notify every active assistant manager and manager of a new PO."""
        recipients = self.directory.find_ids_by_roles([role.value for role in REVIEWER_ROLES])
        return self.send_and_persist(
            recipients,
            message_type=TYPE_CREATED,
            title=f"New purchase order {po.number}",
            body=f"{po.requester_name} ({po.department})",
            po=po,
        )

    def on_status_changed(self, po: PurchaseOrder, previous_status: Any, next_status: Any) -> List[Notification]:
        """Notify the PO creator of a status change."""
        message_type, title, body = status_message(po.number, previous_status, next_status)
        return self.send_and_persist(
            [po.created_by],
            message_type=message_type,
            title=title,
            body=body,
            po=po,
            extra_data={"previous_status": _status_value(previous_status)},
        )

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def send_and_persist(
        self,
        user_ids: Iterable[str],
        *,
        message_type: str,
        title: str,
        body: Optional[str],
        po: PurchaseOrder,
        extra_data: Optional[Dict[str, str]] = None,
    ) -> List[Notification]:
        user_ids = list(dict.fromkeys(uid for uid in user_ids if uid))
        if not user_ids:
            logger.info(f"No recipients for {message_type} on {po.number}")
            return []

        data = build_notification_data(po)
        stored_data = dict(data, **(extra_data or {}))

        rows = [
            Notification(
                user_id=uid,
                type=message_type,
                title=title,
                body=body or None,
                data=stored_data,
            )
            for uid in user_ids
        ]
        self.db.add_all(rows)
        self.db.commit()
        logger.info(
            f"Stored {len(rows)} {message_type} notification(s) for {po.number}",
            extra={"purchase_order": po.number, "notification_type": message_type},
        )

        self.push(user_ids, PushMessage(title=title, body=body or None, data=dict(data, type=message_type)))
        return rows

    def push(self, user_ids: Sequence[str], message: PushMessage) -> int:
        """
        Push to all devices of the users. Returns the number of delivered pushes.

        Gateway errors are logged per batch and never raised.
        """
        tokens = tokens_for_users(self.db, user_ids)
        if not tokens:
            return 0

        delivered = 0
        for batch in chunked(tokens, self.batch_size):
            try:
                results = self.gateway.send_multicast(batch, message)
            except Exception as e:
                logger.error(
                    f"Push batch failed on {self.gateway.name}: {e}",
                    extra={"token_count": len(batch)},
                )
                continue

            delivered += sum(1 for r in results if r.success)
            invalid = [r.token for r in results if r.token_invalid]
            for r in results:
                if not r.success and not r.token_invalid:
                    logger.warning(f"Push to a device failed: {r.error_code} {r.error_message}")
            if invalid:
                self.prune_tokens(invalid)
        return delivered

    def prune_tokens(self, tokens: Sequence[str]) -> int:
        """Delete tokens the gateway rejected; failures are logged and swallowed."""
        try:
            removed = (
                self.db.query(DeviceToken)
                .filter(DeviceToken.token.in_(list(tokens)))
                .delete(synchronize_session=False)
            )
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Failed to prune {len(tokens)} invalid device token(s): {e}")
            return 0
        logger.info(f"Pruned {removed} invalid device token(s)")
        return removed


# =============================================================================
# Device tokens
# =============================================================================

def tokens_for_users(db: Session, user_ids: Sequence[str]) -> List[str]:
    """Distinct device tokens of the users, in registration order."""
    if not user_ids:
        return []
    rows = (
        db.query(DeviceToken.token)
        .filter(DeviceToken.user_id.in_(list(user_ids)))
        .order_by(DeviceToken.id)
        .all()
    )
    return list(dict.fromkeys(row.token for row in rows))


def upsert_device_token(
    db: Session,
    user_id: str,
    token: str,
    device_info: Optional[str] = None,
) -> DeviceToken:
    """Register a device token, or refresh it if the user already has it."""
    now = utcnow()
    existing = (
        db.query(DeviceToken)
        .filter(DeviceToken.user_id == user_id, DeviceToken.token == token)
        .first()
    )
    if existing:
        existing.device_info = device_info
        existing.last_used_at = now
        db.flush()
        return existing

    row = DeviceToken(user_id=user_id, token=token, device_info=device_info, last_used_at=now)
    db.add(row)
    db.flush()
    return row


def remove_device_token(db: Session, user_id: str, token: str) -> bool:
    removed = (
        db.query(DeviceToken)
        .filter(DeviceToken.user_id == user_id, DeviceToken.token == token)
        .delete(synchronize_session=False)
    )
    return removed > 0


# =============================================================================
# Inbox
# =============================================================================

def list_notifications(
    db: Session,
    user_id: str,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> List[Notification]:
    """A user's notifications, newest first."""
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return (
        query.order_by(Notification.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def mark_read(db: Session, user_id: str, notification_id: str) -> bool:
    updated = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    return updated > 0


def mark_all_read(db: Session, user_id: str) -> int:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
        .update({Notification.is_read: True}, synchronize_session=False)
    )


def remove(db: Session, user_id: str, notification_id: str) -> bool:
    deleted = (
        db.query(Notification)
        .filter(Notification.id == notification_id, Notification.user_id == user_id)
        .delete(synchronize_session=False)
    )
    return deleted > 0


def remove_all(db: Session, user_id: str) -> int:
    return (
        db.query(Notification)
        .filter(Notification.user_id == user_id)
        .delete(synchronize_session=False)
    )
