"""
Notification Inbox API Endpoints

The caller's own notifications and push device tokens.
"""
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from po_workflow.api.deps import get_caller
from po_workflow.db.session import get_db
from po_workflow.exceptions import NotFoundError
from po_workflow.logging_config import get_logger
from po_workflow.schemas.notification import (
    CountResponse,
    DeviceTokenRequest,
    DeviceTokenResponse,
    NotificationResponse,
)
from po_workflow.services import notification_orchestrator as inbox
from po_workflow.services.purchase_order_workflow import Caller

router = APIRouter()
logger = get_logger(__name__)


# ============================================================================
# Device tokens (must precede the /{notification_id} routes)
# ============================================================================

@router.post("/device-tokens", response_model=DeviceTokenResponse)
def register_device_token(
    request: DeviceTokenRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Register (or refresh) a push token for the caller's device"""
    token = inbox.upsert_device_token(db, caller.user_id, request.token, request.device_info)
    db.commit()
    db.refresh(token)
    logger.info("Registered device token", extra={"user_id": caller.user_id})
    return token


@router.delete("/device-tokens", response_model=CountResponse)
def remove_device_token(
    request: DeviceTokenRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    removed = inbox.remove_device_token(db, caller.user_id, request.token)
    db.commit()
    return CountResponse(count=1 if removed else 0)


# ============================================================================
# Inbox
# ============================================================================

@router.get("/", response_model=List[NotificationResponse])
def list_my_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """List the caller's notifications, newest first"""
    return inbox.list_notifications(db, caller.user_id, unread_only=unread_only, limit=limit, offset=offset)


@router.patch("/read-all", response_model=CountResponse)
def mark_all_notifications_read(
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    count = inbox.mark_all_read(db, caller.user_id)
    db.commit()
    return CountResponse(count=count)


@router.patch("/{notification_id}/read", response_model=CountResponse)
def mark_notification_read(
    notification_id: str,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    if not inbox.mark_read(db, caller.user_id, notification_id):
        raise NotFoundError("Notification", notification_id)
    db.commit()
    return CountResponse(count=1)


@router.delete("/{notification_id}", response_model=CountResponse)
def delete_notification(
    notification_id: str,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    if not inbox.remove(db, caller.user_id, notification_id):
        raise NotFoundError("Notification", notification_id)
    db.commit()
    return CountResponse(count=1)


@router.delete("/", response_model=CountResponse)
def delete_all_notifications(
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    count = inbox.remove_all(db, caller.user_id)
    db.commit()
    return CountResponse(count=count)


