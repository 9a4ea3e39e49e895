"""Database models"""
from po_workflow.models.user import User
from po_workflow.models.purchase_order import (
    PurchaseOrder,
    PurchaseOrderItem,
    PurchaseOrderAttachment,
    PurchaseOrderNote,
    PurchaseOrderSequence,
)
from po_workflow.models.audit_log import AuditLog
from po_workflow.models.notification import Notification, DeviceToken

__all__ = [
    # Users
    "User",
    # Purchasing
    "PurchaseOrder",
    "PurchaseOrderItem",
    "PurchaseOrderAttachment",
    "PurchaseOrderNote",
    "PurchaseOrderSequence",
    # Audit
    "AuditLog",
    # Notifications
    "Notification",
    "DeviceToken",
]
