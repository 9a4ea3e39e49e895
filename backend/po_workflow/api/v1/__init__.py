"""
API v1 Router
"""
from fastapi import APIRouter

from po_workflow.api.v1.endpoints import audit, notifications, purchase_orders

router = APIRouter()

# Purchase Orders (workflow)
router.include_router(
    purchase_orders.router,
    prefix="/purchase-orders",
    tags=["purchase-orders"]
)

# Notification inbox and device tokens
router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["notifications"]
)

# Audit trail
router.include_router(
    audit.router,
    prefix="/audit-logs",
    tags=["audit"]
)
