"""
Audit Log API Endpoints
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from po_workflow.api.deps import get_caller
from po_workflow.core.status_config import UserRole
from po_workflow.db.session import get_db
from po_workflow.exceptions import PermissionDeniedError
from po_workflow.schemas.audit import (
    AuditBulkDeleteRequest,
    AuditBulkDeleteResponse,
    AuditLogResponse,
)
from po_workflow.services import audit_service
from po_workflow.services.purchase_order_workflow import Caller

router = APIRouter()

AUDIT_READER_ROLES = (
    UserRole.AUDITOR,
    UserRole.MANAGER,
    UserRole.ASSISTANT_MANAGER,
    UserRole.GENERAL_MANAGER,
    UserRole.FINANCE_MANAGER,
)
AUDIT_ADMIN_ROLES = (UserRole.GENERAL_MANAGER,)


def _require_role(caller: Caller, roles, action: str) -> None:
    if caller.role not in roles:
        raise PermissionDeniedError(
            f"Role '{caller.role.value}' cannot {action}",
            action=action,
            role=caller.role.value,
            allowed_roles=[r.value for r in roles],
        )


@router.get("/", response_model=List[AuditLogResponse])
def list_audit_logs(
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None, description="PO number for purchase orders"),
    actor_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """List audit entries, newest first"""
    _require_role(caller, AUDIT_READER_ROLES, "read audit logs")
    return audit_service.list_by_filter(
        db,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        action=action,
        limit=limit,
        offset=offset,
    )


@router.post("/bulk-delete", response_model=AuditBulkDeleteResponse)
def bulk_delete_audit_logs(
    request: AuditBulkDeleteRequest,
    caller: Caller = Depends(get_caller),
    db: Session = Depends(get_db),
):
    """Administrative: delete matching entries in one transaction"""
    _require_role(caller, AUDIT_ADMIN_ROLES, "delete audit logs")
    deleted = audit_service.bulk_delete(
        db,
        ids=request.ids,
        entity_type=request.entity_type,
        entity_id=request.entity_id,
        actor_id=request.actor_id,
    )
    return AuditBulkDeleteResponse(deleted=deleted)
