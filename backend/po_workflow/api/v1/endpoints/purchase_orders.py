"""
Purchase Orders API Endpoints

Thin HTTP layer over PurchaseOrderWorkflow. Caller identity comes from the
X-User-Id / X-User-Role headers; workflow errors are turned into JSON by the
exception handlers in main.py.
"""
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile

from po_workflow.api.deps import get_caller, get_workflow
from po_workflow.core.status_config import WorkflowOperation
from po_workflow.exceptions import ValidationError
from po_workflow.logging_config import get_logger
from po_workflow.models.purchase_order import PurchaseOrder
from po_workflow.schemas.purchasing import (
    AttachmentResponse,
    ProcurementUpdateRequest,
    PurchaseOrderCreate,
    PurchaseOrderListResponse,
    PurchaseOrderNoteCreate,
    PurchaseOrderNoteResponse,
    PurchaseOrderResponse,
    PurchaseOrderUpdate,
    RejectRequest,
    WorkflowHistoryEntry,
    WorkflowNoteRequest,
)
from po_workflow.services.purchase_order_workflow import Caller, PurchaseOrderWorkflow

router = APIRouter()
logger = get_logger(__name__)


def _to_response(po: PurchaseOrder, workflow: PurchaseOrderWorkflow, caller: Caller) -> PurchaseOrderResponse:
    response = PurchaseOrderResponse.model_validate(po)
    response.attachment_urls = [a.url for a in workflow.attachments_visible_to(po, caller)]
    response.allowed_operations = workflow.allowed_operations(po, caller)
    return response


def _note(body: Optional[WorkflowNoteRequest]) -> Optional[str]:
    return body.note if body else None


def _reason(body: Optional[RejectRequest]) -> Optional[str]:
    return body.reason if body else None


# ============================================================================
# Reads
# ============================================================================

@router.get("/", response_model=List[PurchaseOrderListResponse])
def list_purchase_orders(
    status: Optional[str] = Query(None, description="Filter by status"),
    supplier_id: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None, description="Request date from"),
    end_date: Optional[date] = Query(None, description="Request date to"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    """List purchase orders newest first (employees see only their own)"""
    return workflow.list_purchase_orders(
        caller,
        status=status,
        supplier_id=supplier_id,
        department=department,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
        offset=offset,
    )


@router.get("/pending/assistant-review", response_model=List[PurchaseOrderListResponse])
def list_pending_assistant_review(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return workflow.list_pending_assistant_review(caller, limit=limit, offset=offset)


@router.get("/pending/manager-review", response_model=List[PurchaseOrderListResponse])
def list_pending_manager_review(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return workflow.list_pending_manager_review(caller, limit=limit, offset=offset)


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
def get_purchase_order(
    po_id: str,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.get(po_id, caller), workflow, caller)


@router.get("/{po_id}/history", response_model=List[WorkflowHistoryEntry])
def get_workflow_history(
    po_id: str,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    """Audit-derived timeline, oldest first"""
    return workflow.workflow_history(po_id, caller)


@router.get("/{po_id}/attachments", response_model=List[AttachmentResponse])
def list_visible_attachments(
    po_id: str,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    """Attachments the caller's role may see"""
    return workflow.visible_attachments(po_id, caller)


# ============================================================================
# Create / Update
# ============================================================================

@router.post("/", response_model=PurchaseOrderResponse, status_code=201)
def create_purchase_order(
    request: PurchaseOrderCreate,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    data = request.model_dump(exclude={"save_as_draft"})
    po = workflow.create(caller, data, save_as_draft=request.save_as_draft)
    return _to_response(po, workflow, caller)


@router.put("/{po_id}", response_model=PurchaseOrderResponse)
def update_purchase_order(
    po_id: str,
    request: PurchaseOrderUpdate,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    """Update core fields; items replace all items, attachment_urls replace the caller's own attachments"""
    po = workflow.update(po_id, caller, request.model_dump(exclude_unset=True))
    return _to_response(po, workflow, caller)


@router.post("/{po_id}/attachments", response_model=PurchaseOrderResponse)
async def upload_attachments(
    po_id: str,
    files: List[UploadFile] = File(...),
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    payload = [(f.filename or "attachment", await f.read()) for f in files]
    po = workflow.upload_attachments(po_id, caller, payload)
    return _to_response(po, workflow, caller)


# ============================================================================
# Reviewer Notes
# ============================================================================

@router.get("/{po_id}/notes", response_model=List[PurchaseOrderNoteResponse])
def list_notes(
    po_id: str,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    """Reviewer notes, oldest first"""
    return workflow.list_notes(po_id, caller)


@router.post("/{po_id}/notes", response_model=PurchaseOrderNoteResponse, status_code=201)
def add_note(
    po_id: str,
    request: PurchaseOrderNoteCreate,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return workflow.add_note(po_id, caller, request.note)


# ============================================================================
# Workflow Transitions
# ============================================================================

@router.post("/{po_id}/submit", response_model=PurchaseOrderResponse)
def submit_purchase_order(
    po_id: str,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.submit(po_id, caller), workflow, caller)


@router.post("/{po_id}/assistant-approve", response_model=PurchaseOrderResponse)
def assistant_approve(
    po_id: str,
    body: Optional[WorkflowNoteRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.assistant_approve(po_id, caller, _note(body)), workflow, caller)


@router.post("/{po_id}/assistant-reject", response_model=PurchaseOrderResponse)
def assistant_reject(
    po_id: str,
    body: Optional[RejectRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.assistant_reject(po_id, caller, _reason(body)), workflow, caller)


@router.post("/{po_id}/manager-approve", response_model=PurchaseOrderResponse)
def manager_approve(
    po_id: str,
    body: Optional[WorkflowNoteRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.manager_approve(po_id, caller, _note(body)), workflow, caller)


@router.post("/{po_id}/manager-reject", response_model=PurchaseOrderResponse)
def manager_reject(
    po_id: str,
    body: Optional[RejectRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.manager_reject(po_id, caller, _reason(body)), workflow, caller)


# Routing by the manager: finance, general-manager, procurement
_ROUTES = {
    "finance": WorkflowOperation.ROUTE_TO_FINANCE,
    "general-manager": WorkflowOperation.ROUTE_TO_GENERAL_MANAGER,
    "procurement": WorkflowOperation.ROUTE_TO_PROCUREMENT,
}


@router.post("/{po_id}/route/{target}", response_model=PurchaseOrderResponse)
def route_purchase_order(
    po_id: str,
    target: str,
    body: Optional[WorkflowNoteRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    """Route a PO under manager review to finance, general-manager or procurement"""
    operation = _ROUTES.get(target)
    if operation is None:
        raise ValidationError(
            f"Unknown routing target '{target}'. Use one of: {', '.join(_ROUTES)}",
            field="target",
            value=target,
        )
    return _to_response(workflow.perform(operation, po_id, caller, _note(body)), workflow, caller)


@router.post("/{po_id}/finance-approve", response_model=PurchaseOrderResponse)
def finance_approve(
    po_id: str,
    body: Optional[WorkflowNoteRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.finance_approve(po_id, caller, _note(body)), workflow, caller)


@router.post("/{po_id}/finance-reject", response_model=PurchaseOrderResponse)
def finance_reject(
    po_id: str,
    body: Optional[RejectRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.finance_reject(po_id, caller, _reason(body)), workflow, caller)


@router.post("/{po_id}/general-manager-approve", response_model=PurchaseOrderResponse)
def general_manager_approve(
    po_id: str,
    body: Optional[WorkflowNoteRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.general_manager_approve(po_id, caller, _note(body)), workflow, caller)


@router.post("/{po_id}/general-manager-reject", response_model=PurchaseOrderResponse)
def general_manager_reject(
    po_id: str,
    body: Optional[RejectRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.general_manager_reject(po_id, caller, _reason(body)), workflow, caller)


@router.post("/{po_id}/procurement-update", response_model=PurchaseOrderResponse)
def procurement_update(
    po_id: str,
    request: ProcurementUpdateRequest,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    """Record received quantities/prices; totals are recomputed from received quantities"""
    po = workflow.procurement_update(po_id, caller, request.model_dump(exclude_unset=True))
    return _to_response(po, workflow, caller)


@router.post("/{po_id}/return-to-manager", response_model=PurchaseOrderResponse)
def return_to_manager(
    po_id: str,
    body: Optional[WorkflowNoteRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.return_to_manager(po_id, caller, _note(body)), workflow, caller)


@router.post("/{po_id}/manager-final-approve", response_model=PurchaseOrderResponse)
def manager_final_approve(
    po_id: str,
    body: Optional[WorkflowNoteRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.manager_final_approve(po_id, caller, _note(body)), workflow, caller)


@router.post("/{po_id}/manager-final-reject", response_model=PurchaseOrderResponse)
def manager_final_reject(
    po_id: str,
    body: Optional[RejectRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.manager_final_reject(po_id, caller, _reason(body)), workflow, caller)


@router.post("/{po_id}/complete", response_model=PurchaseOrderResponse)
def complete_purchase_order(
    po_id: str,
    body: Optional[WorkflowNoteRequest] = None,
    caller: Caller = Depends(get_caller),
    workflow: PurchaseOrderWorkflow = Depends(get_workflow),
):
    return _to_response(workflow.complete(po_id, caller, _note(body)), workflow, caller)
