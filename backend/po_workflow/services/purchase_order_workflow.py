"""
Purchase Order Workflow Engine

The purchase order state machine. Every mutating operation follows the same
sequence:

1. Load the PO and check the guard (current status, caller role, ownership)
   before anything is written
2. Write through the persistence layer (conditional status update)
3. Record one audit entry
4. Commit, or roll back everything on any failure
5. Notify (best-effort: failures are logged, never raised)

Legal transitions come from core/status_config.py. Collaborators (user
directory, notification orchestrator, object storage) are passed in by the
composition root.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from po_workflow.core.status_config import (
    ADD_NOTE_ACTION,
    AUDIT_ACTIONS,
    CREATE_ACTION,
    EDITABLE_STATUSES,
    ENTITY_TYPE,
    OWNER_SCOPED_ROLES,
    REJECT_OPERATIONS,
    TERMINAL_STATUSES,
    UPDATE_ACTION,
    UPLOAD_ATTACHMENTS_ACTION,
    Currency,
    PurchaseOrderStatus,
    RequestType,
    UserRole,
    WorkflowOperation,
    allowed_roles_for,
    allowed_statuses_for,
    can_add_note,
    can_read_notes,
    get_allowed_operations,
    initial_status_for,
    resolve_transition,
)
from po_workflow.db.base import utcnow
from po_workflow.exceptions import (
    IntegrationError,
    NotFoundError,
    PermissionDeniedError,
    StateConflictError,
    ValidationError,
)
from po_workflow.logging_config import get_logger
from po_workflow.models.audit_log import AuditLog
from po_workflow.models.purchase_order import PurchaseOrder, PurchaseOrderNote
from po_workflow.services import audit_service
from po_workflow.services import purchase_order_repository as repo
from po_workflow.services.attachment_visibility import (
    AttachmentRef,
    attachment_refs,
    filter_visible_attachments,
)
from po_workflow.services.notification_orchestrator import NotificationOrchestrator
from po_workflow.services.object_storage import ObjectStorage, StoredObject, attachment_path
from po_workflow.services.sequence_service import next_po_number
from po_workflow.services.user_directory import UserDirectory

logger = get_logger(__name__)

REQUIRED_CREATE_FIELDS = ("request_date", "department", "request_type", "requester_name")


@dataclass(frozen=True)
class Caller:
    """Verified identity of whoever invokes an operation."""
    user_id: str
    role: UserRole

    @classmethod
    def of(cls, user_id: str, role: Any) -> "Caller":
        if not user_id:
            raise ValidationError("Caller ID is required", field="user_id")
        try:
            return cls(user_id=str(user_id), role=UserRole(role))
        except ValueError:
            raise ValidationError(f"Unknown role '{role}'", field="role", value=role)

    @property
    def owner_scoped(self) -> bool:
        return self.role in OWNER_SCOPED_ROLES


@dataclass
class HistoryEntry:
    """One step of a purchase order timeline."""
    id: int
    action: str
    actor_id: str
    actor_name: Optional[str]
    from_status: Optional[str]
    to_status: Optional[str]
    details: Dict[str, Any]
    created_at: datetime


@dataclass
class NoteEntry:
    """A reviewer note with its author's display name."""
    id: int
    purchase_order_id: str
    user_id: str
    user_name: Optional[str]
    note: str
    created_at: datetime


def note_block(operation: WorkflowOperation, text: Optional[str]) -> Optional[str]:
    """Text appended to a PO's notes for an operation, or None."""
    if not text or not text.strip():
        return None
    if operation in REJECT_OPERATIONS:
        return f"Rejection reason: {text.strip()}"
    return f"Note: {text.strip()}"


def _coerce_date(value: Any, field: str) -> Optional[date]:
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Invalid date for {field}", field=field, value=value)


def _enum_value(enum_cls, value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    try:
        return enum_cls(value).value
    except ValueError:
        allowed = ", ".join(e.value for e in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}", field=field, value=value)


def _po_ref(po: PurchaseOrder) -> Dict[str, Any]:
    return {"id": po.id, "number": po.number, "status": po.status}


class PurchaseOrderWorkflow:
    """
    Purchase order lifecycle operations.

    Usage:
        workflow = PurchaseOrderWorkflow(db, directory, orchestrator, storage)
        po = workflow.create(caller, {...})
        po = workflow.assistant_approve(po.id, reviewer)
    """

    def __init__(
        self,
        db: Session,
        directory: UserDirectory,
        orchestrator: Optional[NotificationOrchestrator] = None,
        storage: Optional[ObjectStorage] = None,
        attachment_folder: str = "purchase_orders",
    ):
        self.db = db
        self.directory = directory
        self.orchestrator = orchestrator
        self.storage = storage
        self.attachment_folder = attachment_folder

    # ==================================================================
    # Reads
    # ==================================================================

    def get(self, po_id: str, caller: Caller) -> PurchaseOrder:
        """Load a PO; employees and guests only see their own."""
        owner_id = caller.user_id if caller.owner_scoped else None
        po = repo.get_by_id(self.db, po_id, owner_id=owner_id)
        if not po:
            raise NotFoundError("Purchase order", po_id)
        return po

    def list_purchase_orders(
        self,
        caller: Caller,
        status: Optional[str] = None,
        supplier_id: Optional[str] = None,
        department: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[PurchaseOrder]:
        return repo.list_purchase_orders(
            self.db,
            owner_id=caller.user_id if caller.owner_scoped else None,
            status=_enum_value(PurchaseOrderStatus, status, "status"),
            supplier_id=supplier_id,
            department=department,
            start_date=_coerce_date(start_date, "start_date"),
            end_date=_coerce_date(end_date, "end_date"),
            limit=limit,
            offset=offset,
        )

    def _list_pending(
        self,
        caller: Caller,
        operation: WorkflowOperation,
        status: PurchaseOrderStatus,
        limit: int,
        offset: int,
    ) -> List[PurchaseOrder]:
        roles = allowed_roles_for(operation, status)
        if caller.role.value not in roles:
            raise PermissionDeniedError(
                f"Role '{caller.role.value}' cannot review purchase orders in status '{status.value}'",
                action=f"list_{status.value}",
                role=caller.role.value,
                allowed_roles=roles,
            )
        return repo.list_purchase_orders(self.db, status=status.value, limit=limit, offset=offset)

    def list_pending_assistant_review(self, caller: Caller, limit: int = 50, offset: int = 0) -> List[PurchaseOrder]:
        return self._list_pending(
            caller, WorkflowOperation.ASSISTANT_APPROVE, PurchaseOrderStatus.UNDER_ASSISTANT_REVIEW,
            limit, offset,
        )

    def list_pending_manager_review(self, caller: Caller, limit: int = 50, offset: int = 0) -> List[PurchaseOrder]:
        return self._list_pending(
            caller, WorkflowOperation.MANAGER_APPROVE, PurchaseOrderStatus.UNDER_MANAGER_REVIEW,
            limit, offset,
        )

    def allowed_operations(self, po: PurchaseOrder, caller: Caller) -> List[str]:
        """Operations the caller could invoke on the PO right now."""
        if caller.owner_scoped and po.created_by != caller.user_id:
            return []
        return get_allowed_operations(PurchaseOrderStatus(po.status), caller.role)

    def workflow_history(self, po_id: str, caller: Caller) -> List[HistoryEntry]:
        """
        Timeline of a PO rebuilt from its audit entries, oldest first.

        Reviewer note entries are left out for callers who may not read notes.
        """
        po = self.get(po_id, caller)
        entries = audit_service.workflow_history(self.db, ENTITY_TYPE, po.number)
        if not can_read_notes(caller.role, PurchaseOrderStatus(po.status)):
            entries = [e for e in entries if e.action != ADD_NOTE_ACTION]

        names: Dict[str, Optional[str]] = {}
        history = []
        for entry in entries:
            details = entry.details or {}
            history.append(HistoryEntry(
                id=entry.id,
                action=entry.action,
                actor_id=entry.actor_id,
                actor_name=self._user_name(entry.actor_id, names),
                from_status=details.get("from_status"),
                to_status=details.get("to_status"),
                details=details,
                created_at=entry.created_at,
            ))
        return history

    def visible_attachments(self, po_id: str, caller: Caller) -> List[AttachmentRef]:
        return self.attachments_visible_to(self.get(po_id, caller), caller)

    def attachments_visible_to(self, po: PurchaseOrder, caller: Caller) -> List[AttachmentRef]:
        """Attachments of an already loaded PO that the caller may see."""
        routed_at = None
        if caller.role == UserRole.PROCUREMENT_OFFICER:
            routed: Optional[AuditLog] = audit_service.last_entry(
                self.db,
                ENTITY_TYPE,
                po.number,
                AUDIT_ACTIONS[WorkflowOperation.ROUTE_TO_PROCUREMENT],
            )
            routed_at = routed.created_at if routed else None
        return filter_visible_attachments(
            attachment_refs(po.attachments),
            caller.role,
            caller.user_id,
            procurement_routed_at=routed_at,
        )

    # ==================================================================
    # Create / update
    # ==================================================================

    def create(self, caller: Caller, data: Dict[str, Any], save_as_draft: bool = False) -> PurchaseOrder:
        """
        Create a purchase order with its items.

        The initial status depends on the creator's role unless the PO is
        saved as a draft. Drafts notify nobody until submitted.
        """
        fields = self._clean_fields(data, required=REQUIRED_CREATE_FIELDS)
        items = list(data.get("items") or [])
        status = (
            PurchaseOrderStatus.DRAFT if save_as_draft else initial_status_for(caller.role)
        )

        try:
            number = next_po_number(self.db)
            po = repo.insert(
                self.db,
                number=number,
                status=status.value,
                created_by=caller.user_id,
                fields=fields,
                items=items,
            )
            urls = data.get("attachment_urls") or []
            if urls:
                repo.add_attachments(self.db, po, self._attachments_from_urls(urls, caller))
            audit_service.record(
                self.db,
                caller.user_id,
                CREATE_ACTION,
                ENTITY_TYPE,
                po.number,
                {
                    "purchase_order": _po_ref(po),
                    "from_status": None,
                    "to_status": status.value,
                    "items_count": len(po.items),
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        po = repo.get_by_id(self.db, po.id, refresh=True)
        logger.info(
            f"Created purchase order {po.number} in {po.status}",
            extra={"purchase_order": po.number, "actor_id": caller.user_id, "to_status": po.status},
        )
        if status != PurchaseOrderStatus.DRAFT:
            self._notify(self._orchestrator_call("on_created"), po)
        return po

    def update(self, po_id: str, caller: Caller, data: Dict[str, Any]) -> PurchaseOrder:
        """
        Update core fields (and optionally replace all items).

        Only while the PO is in an editable status; employees and guests only
        on their own POs.
        """
        po = self._load(po_id)
        self._check_owner(po, caller, "update")
        current = PurchaseOrderStatus(po.status)
        if current not in EDITABLE_STATUSES:
            raise StateConflictError(
                f"Purchase order in status '{current.value}' cannot be updated",
                operation="update",
                current_status=current.value,
                allowed_statuses=sorted(s.value for s in EDITABLE_STATUSES),
            )

        fields = self._clean_fields(data)
        items = data.get("items")
        try:
            updated = repo.update_draft(
                self.db,
                po.id,
                current.value,
                fields,
                items=list(items) if items is not None else None,
                operation="update",
            )
            if data.get("attachment_urls") is not None:
                self._replace_own_attachments(updated, caller, data["attachment_urls"])
            audit_service.record(
                self.db,
                caller.user_id,
                UPDATE_ACTION,
                ENTITY_TYPE,
                updated.number,
                {
                    "purchase_order": _po_ref(updated),
                    "updated_fields": sorted(fields),
                    "items_count": len(updated.items),
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Updated purchase order {po.number}", extra={"purchase_order": po.number})
        return repo.get_by_id(self.db, po.id, refresh=True)

    # ==================================================================
    # Transitions
    # ==================================================================

    def submit(self, po_id: str, caller: Caller) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.SUBMIT, owner_check=True)

    def assistant_approve(self, po_id: str, caller: Caller, note: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.ASSISTANT_APPROVE, text=note)

    def assistant_reject(self, po_id: str, caller: Caller, reason: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.ASSISTANT_REJECT, text=reason)

    def manager_approve(self, po_id: str, caller: Caller, note: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.MANAGER_APPROVE, text=note)

    def manager_reject(self, po_id: str, caller: Caller, reason: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.MANAGER_REJECT, text=reason)

    def route_to_finance(self, po_id: str, caller: Caller, note: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.ROUTE_TO_FINANCE, text=note)

    def route_to_general_manager(self, po_id: str, caller: Caller, note: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.ROUTE_TO_GENERAL_MANAGER, text=note)

    def route_to_procurement(self, po_id: str, caller: Caller, note: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.ROUTE_TO_PROCUREMENT, text=note)

    def finance_approve(self, po_id: str, caller: Caller, note: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.FINANCE_APPROVE, text=note)

    def finance_reject(self, po_id: str, caller: Caller, reason: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.FINANCE_REJECT, text=reason)

    def general_manager_approve(self, po_id: str, caller: Caller, note: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.GENERAL_MANAGER_APPROVE, text=note)

    def general_manager_reject(self, po_id: str, caller: Caller, reason: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.GENERAL_MANAGER_REJECT, text=reason)

    def return_to_manager(self, po_id: str, caller: Caller, note: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.RETURN_TO_MANAGER, text=note)

    def manager_final_approve(self, po_id: str, caller: Caller, note: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.MANAGER_FINAL_APPROVE, text=note)

    def manager_final_reject(self, po_id: str, caller: Caller, reason: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.MANAGER_FINAL_REJECT, text=reason)

    def complete(self, po_id: str, caller: Caller, note: Optional[str] = None) -> PurchaseOrder:
        return self._transition(po_id, caller, WorkflowOperation.COMPLETE, text=note)

    def perform(
        self,
        operation: WorkflowOperation,
        po_id: str,
        caller: Caller,
        text: Optional[str] = None,
    ) -> PurchaseOrder:
        """Run a status-only operation by name (everything except procurement_update)."""
        operation = WorkflowOperation(operation)
        if operation == WorkflowOperation.PROCUREMENT_UPDATE:
            raise ValidationError("procurement_update takes a payload, call procurement_update()")
        return self._transition(
            po_id, caller, operation,
            text=text, owner_check=operation == WorkflowOperation.SUBMIT,
        )

    def procurement_update(self, po_id: str, caller: Caller, data: Dict[str, Any]) -> PurchaseOrder:
        """
        Procurement records what was actually bought.

        Items (with received quantities) replace the existing ones and line
        totals are recomputed from price x received_quantity. From
        pending_procurement the PO goes back to manager review; from
        in_progress the status is unchanged.
        """
        operation = WorkflowOperation.PROCUREMENT_UPDATE
        po = self._load(po_id)
        previous = PurchaseOrderStatus(po.status)
        target = self._guard(po, operation, caller)

        fields: Dict[str, Any] = {}
        if data.get("supplier_id") is not None:
            fields["supplier_id"] = data["supplier_id"]
        if data.get("execution_date") is not None:
            fields["execution_date"] = _coerce_date(data["execution_date"], "execution_date")
        if data.get("currency") is not None:
            fields["currency"] = _enum_value(Currency, data["currency"], "currency")
        items = data.get("items")

        def write() -> PurchaseOrder:
            return repo.update_draft(
                self.db,
                po.id,
                previous.value,
                fields,
                items=list(items) if items is not None else None,
                new_status=target.value,
                notes_append=note_block(operation, data.get("note")),
                use_received=True,
                operation=operation.value,
            )

        return self._apply(po, caller, operation, previous, target, write, {
            "items_count": len(items) if items is not None else None,
        })

    # ==================================================================
    # Attachments
    # ==================================================================

    def upload_attachments(
        self,
        po_id: str,
        caller: Caller,
        files: Sequence[Tuple[str, bytes]],
    ) -> PurchaseOrder:
        """
        Store files and attach them to a PO.

        Anyone who can view the PO may upload while it is not terminal. Files
        land at {folder}/{caller_id}/{po_number}.
        """
        if self.storage is None:
            raise IntegrationError("Object storage", "No object storage configured")
        if not files:
            raise ValidationError("At least one file is required", field="files")

        po = self.get(po_id, caller)
        current = PurchaseOrderStatus(po.status)
        if current in TERMINAL_STATUSES:
            raise StateConflictError(
                f"Cannot attach files to a purchase order in status '{current.value}'",
                operation="upload_attachments",
                current_status=current.value,
                allowed_statuses=sorted(s.value for s in set(PurchaseOrderStatus) - TERMINAL_STATUSES),
            )

        path = attachment_path(self.attachment_folder, caller.user_id, po.number)
        stored: List[StoredObject] = []
        try:
            for filename, content in files:
                stored.append(self.storage.upload(content, path, filename))
            rows = repo.add_attachments(self.db, po, [
                {"url": obj.url, "uploaded_by": caller.user_id, "uploaded_at": obj.uploaded_at}
                for obj in stored
            ])
            repo.touch(self.db, po)
            audit_service.record(
                self.db,
                caller.user_id,
                UPLOAD_ATTACHMENTS_ACTION,
                ENTITY_TYPE,
                po.number,
                {"purchase_order": _po_ref(po), "attachments": [row.url for row in rows]},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            self._discard_stored(stored)
            raise

        logger.info(
            f"Attached {len(stored)} file(s) to {po.number}",
            extra={"purchase_order": po.number, "actor_id": caller.user_id},
        )
        return repo.get_by_id(self.db, po.id, refresh=True)

    # ==================================================================
    # Reviewer notes
    # ==================================================================

    def list_notes(self, po_id: str, caller: Caller) -> List[NoteEntry]:
        """Reviewer notes of a PO, oldest first, for callers allowed to read them."""
        po = self._load(po_id)
        current = PurchaseOrderStatus(po.status)
        if not can_read_notes(caller.role, current):
            raise PermissionDeniedError(
                f"Role '{caller.role.value}' cannot read notes of a purchase order "
                f"in status '{current.value}'",
                action="list_notes",
                role=caller.role.value,
                current_status=current.value,
            )

        names: Dict[str, Optional[str]] = {}
        return [self._note_entry(row, names) for row in repo.list_notes(self.db, po.id)]

    def add_note(self, po_id: str, caller: Caller, text: Optional[str]) -> NoteEntry:
        """
        Add a reviewer note.

        Finance and general managers may write only while the PO is under
        their own review, auditors only once it is completed. The note is
        audited but does not touch the PO's notes text or status.
        """
        text = (text or "").strip()
        if not text:
            raise ValidationError("Note is required", field="note")

        po = self._load(po_id)
        current = PurchaseOrderStatus(po.status)
        if not can_add_note(caller.role, current):
            raise PermissionDeniedError(
                f"Role '{caller.role.value}' cannot add a note to a purchase order "
                f"in status '{current.value}'",
                action=ADD_NOTE_ACTION,
                role=caller.role.value,
                current_status=current.value,
            )

        try:
            row = repo.insert_note(self.db, po, caller.user_id, text)
            audit_service.record(
                self.db,
                caller.user_id,
                ADD_NOTE_ACTION,
                ENTITY_TYPE,
                po.number,
                {"purchase_order": _po_ref(po), "note": text},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Note added to purchase order {po.number}",
            extra={"purchase_order": po.number, "actor_id": caller.user_id},
        )
        return self._note_entry(row, {})

    # ==================================================================
    # Internals
    # ==================================================================

    def _user_name(self, user_id: str, cache: Dict[str, Optional[str]]) -> Optional[str]:
        if user_id not in cache:
            user = self.directory.find_by_id(user_id)
            cache[user_id] = user.name if user else None
        return cache[user_id]

    def _note_entry(self, row: PurchaseOrderNote, names: Dict[str, Optional[str]]) -> NoteEntry:
        return NoteEntry(
            id=row.id,
            purchase_order_id=row.purchase_order_id,
            user_id=row.user_id,
            user_name=self._user_name(row.user_id, names),
            note=row.note,
            created_at=row.created_at,
        )

    def _load(self, po_id: str) -> PurchaseOrder:
        po = repo.get_by_id(self.db, po_id)
        if not po:
            raise NotFoundError("Purchase order", po_id)
        return po

    def _check_owner(self, po: PurchaseOrder, caller: Caller, action: str) -> None:
        if caller.owner_scoped and po.created_by != caller.user_id:
            raise PermissionDeniedError(
                f"You do not have permission to {action} this purchase order",
                action=action,
                role=caller.role.value,
            )

    def _guard(
        self,
        po: PurchaseOrder,
        operation: WorkflowOperation,
        caller: Caller,
    ) -> PurchaseOrderStatus:
        """Resulting status for the operation, or raise before any write."""
        current = PurchaseOrderStatus(po.status)
        statuses = allowed_statuses_for(operation)
        if current.value not in statuses:
            raise StateConflictError(
                f"Cannot {operation.value} a purchase order in status '{current.value}'",
                operation=operation.value,
                current_status=current.value,
                allowed_statuses=statuses,
            )
        target = resolve_transition(operation, current, caller.role)
        if target is None:
            raise PermissionDeniedError(
                f"Role '{caller.role.value}' cannot {operation.value} a purchase order "
                f"in status '{current.value}'",
                action=operation.value,
                role=caller.role.value,
                allowed_roles=allowed_roles_for(operation, current),
                current_status=current.value,
            )
        return target

    def _transition(
        self,
        po_id: str,
        caller: Caller,
        operation: WorkflowOperation,
        text: Optional[str] = None,
        owner_check: bool = False,
    ) -> PurchaseOrder:
        po = self._load(po_id)
        if owner_check:
            self._check_owner(po, caller, operation.value)
        previous = PurchaseOrderStatus(po.status)
        target = self._guard(po, operation, caller)
        block = note_block(operation, text)

        def write() -> PurchaseOrder:
            return repo.transition_status(
                self.db,
                po.id,
                previous.value,
                target.value,
                notes_append=block,
                operation=operation.value,
            )

        extra: Dict[str, Any] = {}
        if block:
            extra["reason" if operation in REJECT_OPERATIONS else "note"] = text.strip()
        return self._apply(po, caller, operation, previous, target, write, extra)

    def _apply(
        self,
        po: PurchaseOrder,
        caller: Caller,
        operation: WorkflowOperation,
        previous: PurchaseOrderStatus,
        target: PurchaseOrderStatus,
        write: Callable[[], PurchaseOrder],
        extra_details: Optional[Dict[str, Any]] = None,
    ) -> PurchaseOrder:
        """Write, audit and commit one transition, then notify."""
        number = po.number
        try:
            updated = write()
            details = {
                "purchase_order": _po_ref(updated),
                "from_status": previous.value,
                "to_status": target.value,
            }
            details.update({k: v for k, v in (extra_details or {}).items() if v is not None})
            audit_service.record(
                self.db, caller.user_id, AUDIT_ACTIONS[operation], ENTITY_TYPE, number, details,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        updated = repo.get_by_id(self.db, po.id, refresh=True)
        logger.info(
            f"Purchase order {number}: {operation.value} {previous.value} -> {target.value}",
            extra={
                "purchase_order": number,
                "operation": operation.value,
                "actor_id": caller.user_id,
                "from_status": previous.value,
                "to_status": target.value,
            },
        )
        self._notify(self._orchestrator_call("on_status_changed"), updated, previous, target)
        return updated

    def _discard_stored(self, stored: Sequence[StoredObject]) -> None:
        """Remove files whose attachment rows were rolled back."""
        for obj in stored:
            try:
                self.storage.delete(obj.url)
            except Exception:
                logger.exception("Could not remove orphaned attachment", extra={"url": obj.url})

    def _orchestrator_call(self, name: str) -> Optional[Callable[..., Any]]:
        if self.orchestrator is None:
            return None
        return getattr(self.orchestrator, name)

    def _notify(self, call: Optional[Callable[..., Any]], *args: Any) -> None:
        """Best-effort notification; never fails the operation."""
        if call is None:
            return
        try:
            call(*args)
        except Exception:
            self.db.rollback()
            logger.exception(
                "Notification dispatch failed",
                extra={"purchase_order": getattr(args[0], "number", None)},
            )

    def _clean_fields(self, data: Dict[str, Any], required: Sequence[str] = ()) -> Dict[str, Any]:
        """Header fields from a payload, validated and normalized."""
        missing = [f for f in required if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(
                f"Missing required field(s): {', '.join(missing)}",
                field=missing[0],
            )

        fields = {key: data[key] for key in repo.HEADER_FIELDS if key in data}
        if "request_date" in fields:
            fields["request_date"] = _coerce_date(fields["request_date"], "request_date")
        if "execution_date" in fields:
            fields["execution_date"] = _coerce_date(fields["execution_date"], "execution_date")
        if "request_type" in fields:
            fields["request_type"] = _enum_value(RequestType, fields["request_type"], "request_type")
        if "currency" in fields:
            fields["currency"] = _enum_value(Currency, fields["currency"], "currency")
        return fields

    def _attachments_from_urls(self, urls: Sequence[str], caller: Caller) -> List[Dict[str, Any]]:
        """
        Attachment rows for URLs supplied by a caller.

        The caller is always recorded as the uploader; the path of a supplied
        URL is never trusted for ownership or upload time.
        """
        now = utcnow()
        return [
            {"url": url, "uploaded_by": caller.user_id, "uploaded_at": now}
            for url in dict.fromkeys(u for u in urls if u)
        ]

    def _replace_own_attachments(self, po: PurchaseOrder, caller: Caller, urls: Sequence[str]) -> None:
        """Replace the caller's own attachments; everyone else's rows stay."""
        others = [
            ref.url for ref in attachment_refs(po.attachments)
            if ref.uploaded_by != caller.user_id
        ]
        repo.replace_attachments(
            self.db, po, self._attachments_from_urls(urls, caller), retained=others,
        )
