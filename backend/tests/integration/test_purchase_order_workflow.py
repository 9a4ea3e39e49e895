"""
Integration tests for the purchase order workflow engine

Runs full lifecycles through PurchaseOrderWorkflow against the test
database, checking status, totals, notes, audit entries and notifications
together.
"""
import pytest
from datetime import date
from decimal import Decimal

from po_workflow.core.status_config import WorkflowOperation
from po_workflow.exceptions import (
    NotFoundError,
    PermissionDeniedError,
    StateConflictError,
    ValidationError,
)
from po_workflow.models.audit_log import AuditLog
from po_workflow.models.notification import Notification
from po_workflow.models.purchase_order import PurchaseOrder
from po_workflow.services import purchase_order_repository as repo
from po_workflow.services.purchase_order_workflow import Caller, PurchaseOrderWorkflow
from tests.factories import create_test_device_token, create_test_purchase_order, po_payload


def audit_actions(db, number):
    return [
        e.action for e in
        db.query(AuditLog).filter(AuditLog.entity_id == number).order_by(AuditLog.id).all()
    ]


def notifications_for(db, user_id, type=None):
    query = db.query(Notification).filter(Notification.user_id == user_id)
    if type:
        query = query.filter(Notification.type == type)
    return query.all()


class TestScenarios:

    @pytest.mark.integration
    def test_employee_creates_po(self, db_session, workflow, employee, new_po_data):
        po = workflow.create(employee, new_po_data)

        assert po.status == "under_assistant_review"
        assert po.total_amount == Decimal("200")
        assert po.created_by == "emp-1"
        assert po.number.startswith("PO-")
        assert len(po.items) == 2

        entry = db_session.query(AuditLog).one()
        assert entry.action == "create_purchase_order"
        assert entry.details["to_status"] == "under_assistant_review"
        assert entry.details["from_status"] is None

        # Reviewers are told about the new PO
        created = db_session.query(Notification).filter_by(type="po_created").all()
        assert sorted(n.user_id for n in created) == ["asst-1", "mgr-1"]

    @pytest.mark.integration
    def test_assistant_approves_then_repeat_conflicts(self, db_session, workflow, employee, assistant, new_po_data):
        po = workflow.create(employee, new_po_data)

        approved = workflow.assistant_approve(po.id, assistant)
        assert approved.status == "under_manager_review"

        with pytest.raises(StateConflictError) as exc:
            workflow.assistant_approve(po.id, assistant)
        assert exc.value.details["current_status"] == "under_manager_review"
        assert exc.value.details["allowed_statuses"] == ["under_assistant_review"]

        assert db_session.get(PurchaseOrder, po.id).status == "under_manager_review"
        assert audit_actions(db_session, po.number).count("assistant_approve_purchase_order") == 1

    @pytest.mark.integration
    def test_manager_rejects_with_reason(self, db_session, workflow, employee, assistant, manager, new_po_data):
        po = workflow.create(employee, new_po_data)
        workflow.assistant_approve(po.id, assistant)

        rejected = workflow.manager_reject(po.id, manager, reason="budget exceeded")

        assert rejected.status == "rejected_by_manager"
        assert "Rejection reason: budget exceeded" in rejected.notes
        assert len(notifications_for(db_session, "emp-1", type="po_rejected")) == 1

        entry = db_session.query(AuditLog).filter_by(action="manager_reject_purchase_order").one()
        assert entry.details["reason"] == "budget exceeded"
        assert entry.details["from_status"] == "under_manager_review"
        assert entry.details["to_status"] == "rejected_by_manager"

    @pytest.mark.integration
    def test_concurrent_manager_approvals(self, db_session, workflow, manager, monkeypatch):
        po = workflow.create(manager, po_payload())
        assert po.status == "under_manager_review"
        po_id, number = po.id, po.number

        first = workflow.manager_approve(po_id, manager)
        assert first.status == "completed"

        # The second request read the PO before the first one committed
        stale = PurchaseOrder(
            id=po_id, number=number, status="under_manager_review", created_by="mgr-1",
        )
        real_get = repo.get_by_id

        def get_by_id(db, po_id, owner_id=None, refresh=False):
            if refresh:
                return real_get(db, po_id, owner_id=owner_id, refresh=True)
            return stale

        monkeypatch.setattr(repo, "get_by_id", get_by_id)

        with pytest.raises(StateConflictError) as exc:
            workflow.manager_approve(po_id, manager)
        assert exc.value.details["current_status"] == "completed"

        monkeypatch.undo()
        assert db_session.get(PurchaseOrder, po_id).status == "completed"
        assert audit_actions(db_session, number).count("manager_approve_purchase_order") == 1

    @pytest.mark.integration
    def test_procurement_update_uses_received_quantities(
        self, db_session, workflow, employee, assistant, manager, procurement, new_po_data
    ):
        po = workflow.create(employee, new_po_data)
        workflow.assistant_approve(po.id, assistant)
        routed = workflow.route_to_procurement(po.id, manager, note="buy from the usual vendor")
        assert routed.status == "pending_procurement"

        updated = workflow.procurement_update(po.id, procurement, {
            "supplier_id": "vendor-7",
            "execution_date": "2025-03-20",
            "items": [
                {"item_name": "Printer paper", "quantity": 2, "received_quantity": 3, "unit": "box", "price": 50},
                {"item_name": "Toner", "quantity": 1, "received_quantity": 1, "unit": "pcs", "price": 120},
            ],
            "note": "one extra box",
        })

        assert updated.status == "under_manager_review"
        assert updated.total_amount == Decimal("270")
        assert [i.received_quantity for i in updated.items] == [Decimal("3"), Decimal("1")]
        assert updated.supplier_id == "vendor-7"
        assert updated.execution_date == date(2025, 3, 20)
        assert updated.notes == "Note: buy from the usual vendor\n\nNote: one extra box"


class TestTransitionProperties:

    @pytest.mark.integration
    def test_each_transition_writes_one_audit_entry(
        self, db_session, workflow, employee, assistant, manager, finance, new_po_data
    ):
        po = workflow.create(employee, new_po_data)
        workflow.assistant_approve(po.id, assistant)
        workflow.route_to_finance(po.id, manager)
        workflow.finance_approve(po.id, finance)
        workflow.manager_approve(po.id, manager)

        assert audit_actions(db_session, po.number) == [
            "create_purchase_order",
            "assistant_approve_purchase_order",
            "route_purchase_order_to_finance",
            "finance_approve_purchase_order",
            "manager_approve_purchase_order",
        ]
        pairs = [
            (e.details["from_status"], e.details["to_status"])
            for e in db_session.query(AuditLog).order_by(AuditLog.id).all()[1:]
        ]
        assert pairs == [
            ("under_assistant_review", "under_manager_review"),
            ("under_manager_review", "under_finance_review"),
            ("under_finance_review", "under_manager_review"),
            ("under_manager_review", "completed"),
        ]

    @pytest.mark.integration
    def test_each_transition_notifies_creator_once(self, db_session, workflow, employee, assistant, manager, new_po_data):
        po = workflow.create(employee, new_po_data)
        workflow.assistant_approve(po.id, assistant)
        workflow.manager_approve(po.id, manager)

        rows = notifications_for(db_session, "emp-1")
        assert sorted(n.type for n in rows) == ["po_completed", "po_status_changed"]
        previous = {n.type: n.data["previous_status"] for n in rows}
        assert previous == {
            "po_status_changed": "under_assistant_review",
            "po_completed": "under_manager_review",
        }

    @pytest.mark.integration
    def test_general_manager_path(self, workflow, employee, assistant, manager, general_manager, new_po_data):
        po = workflow.create(employee, new_po_data)
        workflow.assistant_approve(po.id, assistant)
        assert workflow.route_to_general_manager(po.id, manager).status == "under_general_manager_review"
        assert workflow.general_manager_reject(po.id, general_manager, "no").status == "rejected_by_general_manager"

    @pytest.mark.integration
    def test_return_and_final_approve(self, workflow, manager, procurement):
        draft = workflow.create(manager, po_payload(), save_as_draft=True)
        po = workflow.submit(draft.id, manager)
        assert po.status == "in_progress"

        same = workflow.procurement_update(po.id, procurement, {"supplier_id": "vendor-1"})
        assert same.status == "in_progress"

        assert workflow.return_to_manager(po.id, manager).status == "returned_to_manager_review"
        assert workflow.manager_final_approve(po.id, manager).status == "completed"

    @pytest.mark.integration
    def test_complete_from_in_progress(self, workflow, manager):
        draft = workflow.create(manager, po_payload(), save_as_draft=True)
        workflow.submit(draft.id, manager)
        assert workflow.complete(draft.id, manager, note="delivered").status == "completed"

    @pytest.mark.integration
    def test_rejected_transition_writes_nothing(self, db_session, workflow, employee, assistant, new_po_data):
        po = workflow.create(employee, new_po_data)
        workflow.assistant_approve(po.id, assistant)
        audit_before = db_session.query(AuditLog).count()
        notifications_before = db_session.query(Notification).count()

        with pytest.raises(PermissionDeniedError) as exc:
            workflow.manager_approve(po.id, employee)
        assert exc.value.details["allowed_roles"] == ["manager"]

        with pytest.raises(StateConflictError):
            workflow.finance_approve(po.id, Caller.of("fin-1", "finance_manager"))

        assert db_session.get(PurchaseOrder, po.id).status == "under_manager_review"
        assert db_session.query(AuditLog).count() == audit_before
        assert db_session.query(Notification).count() == notifications_before

    @pytest.mark.integration
    def test_perform_by_operation_name(self, workflow, employee, assistant, new_po_data):
        po = workflow.create(employee, new_po_data)
        updated = workflow.perform("assistant_reject", po.id, assistant, "duplicate request")

        assert updated.status == "rejected_by_assistant"
        assert updated.notes.endswith("Rejection reason: duplicate request")

        with pytest.raises(ValidationError):
            workflow.perform(WorkflowOperation.PROCUREMENT_UPDATE, po.id, assistant)

    @pytest.mark.integration
    def test_missing_po(self, workflow, manager):
        with pytest.raises(NotFoundError):
            workflow.manager_approve("missing", manager)


class TestNotificationIsolation:

    @pytest.mark.integration
    def test_push_failure_keeps_notification(self, db_session, workflow, employee, assistant, push_gateway, new_po_data):
        po = workflow.create(employee, new_po_data)
        create_test_device_token(db_session, user_id="emp-1", token="tok-1")
        push_gateway.fail = True

        approved = workflow.assistant_approve(po.id, assistant)

        assert approved.status == "under_manager_review"
        assert len(push_gateway.calls) == 1
        assert len(notifications_for(db_session, "emp-1", type="po_status_changed")) == 1

    @pytest.mark.integration
    def test_orchestrator_failure_does_not_fail_transition(self, db_session, directory, employee, assistant):
        class BrokenOrchestrator:
            def on_created(self, po):
                raise RuntimeError("directory down")

            def on_status_changed(self, po, previous, next_status):
                raise RuntimeError("directory down")

        workflow = PurchaseOrderWorkflow(db_session, directory, orchestrator=BrokenOrchestrator())
        po = workflow.create(employee, po_payload())
        approved = workflow.assistant_approve(po.id, assistant)

        assert approved.status == "under_manager_review"
        assert db_session.query(AuditLog).count() == 2

    @pytest.mark.integration
    def test_without_orchestrator(self, db_session, directory, employee):
        workflow = PurchaseOrderWorkflow(db_session, directory)
        po = workflow.create(employee, po_payload())

        assert po.status == "under_assistant_review"
        assert db_session.query(Notification).count() == 0


class TestDraftsAndUpdates:

    @pytest.mark.integration
    def test_draft_notifies_nobody_until_submitted(self, db_session, workflow, employee, new_po_data):
        draft = workflow.create(employee, new_po_data, save_as_draft=True)

        assert draft.status == "draft"
        assert db_session.query(Notification).count() == 0

        submitted = workflow.submit(draft.id, employee)
        assert submitted.status == "under_assistant_review"
        assert len(notifications_for(db_session, "emp-1", type="po_status_changed")) == 1

    @pytest.mark.integration
    @pytest.mark.parametrize("role,expected", [
        ("assistant_manager", "under_manager_review"),
        ("manager", "in_progress"),
        ("employee", "under_assistant_review"),
    ])
    def test_submit_target_depends_on_role(self, workflow, role, expected):
        caller = Caller.of(f"{role}-x", role)
        draft = workflow.create(caller, po_payload(), save_as_draft=True)
        assert workflow.submit(draft.id, caller).status == expected

    @pytest.mark.integration
    def test_manager_created_po_starts_at_manager_review(self, workflow, manager):
        assert workflow.create(manager, po_payload()).status == "under_manager_review"

    @pytest.mark.integration
    def test_update_replaces_items(self, db_session, workflow, employee, new_po_data):
        draft = workflow.create(employee, new_po_data, save_as_draft=True)

        updated = workflow.update(draft.id, employee, {
            "department": "Finance",
            "items": [{"item_name": "Desk", "quantity": 1, "unit": "pcs", "price": 300}],
        })

        assert updated.department == "Finance"
        assert updated.total_amount == Decimal("300")
        assert [i.item_name for i in updated.items] == ["Desk"]
        assert audit_actions(db_session, draft.number)[-1] == "update_purchase_order"

    @pytest.mark.integration
    def test_update_rejected_outside_editable_statuses(self, db_session, workflow, employee):
        po = create_test_purchase_order(db_session, created_by="emp-1", status="rejected_by_manager")

        with pytest.raises(StateConflictError):
            workflow.update(po.id, employee, {"department": "Finance"})

    @pytest.mark.integration
    def test_create_validation(self, workflow, employee):
        with pytest.raises(ValidationError):
            workflow.create(employee, po_payload(department=""))
        with pytest.raises(ValidationError):
            workflow.create(employee, po_payload(request_type="rental"))
        with pytest.raises(ValidationError):
            workflow.create(employee, po_payload(request_date="not-a-date"))

    @pytest.mark.integration
    def test_numbers_are_unique(self, workflow, employee):
        numbers = {workflow.create(employee, po_payload()).number for _ in range(3)}
        assert len(numbers) == 3
        assert sorted(n[-4:] for n in numbers) == ["0001", "0002", "0003"]


class TestOwnership:

    @pytest.mark.integration
    def test_employee_cannot_read_others_po(self, workflow, employee, other_employee, new_po_data):
        po = workflow.create(employee, new_po_data)

        with pytest.raises(NotFoundError):
            workflow.get(po.id, other_employee)
        assert workflow.list_purchase_orders(other_employee) == []
        assert [p.id for p in workflow.list_purchase_orders(employee)] == [po.id]

    @pytest.mark.integration
    def test_employee_cannot_edit_or_submit_others_po(self, workflow, employee, other_employee, new_po_data):
        draft = workflow.create(employee, new_po_data, save_as_draft=True)

        with pytest.raises(PermissionDeniedError):
            workflow.update(draft.id, other_employee, {"department": "HR"})
        with pytest.raises(PermissionDeniedError):
            workflow.submit(draft.id, other_employee)

    @pytest.mark.integration
    def test_manager_sees_everything(self, workflow, employee, other_employee, manager):
        workflow.create(employee, po_payload())
        workflow.create(other_employee, po_payload())

        assert len(workflow.list_purchase_orders(manager)) == 2

    @pytest.mark.integration
    def test_allowed_operations(self, workflow, employee, other_employee, manager, new_po_data):
        draft = workflow.create(employee, new_po_data, save_as_draft=True)

        assert workflow.allowed_operations(draft, employee) == ["submit"]
        assert workflow.allowed_operations(draft, other_employee) == []
        assert workflow.allowed_operations(draft, manager) == ["submit"]


class TestReviewQueues:

    @pytest.mark.integration
    def test_pending_lists(self, workflow, employee, assistant, manager):
        first = workflow.create(employee, po_payload())
        second = workflow.create(employee, po_payload())
        workflow.assistant_approve(second.id, assistant)

        assert [p.id for p in workflow.list_pending_assistant_review(assistant)] == [first.id]
        assert [p.id for p in workflow.list_pending_manager_review(manager)] == [second.id]

    @pytest.mark.integration
    def test_pending_lists_are_role_gated(self, workflow, employee, assistant):
        with pytest.raises(PermissionDeniedError):
            workflow.list_pending_assistant_review(employee)
        with pytest.raises(PermissionDeniedError):
            workflow.list_pending_manager_review(assistant)


class TestHistory:

    @pytest.mark.integration
    def test_history_from_audit_entries(self, workflow, employee, assistant, manager, new_po_data):
        po = workflow.create(employee, new_po_data)
        workflow.assistant_approve(po.id, assistant, note="looks fine")

        history = workflow.workflow_history(po.id, manager)

        assert [h.action for h in history] == ["create_purchase_order", "assistant_approve_purchase_order"]
        assert [h.actor_name for h in history] == ["Omar Employee", "Sara Assistant"]
        assert (history[1].from_status, history[1].to_status) == ("under_assistant_review", "under_manager_review")
        assert history[1].details["note"] == "looks fine"

    @pytest.mark.integration
    def test_unknown_actor_has_no_name(self, workflow, new_po_data):
        outsider = Caller.of("ghost-1", "employee")
        po = workflow.create(outsider, new_po_data)

        assert workflow.workflow_history(po.id, outsider)[0].actor_name is None
