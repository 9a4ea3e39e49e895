"""Status Configuration and Transition Rules

Defines purchase order statuses, caller roles, workflow operations and the
transition table that drives the workflow engine. The table is plain data
keyed by (operation, current status, caller role); adding a role or status
means adding rows here, not new branches in the engine.

The table is checked for completeness when this module is imported.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple


# =============================================================================
# Purchase Order Status
# =============================================================================

class PurchaseOrderStatus(str, Enum):
    """Valid status values for Purchase Orders"""
    DRAFT = "draft"
    UNDER_ASSISTANT_REVIEW = "under_assistant_review"
    REJECTED_BY_ASSISTANT = "rejected_by_assistant"
    UNDER_MANAGER_REVIEW = "under_manager_review"
    REJECTED_BY_MANAGER = "rejected_by_manager"
    UNDER_FINANCE_REVIEW = "under_finance_review"
    REJECTED_BY_FINANCE = "rejected_by_finance"
    UNDER_GENERAL_MANAGER_REVIEW = "under_general_manager_review"
    REJECTED_BY_GENERAL_MANAGER = "rejected_by_general_manager"
    PENDING_PROCUREMENT = "pending_procurement"
    IN_PROGRESS = "in_progress"
    RETURNED_TO_MANAGER_REVIEW = "returned_to_manager_review"
    COMPLETED = "completed"


TERMINAL_STATUSES: FrozenSet[PurchaseOrderStatus] = frozenset({
    PurchaseOrderStatus.COMPLETED,
    PurchaseOrderStatus.REJECTED_BY_ASSISTANT,
    PurchaseOrderStatus.REJECTED_BY_MANAGER,
    PurchaseOrderStatus.REJECTED_BY_FINANCE,
    PurchaseOrderStatus.REJECTED_BY_GENERAL_MANAGER,
})

# Core fields (dates, department, items, ...) may only be edited in these
EDITABLE_STATUSES: FrozenSet[PurchaseOrderStatus] = frozenset({
    PurchaseOrderStatus.DRAFT,
    PurchaseOrderStatus.IN_PROGRESS,
    PurchaseOrderStatus.UNDER_ASSISTANT_REVIEW,
    PurchaseOrderStatus.UNDER_MANAGER_REVIEW,
    PurchaseOrderStatus.RETURNED_TO_MANAGER_REVIEW,
})


class RequestType(str, Enum):
    PURCHASE = "purchase"
    MAINTENANCE = "maintenance"


class Currency(str, Enum):
    SYP = "SYP"
    USD = "USD"


# =============================================================================
# Roles
# =============================================================================

class UserRole(str, Enum):
    """Caller roles known to the workflow"""
    EMPLOYEE = "employee"
    ASSISTANT_MANAGER = "assistant_manager"
    MANAGER = "manager"
    FINANCE_MANAGER = "finance_manager"
    GENERAL_MANAGER = "general_manager"
    PROCUREMENT_OFFICER = "procurement_officer"
    AUDITOR = "auditor"
    GUEST = "guest"


# Roles limited to their own purchase orders for reads and edits
OWNER_SCOPED_ROLES: FrozenSet[UserRole] = frozenset({UserRole.EMPLOYEE, UserRole.GUEST})

# Roles that see every attachment on a purchase order
ATTACHMENT_ELEVATED_ROLES: FrozenSet[UserRole] = frozenset({
    UserRole.MANAGER,
    UserRole.ASSISTANT_MANAGER,
    UserRole.GENERAL_MANAGER,
    UserRole.FINANCE_MANAGER,
    UserRole.AUDITOR,
})

# Roles notified when a purchase order is created
REVIEWER_ROLES: Tuple[UserRole, ...] = (UserRole.ASSISTANT_MANAGER, UserRole.MANAGER)


def initial_status_for(role: UserRole) -> PurchaseOrderStatus:
    """Status a newly created (non-draft) purchase order starts in."""
    if role in (UserRole.MANAGER, UserRole.ASSISTANT_MANAGER):
        return PurchaseOrderStatus.UNDER_MANAGER_REVIEW
    return PurchaseOrderStatus.UNDER_ASSISTANT_REVIEW


# =============================================================================
# Workflow Operations
# =============================================================================

class WorkflowOperation(str, Enum):
    """Named operations that move a purchase order between statuses"""
    SUBMIT = "submit"
    ASSISTANT_APPROVE = "assistant_approve"
    ASSISTANT_REJECT = "assistant_reject"
    MANAGER_APPROVE = "manager_approve"
    MANAGER_REJECT = "manager_reject"
    ROUTE_TO_FINANCE = "route_to_finance"
    ROUTE_TO_GENERAL_MANAGER = "route_to_general_manager"
    ROUTE_TO_PROCUREMENT = "route_to_procurement"
    FINANCE_APPROVE = "finance_approve"
    FINANCE_REJECT = "finance_reject"
    GENERAL_MANAGER_APPROVE = "general_manager_approve"
    GENERAL_MANAGER_REJECT = "general_manager_reject"
    PROCUREMENT_UPDATE = "procurement_update"
    RETURN_TO_MANAGER = "return_to_manager"
    MANAGER_FINAL_APPROVE = "manager_final_approve"
    MANAGER_FINAL_REJECT = "manager_final_reject"
    COMPLETE = "complete"


# Audit log action tag written for each operation
AUDIT_ACTIONS: Dict[WorkflowOperation, str] = {
    WorkflowOperation.SUBMIT: "submit_purchase_order",
    WorkflowOperation.ASSISTANT_APPROVE: "assistant_approve_purchase_order",
    WorkflowOperation.ASSISTANT_REJECT: "assistant_reject_purchase_order",
    WorkflowOperation.MANAGER_APPROVE: "manager_approve_purchase_order",
    WorkflowOperation.MANAGER_REJECT: "manager_reject_purchase_order",
    WorkflowOperation.ROUTE_TO_FINANCE: "route_purchase_order_to_finance",
    WorkflowOperation.ROUTE_TO_GENERAL_MANAGER: "route_purchase_order_to_general_manager",
    WorkflowOperation.ROUTE_TO_PROCUREMENT: "route_purchase_order_to_procurement",
    WorkflowOperation.FINANCE_APPROVE: "finance_approve_purchase_order",
    WorkflowOperation.FINANCE_REJECT: "finance_reject_purchase_order",
    WorkflowOperation.GENERAL_MANAGER_APPROVE: "general_manager_approve_purchase_order",
    WorkflowOperation.GENERAL_MANAGER_REJECT: "general_manager_reject_purchase_order",
    WorkflowOperation.PROCUREMENT_UPDATE: "procurement_update_purchase_order",
    WorkflowOperation.RETURN_TO_MANAGER: "return_purchase_order_to_manager",
    WorkflowOperation.MANAGER_FINAL_APPROVE: "manager_final_approve_purchase_order",
    WorkflowOperation.MANAGER_FINAL_REJECT: "manager_final_reject_purchase_order",
    WorkflowOperation.COMPLETE: "complete_purchase_order",
}

REJECT_OPERATIONS: FrozenSet[WorkflowOperation] = frozenset({
    WorkflowOperation.ASSISTANT_REJECT,
    WorkflowOperation.MANAGER_REJECT,
    WorkflowOperation.FINANCE_REJECT,
    WorkflowOperation.GENERAL_MANAGER_REJECT,
    WorkflowOperation.MANAGER_FINAL_REJECT,
})

CREATE_ACTION = "create_purchase_order"
UPDATE_ACTION = "update_purchase_order"
UPLOAD_ATTACHMENTS_ACTION = "upload_purchase_order_attachments"
ENTITY_TYPE = "purchase_order"


# =============================================================================
# Transition Table
# =============================================================================

@dataclass(frozen=True)
class _Rule:
    """Compact rule declaration expanded into table rows."""
    operation: WorkflowOperation
    from_statuses: Tuple[PurchaseOrderStatus, ...]
    roles: Tuple[UserRole, ...]
    # None keeps the current status
    to_status: Optional[PurchaseOrderStatus]


_S = PurchaseOrderStatus
_R = UserRole
_OP = WorkflowOperation

_ALL_ROLES = tuple(UserRole)
_REVIEWERS = (_R.ASSISTANT_MANAGER, _R.MANAGER)

_RULES: Tuple[_Rule, ...] = (
    # Submitting a draft lands where a direct creation by that role would
    _Rule(_OP.SUBMIT, (_S.DRAFT,), (_R.MANAGER,), _S.IN_PROGRESS),
    _Rule(_OP.SUBMIT, (_S.DRAFT,), (_R.ASSISTANT_MANAGER,), _S.UNDER_MANAGER_REVIEW),
    _Rule(
        _OP.SUBMIT,
        (_S.DRAFT,),
        tuple(r for r in _ALL_ROLES if r not in (_R.MANAGER, _R.ASSISTANT_MANAGER)),
        _S.UNDER_ASSISTANT_REVIEW,
    ),

    _Rule(_OP.ASSISTANT_APPROVE, (_S.UNDER_ASSISTANT_REVIEW,), _REVIEWERS, _S.UNDER_MANAGER_REVIEW),
    _Rule(_OP.ASSISTANT_REJECT, (_S.UNDER_ASSISTANT_REVIEW,), _REVIEWERS, _S.REJECTED_BY_ASSISTANT),

    _Rule(_OP.MANAGER_APPROVE, (_S.UNDER_MANAGER_REVIEW,), (_R.MANAGER,), _S.COMPLETED),
    _Rule(_OP.MANAGER_REJECT, (_S.UNDER_MANAGER_REVIEW,), (_R.MANAGER,), _S.REJECTED_BY_MANAGER),

    _Rule(_OP.ROUTE_TO_FINANCE, (_S.UNDER_MANAGER_REVIEW,), (_R.MANAGER,), _S.UNDER_FINANCE_REVIEW),
    _Rule(
        _OP.ROUTE_TO_GENERAL_MANAGER,
        (_S.UNDER_MANAGER_REVIEW,),
        (_R.MANAGER,),
        _S.UNDER_GENERAL_MANAGER_REVIEW,
    ),
    _Rule(_OP.ROUTE_TO_PROCUREMENT, (_S.UNDER_MANAGER_REVIEW,), (_R.MANAGER,), _S.PENDING_PROCUREMENT),

    _Rule(_OP.FINANCE_APPROVE, (_S.UNDER_FINANCE_REVIEW,), (_R.FINANCE_MANAGER,), _S.UNDER_MANAGER_REVIEW),
    _Rule(_OP.FINANCE_REJECT, (_S.UNDER_FINANCE_REVIEW,), (_R.FINANCE_MANAGER,), _S.REJECTED_BY_FINANCE),

    _Rule(
        _OP.GENERAL_MANAGER_APPROVE,
        (_S.UNDER_GENERAL_MANAGER_REVIEW,),
        (_R.GENERAL_MANAGER,),
        _S.UNDER_MANAGER_REVIEW,
    ),
    _Rule(
        _OP.GENERAL_MANAGER_REJECT,
        (_S.UNDER_GENERAL_MANAGER_REVIEW,),
        (_R.GENERAL_MANAGER,),
        _S.REJECTED_BY_GENERAL_MANAGER,
    ),

    _Rule(
        _OP.PROCUREMENT_UPDATE,
        (_S.PENDING_PROCUREMENT,),
        (_R.PROCUREMENT_OFFICER,),
        _S.UNDER_MANAGER_REVIEW,
    ),
    _Rule(_OP.PROCUREMENT_UPDATE, (_S.IN_PROGRESS,), (_R.PROCUREMENT_OFFICER,), None),

    _Rule(
        _OP.RETURN_TO_MANAGER,
        (_S.IN_PROGRESS, _S.PENDING_PROCUREMENT),
        (_R.MANAGER,),
        _S.RETURNED_TO_MANAGER_REVIEW,
    ),
    _Rule(_OP.MANAGER_FINAL_APPROVE, (_S.RETURNED_TO_MANAGER_REVIEW,), (_R.MANAGER,), _S.COMPLETED),
    _Rule(
        _OP.MANAGER_FINAL_REJECT,
        (_S.RETURNED_TO_MANAGER_REVIEW,),
        (_R.MANAGER,),
        _S.REJECTED_BY_MANAGER,
    ),

    _Rule(_OP.COMPLETE, (_S.IN_PROGRESS,), (_R.MANAGER,), _S.COMPLETED),
)

TransitionKey = Tuple[WorkflowOperation, PurchaseOrderStatus, UserRole]


def _expand(rules: Iterable[_Rule]) -> Dict[TransitionKey, PurchaseOrderStatus]:
    table: Dict[TransitionKey, PurchaseOrderStatus] = {}
    for rule in rules:
        for status in rule.from_statuses:
            for role in rule.roles:
                key = (rule.operation, status, role)
                if key in table:
                    raise ValueError(f"Duplicate transition rule for {key}")
                table[key] = rule.to_status if rule.to_status is not None else status
    return table


# (operation, current status, caller role) -> resulting status
PURCHASE_ORDER_TRANSITIONS: Dict[TransitionKey, PurchaseOrderStatus] = _expand(_RULES)


def allowed_statuses_for(operation: WorkflowOperation) -> List[str]:
    """Statuses from which an operation can be invoked by at least one role"""
    statuses = {status for (op, status, _role) in PURCHASE_ORDER_TRANSITIONS if op == operation}
    return sorted(s.value for s in statuses)


def allowed_roles_for(operation: WorkflowOperation, status: PurchaseOrderStatus) -> List[str]:
    """Roles allowed to invoke an operation from a given status"""
    roles = {
        role for (op, st, role) in PURCHASE_ORDER_TRANSITIONS
        if op == operation and st == status
    }
    return sorted(r.value for r in roles)


def get_allowed_operations(status: PurchaseOrderStatus, role: UserRole) -> List[str]:
    """Operations a caller with this role may invoke on a purchase order in this status"""
    return sorted(
        op.value for (op, st, r) in PURCHASE_ORDER_TRANSITIONS
        if st == status and r == role
    )


def resolve_transition(
    operation: WorkflowOperation,
    status: PurchaseOrderStatus,
    role: UserRole,
) -> Optional[PurchaseOrderStatus]:
    """Look up the resulting status, or None when the transition is not defined"""
    return PURCHASE_ORDER_TRANSITIONS.get((operation, status, role))


# =============================================================================
# Reviewer Notes
# =============================================================================

ADD_NOTE_ACTION = "add_purchase_order_note"

# Statuses in which each role may read reviewer notes; None means any status
NOTE_READERS: Dict[UserRole, Optional[FrozenSet[PurchaseOrderStatus]]] = {
    UserRole.MANAGER: None,
    UserRole.ASSISTANT_MANAGER: None,
    UserRole.FINANCE_MANAGER: frozenset({PurchaseOrderStatus.UNDER_FINANCE_REVIEW}),
    UserRole.GENERAL_MANAGER: frozenset({PurchaseOrderStatus.UNDER_GENERAL_MANAGER_REVIEW}),
    UserRole.AUDITOR: frozenset({PurchaseOrderStatus.COMPLETED}),
}

# Statuses in which each role may add a reviewer note
NOTE_WRITERS: Dict[UserRole, FrozenSet[PurchaseOrderStatus]] = {
    UserRole.FINANCE_MANAGER: frozenset({PurchaseOrderStatus.UNDER_FINANCE_REVIEW}),
    UserRole.GENERAL_MANAGER: frozenset({PurchaseOrderStatus.UNDER_GENERAL_MANAGER_REVIEW}),
    UserRole.AUDITOR: frozenset({PurchaseOrderStatus.COMPLETED}),
}


def can_read_notes(role: UserRole, status: PurchaseOrderStatus) -> bool:
    if role not in NOTE_READERS:
        return False
    statuses = NOTE_READERS[role]
    return statuses is None or status in statuses


def can_add_note(role: UserRole, status: PurchaseOrderStatus) -> bool:
    return status in NOTE_WRITERS.get(role, frozenset())


# =============================================================================
# Validation Helpers
# =============================================================================

class TransitionTableError(Exception):
    """Raised when the transition table is incomplete or inconsistent"""


def validate_transition_table(table: Dict[TransitionKey, PurchaseOrderStatus]) -> None:
    """
    Check the table covers the state machine.

    - every operation has at least one row and an audit action
    - terminal statuses have no outgoing rows
    - every non-terminal status has at least one outgoing row
    - every status except draft is reachable (draft is entered at creation)
    """
    problems: List[str] = []

    ops_seen = {op for (op, _s, _r) in table}
    for op in WorkflowOperation:
        if op not in ops_seen:
            problems.append(f"operation '{op.value}' has no transition rows")
        if op not in AUDIT_ACTIONS:
            problems.append(f"operation '{op.value}' has no audit action")

    sources: Set[PurchaseOrderStatus] = {s for (_op, s, _r) in table}
    for status in TERMINAL_STATUSES & sources:
        problems.append(f"terminal status '{status.value}' has outgoing transitions")
    for status in set(PurchaseOrderStatus) - TERMINAL_STATUSES - sources:
        problems.append(f"status '{status.value}' has no outgoing transitions")

    reachable: Set[PurchaseOrderStatus] = set(table.values())
    reachable.update(initial_status_for(role) for role in UserRole)
    for status in set(PurchaseOrderStatus) - reachable - {PurchaseOrderStatus.DRAFT}:
        problems.append(f"status '{status.value}' is unreachable")

    if problems:
        raise TransitionTableError("; ".join(sorted(problems)))


validate_transition_table(PURCHASE_ORDER_TRANSITIONS)
