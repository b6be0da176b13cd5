from __future__ import annotations

from typing import Dict, List, Set

from app.errors import InvalidTransitionError
from app.policies import (
    ROLE_ACCOUNTANT,
    ROLE_BRANCH_MANAGER,
    ROLE_BUYER,
    ROLE_BUYER_LEADER,
    ROLE_DEPARTMENT_HEAD,
    ROLE_EXECUTIVE_BOARD,
    ROLE_REQUESTOR,
    ROLE_SYSTEM,
    ROLE_SYSTEM_ADMIN,
    normalize_role,
)


DRAFT = "DRAFT"
SUBMITTED = "SUBMITTED"
DEPT_HEAD_PENDING = "DEPT_HEAD_PENDING"
DEPT_HEAD_APPROVED = "DEPT_HEAD_APPROVED"
DEPT_HEAD_REJECTED = "DEPT_HEAD_REJECTED"
BRANCH_MANAGER_PENDING = "BRANCH_MANAGER_PENDING"
BRANCH_MANAGER_APPROVED = "BRANCH_MANAGER_APPROVED"
BRANCH_MANAGER_REJECTED = "BRANCH_MANAGER_REJECTED"
ASSIGNED_TO_BUYER = "ASSIGNED_TO_BUYER"
RFQ_IN_PROGRESS = "RFQ_IN_PROGRESS"
QUOTATION_RECEIVED = "QUOTATION_RECEIVED"
SUPPLIER_SELECTED = "SUPPLIER_SELECTED"
BUDGET_EXCEPTION = "BUDGET_EXCEPTION"
BUDGET_APPROVED = "BUDGET_APPROVED"
BUDGET_REJECTED = "BUDGET_REJECTED"
PAYMENT_DONE = "PAYMENT_DONE"
NEED_MORE_INFO = "NEED_MORE_INFO"
CANCELLED = "CANCELLED"

PR_STATUSES: List[str] = [
    DRAFT,
    SUBMITTED,
    DEPT_HEAD_PENDING,
    DEPT_HEAD_APPROVED,
    DEPT_HEAD_REJECTED,
    BRANCH_MANAGER_PENDING,
    BRANCH_MANAGER_APPROVED,
    BRANCH_MANAGER_REJECTED,
    ASSIGNED_TO_BUYER,
    RFQ_IN_PROGRESS,
    QUOTATION_RECEIVED,
    SUPPLIER_SELECTED,
    BUDGET_EXCEPTION,
    BUDGET_APPROVED,
    BUDGET_REJECTED,
    PAYMENT_DONE,
    NEED_MORE_INFO,
    CANCELLED,
]

TERMINAL_STATUSES: Set[str] = {
    DEPT_HEAD_REJECTED,
    BRANCH_MANAGER_REJECTED,
    BUDGET_REJECTED,
    PAYMENT_DONE,
    CANCELLED,
}

# Guard evaluated by the workflow service before the table result is applied.
GUARD_ASSIGNMENT_COMPLETE = "assignment_complete"

_CANCEL_ROLES = [ROLE_REQUESTOR, ROLE_DEPARTMENT_HEAD, ROLE_BRANCH_MANAGER, ROLE_BUYER_LEADER, ROLE_SYSTEM_ADMIN]
_BUDGET_DECISION_ROLES = [ROLE_BRANCH_MANAGER, ROLE_EXECUTIVE_BOARD]


def _cancel() -> Dict[str, object]:
    return {"to": CANCELLED, "roles": list(_CANCEL_ROLES)}


FLOW_POLICY: Dict[str, Dict[str, object]] = {
    DRAFT: {
        "transitions": {
            "submit": {"to": SUBMITTED, "roles": [ROLE_REQUESTOR]},
            "cancel": _cancel(),
        },
        "primary_action": "submit",
    },
    SUBMITTED: {
        "transitions": {
            "route_to_department_head": {"to": DEPT_HEAD_PENDING, "roles": [ROLE_REQUESTOR, ROLE_SYSTEM]},
            "cancel": _cancel(),
        },
        "primary_action": "route_to_department_head",
    },
    DEPT_HEAD_PENDING: {
        "transitions": {
            "department_head_approve": {"to": DEPT_HEAD_APPROVED, "roles": [ROLE_DEPARTMENT_HEAD]},
            "department_head_reject": {"to": DEPT_HEAD_REJECTED, "roles": [ROLE_DEPARTMENT_HEAD]},
            "department_head_return": {"to": NEED_MORE_INFO, "roles": [ROLE_DEPARTMENT_HEAD]},
            "cancel": _cancel(),
        },
        "primary_action": "department_head_approve",
    },
    DEPT_HEAD_APPROVED: {
        "transitions": {
            "route_to_branch_manager": {"to": BRANCH_MANAGER_PENDING, "roles": [ROLE_DEPARTMENT_HEAD, ROLE_SYSTEM]},
            "cancel": _cancel(),
        },
        "primary_action": "route_to_branch_manager",
    },
    BRANCH_MANAGER_PENDING: {
        "transitions": {
            "branch_manager_approve": {"to": BRANCH_MANAGER_APPROVED, "roles": [ROLE_BRANCH_MANAGER]},
            "branch_manager_reject": {"to": BRANCH_MANAGER_REJECTED, "roles": [ROLE_BRANCH_MANAGER]},
            "branch_manager_return": {"to": NEED_MORE_INFO, "roles": [ROLE_BRANCH_MANAGER]},
            "cancel": _cancel(),
        },
        "primary_action": "branch_manager_approve",
    },
    BRANCH_MANAGER_APPROVED: {
        "transitions": {
            "complete_assignment": {
                "to": ASSIGNED_TO_BUYER,
                "roles": [ROLE_BUYER_LEADER, ROLE_SYSTEM],
                "guard": GUARD_ASSIGNMENT_COMPLETE,
            },
            "cancel": _cancel(),
        },
        "primary_action": "complete_assignment",
    },
    ASSIGNED_TO_BUYER: {
        "transitions": {
            "start_rfq": {"to": RFQ_IN_PROGRESS, "roles": [ROLE_BUYER], "guard": GUARD_ASSIGNMENT_COMPLETE},
            "buyer_return": {"to": NEED_MORE_INFO, "roles": [ROLE_BUYER]},
            "cancel": _cancel(),
        },
        "primary_action": "start_rfq",
    },
    RFQ_IN_PROGRESS: {
        "transitions": {
            "receive_quotation": {"to": QUOTATION_RECEIVED, "roles": [ROLE_BUYER, ROLE_SYSTEM]},
            "cancel": _cancel(),
        },
        "primary_action": "receive_quotation",
    },
    QUOTATION_RECEIVED: {
        "transitions": {
            "select_supplier": {"to": SUPPLIER_SELECTED, "roles": [ROLE_BUYER_LEADER], "dedicated": True},
            "raise_budget_exception": {"to": BUDGET_EXCEPTION, "roles": [ROLE_BUYER_LEADER], "dedicated": True},
            "cancel": _cancel(),
        },
        "primary_action": "select_supplier",
    },
    SUPPLIER_SELECTED: {
        "transitions": {
            "mark_payment_done": {"to": PAYMENT_DONE, "roles": [ROLE_ACCOUNTANT], "dedicated": True},
        },
        "primary_action": "mark_payment_done",
    },
    BUDGET_EXCEPTION: {
        "transitions": {
            "approve_budget_exception": {"to": BUDGET_APPROVED, "roles": list(_BUDGET_DECISION_ROLES), "dedicated": True},
            "reject_budget_exception": {"to": BUDGET_REJECTED, "roles": list(_BUDGET_DECISION_ROLES), "dedicated": True},
        },
        "primary_action": "approve_budget_exception",
    },
    BUDGET_APPROVED: {
        "transitions": {
            "mark_payment_done": {"to": PAYMENT_DONE, "roles": [ROLE_ACCOUNTANT], "dedicated": True},
        },
        "primary_action": "mark_payment_done",
    },
    NEED_MORE_INFO: {
        "transitions": {
            "resubmit": {"to": SUBMITTED, "roles": [ROLE_REQUESTOR]},
            "cancel": _cancel(),
        },
        "primary_action": "resubmit",
    },
    DEPT_HEAD_REJECTED: {"transitions": {}, "primary_action": None},
    BRANCH_MANAGER_REJECTED: {"transitions": {}, "primary_action": None},
    BUDGET_REJECTED: {"transitions": {}, "primary_action": None},
    PAYMENT_DONE: {"transitions": {}, "primary_action": None},
    CANCELLED: {"transitions": {}, "primary_action": None},
}


ACTION_LABELS: Dict[str, str] = {
    "submit": "Submit request",
    "resubmit": "Resubmit request",
    "route_to_department_head": "Send to department head",
    "department_head_approve": "Approve (department head)",
    "department_head_reject": "Reject (department head)",
    "department_head_return": "Return for more information",
    "route_to_branch_manager": "Send to branch manager",
    "branch_manager_approve": "Approve (branch manager)",
    "branch_manager_reject": "Reject (branch manager)",
    "branch_manager_return": "Return for more information",
    "complete_assignment": "Complete buyer assignment",
    "start_rfq": "Start RFQ",
    "buyer_return": "Return for more information",
    "receive_quotation": "Mark quotations received",
    "select_supplier": "Select supplier",
    "raise_budget_exception": "Select supplier over budget",
    "approve_budget_exception": "Approve budget exception",
    "reject_budget_exception": "Reject budget exception",
    "mark_payment_done": "Mark payment done",
    "cancel": "Cancel request",
}


PROCESS_STAGES: List[Dict[str, str]] = [
    {"key": "request", "label": "Request"},
    {"key": "approval", "label": "Approval"},
    {"key": "assignment", "label": "Assignment"},
    {"key": "sourcing", "label": "Sourcing"},
    {"key": "decision", "label": "Decision"},
    {"key": "payment", "label": "Payment"},
]


RFQ_STATUSES: List[str] = ["DRAFT", "SENT", "QUOTATION_RECEIVED", "CLOSED"]

RFQ_TRANSITIONS: Dict[str, Set[str]] = {
    "DRAFT": {"SENT", "QUOTATION_RECEIVED", "CLOSED"},
    "SENT": {"QUOTATION_RECEIVED", "CLOSED"},
    "QUOTATION_RECEIVED": {"CLOSED"},
    "CLOSED": set(),
}

QUOTATION_STATUSES: List[str] = ["DRAFT", "VALID", "REJECTED", "SELECTED"]

QUOTATION_TRANSITIONS: Dict[str, Set[str]] = {
    "DRAFT": {"VALID", "REJECTED"},
    "VALID": {"REJECTED", "SELECTED"},
    "REJECTED": set(),
    "SELECTED": set(),
}

SALES_PO_TRANSITIONS: Dict[str, Set[str]] = {
    "DRAFT": {"ACTIVE"},
    "ACTIVE": {"CLOSED"},
    "CLOSED": set(),
}

PAYMENT_TRANSITIONS: Dict[str, Set[str]] = {
    "PENDING": {"DONE", "CANCELLED"},
    "DONE": set(),
    "CANCELLED": set(),
}

_ENTITY_TABLES: Dict[str, Dict[str, Set[str]]] = {
    "rfq": RFQ_TRANSITIONS,
    "quotation": QUOTATION_TRANSITIONS,
    "sales_po": SALES_PO_TRANSITIONS,
    "payment": PAYMENT_TRANSITIONS,
}

# Actions that must carry a non-empty reason.
REASON_REQUIRED_ACTIONS: Set[str] = {
    "department_head_reject",
    "department_head_return",
    "branch_manager_reject",
    "branch_manager_return",
    "buyer_return",
    "cancel",
}

# Follow-up applied as ROLE_SYSTEM right after a request lands in the status.
AUTOMATIC_ACTIONS: Dict[str, str] = {
    SUBMITTED: "route_to_department_head",
    DEPT_HEAD_APPROVED: "route_to_branch_manager",
}


def _status_policy(status: str | None) -> Dict[str, object]:
    if not status:
        return {"transitions": {}, "primary_action": None}
    return FLOW_POLICY.get(str(status), {"transitions": {}, "primary_action": None})


def transitions_for(status: str | None) -> Dict[str, Dict[str, object]]:
    transitions = _status_policy(status).get("transitions") or {}
    return dict(transitions)


def transition_entry(status: str | None, action: str) -> Dict[str, object] | None:
    return transitions_for(status).get(str(action or "").strip())


def is_terminal(status: str | None) -> bool:
    return str(status or "") in TERMINAL_STATUSES


def role_permitted(entry: Dict[str, object], role: str | None) -> bool:
    return normalize_role(role, default="") in set(entry.get("roles") or [])


def allowed_actions(status: str | None, role: str | None = None, *, include_dedicated: bool = True) -> List[str]:
    actions: List[str] = []
    for action, entry in transitions_for(status).items():
        if role is not None and not role_permitted(entry, role):
            continue
        if not include_dedicated and entry.get("dedicated"):
            continue
        actions.append(action)
    return actions


def primary_action(status: str | None, role: str | None = None) -> str | None:
    action = _status_policy(status).get("primary_action")
    if not action:
        return None
    if role is not None and action not in allowed_actions(status, role):
        return None
    return str(action)


def action_allowed(status: str | None, action: str, role: str | None) -> bool:
    entry = transition_entry(status, action)
    return entry is not None and role_permitted(entry, role)


def resolve_transition(current_status: str | None, acting_role: str | None, action: str) -> str:
    """Return the next status for ``action`` or raise ``InvalidTransitionError``.

    The table is the only source of truth: the pair (status, action) must have an
    entry and the acting role must be listed in that entry.
    """
    normalized_action = str(action or "").strip()
    entry = transition_entry(current_status, normalized_action)
    payload = {
        "status": current_status,
        "action": normalized_action,
        "role": normalize_role(acting_role, default="") or None,
        "allowed_actions": allowed_actions(current_status, acting_role),
    }
    if entry is None:
        raise InvalidTransitionError(
            code="invalid_transition",
            message_key="invalid_transition",
            details=f"{normalized_action} is not allowed from {current_status}",
            payload=payload,
        )
    if not role_permitted(entry, acting_role):
        raise InvalidTransitionError(
            code="role_not_permitted",
            message_key="role_not_permitted",
            http_status=403,
            details=f"role {acting_role} cannot {normalized_action} from {current_status}",
            payload=payload,
        )
    return str(entry["to"])


def transition_guard(current_status: str | None, action: str) -> str | None:
    entry = transition_entry(current_status, action) or {}
    guard = entry.get("guard")
    return str(guard) if guard else None


def is_dedicated_action(current_status: str | None, action: str) -> bool:
    entry = transition_entry(current_status, action) or {}
    return bool(entry.get("dedicated"))


def ensure_status_change(entity: str, current: str | None, target: str) -> None:
    table = _ENTITY_TABLES[entity]
    if target not in table.get(str(current or ""), set()):
        raise InvalidTransitionError(
            code=f"{entity}_status_invalid",
            message_key=f"{entity}_status_invalid",
            payload={"entity": entity, "status": current, "target_status": target},
        )


def automatic_action(status: str | None) -> str | None:
    return AUTOMATIC_ACTIONS.get(str(status or ""))


def reason_required(action: str) -> bool:
    return str(action or "").strip() in REASON_REQUIRED_ACTIONS


def action_label(action: str, fallback: str | None = None) -> str:
    label = ACTION_LABELS.get(action)
    if label:
        return label
    if fallback is not None:
        return fallback
    return action


def stage_for_status(status: str | None) -> str:
    mapping = {
        DRAFT: "request",
        SUBMITTED: "request",
        NEED_MORE_INFO: "request",
        CANCELLED: "request",
        DEPT_HEAD_PENDING: "approval",
        DEPT_HEAD_APPROVED: "approval",
        DEPT_HEAD_REJECTED: "approval",
        BRANCH_MANAGER_PENDING: "approval",
        BRANCH_MANAGER_APPROVED: "assignment",
        BRANCH_MANAGER_REJECTED: "approval",
        ASSIGNED_TO_BUYER: "assignment",
        RFQ_IN_PROGRESS: "sourcing",
        QUOTATION_RECEIVED: "sourcing",
        SUPPLIER_SELECTED: "decision",
        BUDGET_EXCEPTION: "decision",
        BUDGET_APPROVED: "decision",
        BUDGET_REJECTED: "decision",
        PAYMENT_DONE: "payment",
    }
    return mapping.get(str(status or "").strip(), "request")


def _stage_index(stage: str) -> int:
    for idx, item in enumerate(PROCESS_STAGES):
        if item["key"] == stage:
            return idx
    return 0


def build_process_steps(current_stage: str) -> List[Dict[str, object]]:
    current_idx = _stage_index(current_stage)
    steps: List[Dict[str, object]] = []
    for idx, stage in enumerate(PROCESS_STAGES):
        state = "future"
        if idx < current_idx:
            state = "completed"
        elif idx == current_idx:
            state = "current"
        steps.append(
            {
                "key": stage["key"],
                "label": stage["label"],
                "state": state,
            }
        )
    return steps


def flow_meta(status: str | None, role: str | None = None) -> Dict[str, object]:
    stage = stage_for_status(status)
    return {
        "status": status,
        "stage": stage,
        "terminal": is_terminal(status),
        "allowed_actions": allowed_actions(status, role),
        "primary_action": primary_action(status, role),
        "process_steps": build_process_steps(stage),
    }


def frontend_bundle() -> Dict[str, object]:
    return {
        "stages": PROCESS_STAGES,
        "statuses": PR_STATUSES,
        "action_labels": ACTION_LABELS,
    }
