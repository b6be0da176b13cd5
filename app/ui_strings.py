from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "Procurement Workflow",
    "purchase_request": "Purchase request",
    "rfq": "Request for quotation",
    "quotation": "Quotation",
    "supplier_selection": "Supplier selection",
    "budget_exception": "Budget exception",
    "payment": "Payment",
    "sales_po": "Sales PO",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "purchase_request": [
        {"key": "DRAFT", "label": "Draft", "description": "Request being prepared by the requestor."},
        {"key": "SUBMITTED", "label": "Submitted", "description": "Request submitted and waiting for routing."},
        {"key": "DEPT_HEAD_PENDING", "label": "Waiting for department head", "description": "First approval level."},
        {"key": "DEPT_HEAD_APPROVED", "label": "Approved by department head", "description": "Ready for branch manager."},
        {"key": "DEPT_HEAD_REJECTED", "label": "Rejected by department head", "description": "Closed without purchase."},
        {"key": "BRANCH_MANAGER_PENDING", "label": "Waiting for branch manager", "description": "Second approval level."},
        {"key": "BRANCH_MANAGER_APPROVED", "label": "Approved by branch manager", "description": "Waiting for buyer assignment."},
        {"key": "BRANCH_MANAGER_REJECTED", "label": "Rejected by branch manager", "description": "Closed without purchase."},
        {"key": "ASSIGNED_TO_BUYER", "label": "Assigned to buyer", "description": "Every item has a responsible buyer."},
        {"key": "RFQ_IN_PROGRESS", "label": "RFQ in progress", "description": "Buyers are collecting quotations."},
        {"key": "QUOTATION_RECEIVED", "label": "Quotations received", "description": "Quotations ready to compare."},
        {"key": "SUPPLIER_SELECTED", "label": "Supplier selected", "description": "Winning quotation recorded."},
        {"key": "BUDGET_EXCEPTION", "label": "Budget exception", "description": "Selection exceeds the declared budget."},
        {"key": "BUDGET_APPROVED", "label": "Budget exception approved", "description": "Over-budget purchase allowed."},
        {"key": "BUDGET_REJECTED", "label": "Budget exception rejected", "description": "Over-budget purchase refused."},
        {"key": "PAYMENT_DONE", "label": "Payment done", "description": "Request closed with payment."},
        {"key": "NEED_MORE_INFO", "label": "Needs more information", "description": "Returned to the requestor."},
        {"key": "CANCELLED", "label": "Cancelled", "description": "Closed without purchase."},
    ],
    "rfq": [
        {"key": "DRAFT", "label": "Draft", "description": "RFQ being prepared."},
        {"key": "SENT", "label": "Sent", "description": "RFQ sent to suppliers."},
        {"key": "QUOTATION_RECEIVED", "label": "Quotation received", "description": "At least one quotation arrived."},
        {"key": "CLOSED", "label": "Closed", "description": "No more quotations accepted."},
    ],
    "quotation": [
        {"key": "DRAFT", "label": "Draft", "description": "Quotation being recorded."},
        {"key": "VALID", "label": "Valid", "description": "Eligible for comparison."},
        {"key": "REJECTED", "label": "Rejected", "description": "Excluded from comparison."},
        {"key": "SELECTED", "label": "Selected", "description": "Winning quotation."},
    ],
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "purchase_request_created": "Purchase request created.",
        "transition_applied": "Status updated.",
        "assignment_saved": "Assignment saved.",
        "assignment_revoked": "Assignment revoked.",
        "rfq_created": "RFQ created.",
        "quotation_saved": "Quotation saved.",
        "supplier_selected": "Supplier selected.",
        "budget_exception_raised": "Selection recorded as a budget exception.",
        "budget_exception_decided": "Budget exception decided.",
        "payment_recorded": "Payment recorded.",
    },
    "error": {
        "action_invalid": "Invalid action for this operation.",
        "assignment_not_found": "Assignment not found.",
        "assignment_overlap": "One or more items are already assigned to a buyer.",
        "assignment_scope_invalid": "Assignment scope must be FULL or PARTIAL.",
        "budget_exception_not_found": "Budget exception not found.",
        "concurrent_modification": "The purchase request was changed by someone else. Reload and try again.",
        "currency_mismatch": "Quotations in different currencies cannot be compared.",
        "dedicated_operation_required": "This step has its own operation and cannot be applied as a plain transition.",
        "identity_required": "User id and role are required.",
        "incomplete_assignment": "Every item must be assigned to exactly one buyer before continuing.",
        "invalid_transition": "This action is not allowed for the current status.",
        "item_not_in_request": "One or more items do not belong to this purchase request.",
        "items_required": "Add at least one valid item.",
        "missing_justification": "A justification is required for an over-budget selection.",
        "not_found": "Record not found.",
        "note_required": "A note is required.",
        "payment_not_found": "Payment not found.",
        "payment_status_invalid": "Payment cannot move to this status.",
        "permission_denied": "You do not have permission to perform this action.",
        "purchase_request_not_found": "Purchase request not found.",
        "quotation_not_eligible": "Only valid quotations can be selected.",
        "quotation_not_found": "Quotation not found.",
        "quotation_status_invalid": "Quotation cannot move to this status.",
        "reason_required": "A reason is required.",
        "rfq_not_found": "RFQ not found.",
        "rfq_status_invalid": "RFQ cannot move to this status.",
        "role_not_permitted": "Your role cannot perform this action at the current status.",
        "sales_po_not_active": "Only an active sales PO can be linked.",
        "sales_po_not_found": "Sales PO not found.",
        "sales_po_status_invalid": "Sales PO cannot move to this status.",
        "selection_reason_required": "A selection reason is required.",
        "supplier_already_selected": "A supplier was already selected for this purchase request.",
        "total_amount_invalid": "Total amount must be greater than zero.",
        "unexpected_error": "The operation could not be completed. Try again shortly.",
        "validation_error": "Invalid data.",
    },
    "notification": {
        "PR_STATUS_CHANGED": "Purchase request {pr_number} moved from {from_status} to {to_status}.",
        "PR_ASSIGNED": "Purchase request {pr_number} has items assigned to you.",
        "SUPPLIER_SELECTED": "Supplier selected for purchase request {pr_number}.",
        "BUDGET_EXCEPTION_RAISED": "Purchase request {pr_number} exceeds budget by {over_percent}%.",
    },
}


def build_status_labels(group: str = "purchase_request") -> Dict[str, str]:
    return {item["key"]: item["label"] for item in STATUS_GROUPS.get(group, [])}


STATUS_LABELS = build_status_labels()


def status_label(status: str | None) -> str:
    key = str(status or "")
    return STATUS_LABELS.get(key, key)


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def notification_message(notification_type: str, **values: object) -> str:
    template = get_message("notification", notification_type, notification_type)
    try:
        return template.format(**values)
    except (KeyError, IndexError):
        return template


def frontend_bundle() -> Dict[str, object]:
    from app.procurement.flow_policy import frontend_bundle as flow_frontend_bundle

    return {
        "terms": FRIENDLY_TERMS,
        "status_groups": STATUS_GROUPS,
        "status_labels": STATUS_LABELS,
        "messages": MESSAGES,
        "flow": flow_frontend_bundle(),
    }
