from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple

from app.core.event_bus import (
    BudgetExceptionRaised,
    DomainEvent,
    EventBus,
    PRAssigned,
    PRStatusChanged,
    SupplierSelected,
    serialize_event,
)
from app.policies import (
    ROLE_ACCOUNTANT,
    ROLE_BRANCH_MANAGER,
    ROLE_BUYER,
    ROLE_BUYER_LEADER,
    ROLE_DEPARTMENT_HEAD,
    ROLE_EXECUTIVE_BOARD,
    ROLE_REQUESTOR,
)
from app.procurement import flow_policy
from app.ui_strings import notification_message


NOTIFICATION_PR_STATUS_CHANGED = "PR_STATUS_CHANGED"
NOTIFICATION_PR_ASSIGNED = "PR_ASSIGNED"
NOTIFICATION_SUPPLIER_SELECTED = "SUPPLIER_SELECTED"
NOTIFICATION_BUDGET_EXCEPTION_RAISED = "BUDGET_EXCEPTION_RAISED"

# Who has to act (or is told) once a request lands in a status.
# BUDGET_EXCEPTION is announced by BudgetExceptionRaised instead.
STATUS_RECIPIENTS: Dict[str, Tuple[str, ...]] = {
    flow_policy.DEPT_HEAD_PENDING: (ROLE_DEPARTMENT_HEAD,),
    flow_policy.BRANCH_MANAGER_PENDING: (ROLE_BRANCH_MANAGER,),
    flow_policy.BRANCH_MANAGER_APPROVED: (ROLE_BUYER_LEADER,),
    flow_policy.QUOTATION_RECEIVED: (ROLE_BUYER_LEADER,),
    flow_policy.SUPPLIER_SELECTED: (ROLE_ACCOUNTANT,),
    flow_policy.BUDGET_APPROVED: (ROLE_ACCOUNTANT, ROLE_BUYER_LEADER),
    flow_policy.BUDGET_REJECTED: (ROLE_REQUESTOR, ROLE_BUYER_LEADER),
    flow_policy.NEED_MORE_INFO: (ROLE_REQUESTOR,),
    flow_policy.DEPT_HEAD_REJECTED: (ROLE_REQUESTOR,),
    flow_policy.BRANCH_MANAGER_REJECTED: (ROLE_REQUESTOR,),
    flow_policy.CANCELLED: (ROLE_REQUESTOR,),
    flow_policy.PAYMENT_DONE: (ROLE_REQUESTOR,),
}


@dataclass(frozen=True)
class NotificationDraft:
    type: str
    recipient_role: str
    purchase_request_id: int
    message: str
    recipient_id: str | None = None
    payload: Dict[str, Any] = field(default_factory=dict)


def _status_changed(event: PRStatusChanged) -> List[NotificationDraft]:
    message = notification_message(
        NOTIFICATION_PR_STATUS_CHANGED,
        pr_number=event.pr_number,
        from_status=event.from_status,
        to_status=event.to_status,
    )
    return [
        NotificationDraft(
            type=NOTIFICATION_PR_STATUS_CHANGED,
            recipient_role=role,
            purchase_request_id=event.purchase_request_id,
            message=message,
            payload=serialize_event(event),
        )
        for role in STATUS_RECIPIENTS.get(event.to_status, ())
    ]


def _assigned(event: PRAssigned) -> List[NotificationDraft]:
    return [
        NotificationDraft(
            type=NOTIFICATION_PR_ASSIGNED,
            recipient_role=ROLE_BUYER,
            recipient_id=event.buyer_id,
            purchase_request_id=event.purchase_request_id,
            message=notification_message(NOTIFICATION_PR_ASSIGNED, pr_number=event.pr_number),
            payload=serialize_event(event),
        )
    ]


def _supplier_selected(event: SupplierSelected) -> List[NotificationDraft]:
    return [
        NotificationDraft(
            type=NOTIFICATION_SUPPLIER_SELECTED,
            recipient_role=ROLE_REQUESTOR,
            purchase_request_id=event.purchase_request_id,
            message=notification_message(NOTIFICATION_SUPPLIER_SELECTED, pr_number=event.pr_number),
            payload=serialize_event(event),
        )
    ]


def _budget_exception_raised(event: BudgetExceptionRaised) -> List[NotificationDraft]:
    message = notification_message(
        NOTIFICATION_BUDGET_EXCEPTION_RAISED,
        pr_number=event.pr_number,
        over_percent=event.over_percent,
    )
    return [
        NotificationDraft(
            type=NOTIFICATION_BUDGET_EXCEPTION_RAISED,
            recipient_role=role,
            purchase_request_id=event.purchase_request_id,
            message=message,
            payload=serialize_event(event),
        )
        for role in (ROLE_BRANCH_MANAGER, ROLE_EXECUTIVE_BOARD)
    ]


_BUILDERS: Dict[type, Callable[[Any], List[NotificationDraft]]] = {
    PRStatusChanged: _status_changed,
    PRAssigned: _assigned,
    SupplierSelected: _supplier_selected,
    BudgetExceptionRaised: _budget_exception_raised,
}


def notifications_for(event: DomainEvent) -> List[NotificationDraft]:
    builder = _BUILDERS.get(type(event))
    if builder is None:
        return []
    return builder(event)


class NotificationInbox:
    """Persists role-targeted notifications for published workflow events.

    Re-delivering an event is harmless: the inbox keys rows by event id and
    recipient role.
    """

    def __init__(self, db_provider: Callable[[], Any], repository_factory: Callable[[str], Any]) -> None:
        self._db_provider = db_provider
        self._repository_factory = repository_factory
        self._logger = logging.getLogger("app")

    def subscribe(self, event_bus: EventBus) -> None:
        for event_type in _BUILDERS:
            event_bus.subscribe(event_type, self.handle)

    def handle(self, event: DomainEvent) -> int:
        drafts = notifications_for(event)
        if not drafts:
            return 0
        db = self._db_provider()
        repository = self._repository_factory(event.tenant_id)
        added = 0
        with db.transaction():
            for draft in drafts:
                if repository.add_once(
                    db,
                    event_id=event.event_id,
                    notification_type=draft.type,
                    recipient_role=draft.recipient_role,
                    recipient_id=draft.recipient_id,
                    purchase_request_id=draft.purchase_request_id,
                    message=draft.message,
                    payload=draft.payload,
                ):
                    added += 1
        self._logger.info(
            "notifications_recorded",
            extra={"event_type": event.event_type, "event_id": event.event_id, "notifications_added": added},
        )
        return added
