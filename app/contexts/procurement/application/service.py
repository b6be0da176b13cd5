from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Mapping, Sequence

from app.contexts.procurement.infrastructure.repositories import (
    AssignmentRepository,
    BudgetExceptionRepository,
    NotificationRepository,
    PaymentRepository,
    PurchaseRequestItemRepository,
    PurchaseRequestRepository,
    QuotationRepository,
    RfqRepository,
    SalesPORepository,
    StatusEventRepository,
    SupplierSelectionRepository,
)
from app.core import (
    BudgetExceptionRaised,
    DomainEvent,
    EventBus,
    KeyedLock,
    PRAssigned,
    PRStatusChanged,
    PurchaseRequestCreated,
    SupplierSelected,
)
from app.domain.contracts import (
    Assignment,
    BudgetException,
    ItemInput,
    Notification,
    Payment,
    PurchaseRequest,
    PurchaseRequestCreateInput,
    Quotation,
    QuotationInput,
    Rfq,
    SalesPO,
    to_money,
)
from app.errors import (
    ConcurrentModificationError,
    DataIntegrityError,
    IncompleteAssignmentError,
    InvalidTransitionError,
    NotFoundError,
    PermissionError,
    ValidationError,
)
from app.observability import (
    observe_budget_exception,
    observe_concurrent_modification,
    observe_pr_transition,
    observe_pr_transition_rejected,
)
from app.policies import (
    ROLE_ACCOUNTANT,
    ROLE_BUYER,
    ROLE_BUYER_LEADER,
    ROLE_BUYER_MANAGER,
    ROLE_REQUESTOR,
    ROLE_SALES,
    ROLE_SYSTEM,
    ROLE_SYSTEM_ADMIN,
    Actor,
    require_roles,
)
from app.procurement import flow_policy
from app.procurement.assignment_resolver import (
    SCOPE_PARTIAL,
    AssignmentPlan,
    Coverage,
    plan_assignment,
    quick_assign_all,
    split_by_purchase_type,
    validate_complete,
)
from app.procurement.budget_gate import check_over_budget, require_justification
from app.procurement.budget_ledger import BudgetThresholds, BudgetUsage, usage_from_actual_cost
from app.procurement.numbering import PR_PREFIX, RFQ_PREFIX, next_number, numbering_lock
from app.procurement.quotation_scorer import Ranking, ScoringPolicy, rank


ENTITY_PURCHASE_REQUEST = "purchase_request"
ENTITY_ASSIGNMENT = "pr_assignment"
ENTITY_RFQ = "rfq"
ENTITY_QUOTATION = "quotation"
ENTITY_PAYMENT = "payment"
ENTITY_SALES_PO = "sales_po"

EDITABLE_STATUSES = (flow_policy.DRAFT, flow_policy.NEED_MORE_INFO)
ASSIGNABLE_STATUSES = (flow_policy.BRANCH_MANAGER_APPROVED, flow_policy.ASSIGNED_TO_BUYER)
RFQ_STATUSES_OPEN_FOR_CREATION = (
    flow_policy.ASSIGNED_TO_BUYER,
    flow_policy.RFQ_IN_PROGRESS,
    flow_policy.QUOTATION_RECEIVED,
)
QUOTATION_INTAKE_STATUSES = (flow_policy.RFQ_IN_PROGRESS, flow_policy.QUOTATION_RECEIVED)
PAYABLE_STATUSES = (flow_policy.SUPPLIER_SELECTED, flow_policy.BUDGET_APPROVED, flow_policy.PAYMENT_DONE)

_EDITABLE_FIELDS = ("department", "purpose", "total_amount", "currency")
_ASSIGNER_ROLES = (ROLE_BUYER_LEADER, ROLE_BUYER_MANAGER)
_ZERO = Decimal("0.00")


@dataclass(frozen=True)
class _Repositories:
    purchase_requests: PurchaseRequestRepository
    items: PurchaseRequestItemRepository
    assignments: AssignmentRepository
    status_events: StatusEventRepository
    rfqs: RfqRepository
    quotations: QuotationRepository
    selections: SupplierSelectionRepository
    budget_exceptions: BudgetExceptionRepository
    sales_pos: SalesPORepository
    payments: PaymentRepository
    notifications: NotificationRepository

    @classmethod
    def for_tenant(cls, tenant_id: str) -> "_Repositories":
        return cls(
            purchase_requests=PurchaseRequestRepository(tenant_id=tenant_id),
            items=PurchaseRequestItemRepository(tenant_id=tenant_id),
            assignments=AssignmentRepository(tenant_id=tenant_id),
            status_events=StatusEventRepository(tenant_id=tenant_id),
            rfqs=RfqRepository(tenant_id=tenant_id),
            quotations=QuotationRepository(tenant_id=tenant_id),
            selections=SupplierSelectionRepository(tenant_id=tenant_id),
            budget_exceptions=BudgetExceptionRepository(tenant_id=tenant_id),
            sales_pos=SalesPORepository(tenant_id=tenant_id),
            payments=PaymentRepository(tenant_id=tenant_id),
            notifications=NotificationRepository(tenant_id=tenant_id),
        )


class ProcurementWorkflowService:
    """Application facade for the purchase-request workflow.

    Every operation that touches a purchase request runs under a per-request
    lock and an optimistic version check, writes in one transaction, and
    publishes its domain events only after the commit.
    """

    def __init__(
        self,
        *,
        event_bus: EventBus,
        config: Mapping[str, Any] | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        settings = dict(config or {})
        self.event_bus = event_bus
        self.scoring_policy = ScoringPolicy.from_config(settings)
        self.budget_thresholds = BudgetThresholds.from_config(settings)
        self.default_currency = str(settings.get("DEFAULT_CURRENCY") or "VND").strip().upper()
        self.number_gap_fill = bool(settings.get("NUMBER_GAP_FILL", False))
        self.number_width = int(settings.get("NUMBER_SEQUENCE_WIDTH") or 4)
        self._locks = locks or KeyedLock()
        self._logger = logging.getLogger("app")

    @contextlib.contextmanager
    def _locked(self, tenant_id: str, purchase_request_id: int) -> Iterator[None]:
        with self._locks.hold((tenant_id, ENTITY_PURCHASE_REQUEST, int(purchase_request_id))):
            yield

    @staticmethod
    def _now_year() -> int:
        return datetime.now(timezone.utc).year

    def _next_number(self, db, repository, prefix: str, year: int) -> str:
        existing = repository.list_numbers_like(db, f"{prefix}-{year}-")
        return next_number(existing, prefix, year=year, gap_fill=self.number_gap_fill, width=self.number_width)

    def _load(self, db, repos: _Repositories, purchase_request_id: int) -> PurchaseRequest:
        row = repos.purchase_requests.get_row(db, purchase_request_id)
        if not row:
            raise NotFoundError(
                code="purchase_request_not_found",
                message_key="purchase_request_not_found",
                payload={"purchase_request_id": purchase_request_id},
            )
        items = repos.items.list_for_request(db, purchase_request_id)
        assignments = repos.assignments.list_for_request(db, purchase_request_id)
        return PurchaseRequest.from_row(row, items=items, assignments=assignments)

    @staticmethod
    def _check_version(pr: PurchaseRequest, expected_version: int | None) -> None:
        if expected_version is None or int(expected_version) == pr.version:
            return
        observe_concurrent_modification()
        raise ConcurrentModificationError(
            payload={"purchase_request_id": pr.id, "expected_version": int(expected_version), "version": pr.version}
        )

    @staticmethod
    def _ensure_owner(pr: PurchaseRequest, actor: Actor) -> None:
        if actor.role == ROLE_REQUESTOR and pr.requestor_id != actor.user_id:
            raise PermissionError(details="purchase request belongs to another requestor")

    @staticmethod
    def _ensure_status_in(pr: PurchaseRequest, statuses: Sequence[str], action: str) -> None:
        if pr.status in statuses:
            return
        raise InvalidTransitionError(
            payload={"status": pr.status, "action": action, "allowed_statuses": list(statuses)},
        )

    def _concurrent(self, pr: PurchaseRequest, action: str) -> ConcurrentModificationError:
        observe_concurrent_modification()
        self._logger.warning(
            "pr_concurrent_modification",
            extra={"purchase_request_id": pr.id, "action": action, "version": pr.version, "status": pr.status},
        )
        return ConcurrentModificationError(payload={"purchase_request_id": pr.id, "version": pr.version})

    def _integrity_violation(self, code: str, **details: Any) -> DataIntegrityError:
        self._logger.error("data_integrity_violation", extra={"error_code": code, **details}, stack_info=True)
        return DataIntegrityError(code=code, details=code, payload={})

    def _bump_version(self, db, repos: _Repositories, pr: PurchaseRequest, action: str) -> PurchaseRequest:
        if not repos.purchase_requests.compare_and_update_fields(
            db, pr.id, expected_version=pr.version, fields={}
        ):
            raise self._concurrent(pr, action)
        return replace(pr, version=pr.version + 1)

    def _resolve(self, pr: PurchaseRequest, actor: Actor, action: str) -> str:
        try:
            return flow_policy.resolve_transition(pr.status, actor.role, action)
        except InvalidTransitionError as exc:
            observe_pr_transition_rejected(exc.code)
            self._logger.warning(
                "pr_transition_rejected",
                extra={
                    "purchase_request_id": pr.id,
                    "action": action,
                    "from_status": pr.status,
                    "actor_role": actor.role,
                    "error_code": exc.code,
                },
            )
            raise

    def _check_guard(self, pr: PurchaseRequest, action: str) -> None:
        if flow_policy.transition_guard(pr.status, action) != flow_policy.GUARD_ASSIGNMENT_COMPLETE:
            return
        coverage = validate_complete([item.id for item in pr.active_items], pr.active_assignments)
        if coverage.complete:
            return
        observe_pr_transition_rejected("incomplete_assignment")
        self._logger.warning(
            "pr_transition_rejected",
            extra={
                "purchase_request_id": pr.id,
                "action": action,
                "from_status": pr.status,
                "error_code": "incomplete_assignment",
            },
        )
        raise IncompleteAssignmentError(
            coverage.unassigned_item_ids,
            payload={"double_assigned_item_ids": list(coverage.double_assigned_item_ids)},
        )

    @staticmethod
    def _check_submission(pr: PurchaseRequest) -> None:
        if not pr.active_items:
            raise ValidationError(code="items_required", message_key="items_required")
        if pr.total_amount <= 0:
            raise ValidationError(
                code="total_amount_invalid",
                message_key="total_amount_invalid",
                payload={"total_amount": str(pr.total_amount)},
            )

    def _apply_transition(
        self,
        db,
        repos: _Repositories,
        pr: PurchaseRequest,
        actor: Actor,
        action: str,
        events: List[DomainEvent],
        *,
        reason: str | None = None,
    ) -> PurchaseRequest:
        """Move ``pr`` through one table transition plus any automatic follow-up.

        Must run inside the caller's lock and transaction.
        """
        to_status = self._resolve(pr, actor, action)
        cleaned_reason = str(reason or "").strip() or None
        if flow_policy.reason_required(action) and not cleaned_reason:
            raise ValidationError(code="reason_required", message_key="reason_required", payload={"action": action})
        self._check_guard(pr, action)
        if pr.status == flow_policy.DRAFT and action == "submit":
            self._check_submission(pr)

        entering_return = to_status == flow_policy.NEED_MORE_INFO
        if not repos.purchase_requests.compare_and_set_status(
            db,
            pr.id,
            expected_version=pr.version,
            expected_status=pr.status,
            new_status=to_status,
            increment_return_count=entering_return,
        ):
            raise self._concurrent(pr, action)

        event = PRStatusChanged(
            tenant_id=repos.purchase_requests.tenant_id,
            purchase_request_id=pr.id,
            pr_number=pr.number,
            from_status=pr.status,
            to_status=to_status,
            action=action,
            actor_id=actor.user_id,
            actor_role=actor.role,
            reason=cleaned_reason,
        )
        repos.status_events.add_event(
            db,
            entity=ENTITY_PURCHASE_REQUEST,
            entity_id=pr.id,
            action=action,
            from_status=pr.status,
            to_status=to_status,
            actor_id=actor.user_id,
            actor_role=actor.role,
            reason=cleaned_reason,
            event_id=event.event_id,
        )
        events.append(event)
        updated = replace(
            pr,
            status=to_status,
            version=pr.version + 1,
            return_count=pr.return_count + (1 if entering_return else 0),
        )

        follow_up = flow_policy.automatic_action(to_status)
        if follow_up:
            system_actor = Actor(user_id=actor.user_id, role=ROLE_SYSTEM)
            updated = self._apply_transition(db, repos, updated, system_actor, follow_up, events)
        return updated

    def _publish(self, events: Sequence[DomainEvent]) -> None:
        for event in events:
            if isinstance(event, PRStatusChanged):
                observe_pr_transition(event.action, event.from_status, event.to_status)
                self._logger.info(
                    "pr_status_changed",
                    extra={
                        "purchase_request_id": event.purchase_request_id,
                        "pr_number": event.pr_number,
                        "action": event.action,
                        "from_status": event.from_status,
                        "to_status": event.to_status,
                        "actor_id": event.actor_id,
                        "actor_role": event.actor_role,
                        "event_id": event.event_id,
                    },
                )
            elif isinstance(event, BudgetExceptionRaised):
                observe_budget_exception()
        self.event_bus.publish_all(list(events))

    @staticmethod
    def _validate_item(item: ItemInput) -> None:
        if not str(item.description or "").strip():
            raise ValidationError(code="item_invalid", details="item description is required")
        if item.quantity <= 0:
            raise ValidationError(code="item_invalid", details="item quantity must be positive")
        if item.unit_price < 0:
            raise ValidationError(code="item_invalid", details="item unit price cannot be negative")

    @staticmethod
    def _items_total(items: Sequence[Any]) -> Decimal:
        return sum((item.amount for item in items), _ZERO)

    def create_purchase_request(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        data: PurchaseRequestCreateInput,
    ) -> PurchaseRequest:
        require_roles(ROLE_REQUESTOR, role=actor.role)
        repos = _Repositories.for_tenant(tenant_id)
        for item in data.items:
            self._validate_item(item)
        total = data.total_amount if data.total_amount is not None else self._items_total(data.items)
        total = to_money(total)
        if total < 0:
            raise ValidationError(code="total_amount_invalid", message_key="total_amount_invalid")
        currency = str(data.currency or self.default_currency).strip().upper()

        if data.sales_po_id is not None:
            sales_po = repos.sales_pos.get_by_id(db, data.sales_po_id)
            if sales_po is None:
                raise NotFoundError(code="sales_po_not_found", message_key="sales_po_not_found")
            if sales_po.status != "ACTIVE":
                raise ValidationError(
                    code="sales_po_not_active",
                    message_key="sales_po_not_active",
                    http_status=409,
                    payload={"sales_po_id": sales_po.id, "sales_po_status": sales_po.status},
                )

        year = self._now_year()
        events: List[DomainEvent] = []
        with numbering_lock(tenant_id, PR_PREFIX, year):
            with db.transaction():
                number = self._next_number(db, repos.purchase_requests, PR_PREFIX, year)
                purchase_request_id = repos.purchase_requests.create(
                    db,
                    number=number,
                    requestor_id=actor.user_id,
                    department=(data.department or "").strip() or None,
                    purpose=(data.purpose or "").strip() or None,
                    total_amount=total,
                    currency=currency,
                    status=flow_policy.DRAFT,
                    sales_po_id=data.sales_po_id,
                )
                for line_no, item in enumerate(data.items, start=1):
                    repos.items.create(db, purchase_request_id=purchase_request_id, line_no=line_no, item=item)
                event = PurchaseRequestCreated(
                    tenant_id=tenant_id,
                    purchase_request_id=purchase_request_id,
                    pr_number=number,
                    status=flow_policy.DRAFT,
                    actor_id=actor.user_id,
                    items_created=len(data.items),
                )
                repos.status_events.add_event(
                    db,
                    entity=ENTITY_PURCHASE_REQUEST,
                    entity_id=purchase_request_id,
                    action="create",
                    from_status=None,
                    to_status=flow_policy.DRAFT,
                    actor_id=actor.user_id,
                    actor_role=actor.role,
                    event_id=event.event_id,
                )
                events.append(event)
        self._publish(events)
        return self._load(db, repos, purchase_request_id)

    def get_purchase_request(self, db, *, tenant_id: str, purchase_request_id: int) -> PurchaseRequest:
        return self._load(db, _Repositories.for_tenant(tenant_id), purchase_request_id)

    def list_purchase_requests(self, db, *, tenant_id: str, status: str | None = None) -> List[dict]:
        return _Repositories.for_tenant(tenant_id).purchase_requests.list_summary(db, status=status)

    def purchase_request_detail(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
    ) -> Dict[str, Any]:
        pr = self.get_purchase_request(db, tenant_id=tenant_id, purchase_request_id=purchase_request_id)
        coverage = validate_complete([item.id for item in pr.active_items], pr.active_assignments)
        detail = pr.to_dict()
        detail["items"] = [item.to_dict() for item in pr.active_items]
        detail["assignments"] = [assignment.to_dict() for assignment in pr.active_assignments]
        detail["coverage"] = coverage.to_dict()
        detail["flow"] = flow_policy.flow_meta(pr.status, actor.role)
        detail["allowed_actions"] = detail["flow"]["allowed_actions"]
        return detail

    def update_purchase_request(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
        changes: Mapping[str, Any],
        expected_version: int | None = None,
    ) -> PurchaseRequest:
        require_roles(ROLE_REQUESTOR, role=actor.role)
        fields: Dict[str, Any] = {}
        for key in _EDITABLE_FIELDS:
            if key not in changes:
                continue
            value = changes[key]
            if key == "total_amount":
                value = to_money(value)
                if value < 0:
                    raise ValidationError(code="total_amount_invalid", message_key="total_amount_invalid")
            elif key == "currency":
                value = str(value or "").strip().upper() or self.default_currency
            else:
                value = str(value or "").strip() or None
            fields[key] = value
        if not fields:
            raise ValidationError(code="no_changes", details="nothing to update")

        repos = _Repositories.for_tenant(tenant_id)
        with self._locked(tenant_id, purchase_request_id):
            pr = self._load(db, repos, purchase_request_id)
            self._ensure_owner(pr, actor)
            self._check_version(pr, expected_version)
            self._ensure_status_in(pr, EDITABLE_STATUSES, "edit")
            with db.transaction():
                if not repos.purchase_requests.compare_and_update_fields(
                    db, pr.id, expected_version=pr.version, fields=fields
                ):
                    raise self._concurrent(pr, "edit")
            return self._load(db, repos, purchase_request_id)

    @classmethod
    def _sync_total(cls, pr: PurchaseRequest, previous_items, current_items) -> Dict[str, Any]:
        # A declared total that still equals the item sum follows the items.
        if pr.total_amount == cls._items_total(previous_items):
            return {"total_amount": cls._items_total(current_items)}
        return {}

    def add_item(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
        item: ItemInput,
        expected_version: int | None = None,
    ) -> PurchaseRequest:
        require_roles(ROLE_REQUESTOR, role=actor.role)
        self._validate_item(item)
        repos = _Repositories.for_tenant(tenant_id)
        with self._locked(tenant_id, purchase_request_id):
            pr = self._load(db, repos, purchase_request_id)
            self._ensure_owner(pr, actor)
            self._check_version(pr, expected_version)
            self._ensure_status_in(pr, EDITABLE_STATUSES, "add_item")
            with db.transaction():
                line_no = repos.items.next_line_no(db, pr.id)
                repos.items.create(db, purchase_request_id=pr.id, line_no=line_no, item=item)
                fields = self._sync_total(pr, pr.active_items, [*pr.active_items, item])
                if not repos.purchase_requests.compare_and_update_fields(
                    db, pr.id, expected_version=pr.version, fields=fields
                ):
                    raise self._concurrent(pr, "add_item")
            return self._load(db, repos, purchase_request_id)

    def remove_item(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
        item_id: int,
        expected_version: int | None = None,
    ) -> PurchaseRequest:
        require_roles(ROLE_REQUESTOR, role=actor.role)
        repos = _Repositories.for_tenant(tenant_id)
        with self._locked(tenant_id, purchase_request_id):
            pr = self._load(db, repos, purchase_request_id)
            self._ensure_owner(pr, actor)
            self._check_version(pr, expected_version)
            self._ensure_status_in(pr, EDITABLE_STATUSES, "remove_item")
            remaining = [item for item in pr.active_items if item.id != int(item_id)]
            if len(remaining) == len(pr.active_items):
                raise ValidationError(
                    code="item_not_in_request",
                    message_key="item_not_in_request",
                    payload={"item_ids": [int(item_id)]},
                )
            with db.transaction():
                repos.items.soft_delete(db, int(item_id), pr.id)
                fields = self._sync_total(pr, pr.active_items, remaining)
                if not repos.purchase_requests.compare_and_update_fields(
                    db, pr.id, expected_version=pr.version, fields=fields
                ):
                    raise self._concurrent(pr, "remove_item")
            return self._load(db, repos, purchase_request_id)

    def delete_purchase_request(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
        expected_version: int | None = None,
    ) -> None:
        require_roles(ROLE_REQUESTOR, ROLE_SYSTEM_ADMIN, role=actor.role)
        repos = _Repositories.for_tenant(tenant_id)
        with self._locked(tenant_id, purchase_request_id):
            pr = self._load(db, repos, purchase_request_id)
            self._ensure_owner(pr, actor)
            self._check_version(pr, expected_version)
            self._ensure_status_in(pr, (flow_policy.DRAFT,), "delete")
            with db.transaction():
                if not repos.purchase_requests.soft_delete(db, pr.id, expected_version=pr.version):
                    raise self._concurrent(pr, "delete")
                repos.status_events.add_event(
                    db,
                    entity=ENTITY_PURCHASE_REQUEST,
                    entity_id=pr.id,
                    action="delete",
                    from_status=pr.status,
                    to_status=pr.status,
                    actor_id=actor.user_id,
                    actor_role=actor.role,
                )
        self._logger.info("purchase_request_deleted", extra={"purchase_request_id": pr.id, "actor_id": actor.user_id})

    def transition(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
        action: str,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> PurchaseRequest:
        """Apply a plain table transition such as an approval, a return or a cancellation."""
        normalized_action = str(action or "").strip()
        repos = _Repositories.for_tenant(tenant_id)
        events: List[DomainEvent] = []
        with self._locked(tenant_id, purchase_request_id):
            pr = self._load(db, repos, purchase_request_id)
            if flow_policy.is_dedicated_action(pr.status, normalized_action):
                raise ValidationError(
                    code="dedicated_operation_required",
                    message_key="dedicated_operation_required",
                    payload={"status": pr.status, "action": normalized_action},
                )
            self._ensure_owner(pr, actor)
            self._check_version(pr, expected_version)
            with db.transaction():
                self._apply_transition(db, repos, pr, actor, normalized_action, events, reason=reason)
            self._publish(events)
            return self._load(db, repos, purchase_request_id)

    def history(self, db, *, tenant_id: str, purchase_request_id: int) -> List[dict]:
        repos = _Repositories.for_tenant(tenant_id)
        if repos.purchase_requests.get_row(db, purchase_request_id, include_deleted=True) is None:
            raise NotFoundError(code="purchase_request_not_found", message_key="purchase_request_not_found")
        return repos.status_events.list_for_entity(db, entity=ENTITY_PURCHASE_REQUEST, entity_id=purchase_request_id)

    def assign(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
        buyer_id: str,
        scope: str,
        item_ids: Sequence[int] | None = None,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> Assignment:
        require_roles(*_ASSIGNER_ROLES, role=actor.role)
        cleaned_note = str(note or "").strip()
        if not cleaned_note:
            raise ValidationError(code="note_required", message_key="note_required")
        repos = _Repositories.for_tenant(tenant_id)
        events: List[DomainEvent] = []
        with self._locked(tenant_id, purchase_request_id):
            pr = self._load(db, repos, purchase_request_id)
            self._check_version(pr, expected_version)
            self._ensure_status_in(pr, ASSIGNABLE_STATUSES, "assign")
            current_ids = [item.id for item in pr.active_items]
            plan = plan_assignment(
                current_ids,
                pr.active_assignments,
                buyer_id=buyer_id,
                scope=scope,
                requested_item_ids=item_ids,
            )
            with db.transaction():
                assignment_id = repos.assignments.create(
                    db,
                    purchase_request_id=pr.id,
                    buyer_id=plan.buyer_id,
                    buyer_leader_id=actor.user_id,
                    scope=plan.scope,
                    item_ids=plan.item_ids,
                    note=cleaned_note,
                )
                repos.status_events.add_event(
                    db,
                    entity=ENTITY_ASSIGNMENT,
                    entity_id=assignment_id,
                    action="assign",
                    from_status=None,
                    to_status=plan.scope,
                    actor_id=actor.user_id,
                    actor_role=actor.role,
                    reason=cleaned_note,
                )
                updated = self._bump_version(db, repos, pr, "assign")
                events.append(
                    PRAssigned(
                        tenant_id=tenant_id,
                        purchase_request_id=pr.id,
                        pr_number=pr.number,
                        assignment_id=assignment_id,
                        buyer_id=plan.buyer_id,
                        scope=plan.scope,
                        item_ids=plan.item_ids,
                        actor_id=actor.user_id,
                    )
                )
                updated = replace(updated, assignments=tuple(repos.assignments.list_for_request(db, pr.id)))
                coverage = validate_complete(current_ids, updated.active_assignments)
                if coverage.complete and updated.status == flow_policy.BRANCH_MANAGER_APPROVED:
                    system_actor = Actor(user_id=actor.user_id, role=ROLE_SYSTEM)
                    self._apply_transition(db, repos, updated, system_actor, "complete_assignment", events)
            self._publish(events)
            return repos.assignments.get_by_id(db, assignment_id)

    def _assign_plan(self, db, *, tenant_id: str, actor: Actor, purchase_request_id: int, plan: AssignmentPlan, note):
        return self.assign(
            db,
            tenant_id=tenant_id,
            actor=actor,
            purchase_request_id=purchase_request_id,
            buyer_id=plan.buyer_id,
            scope=plan.scope,
            item_ids=list(plan.item_ids) if plan.scope == SCOPE_PARTIAL else None,
            note=note,
        )

    def quick_assign(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
        note: str | None,
        buyer_id: str | None = None,
        buyers_by_type: Mapping[str, str] | None = None,
    ) -> List[Assignment]:
        """Bulk helpers: everything to one buyer, or one buyer per purchase type.

        Each resulting plan goes through ``assign`` on its own.
        """
        require_roles(*_ASSIGNER_ROLES, role=actor.role)
        pr = self.get_purchase_request(db, tenant_id=tenant_id, purchase_request_id=purchase_request_id)
        if buyers_by_type:
            plans = split_by_purchase_type(pr.active_items, buyers_by_type, default_buyer_id=buyer_id)
        else:
            plans = quick_assign_all(pr.active_items, buyer_id or "")
        return [
            self._assign_plan(db, tenant_id=tenant_id, actor=actor, purchase_request_id=pr.id, plan=plan, note=note)
            for plan in plans
        ]

    def revoke_assignment(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
        assignment_id: int,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> Coverage:
        require_roles(*_ASSIGNER_ROLES, role=actor.role)
        repos = _Repositories.for_tenant(tenant_id)
        with self._locked(tenant_id, purchase_request_id):
            pr = self._load(db, repos, purchase_request_id)
            self._check_version(pr, expected_version)
            self._ensure_status_in(pr, ASSIGNABLE_STATUSES, "revoke_assignment")
            assignment = next((a for a in pr.active_assignments if a.id == int(assignment_id)), None)
            if assignment is None:
                raise NotFoundError(code="assignment_not_found", message_key="assignment_not_found")
            with db.transaction():
                repos.assignments.soft_delete(db, assignment.id)
                repos.status_events.add_event(
                    db,
                    entity=ENTITY_ASSIGNMENT,
                    entity_id=assignment.id,
                    action="revoke",
                    from_status=assignment.scope,
                    to_status="REVOKED",
                    actor_id=actor.user_id,
                    actor_role=actor.role,
                    reason=str(reason or "").strip() or None,
                )
                self._bump_version(db, repos, pr, "revoke_assignment")
            remaining = [a for a in pr.active_assignments if a.id != assignment.id]
            coverage = validate_complete([item.id for item in pr.active_items], remaining)
        self._logger.info(
            "assignment_revoked",
            extra={"purchase_request_id": pr.id, "assignment_id": assignment.id, "complete": coverage.complete},
        )
        return coverage

    def assignment_coverage(self, db, *, tenant_id: str, purchase_request_id: int) -> Coverage:
        pr = self.get_purchase_request(db, tenant_id=tenant_id, purchase_request_id=purchase_request_id)
        return validate_complete([item.id for item in pr.active_items], pr.active_assignments)

    def create_rfq(self, db, *, tenant_id: str, actor: Actor, purchase_request_id: int) -> Rfq:
        require_roles(ROLE_BUYER, role=actor.role)
        repos = _Repositories.for_tenant(tenant_id)
        events: List[DomainEvent] = []
        with self._locked(tenant_id, purchase_request_id):
            pr = self._load(db, repos, purchase_request_id)
            self._ensure_status_in(pr, RFQ_STATUSES_OPEN_FOR_CREATION, "create_rfq")
            if not any(assignment.buyer_id == actor.user_id for assignment in pr.active_assignments):
                raise PermissionError(details="buyer has no active assignment on this purchase request")
            existing = repos.rfqs.find_for_buyer(db, pr.id, actor.user_id)
            if existing is not None:
                return existing

            year = self._now_year()
            with numbering_lock(tenant_id, RFQ_PREFIX, year):
                with db.transaction():
                    if pr.status == flow_policy.ASSIGNED_TO_BUYER:
                        self._apply_transition(db, repos, pr, actor, "start_rfq", events)
                    number = self._next_number(db, repos.rfqs, RFQ_PREFIX, year)
                    rfq_id = repos.rfqs.create(db, number=number, purchase_request_id=pr.id, buyer_id=actor.user_id)
                    repos.status_events.add_event(
                        db,
                        entity=ENTITY_RFQ,
                        entity_id=rfq_id,
                        action="create",
                        from_status=None,
                        to_status="DRAFT",
                        actor_id=actor.user_id,
                        actor_role=actor.role,
                    )
            self._publish(events)
            return repos.rfqs.get_by_id(db, rfq_id)

    def _rfq_for_buyer(self, db, repos: _Repositories, rfq_id: int, actor: Actor) -> Rfq:
        rfq = repos.rfqs.get_by_id(db, rfq_id)
        if rfq is None:
            raise NotFoundError(code="rfq_not_found", message_key="rfq_not_found")
        if actor.role == ROLE_BUYER and rfq.buyer_id != actor.user_id:
            raise PermissionError(details="RFQ belongs to another buyer")
        return rfq

    def _move_rfq(self, db, repos: _Repositories, rfq: Rfq, target: str, actor: Actor) -> None:
        flow_policy.ensure_status_change("rfq", rfq.status, target)
        if not repos.rfqs.compare_and_set_status(db, rfq.id, expected_status=rfq.status, new_status=target):
            raise ConcurrentModificationError(payload={"rfq_id": rfq.id, "status": rfq.status})
        repos.status_events.add_event(
            db,
            entity=ENTITY_RFQ,
            entity_id=rfq.id,
            action=f"to_{target.lower()}",
            from_status=rfq.status,
            to_status=target,
            actor_id=actor.user_id,
            actor_role=actor.role,
        )

    def send_rfq(self, db, *, tenant_id: str, actor: Actor, rfq_id: int) -> Rfq:
        require_roles(ROLE_BUYER, role=actor.role)
        repos = _Repositories.for_tenant(tenant_id)
        rfq = self._rfq_for_buyer(db, repos, rfq_id, actor)
        with self._locked(tenant_id, rfq.purchase_request_id):
            rfq = self._rfq_for_buyer(db, repos, rfq_id, actor)
            with db.transaction():
                self._move_rfq(db, repos, rfq, "SENT", actor)
        return repos.rfqs.get_by_id(db, rfq.id)

    def _on_valid_quotation(
        self,
        db,
        repos: _Repositories,
        pr: PurchaseRequest,
        rfq: Rfq,
        actor: Actor,
        events: List[DomainEvent],
    ) -> None:
        if rfq.status in ("DRAFT", "SENT"):
            self._move_rfq(db, repos, rfq, "QUOTATION_RECEIVED", actor)
        if pr.status == flow_policy.RFQ_IN_PROGRESS:
            self._apply_transition(db, repos, pr, actor, "receive_quotation", events)

    def add_quotation(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        rfq_id: int,
        quotation: QuotationInput,
    ) -> Quotation:
        require_roles(ROLE_BUYER, role=actor.role)
        status = str(quotation.status or "VALID").strip().upper()
        if status not in ("DRAFT", "VALID"):
            raise ValidationError(
                code="quotation_status_invalid",
                message_key="quotation_status_invalid",
                payload={"status": quotation.status},
            )
        if not str(quotation.supplier_id or "").strip():
            raise ValidationError(code="supplier_required", details="supplier_id is required")
        if quotation.total_amount <= 0:
            raise ValidationError(code="total_amount_invalid", message_key="total_amount_invalid")
        if quotation.lead_time_days is not None and int(quotation.lead_time_days) < 0:
            raise ValidationError(code="lead_time_invalid", details="lead time cannot be negative")

        repos = _Repositories.for_tenant(tenant_id)
        rfq = self._rfq_for_buyer(db, repos, rfq_id, actor)
        events: List[DomainEvent] = []
        with self._locked(tenant_id, rfq.purchase_request_id):
            pr = self._load(db, repos, rfq.purchase_request_id)
            rfq = self._rfq_for_buyer(db, repos, rfq_id, actor)
            self._ensure_status_in(pr, QUOTATION_INTAKE_STATUSES, "add_quotation")
            if rfq.status == "CLOSED":
                raise InvalidTransitionError(
                    code="rfq_status_invalid",
                    message_key="rfq_status_invalid",
                    payload={"rfq_id": rfq.id, "status": rfq.status},
                )
            currency = str(quotation.currency or pr.currency).strip().upper()
            with db.transaction():
                quotation_id = repos.quotations.create(
                    db, rfq_id=rfq.id, quotation=quotation, currency=currency, status=status
                )
                repos.status_events.add_event(
                    db,
                    entity=ENTITY_QUOTATION,
                    entity_id=quotation_id,
                    action="create",
                    from_status=None,
                    to_status=status,
                    actor_id=actor.user_id,
                    actor_role=actor.role,
                )
                if status == "VALID":
                    self._on_valid_quotation(db, repos, pr, rfq, actor, events)
            self._publish(events)
            return repos.quotations.get_by_id(db, quotation_id)

    def set_quotation_status(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        quotation_id: int,
        status: str,
    ) -> Quotation:
        require_roles(ROLE_BUYER, ROLE_BUYER_LEADER, role=actor.role)
        target = str(status or "").strip().upper()
        if target == "SELECTED":
            raise ValidationError(
                code="dedicated_operation_required",
                message_key="dedicated_operation_required",
                payload={"status": target},
            )
        repos = _Repositories.for_tenant(tenant_id)
        quotation = repos.quotations.get_by_id(db, quotation_id)
        if quotation is None:
            raise NotFoundError(code="quotation_not_found", message_key="quotation_not_found")
        rfq = self._rfq_for_buyer(db, repos, quotation.rfq_id, actor)
        events: List[DomainEvent] = []
        with self._locked(tenant_id, rfq.purchase_request_id):
            pr = self._load(db, repos, rfq.purchase_request_id)
            quotation = repos.quotations.get_by_id(db, quotation_id)
            flow_policy.ensure_status_change("quotation", quotation.status, target)
            with db.transaction():
                if not repos.quotations.compare_and_set_status(
                    db, quotation.id, expected_status=quotation.status, new_status=target
                ):
                    raise ConcurrentModificationError(payload={"quotation_id": quotation.id})
                repos.status_events.add_event(
                    db,
                    entity=ENTITY_QUOTATION,
                    entity_id=quotation.id,
                    action=f"to_{target.lower()}",
                    from_status=quotation.status,
                    to_status=target,
                    actor_id=actor.user_id,
                    actor_role=actor.role,
                )
                if target == "VALID" and pr.status in QUOTATION_INTAKE_STATUSES:
                    self._on_valid_quotation(db, repos, pr, repos.rfqs.get_by_id(db, rfq.id), actor, events)
            self._publish(events)
            return repos.quotations.get_by_id(db, quotation.id)

    def rank_quotations(self, db, *, tenant_id: str, purchase_request_id: int) -> Ranking:
        repos = _Repositories.for_tenant(tenant_id)
        pr = self._load(db, repos, purchase_request_id)
        return rank(repos.quotations.list_for_request(db, pr.id), self.scoring_policy)

    def select_supplier(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
        quotation_id: int,
        selection_reason: str | None,
        over_budget_reason: str | None = None,
        expected_version: int | None = None,
    ) -> Dict[str, Any]:
        """Record the supplier choice for a purchase request.

        An over-budget choice needs a justification and sends the request to
        BUDGET_EXCEPTION instead of SUPPLIER_SELECTED.
        """
        repos = _Repositories.for_tenant(tenant_id)
        events: List[DomainEvent] = []
        with self._locked(tenant_id, purchase_request_id):
            pr = self._load(db, repos, purchase_request_id)
            self._check_version(pr, expected_version)
            self._resolve(pr, actor, "select_supplier")
            reason = str(selection_reason or "").strip()
            if not reason:
                raise ValidationError(code="selection_reason_required", message_key="selection_reason_required")

            quotation = repos.quotations.get_by_id(db, quotation_id)
            if quotation is None:
                raise NotFoundError(code="quotation_not_found", message_key="quotation_not_found")
            rfq = repos.rfqs.get_by_id(db, quotation.rfq_id)
            if rfq is None or rfq.purchase_request_id != pr.id:
                raise self._integrity_violation(
                    "quotation_not_in_request",
                    purchase_request_id=pr.id,
                    quotation_id=quotation.id,
                    rfq_id=quotation.rfq_id,
                )
            if repos.quotations.count_with_status_for_request(db, pr.id, "SELECTED") > 0:
                raise self._integrity_violation(
                    "supplier_already_selected",
                    purchase_request_id=pr.id,
                    quotation_id=quotation.id,
                )
            if quotation.status != "VALID":
                raise ValidationError(
                    code="quotation_not_eligible",
                    message_key="quotation_not_eligible",
                    http_status=409,
                    payload={"quotation_id": quotation.id, "quotation_status": quotation.status},
                )
            if quotation.currency != pr.currency:
                raise ValidationError(
                    code="currency_mismatch",
                    message_key="currency_mismatch",
                    payload={"currencies": sorted({quotation.currency, pr.currency})},
                )

            check = check_over_budget(pr.total_amount, quotation.total_amount)
            justification = require_justification(check, over_budget_reason)
            action = "raise_budget_exception" if check.is_over_budget else "select_supplier"

            budget_exception_id = None
            with db.transaction():
                updated = self._apply_transition(db, repos, pr, actor, action, events)
                selection_id = repos.selections.create(
                    db,
                    purchase_request_id=pr.id,
                    quotation_id=quotation.id,
                    selected_by=actor.user_id,
                    selection_reason=reason,
                    is_over_budget=check.is_over_budget,
                    over_budget_reason=justification,
                )
                if not repos.quotations.compare_and_set_status(
                    db, quotation.id, expected_status="VALID", new_status="SELECTED"
                ):
                    raise self._concurrent(pr, action)
                if rfq.status != "CLOSED":
                    self._move_rfq(db, repos, rfq, "CLOSED", actor)
                events.append(
                    SupplierSelected(
                        tenant_id=tenant_id,
                        purchase_request_id=pr.id,
                        pr_number=pr.number,
                        supplier_selection_id=selection_id,
                        quotation_id=quotation.id,
                        supplier_id=quotation.supplier_id,
                        amount=quotation.total_amount,
                        currency=quotation.currency,
                        is_over_budget=check.is_over_budget,
                        actor_id=actor.user_id,
                    )
                )
                if check.is_over_budget:
                    budget_exception_id = repos.budget_exceptions.create(
                        db,
                        purchase_request_id=pr.id,
                        supplier_selection_id=selection_id,
                        check=check,
                        reason=justification,
                    )
                    events.append(
                        BudgetExceptionRaised(
                            tenant_id=tenant_id,
                            purchase_request_id=pr.id,
                            pr_number=pr.number,
                            budget_exception_id=budget_exception_id,
                            pr_amount=check.declared_amount,
                            purchase_amount=check.selected_amount,
                            over_amount=check.over_amount,
                            over_percent=check.over_percent,
                            reason=justification,
                            actor_id=actor.user_id,
                        )
                    )
            self._publish(events)
            result: Dict[str, Any] = {
                "purchase_request_id": pr.id,
                "status": updated.status,
                "version": updated.version,
                "supplier_selection": repos.selections.get_for_request(db, pr.id).to_dict(),
                "over_budget": check.to_dict(),
                "budget_exception": None,
            }
            if budget_exception_id is not None:
                result["budget_exception"] = repos.budget_exceptions.get_by_id(db, budget_exception_id).to_dict()
            return result

    def decide_budget_exception(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
        approve: bool,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> BudgetException:
        action = "approve_budget_exception" if approve else "reject_budget_exception"
        cleaned_note = str(note or "").strip() or None
        if not approve and not cleaned_note:
            raise ValidationError(code="reason_required", message_key="reason_required", payload={"action": action})
        repos = _Repositories.for_tenant(tenant_id)
        events: List[DomainEvent] = []
        with self._locked(tenant_id, purchase_request_id):
            pr = self._load(db, repos, purchase_request_id)
            self._check_version(pr, expected_version)
            self._resolve(pr, actor, action)
            pending = repos.budget_exceptions.get_pending_for_request(db, pr.id)
            if pending is None:
                raise NotFoundError(code="budget_exception_not_found", message_key="budget_exception_not_found")
            with db.transaction():
                self._apply_transition(db, repos, pr, actor, action, events, reason=cleaned_note)
                if not repos.budget_exceptions.decide(
                    db,
                    pending.id,
                    status="APPROVED" if approve else "REJECTED",
                    decided_by=actor.user_id,
                    note=cleaned_note,
                ):
                    raise self._concurrent(pr, action)
            self._publish(events)
            return repos.budget_exceptions.get_by_id(db, pending.id)

    def record_payment(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        purchase_request_id: int,
        amount: Any,
        currency: str | None = None,
    ) -> Payment:
        require_roles(ROLE_ACCOUNTANT, role=actor.role)
        value = to_money(amount)
        if value <= 0:
            raise ValidationError(code="total_amount_invalid", message_key="total_amount_invalid")
        repos = _Repositories.for_tenant(tenant_id)
        with self._locked(tenant_id, purchase_request_id):
            pr = self._load(db, repos, purchase_request_id)
            self._ensure_status_in(pr, PAYABLE_STATUSES, "record_payment")
            payment_currency = str(currency or pr.currency).strip().upper()
            if payment_currency != pr.currency:
                raise ValidationError(
                    code="currency_mismatch",
                    message_key="currency_mismatch",
                    payload={"currencies": sorted({payment_currency, pr.currency})},
                )
            with db.transaction():
                payment_id = repos.payments.create(
                    db, purchase_request_id=pr.id, amount=value, currency=payment_currency, recorded_by=actor.user_id
                )
                repos.status_events.add_event(
                    db,
                    entity=ENTITY_PAYMENT,
                    entity_id=payment_id,
                    action="record",
                    from_status=None,
                    to_status="PENDING",
                    actor_id=actor.user_id,
                    actor_role=actor.role,
                )
        return repos.payments.get_by_id(db, payment_id)

    def _change_payment(self, db, *, tenant_id: str, actor: Actor, payment_id: int, target: str) -> Payment:
        require_roles(ROLE_ACCOUNTANT, role=actor.role)
        repos = _Repositories.for_tenant(tenant_id)
        payment = repos.payments.get_by_id(db, payment_id)
        if payment is None:
            raise NotFoundError(code="payment_not_found", message_key="payment_not_found")
        events: List[DomainEvent] = []
        with self._locked(tenant_id, payment.purchase_request_id):
            pr = self._load(db, repos, payment.purchase_request_id)
            payment = repos.payments.get_by_id(db, payment_id)
            flow_policy.ensure_status_change("payment", payment.status, target)
            with db.transaction():
                if not repos.payments.compare_and_set_status(
                    db, payment.id, expected_status=payment.status, new_status=target
                ):
                    raise ConcurrentModificationError(payload={"payment_id": payment.id})
                repos.status_events.add_event(
                    db,
                    entity=ENTITY_PAYMENT,
                    entity_id=payment.id,
                    action=f"to_{target.lower()}",
                    from_status=payment.status,
                    to_status=target,
                    actor_id=actor.user_id,
                    actor_role=actor.role,
                )
                if target == "DONE" and pr.status in (flow_policy.SUPPLIER_SELECTED, flow_policy.BUDGET_APPROVED):
                    self._apply_transition(db, repos, pr, actor, "mark_payment_done", events)
            self._publish(events)
        return repos.payments.get_by_id(db, payment.id)

    def complete_payment(self, db, *, tenant_id: str, actor: Actor, payment_id: int) -> Payment:
        return self._change_payment(db, tenant_id=tenant_id, actor=actor, payment_id=payment_id, target="DONE")

    def cancel_payment(self, db, *, tenant_id: str, actor: Actor, payment_id: int) -> Payment:
        return self._change_payment(db, tenant_id=tenant_id, actor=actor, payment_id=payment_id, target="CANCELLED")

    def create_sales_po(
        self,
        db,
        *,
        tenant_id: str,
        actor: Actor,
        number: str,
        amount: Any,
        customer_name: str | None = None,
        currency: str | None = None,
    ) -> SalesPO:
        require_roles(ROLE_SALES, ROLE_SYSTEM_ADMIN, role=actor.role)
        cleaned_number = str(number or "").strip()
        if not cleaned_number:
            raise ValidationError(code="number_required", details="sales PO number is required")
        value = to_money(amount)
        if value <= 0:
            raise ValidationError(code="total_amount_invalid", message_key="total_amount_invalid")
        repos = _Repositories.for_tenant(tenant_id)
        with db.transaction():
            sales_po_id = repos.sales_pos.create(
                db,
                number=cleaned_number,
                customer_name=str(customer_name or "").strip() or None,
                amount=value,
                currency=str(currency or self.default_currency).strip().upper(),
                created_by=actor.user_id,
            )
        return repos.sales_pos.get_by_id(db, sales_po_id)

    def set_sales_po_status(self, db, *, tenant_id: str, actor: Actor, sales_po_id: int, status: str) -> SalesPO:
        require_roles(ROLE_SALES, ROLE_SYSTEM_ADMIN, role=actor.role)
        target = str(status or "").strip().upper()
        repos = _Repositories.for_tenant(tenant_id)
        sales_po = repos.sales_pos.get_by_id(db, sales_po_id)
        if sales_po is None:
            raise NotFoundError(code="sales_po_not_found", message_key="sales_po_not_found")
        flow_policy.ensure_status_change("sales_po", sales_po.status, target)
        with db.transaction():
            if not repos.sales_pos.compare_and_set_status(
                db, sales_po.id, expected_status=sales_po.status, new_status=target
            ):
                raise ConcurrentModificationError(payload={"sales_po_id": sales_po.id})
            repos.status_events.add_event(
                db,
                entity=ENTITY_SALES_PO,
                entity_id=sales_po.id,
                action=f"to_{target.lower()}",
                from_status=sales_po.status,
                to_status=target,
                actor_id=actor.user_id,
                actor_role=actor.role,
            )
        return repos.sales_pos.get_by_id(db, sales_po.id)

    def budget_usage(self, db, *, tenant_id: str, sales_po_id: int) -> BudgetUsage:
        repos = _Repositories.for_tenant(tenant_id)
        sales_po = repos.sales_pos.get_by_id(db, sales_po_id)
        if sales_po is None:
            raise NotFoundError(code="sales_po_not_found", message_key="sales_po_not_found")
        actual_cost = repos.payments.sum_done_for_funding_source(db, sales_po.id)
        return usage_from_actual_cost(sales_po.id, sales_po.amount, actual_cost, self.budget_thresholds)

    def notifications(self, db, *, tenant_id: str, actor: Actor, unread_only: bool = False) -> List[Notification]:
        repository = _Repositories.for_tenant(tenant_id).notifications
        return repository.list_for_recipient(
            db, recipient_role=actor.role, recipient_id=actor.user_id, unread_only=unread_only
        )

    def mark_notification_read(self, db, *, tenant_id: str, actor: Actor, notification_id: int) -> bool:
        repository = _Repositories.for_tenant(tenant_id).notifications
        with db.transaction():
            return repository.mark_read(
                db, notification_id, recipient_role=actor.role, recipient_id=actor.user_id
            )
