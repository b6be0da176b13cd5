from __future__ import annotations

import logging
import uuid
from dataclasses import asdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from threading import RLock
from typing import Callable, Dict, List, Tuple, Type

from app.observability import observe_domain_event_emitted


EventHandler = Callable[["DomainEvent"], None]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    occurred_at: datetime = field(default_factory=_utc_now)
    tenant_id: str = ""

    def __post_init__(self) -> None:
        normalized_event_id = str(self.event_id or "").strip() or uuid.uuid4().hex
        normalized_occurred_at = self.occurred_at if isinstance(self.occurred_at, datetime) else _utc_now()
        if normalized_occurred_at.tzinfo is None:
            normalized_occurred_at = normalized_occurred_at.replace(tzinfo=timezone.utc)
        normalized_occurred_at = normalized_occurred_at.astimezone(timezone.utc)

        object.__setattr__(self, "event_id", normalized_event_id)
        object.__setattr__(self, "occurred_at", normalized_occurred_at)
        object.__setattr__(self, "tenant_id", str(self.tenant_id or "").strip() or "unknown")

    @property
    def event_type(self) -> str:
        return type(self).__name__


@dataclass(frozen=True, kw_only=True)
class PurchaseRequestCreated(DomainEvent):
    purchase_request_id: int
    pr_number: str
    status: str
    actor_id: str
    items_created: int = 0


@dataclass(frozen=True, kw_only=True)
class PRStatusChanged(DomainEvent):
    purchase_request_id: int
    pr_number: str
    from_status: str
    to_status: str
    action: str
    actor_id: str
    actor_role: str
    reason: str | None = None


@dataclass(frozen=True, kw_only=True)
class PRAssigned(DomainEvent):
    purchase_request_id: int
    pr_number: str
    assignment_id: int
    buyer_id: str
    scope: str
    item_ids: Tuple[int, ...]
    actor_id: str


@dataclass(frozen=True, kw_only=True)
class SupplierSelected(DomainEvent):
    purchase_request_id: int
    pr_number: str
    supplier_selection_id: int
    quotation_id: int
    supplier_id: str
    amount: Decimal
    currency: str
    is_over_budget: bool
    actor_id: str


@dataclass(frozen=True, kw_only=True)
class BudgetExceptionRaised(DomainEvent):
    purchase_request_id: int
    pr_number: str
    budget_exception_id: int
    pr_amount: Decimal
    purchase_amount: Decimal
    over_amount: Decimal
    over_percent: Decimal
    reason: str
    actor_id: str


def serialize_event(event: DomainEvent) -> Dict[str, object]:
    payload: Dict[str, object] = {"event_type": event.event_type}
    for key, value in asdict(event).items():
        if isinstance(value, datetime):
            payload[key] = value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        elif isinstance(value, Decimal):
            payload[key] = str(value)
        elif isinstance(value, tuple):
            payload[key] = list(value)
        else:
            payload[key] = value
    return payload


class EventBus:
    """Synchronous in-process publisher.

    Handlers run in subscription order on the publishing thread. A failing handler
    is logged and does not stop the remaining handlers or the publisher.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._handlers: Dict[Type[DomainEvent], List[EventHandler]] = {}
        self._logger = logging.getLogger("app")

    def subscribe(self, event_type: Type[DomainEvent], handler: EventHandler) -> None:
        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            handlers.append(handler)

    def publish(self, event: DomainEvent) -> None:
        observe_domain_event_emitted(event.event_type)
        with self._lock:
            handlers = list(self._handlers.get(type(event), []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:  # noqa: BLE001
                self._logger.exception(
                    "event_handler_failed",
                    extra={"event_type": event.event_type, "event_id": event.event_id},
                )

    def publish_all(self, events: List[DomainEvent]) -> None:
        for event in events:
            self.publish(event)

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()
