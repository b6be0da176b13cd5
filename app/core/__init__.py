from app.core.event_bus import (
    BudgetExceptionRaised,
    DomainEvent,
    EventBus,
    PRAssigned,
    PRStatusChanged,
    PurchaseRequestCreated,
    SupplierSelected,
    serialize_event,
)
from app.core.locks import KeyedLock

__all__ = [
    "DomainEvent",
    "EventBus",
    "KeyedLock",
    "PurchaseRequestCreated",
    "PRStatusChanged",
    "PRAssigned",
    "SupplierSelected",
    "BudgetExceptionRaised",
    "serialize_event",
]
