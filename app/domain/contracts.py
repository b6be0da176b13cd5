from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Tuple


MONEY_QUANTUM = Decimal("0.01")


def to_money(value: Any, default: Decimal | None = None) -> Decimal:
    if value is None or value == "":
        if default is not None:
            return default
        raise ValueError("amount is required")
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value)).quantize(MONEY_QUANTUM)
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"invalid amount: {value!r}") from exc


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def _timestamp(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _json_ready(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, tuple):
        return [_json_ready(item) for item in value]
    if isinstance(value, list):
        return [_json_ready(item) for item in value]
    if isinstance(value, dict):
        return {key: _json_ready(item) for key, item in value.items()}
    return value


class _Record:
    def to_dict(self) -> Dict[str, Any]:
        return _json_ready(asdict(self))


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class PurchaseRequestItem(_Record):
    id: int
    purchase_request_id: int
    line_no: int
    description: str
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal
    uom: str | None = None
    manufacturer: str | None = None
    specification: str | None = None
    purchase_type: str | None = None
    lifecycle: str = "active"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PurchaseRequestItem":
        return cls(
            id=int(row["id"]),
            purchase_request_id=int(row["purchase_request_id"]),
            line_no=int(row["line_no"]),
            description=str(row["description"]),
            quantity=to_money(row["quantity"]),
            unit_price=to_money(row["unit_price"]),
            amount=to_money(row["amount"]),
            uom=row["uom"],
            manufacturer=row["manufacturer"],
            specification=row["specification"],
            purchase_type=row["purchase_type"],
            lifecycle=str(row["lifecycle"]),
        )


@dataclass(frozen=True)
class Assignment(_Record):
    id: int
    purchase_request_id: int
    buyer_id: str
    scope: str
    item_ids: Tuple[int, ...]
    buyer_leader_id: str | None = None
    note: str | None = None
    lifecycle: str = "active"
    created_at: str | None = None

    @property
    def active(self) -> bool:
        return self.lifecycle == "active"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Assignment":
        raw_items = row["item_ids"] or "[]"
        item_ids = json.loads(raw_items) if isinstance(raw_items, str) else list(raw_items)
        return cls(
            id=int(row["id"]),
            purchase_request_id=int(row["purchase_request_id"]),
            buyer_id=str(row["buyer_id"]),
            scope=str(row["scope"]),
            item_ids=tuple(sorted(int(item_id) for item_id in item_ids)),
            buyer_leader_id=row["buyer_leader_id"],
            note=row["note"],
            lifecycle=str(row["lifecycle"]),
            created_at=_timestamp(row["created_at"]),
        )


@dataclass(frozen=True)
class PurchaseRequest(_Record):
    id: int
    number: str
    requestor_id: str
    status: str
    total_amount: Decimal
    currency: str
    version: int
    return_count: int = 0
    department: str | None = None
    purpose: str | None = None
    sales_po_id: int | None = None
    lifecycle: str = "active"
    created_at: str | None = None
    updated_at: str | None = None
    items: Tuple[PurchaseRequestItem, ...] = ()
    assignments: Tuple[Assignment, ...] = ()

    @property
    def active_items(self) -> List[PurchaseRequestItem]:
        return [item for item in self.items if item.lifecycle == "active"]

    @property
    def active_assignments(self) -> List[Assignment]:
        return [assignment for assignment in self.assignments if assignment.active]

    @classmethod
    def from_row(
        cls,
        row: Mapping[str, Any],
        items: List[PurchaseRequestItem] | None = None,
        assignments: List[Assignment] | None = None,
    ) -> "PurchaseRequest":
        return cls(
            id=int(row["id"]),
            number=str(row["number"]),
            requestor_id=str(row["requestor_id"]),
            status=str(row["status"]),
            total_amount=to_money(row["total_amount"]),
            currency=str(row["currency"]),
            version=int(row["version"]),
            return_count=int(row["return_count"] or 0),
            department=row["department"],
            purpose=row["purpose"],
            sales_po_id=_optional_int(row["sales_po_id"]),
            lifecycle=str(row["lifecycle"]),
            created_at=_timestamp(row["created_at"]),
            updated_at=_timestamp(row["updated_at"]),
            items=tuple(items or ()),
            assignments=tuple(assignments or ()),
        )


@dataclass(frozen=True)
class Rfq(_Record):
    id: int
    number: str
    purchase_request_id: int
    buyer_id: str
    status: str
    lifecycle: str = "active"
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Rfq":
        return cls(
            id=int(row["id"]),
            number=str(row["number"]),
            purchase_request_id=int(row["purchase_request_id"]),
            buyer_id=str(row["buyer_id"]),
            status=str(row["status"]),
            lifecycle=str(row["lifecycle"]),
            created_at=_timestamp(row["created_at"]),
        )


@dataclass(frozen=True)
class Quotation(_Record):
    id: int
    rfq_id: int
    supplier_id: str
    total_amount: Decimal
    currency: str
    status: str
    lead_time_days: int | None = None
    payment_terms: str | None = None
    warranty: str | None = None
    supplier_name: str | None = None
    lifecycle: str = "active"
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Quotation":
        return cls(
            id=int(row["id"]),
            rfq_id=int(row["rfq_id"]),
            supplier_id=str(row["supplier_id"]),
            total_amount=to_money(row["total_amount"]),
            currency=str(row["currency"]),
            status=str(row["status"]),
            lead_time_days=_optional_int(row["lead_time_days"]),
            payment_terms=row["payment_terms"],
            warranty=row["warranty"],
            supplier_name=row["supplier_name"],
            lifecycle=str(row["lifecycle"]),
            created_at=_timestamp(row["created_at"]),
        )


@dataclass(frozen=True)
class SupplierSelection(_Record):
    id: int
    purchase_request_id: int
    quotation_id: int
    selected_by: str
    selection_reason: str
    is_over_budget: bool
    over_budget_reason: str | None = None
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SupplierSelection":
        return cls(
            id=int(row["id"]),
            purchase_request_id=int(row["purchase_request_id"]),
            quotation_id=int(row["quotation_id"]),
            selected_by=str(row["selected_by"]),
            selection_reason=str(row["selection_reason"]),
            is_over_budget=bool(row["is_over_budget"]),
            over_budget_reason=row["over_budget_reason"],
            created_at=_timestamp(row["created_at"]),
        )


@dataclass(frozen=True)
class BudgetException(_Record):
    id: int
    purchase_request_id: int
    supplier_selection_id: int
    pr_amount: Decimal
    purchase_amount: Decimal
    over_amount: Decimal
    over_percent: Decimal
    reason: str
    status: str
    decided_by: str | None = None
    decision_note: str | None = None
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "BudgetException":
        return cls(
            id=int(row["id"]),
            purchase_request_id=int(row["purchase_request_id"]),
            supplier_selection_id=int(row["supplier_selection_id"]),
            pr_amount=to_money(row["pr_amount"]),
            purchase_amount=to_money(row["purchase_amount"]),
            over_amount=to_money(row["over_amount"]),
            over_percent=to_money(row["over_percent"]),
            reason=str(row["reason"]),
            status=str(row["status"]),
            decided_by=row["decided_by"],
            decision_note=row["decision_note"],
            created_at=_timestamp(row["created_at"]),
        )


@dataclass(frozen=True)
class SalesPO(_Record):
    id: int
    number: str
    amount: Decimal
    currency: str
    status: str
    customer_name: str | None = None
    lifecycle: str = "active"

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "SalesPO":
        return cls(
            id=int(row["id"]),
            number=str(row["number"]),
            amount=to_money(row["amount"]),
            currency=str(row["currency"]),
            status=str(row["status"]),
            customer_name=row["customer_name"],
            lifecycle=str(row["lifecycle"]),
        )


@dataclass(frozen=True)
class Payment(_Record):
    id: int
    purchase_request_id: int
    amount: Decimal
    currency: str
    status: str
    recorded_by: str | None = None
    lifecycle: str = "active"
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Payment":
        return cls(
            id=int(row["id"]),
            purchase_request_id=int(row["purchase_request_id"]),
            amount=to_money(row["amount"]),
            currency=str(row["currency"]),
            status=str(row["status"]),
            recorded_by=row["recorded_by"],
            lifecycle=str(row["lifecycle"]),
            created_at=_timestamp(row["created_at"]),
        )


@dataclass(frozen=True)
class Notification(_Record):
    id: int
    event_id: str
    type: str
    recipient_role: str
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)
    recipient_id: str | None = None
    purchase_request_id: int | None = None
    read_at: str | None = None
    created_at: str | None = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Notification":
        raw_payload = row["payload"] or "{}"
        return cls(
            id=int(row["id"]),
            event_id=str(row["event_id"]),
            type=str(row["type"]),
            recipient_role=str(row["recipient_role"]),
            message=str(row["message"]),
            payload=json.loads(raw_payload) if isinstance(raw_payload, str) else dict(raw_payload),
            recipient_id=row["recipient_id"],
            purchase_request_id=_optional_int(row["purchase_request_id"]),
            read_at=_timestamp(row["read_at"]),
            created_at=_timestamp(row["created_at"]),
        )


@dataclass(frozen=True)
class ItemInput:
    description: str
    quantity: Decimal
    unit_price: Decimal
    uom: str | None = None
    manufacturer: str | None = None
    specification: str | None = None
    purchase_type: str | None = None

    @property
    def amount(self) -> Decimal:
        return (self.quantity * self.unit_price).quantize(MONEY_QUANTUM)


@dataclass(frozen=True)
class PurchaseRequestCreateInput:
    department: str | None
    purpose: str | None
    items: List[ItemInput]
    total_amount: Decimal | None = None
    currency: str | None = None
    sales_po_id: int | None = None


@dataclass(frozen=True)
class QuotationInput:
    supplier_id: str
    total_amount: Decimal
    currency: str | None = None
    lead_time_days: int | None = None
    payment_terms: str | None = None
    warranty: str | None = None
    supplier_name: str | None = None
    status: str = "VALID"
