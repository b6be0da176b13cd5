from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Sequence, Set, Tuple

from app.domain.contracts import Assignment, PurchaseRequestItem
from app.errors import ValidationError


SCOPE_FULL = "FULL"
SCOPE_PARTIAL = "PARTIAL"
SCOPES = (SCOPE_FULL, SCOPE_PARTIAL)

UNSPECIFIED_PURCHASE_TYPE = "unspecified"


@dataclass(frozen=True)
class AssignmentPlan:
    buyer_id: str
    scope: str
    item_ids: Tuple[int, ...]


@dataclass(frozen=True)
class Coverage:
    complete: bool
    unassigned_item_ids: Tuple[int, ...]
    double_assigned_item_ids: Tuple[int, ...]
    item_ids_by_buyer: Dict[str, Tuple[int, ...]]

    def to_dict(self) -> Dict[str, object]:
        return {
            "complete": self.complete,
            "unassigned_item_ids": list(self.unassigned_item_ids),
            "double_assigned_item_ids": list(self.double_assigned_item_ids),
            "item_ids_by_buyer": {buyer: list(ids) for buyer, ids in sorted(self.item_ids_by_buyer.items())},
        }


def normalize_scope(scope: str | None) -> str:
    normalized = str(scope or "").strip().upper()
    if normalized not in SCOPES:
        raise ValidationError(
            code="assignment_scope_invalid",
            message_key="assignment_scope_invalid",
            payload={"scope": scope},
        )
    return normalized


def covered_item_ids(assignment: Assignment, item_ids: Iterable[int]) -> Set[int]:
    """Items an active assignment covers; FULL always means every current item."""
    current = set(item_ids)
    if not assignment.active:
        return set()
    if assignment.scope == SCOPE_FULL:
        return current
    return current.intersection(assignment.item_ids)


def validate_complete(item_ids: Iterable[int], assignments: Iterable[Assignment]) -> Coverage:
    current = sorted(set(int(item_id) for item_id in item_ids))
    counts: Counter = Counter()
    by_buyer: Dict[str, Set[int]] = {}
    for assignment in assignments:
        covered = covered_item_ids(assignment, current)
        counts.update(covered)
        if covered:
            by_buyer.setdefault(assignment.buyer_id, set()).update(covered)
    unassigned = tuple(item_id for item_id in current if counts[item_id] == 0)
    doubled = tuple(item_id for item_id in current if counts[item_id] > 1)
    return Coverage(
        complete=not unassigned and not doubled,
        unassigned_item_ids=unassigned,
        double_assigned_item_ids=doubled,
        item_ids_by_buyer={buyer: tuple(sorted(ids)) for buyer, ids in by_buyer.items()},
    )


def plan_assignment(
    item_ids: Sequence[int],
    existing: Iterable[Assignment],
    *,
    buyer_id: str,
    scope: str,
    requested_item_ids: Iterable[int] | None = None,
) -> AssignmentPlan:
    normalized_scope = normalize_scope(scope)
    buyer = str(buyer_id or "").strip()
    if not buyer:
        raise ValidationError(code="buyer_required", message_key="validation_error", details="buyer_id is required")

    current = sorted(set(int(item_id) for item_id in item_ids))
    if not current:
        raise ValidationError(code="items_required", message_key="items_required")

    already_covered: Set[int] = set()
    for assignment in existing:
        already_covered.update(covered_item_ids(assignment, current))

    if normalized_scope == SCOPE_FULL:
        if already_covered:
            raise ValidationError(
                code="assignment_overlap",
                message_key="assignment_overlap",
                http_status=409,
                payload={"item_ids": sorted(already_covered)},
            )
        return AssignmentPlan(buyer_id=buyer, scope=SCOPE_FULL, item_ids=tuple(current))

    requested = [int(item_id) for item_id in (requested_item_ids or [])]
    if not requested:
        raise ValidationError(code="items_required", message_key="items_required")
    duplicates = sorted(item_id for item_id, count in Counter(requested).items() if count > 1)
    if duplicates:
        raise ValidationError(
            code="duplicate_item_ids",
            message_key="validation_error",
            payload={"item_ids": duplicates},
        )
    foreign = sorted(set(requested).difference(current))
    if foreign:
        raise ValidationError(
            code="item_not_in_request",
            message_key="item_not_in_request",
            payload={"item_ids": foreign},
        )
    overlapping = sorted(already_covered.intersection(requested))
    if overlapping:
        raise ValidationError(
            code="assignment_overlap",
            message_key="assignment_overlap",
            http_status=409,
            payload={"item_ids": overlapping},
        )
    return AssignmentPlan(buyer_id=buyer, scope=SCOPE_PARTIAL, item_ids=tuple(sorted(requested)))


def quick_assign_all(items: Sequence[PurchaseRequestItem], buyer_id: str) -> List[AssignmentPlan]:
    return [
        AssignmentPlan(
            buyer_id=str(buyer_id or "").strip(),
            scope=SCOPE_FULL,
            item_ids=tuple(sorted(item.id for item in items)),
        )
    ]


def _purchase_type(item: PurchaseRequestItem) -> str:
    return str(item.purchase_type or "").strip().lower() or UNSPECIFIED_PURCHASE_TYPE


def split_by_purchase_type(
    items: Sequence[PurchaseRequestItem],
    buyers_by_type: Mapping[str, str],
    default_buyer_id: str | None = None,
) -> List[AssignmentPlan]:
    """One PARTIAL plan per purchase type (e.g. domestic / overseas).

    Types that share a buyer are merged into a single plan for that buyer.
    """
    buyers = {str(key).strip().lower(): str(value).strip() for key, value in buyers_by_type.items() if value}
    grouped: Dict[str, List[int]] = {}
    missing: Set[str] = set()
    for item in items:
        purchase_type = _purchase_type(item)
        buyer = buyers.get(purchase_type) or str(default_buyer_id or "").strip()
        if not buyer:
            missing.add(purchase_type)
            continue
        grouped.setdefault(buyer, []).append(item.id)
    if missing:
        raise ValidationError(
            code="buyer_required",
            message_key="validation_error",
            payload={"purchase_types_without_buyer": sorted(missing)},
        )
    return [
        AssignmentPlan(buyer_id=buyer, scope=SCOPE_PARTIAL, item_ids=tuple(sorted(item_ids)))
        for buyer, item_ids in sorted(grouped.items())
    ]
