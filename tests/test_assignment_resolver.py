import unittest
from decimal import Decimal

from app.domain.contracts import Assignment, PurchaseRequestItem
from app.errors import ValidationError
from app.procurement.assignment_resolver import (
    SCOPE_FULL,
    SCOPE_PARTIAL,
    plan_assignment,
    quick_assign_all,
    split_by_purchase_type,
    validate_complete,
)


def _item(item_id, purchase_type=None):
    return PurchaseRequestItem(
        id=item_id,
        purchase_request_id=1,
        line_no=item_id,
        description=f"item {item_id}",
        quantity=Decimal("1"),
        unit_price=Decimal("10"),
        amount=Decimal("10.00"),
        purchase_type=purchase_type,
    )


def _assignment(assignment_id, buyer_id, scope, item_ids=(), lifecycle="active"):
    return Assignment(
        id=assignment_id,
        purchase_request_id=1,
        buyer_id=buyer_id,
        scope=scope,
        item_ids=tuple(item_ids),
        lifecycle=lifecycle,
    )


class ValidateCompleteTest(unittest.TestCase):
    def test_partial_assignments_leave_an_item_uncovered(self) -> None:
        assignments = [
            _assignment(1, "buyer-a", SCOPE_PARTIAL, [1]),
            _assignment(2, "buyer-b", SCOPE_PARTIAL, [2]),
        ]
        coverage = validate_complete([1, 2, 3], assignments)
        self.assertFalse(coverage.complete)
        self.assertEqual(coverage.unassigned_item_ids, (3,))
        self.assertEqual(coverage.item_ids_by_buyer, {"buyer-a": (1,), "buyer-b": (2,)})

    def test_full_scope_covers_items_added_later(self) -> None:
        coverage = validate_complete([1, 2, 9], [_assignment(1, "buyer-a", SCOPE_FULL)])
        self.assertTrue(coverage.complete)
        self.assertEqual(coverage.item_ids_by_buyer["buyer-a"], (1, 2, 9))

    def test_double_assignment_is_incomplete(self) -> None:
        coverage = validate_complete(
            [1, 2],
            [_assignment(1, "buyer-a", SCOPE_FULL), _assignment(2, "buyer-b", SCOPE_PARTIAL, [2])],
        )
        self.assertFalse(coverage.complete)
        self.assertEqual(coverage.double_assigned_item_ids, (2,))
        self.assertEqual(coverage.to_dict()["double_assigned_item_ids"], [2])

    def test_revoked_assignments_are_ignored(self) -> None:
        coverage = validate_complete([1], [_assignment(1, "buyer-a", SCOPE_FULL, lifecycle="deleted")])
        self.assertFalse(coverage.complete)
        self.assertEqual(coverage.unassigned_item_ids, (1,))

    def test_deleted_items_do_not_count(self) -> None:
        coverage = validate_complete([1], [_assignment(1, "buyer-a", SCOPE_PARTIAL, [1, 2])])
        self.assertTrue(coverage.complete)


class PlanAssignmentTest(unittest.TestCase):
    def test_partial_plan_sorts_item_ids(self) -> None:
        plan = plan_assignment([1, 2, 3], [], buyer_id=" buyer-a ", scope="partial", requested_item_ids=[3, 1])
        self.assertEqual(plan.buyer_id, "buyer-a")
        self.assertEqual(plan.scope, SCOPE_PARTIAL)
        self.assertEqual(plan.item_ids, (1, 3))

    def test_overlap_with_existing_assignment_is_refused(self) -> None:
        existing = [_assignment(1, "buyer-a", SCOPE_PARTIAL, [1])]
        with self.assertRaises(ValidationError) as ctx:
            plan_assignment([1, 2], existing, buyer_id="buyer-b", scope=SCOPE_PARTIAL, requested_item_ids=[1, 2])
        self.assertEqual(ctx.exception.code, "assignment_overlap")
        self.assertEqual(ctx.exception.http_status, 409)
        self.assertEqual(ctx.exception.payload["item_ids"], [1])

    def test_full_scope_refused_when_anything_is_assigned(self) -> None:
        existing = [_assignment(1, "buyer-a", SCOPE_PARTIAL, [2])]
        with self.assertRaises(ValidationError) as ctx:
            plan_assignment([1, 2], existing, buyer_id="buyer-b", scope=SCOPE_FULL)
        self.assertEqual(ctx.exception.code, "assignment_overlap")

    def test_foreign_items_are_refused(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            plan_assignment([1, 2], [], buyer_id="buyer-a", scope=SCOPE_PARTIAL, requested_item_ids=[2, 77])
        self.assertEqual(ctx.exception.code, "item_not_in_request")
        self.assertEqual(ctx.exception.payload["item_ids"], [77])

    def test_invalid_scope_and_missing_buyer(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            plan_assignment([1], [], buyer_id="buyer-a", scope="HALF")
        self.assertEqual(ctx.exception.code, "assignment_scope_invalid")
        with self.assertRaises(ValidationError) as ctx:
            plan_assignment([1], [], buyer_id="  ", scope=SCOPE_FULL)
        self.assertEqual(ctx.exception.code, "buyer_required")

    def test_partial_plan_needs_items(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            plan_assignment([1], [], buyer_id="buyer-a", scope=SCOPE_PARTIAL, requested_item_ids=[])
        self.assertEqual(ctx.exception.code, "items_required")


class BulkAssignmentTest(unittest.TestCase):
    def test_quick_assign_all_builds_one_full_plan(self) -> None:
        plans = quick_assign_all([_item(2), _item(1)], "buyer-a")
        self.assertEqual(len(plans), 1)
        self.assertEqual(plans[0].scope, SCOPE_FULL)
        self.assertEqual(plans[0].item_ids, (1, 2))

    def test_split_by_purchase_type(self) -> None:
        items = [_item(1, "Domestic"), _item(2, "overseas"), _item(3, "domestic"), _item(4)]
        plans = split_by_purchase_type(
            items,
            {"domestic": "buyer-a", "overseas": "buyer-b"},
            default_buyer_id="buyer-c",
        )
        by_buyer = {plan.buyer_id: plan.item_ids for plan in plans}
        self.assertEqual(by_buyer, {"buyer-a": (1, 3), "buyer-b": (2,), "buyer-c": (4,)})
        self.assertTrue(all(plan.scope == SCOPE_PARTIAL for plan in plans))

    def test_split_requires_a_buyer_per_type(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            split_by_purchase_type([_item(1, "overseas")], {"domestic": "buyer-a"})
        self.assertEqual(ctx.exception.payload["purchase_types_without_buyer"], ["overseas"])


if __name__ == "__main__":
    unittest.main()
