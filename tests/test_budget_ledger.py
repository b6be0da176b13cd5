import unittest
from dataclasses import dataclass
from decimal import Decimal

from app.procurement.budget_ledger import (
    WARNING_APPROACHING,
    WARNING_CRITICAL,
    WARNING_EXCEEDED,
    WARNING_OK,
    BudgetThresholds,
    compute_usage,
    usage_from_actual_cost,
    warning_level,
)


@dataclass(frozen=True)
class _Payment:
    amount: Decimal
    status: str
    lifecycle: str = "active"


class BudgetLedgerTest(unittest.TestCase):
    def test_only_done_payments_count(self) -> None:
        payments = [
            _Payment(Decimal("300"), "DONE"),
            _Payment(Decimal("200"), "PENDING"),
            _Payment(Decimal("150"), "CANCELLED"),
            _Payment(Decimal("100"), "DONE", lifecycle="deleted"),
        ]
        usage = compute_usage(7, Decimal("1000"), payments)

        self.assertEqual(usage.actual_cost, Decimal("300.00"))
        self.assertEqual(usage.remaining, Decimal("700.00"))
        self.assertEqual(usage.usage_percent, Decimal("30.00"))
        self.assertEqual(usage.warning_level, WARNING_OK)

    def test_pending_payment_does_not_change_usage(self) -> None:
        done = [_Payment(Decimal("850"), "DONE")]
        before = compute_usage(1, Decimal("1000"), done)
        after = compute_usage(1, Decimal("1000"), done + [_Payment(Decimal("500"), "PENDING")])
        self.assertEqual(before, after)
        self.assertEqual(after.warning_level, WARNING_APPROACHING)

    def test_warning_levels_follow_thresholds(self) -> None:
        self.assertEqual(warning_level(Decimal("79.99")), WARNING_OK)
        self.assertEqual(warning_level(Decimal("80")), WARNING_APPROACHING)
        self.assertEqual(warning_level(Decimal("90")), WARNING_CRITICAL)
        self.assertEqual(warning_level(Decimal("100")), WARNING_EXCEEDED)
        self.assertEqual(warning_level(Decimal("130")), WARNING_EXCEEDED)

    def test_overspend_gives_negative_remaining(self) -> None:
        usage = usage_from_actual_cost(3, "1000", "1250")
        self.assertEqual(usage.remaining, Decimal("-250.00"))
        self.assertEqual(usage.usage_percent, Decimal("125.00"))
        self.assertEqual(usage.warning_level, WARNING_EXCEEDED)

    def test_amounts_just_under_a_threshold_keep_the_lower_level(self) -> None:
        usage = compute_usage(1, Decimal("100000"), [_Payment(Decimal("99996"), "DONE")])
        self.assertEqual(usage.remaining, Decimal("4.00"))
        self.assertEqual(usage.usage_percent, Decimal("100.00"))
        self.assertEqual(usage.warning_level, WARNING_CRITICAL)

        self.assertEqual(usage_from_actual_cost(1, "100000", "89996").warning_level, WARNING_APPROACHING)
        self.assertEqual(usage_from_actual_cost(1, "100000", "79996").warning_level, WARNING_OK)
        self.assertEqual(usage_from_actual_cost(1, "100000", "100000").warning_level, WARNING_EXCEEDED)

    def test_zero_budget_reports_zero_percent(self) -> None:
        usage = usage_from_actual_cost(3, "0", "10")
        self.assertEqual(usage.usage_percent, Decimal("0.00"))
        self.assertEqual(usage.to_dict()["remaining"], "-10.00")

    def test_thresholds_from_config(self) -> None:
        thresholds = BudgetThresholds.from_config(
            {"BUDGET_APPROACHING_PERCENT": 50, "BUDGET_CRITICAL_PERCENT": 75.0, "BUDGET_EXCEEDED_PERCENT": 95}
        )
        usage = usage_from_actual_cost(1, "100", "76", thresholds)
        self.assertEqual(usage.warning_level, WARNING_CRITICAL)


if __name__ == "__main__":
    unittest.main()
