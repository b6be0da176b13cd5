from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping

from app.domain.contracts import MONEY_QUANTUM, to_money


PAYMENT_DONE = "DONE"

WARNING_OK = "ok"
WARNING_APPROACHING = "approaching"
WARNING_CRITICAL = "critical"
WARNING_EXCEEDED = "exceeded"

_ZERO = Decimal("0.00")


@dataclass(frozen=True)
class BudgetThresholds:
    approaching: Decimal = Decimal("80")
    critical: Decimal = Decimal("90")
    exceeded: Decimal = Decimal("100")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "BudgetThresholds":
        return cls(
            approaching=Decimal(str(config.get("BUDGET_APPROACHING_PERCENT", 80))),
            critical=Decimal(str(config.get("BUDGET_CRITICAL_PERCENT", 90))),
            exceeded=Decimal(str(config.get("BUDGET_EXCEEDED_PERCENT", 100))),
        )


DEFAULT_THRESHOLDS = BudgetThresholds()


@dataclass(frozen=True)
class BudgetUsage:
    funding_source_id: int
    budget: Decimal
    actual_cost: Decimal
    remaining: Decimal
    usage_percent: Decimal
    warning_level: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "funding_source_id": self.funding_source_id,
            "budget": str(self.budget),
            "actual_cost": str(self.actual_cost),
            "remaining": str(self.remaining),
            "usage_percent": str(self.usage_percent),
            "warning_level": self.warning_level,
        }


def warning_level(usage_percent: Decimal, thresholds: BudgetThresholds = DEFAULT_THRESHOLDS) -> str:
    if usage_percent >= thresholds.exceeded:
        return WARNING_EXCEEDED
    if usage_percent >= thresholds.critical:
        return WARNING_CRITICAL
    if usage_percent >= thresholds.approaching:
        return WARNING_APPROACHING
    return WARNING_OK


def counts_toward_budget(payment: Any) -> bool:
    return str(payment.status) == PAYMENT_DONE and str(getattr(payment, "lifecycle", "active")) == "active"


def usage_from_actual_cost(
    funding_source_id: int,
    budget: Any,
    actual_cost: Any,
    thresholds: BudgetThresholds = DEFAULT_THRESHOLDS,
) -> BudgetUsage:
    budget_value = to_money(budget, default=_ZERO)
    cost_value = to_money(actual_cost, default=_ZERO)
    if budget_value > 0:
        raw_percent = cost_value / budget_value * Decimal(100)
    else:
        raw_percent = _ZERO
    # Thresholds compare the exact ratio; only the reported figure is rounded.
    return BudgetUsage(
        funding_source_id=int(funding_source_id),
        budget=budget_value,
        actual_cost=cost_value,
        remaining=(budget_value - cost_value).quantize(MONEY_QUANTUM),
        usage_percent=raw_percent.quantize(MONEY_QUANTUM),
        warning_level=warning_level(raw_percent, thresholds),
    )


def compute_usage(
    funding_source_id: int,
    budget: Any,
    payments: Iterable[Any],
    thresholds: BudgetThresholds = DEFAULT_THRESHOLDS,
) -> BudgetUsage:
    """Budget consumption of one funding source.

    ``payments`` are the payments of the non-deleted purchase requests linked to
    the funding source. Only active DONE payments are summed; PENDING and
    CANCELLED ones never change the result.
    """
    actual_cost = sum((to_money(payment.amount) for payment in payments if counts_toward_budget(payment)), _ZERO)
    return usage_from_actual_cost(funding_source_id, budget, actual_cost, thresholds)
