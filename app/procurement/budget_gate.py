from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict

from app.domain.contracts import MONEY_QUANTUM, to_money
from app.errors import MissingJustificationError


_ZERO = Decimal("0.00")


@dataclass(frozen=True)
class OverBudgetCheck:
    is_over_budget: bool
    declared_amount: Decimal
    selected_amount: Decimal
    over_amount: Decimal
    over_percent: Decimal

    def to_dict(self) -> Dict[str, object]:
        return {
            "is_over_budget": self.is_over_budget,
            "declared_amount": str(self.declared_amount),
            "selected_amount": str(self.selected_amount),
            "over_amount": str(self.over_amount),
            "over_percent": str(self.over_percent),
        }


def check_over_budget(declared_amount: Any, selected_amount: Any) -> OverBudgetCheck:
    """Compare a selected quotation against the request's declared amount.

    A request without a positive declared amount is never over budget.
    """
    declared = to_money(declared_amount, default=_ZERO)
    selected = to_money(selected_amount, default=_ZERO)
    if declared <= 0 or selected <= declared:
        return OverBudgetCheck(False, declared, selected, _ZERO, _ZERO)
    over_amount = (selected - declared).quantize(MONEY_QUANTUM)
    over_percent = (over_amount / declared * Decimal(100)).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
    return OverBudgetCheck(True, declared, selected, over_amount, over_percent)


def require_justification(check: OverBudgetCheck, justification: str | None) -> str | None:
    """Return the cleaned justification, which is mandatory only when over budget."""
    cleaned = str(justification or "").strip() or None
    if check.is_over_budget and cleaned is None:
        raise MissingJustificationError(
            details="over-budget selection requires a justification",
            payload={"over_budget": check.to_dict()},
        )
    return cleaned
