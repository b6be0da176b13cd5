from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from app.domain.contracts import Quotation
from app.errors import ValidationError


ELIGIBLE_STATUS = "VALID"

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")
_SCORE_QUANTUM = Decimal("0.01")

PAYMENT_TERMS_SCORES: Dict[str, Decimal] = {
    "cod": Decimal("50"),
    "net 30": Decimal("80"),
    "net 60": Decimal("60"),
    "net 90": Decimal("40"),
    "advance": Decimal("30"),
    "prepaid": Decimal("30"),
}


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value))


@dataclass(frozen=True)
class ScoringWeights:
    price: Decimal = Decimal("0.7")
    lead_time: Decimal = Decimal("0.2")
    payment_terms: Decimal = Decimal("0.1")

    def __post_init__(self) -> None:
        for name in ("price", "lead_time", "payment_terms"):
            object.__setattr__(self, name, _decimal(getattr(self, name)))
        if min(self.price, self.lead_time, self.payment_terms) < 0:
            raise ValueError("scoring weights must be non-negative")
        if self.price + self.lead_time + self.payment_terms <= 0:
            raise ValueError("at least one scoring weight must be positive")


@dataclass(frozen=True)
class ScoringPolicy:
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    equal_value_score: Decimal = Decimal("100")
    neutral_terms_score: Decimal = Decimal("50")
    terms_table: Mapping[str, Decimal] = field(default_factory=lambda: dict(PAYMENT_TERMS_SCORES))

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ScoringPolicy":
        return cls(
            weights=ScoringWeights(
                price=config.get("QUOTATION_WEIGHT_PRICE", 0.7),
                lead_time=config.get("QUOTATION_WEIGHT_LEAD_TIME", 0.2),
                payment_terms=config.get("QUOTATION_WEIGHT_PAYMENT_TERMS", 0.1),
            ),
            equal_value_score=_decimal(config.get("QUOTATION_EQUAL_VALUE_SCORE", 100)),
            neutral_terms_score=_decimal(config.get("PAYMENT_TERMS_NEUTRAL_SCORE", 50)),
        )


DEFAULT_POLICY = ScoringPolicy()


@dataclass(frozen=True)
class ScoredQuotation:
    quotation: Quotation
    score: Decimal | None
    price_score: Decimal | None = None
    lead_time_score: Decimal | None = None
    payment_terms_score: Decimal | None = None
    rank: int | None = None

    def to_dict(self) -> Dict[str, object]:
        def _fmt(value: Decimal | None) -> str | None:
            return None if value is None else str(value)

        return {
            "quotation": self.quotation.to_dict(),
            "score": _fmt(self.score),
            "price_score": _fmt(self.price_score),
            "lead_time_score": _fmt(self.lead_time_score),
            "payment_terms_score": _fmt(self.payment_terms_score),
            "rank": self.rank,
        }


@dataclass(frozen=True)
class Ranking:
    ranked: Tuple[ScoredQuotation, ...]
    recommended: Quotation | None

    def to_dict(self) -> Dict[str, object]:
        return {
            "ranked": [entry.to_dict() for entry in self.ranked],
            "recommended_quotation_id": self.recommended.id if self.recommended else None,
        }


def _round(value: Decimal) -> Decimal:
    return value.quantize(_SCORE_QUANTUM, rounding=ROUND_HALF_UP)


def normalize_terms(terms: str | None) -> str:
    normalized = str(terms or "").strip().lower()
    normalized = re.sub(r"[\s_\-]+", " ", normalized)
    normalized = re.sub(r"\bnet(\d)", r"net \1", normalized)
    return normalized


def payment_terms_score(terms: str | None, policy: ScoringPolicy = DEFAULT_POLICY) -> Decimal:
    normalized = normalize_terms(terms)
    if not normalized:
        return policy.neutral_terms_score
    table = policy.terms_table
    if normalized in table:
        return _decimal(table[normalized])
    for key in sorted(table, key=len, reverse=True):
        if re.search(rf"\b{re.escape(key)}\b", normalized):
            return _decimal(table[key])
    return policy.neutral_terms_score


def _lower_is_better(value: Decimal, lowest: Decimal, highest: Decimal, policy: ScoringPolicy) -> Decimal:
    if highest == lowest:
        return policy.equal_value_score
    return (highest - value) / (highest - lowest) * _HUNDRED


def _sort_key(entry: ScoredQuotation) -> tuple:
    quotation = entry.quotation
    return (-(entry.score or _ZERO), quotation.total_amount, quotation.created_at or "", quotation.id)


def _ensure_single_currency(eligible: Sequence[Quotation]) -> None:
    currencies = sorted({quotation.currency for quotation in eligible})
    if len(currencies) > 1:
        raise ValidationError(
            code="currency_mismatch",
            message_key="currency_mismatch",
            payload={"currencies": currencies},
        )


def rank(quotations: Iterable[Quotation], policy: ScoringPolicy = DEFAULT_POLICY) -> Ranking:
    """Rank quotations by weighted score; the first ranked entry is recommended.

    Only VALID quotations are scored. Others come after the ranked ones with a
    null score, ordered by id. The result depends only on the set of
    quotations, never on their input order.
    """
    candidates = list(quotations)
    eligible = [quotation for quotation in candidates if quotation.status == ELIGIBLE_STATUS]
    excluded = sorted(
        (quotation for quotation in candidates if quotation.status != ELIGIBLE_STATUS),
        key=lambda quotation: quotation.id,
    )
    _ensure_single_currency(eligible)

    scored: List[ScoredQuotation] = []
    if eligible:
        amounts = [quotation.total_amount for quotation in eligible]
        lowest_amount, highest_amount = min(amounts), max(amounts)
        lead_times = [_decimal(q.lead_time_days) for q in eligible if q.lead_time_days is not None]
        lowest_lead = min(lead_times) if lead_times else _ZERO
        highest_lead = max(lead_times) if lead_times else _ZERO
        weights = policy.weights

        for quotation in eligible:
            price = _lower_is_better(quotation.total_amount, lowest_amount, highest_amount, policy)
            if quotation.lead_time_days is None:
                lead = _ZERO
            else:
                lead = _lower_is_better(_decimal(quotation.lead_time_days), lowest_lead, highest_lead, policy)
            terms = payment_terms_score(quotation.payment_terms, policy)
            total = price * weights.price + lead * weights.lead_time + terms * weights.payment_terms
            total = min(max(total, _ZERO), _HUNDRED)
            scored.append(
                ScoredQuotation(
                    quotation=quotation,
                    score=_round(total),
                    price_score=_round(price),
                    lead_time_score=_round(lead),
                    payment_terms_score=_round(terms),
                )
            )

    scored.sort(key=_sort_key)
    ranked = [
        ScoredQuotation(
            quotation=entry.quotation,
            score=entry.score,
            price_score=entry.price_score,
            lead_time_score=entry.lead_time_score,
            payment_terms_score=entry.payment_terms_score,
            rank=position,
        )
        for position, entry in enumerate(scored, start=1)
    ]
    ranked.extend(ScoredQuotation(quotation=quotation, score=None) for quotation in excluded)
    recommended = ranked[0].quotation if scored else None
    return Ranking(ranked=tuple(ranked), recommended=recommended)
