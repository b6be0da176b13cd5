import unittest
from decimal import Decimal

from app.domain.contracts import Quotation
from app.errors import ValidationError
from app.procurement.quotation_scorer import (
    ScoringPolicy,
    ScoringWeights,
    payment_terms_score,
    rank,
)


def _quotation(quotation_id, amount, lead_time=None, terms="Net 30", status="VALID", currency="VND"):
    return Quotation(
        id=quotation_id,
        rfq_id=1,
        supplier_id=f"supplier-{quotation_id}",
        total_amount=Decimal(str(amount)).quantize(Decimal("0.01")),
        currency=currency,
        status=status,
        lead_time_days=lead_time,
        payment_terms=terms,
    )


class QuotationScorerTest(unittest.TestCase):
    def test_cheapest_quotation_wins_with_default_weights(self) -> None:
        q1 = _quotation(1, 100, lead_time=10)
        q2 = _quotation(2, 110, lead_time=5)
        q3 = _quotation(3, 90, lead_time=20)

        ranking = rank([q1, q2, q3])

        self.assertEqual(ranking.recommended.id, 3)
        self.assertEqual([entry.quotation.id for entry in ranking.ranked], [3, 1, 2])
        scores = {entry.quotation.id: entry for entry in ranking.ranked}
        self.assertEqual(scores[1].price_score, Decimal("50.00"))
        self.assertEqual(scores[2].price_score, Decimal("0.00"))
        self.assertEqual(scores[3].price_score, Decimal("100.00"))
        self.assertEqual(scores[1].lead_time_score, Decimal("66.67"))
        self.assertEqual(scores[2].lead_time_score, Decimal("100.00"))
        self.assertEqual(scores[3].lead_time_score, Decimal("0.00"))
        self.assertEqual(scores[3].score, Decimal("78.00"))
        self.assertEqual(scores[1].score, Decimal("56.33"))
        self.assertEqual(scores[2].score, Decimal("28.00"))
        self.assertEqual([entry.rank for entry in ranking.ranked], [1, 2, 3])

    def test_result_does_not_depend_on_input_order(self) -> None:
        quotations = [_quotation(1, 100, 10), _quotation(2, 110, 5), _quotation(3, 90, 20), _quotation(4, 90, 20)]
        forward = rank(quotations)
        backward = rank(list(reversed(quotations)))
        self.assertEqual(forward.to_dict(), backward.to_dict())
        self.assertEqual(forward.recommended.id, 3)

    def test_non_valid_quotations_are_listed_without_score(self) -> None:
        ranking = rank(
            [
                _quotation(5, 50, status="REJECTED"),
                _quotation(2, 100, 3),
                _quotation(4, 70, status="DRAFT"),
            ]
        )
        self.assertEqual([entry.quotation.id for entry in ranking.ranked], [2, 4, 5])
        self.assertIsNone(ranking.ranked[1].score)
        self.assertIsNone(ranking.ranked[2].rank)
        self.assertEqual(ranking.recommended.id, 2)

    def test_single_quotation_gets_equal_value_scores(self) -> None:
        ranking = rank([_quotation(1, 100, 7, terms=None)])
        entry = ranking.ranked[0]
        self.assertEqual(entry.price_score, Decimal("100.00"))
        self.assertEqual(entry.lead_time_score, Decimal("100.00"))
        self.assertEqual(entry.payment_terms_score, Decimal("50.00"))
        self.assertEqual(entry.score, Decimal("95.00"))

    def test_missing_lead_time_scores_zero(self) -> None:
        ranking = rank([_quotation(1, 100, None), _quotation(2, 100, 5)])
        scores = {entry.quotation.id: entry for entry in ranking.ranked}
        self.assertEqual(scores[1].lead_time_score, Decimal("0.00"))
        self.assertEqual(ranking.recommended.id, 2)

    def test_no_eligible_quotations(self) -> None:
        ranking = rank([_quotation(1, 100, status="DRAFT")])
        self.assertIsNone(ranking.recommended)
        self.assertEqual(ranking.to_dict()["recommended_quotation_id"], None)

    def test_mixed_currencies_are_refused(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            rank([_quotation(1, 100, currency="VND"), _quotation(2, 5, currency="USD")])
        self.assertEqual(ctx.exception.code, "currency_mismatch")
        self.assertEqual(ctx.exception.payload["currencies"], ["USD", "VND"])

    def test_payment_terms_normalization(self) -> None:
        self.assertEqual(payment_terms_score("NET30"), Decimal("80"))
        self.assertEqual(payment_terms_score("net-60"), Decimal("60"))
        self.assertEqual(payment_terms_score("Prepaid in full"), Decimal("30"))
        self.assertEqual(payment_terms_score("on delivery, maybe"), Decimal("50"))
        self.assertEqual(payment_terms_score(""), Decimal("50"))

    def test_weights_from_config_change_the_winner(self) -> None:
        policy = ScoringPolicy.from_config(
            {"QUOTATION_WEIGHT_PRICE": 0.1, "QUOTATION_WEIGHT_LEAD_TIME": 0.9, "QUOTATION_WEIGHT_PAYMENT_TERMS": 0}
        )
        ranking = rank([_quotation(1, 100, 10), _quotation(2, 110, 5), _quotation(3, 90, 20)], policy)
        self.assertEqual(ranking.recommended.id, 2)

    def test_negative_weights_are_refused(self) -> None:
        with self.assertRaises(ValueError):
            ScoringWeights(price=-1, lead_time=1, payment_terms=1)


if __name__ == "__main__":
    unittest.main()
