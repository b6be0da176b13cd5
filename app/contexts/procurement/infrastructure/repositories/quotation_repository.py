from __future__ import annotations

from typing import List

from app.domain.contracts import Quotation, QuotationInput
from app.infrastructure.repositories.base import BaseRepository


class QuotationRepository(BaseRepository):
    def create(self, db, *, rfq_id: int, quotation: QuotationInput, currency: str, status: str) -> int:
        cursor = db.execute(
            """
            INSERT INTO quotations (
                rfq_id, supplier_id, supplier_name, total_amount, currency, lead_time_days, payment_terms, warranty,
                status, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                rfq_id,
                quotation.supplier_id,
                quotation.supplier_name,
                quotation.total_amount,
                currency,
                quotation.lead_time_days,
                quotation.payment_terms,
                quotation.warranty,
                status,
                self.tenant_id,
            ),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, quotation_id: int) -> Quotation | None:
        row = db.execute(
            """
            SELECT *
            FROM quotations
            WHERE id = ? AND tenant_id = ? AND lifecycle = 'active'
            LIMIT 1
            """,
            (quotation_id, self.tenant_id),
        ).fetchone()
        return Quotation.from_row(row) if row else None

    def list_for_request(self, db, purchase_request_id: int) -> List[Quotation]:
        rows = db.execute(
            """
            SELECT q.*
            FROM quotations q
            JOIN rfqs r ON r.id = q.rfq_id AND r.tenant_id = q.tenant_id
            WHERE r.purchase_request_id = ? AND q.tenant_id = ?
              AND q.lifecycle = 'active' AND r.lifecycle = 'active'
            ORDER BY q.id
            """,
            (purchase_request_id, self.tenant_id),
        ).fetchall()
        return [Quotation.from_row(row) for row in rows]

    def count_with_status_for_request(self, db, purchase_request_id: int, status: str) -> int:
        row = db.execute(
            """
            SELECT COUNT(*) AS total
            FROM quotations q
            JOIN rfqs r ON r.id = q.rfq_id AND r.tenant_id = q.tenant_id
            WHERE r.purchase_request_id = ? AND q.tenant_id = ? AND q.status = ?
              AND q.lifecycle = 'active' AND r.lifecycle = 'active'
            """,
            (purchase_request_id, self.tenant_id, status),
        ).fetchone()
        return int(row["total"] or 0)

    def compare_and_set_status(self, db, quotation_id: int, *, expected_status: str, new_status: str) -> bool:
        cursor = db.execute(
            """
            UPDATE quotations
            SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ? AND status = ? AND lifecycle = 'active'
            """,
            (new_status, quotation_id, self.tenant_id, expected_status),
        )
        return int(cursor.rowcount or 0) == 1
