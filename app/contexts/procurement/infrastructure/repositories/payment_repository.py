from __future__ import annotations

from decimal import Decimal
from typing import List

from app.domain.contracts import Payment
from app.infrastructure.repositories.base import BaseRepository


class PaymentRepository(BaseRepository):
    def create(self, db, *, purchase_request_id: int, amount: Decimal, currency: str, recorded_by: str) -> int:
        cursor = db.execute(
            """
            INSERT INTO payments (purchase_request_id, amount, currency, status, recorded_by, tenant_id)
            VALUES (?, ?, ?, 'PENDING', ?, ?)
            RETURNING id
            """,
            (purchase_request_id, amount, currency, recorded_by, self.tenant_id),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, payment_id: int) -> Payment | None:
        row = db.execute(
            "SELECT * FROM payments WHERE id = ? AND tenant_id = ? AND lifecycle = 'active' LIMIT 1",
            (payment_id, self.tenant_id),
        ).fetchone()
        return Payment.from_row(row) if row else None

    def list_for_request(self, db, purchase_request_id: int) -> List[Payment]:
        rows = db.execute(
            """
            SELECT *
            FROM payments
            WHERE purchase_request_id = ? AND tenant_id = ? AND lifecycle = 'active'
            ORDER BY id
            """,
            (purchase_request_id, self.tenant_id),
        ).fetchall()
        return [Payment.from_row(row) for row in rows]

    def compare_and_set_status(self, db, payment_id: int, *, expected_status: str, new_status: str) -> bool:
        cursor = db.execute(
            """
            UPDATE payments
            SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ? AND status = ? AND lifecycle = 'active'
            """,
            (new_status, payment_id, self.tenant_id, expected_status),
        )
        return int(cursor.rowcount or 0) == 1

    def sum_done_for_funding_source(self, db, sales_po_id: int) -> Decimal:
        """DONE payments on live requests linked to the funding source, read in one statement."""
        row = db.execute(
            """
            SELECT COALESCE(SUM(p.amount), 0) AS actual_cost
            FROM payments p
            JOIN purchase_requests pr ON pr.id = p.purchase_request_id AND pr.tenant_id = p.tenant_id
            WHERE pr.sales_po_id = ? AND p.tenant_id = ?
              AND p.status = 'DONE' AND p.lifecycle = 'active' AND pr.lifecycle = 'active'
            """,
            (sales_po_id, self.tenant_id),
        ).fetchone()
        return Decimal(str(row["actual_cost"] or 0))

    def list_for_funding_source(self, db, sales_po_id: int) -> List[Payment]:
        rows = db.execute(
            """
            SELECT p.*
            FROM payments p
            JOIN purchase_requests pr ON pr.id = p.purchase_request_id AND pr.tenant_id = p.tenant_id
            WHERE pr.sales_po_id = ? AND p.tenant_id = ? AND pr.lifecycle = 'active'
            ORDER BY p.id
            """,
            (sales_po_id, self.tenant_id),
        ).fetchall()
        return [Payment.from_row(row) for row in rows]
