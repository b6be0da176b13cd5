from __future__ import annotations

from decimal import Decimal

from app.domain.contracts import SalesPO
from app.infrastructure.repositories.base import BaseRepository


class SalesPORepository(BaseRepository):
    def create(
        self,
        db,
        *,
        number: str,
        customer_name: str | None,
        amount: Decimal,
        currency: str,
        created_by: str,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO sales_pos (number, customer_name, amount, currency, status, created_by, tenant_id)
            VALUES (?, ?, ?, ?, 'DRAFT', ?, ?)
            RETURNING id
            """,
            (number, customer_name, amount, currency, created_by, self.tenant_id),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, sales_po_id: int) -> SalesPO | None:
        row = db.execute(
            "SELECT * FROM sales_pos WHERE id = ? AND tenant_id = ? AND lifecycle = 'active' LIMIT 1",
            (sales_po_id, self.tenant_id),
        ).fetchone()
        return SalesPO.from_row(row) if row else None

    def compare_and_set_status(self, db, sales_po_id: int, *, expected_status: str, new_status: str) -> bool:
        cursor = db.execute(
            """
            UPDATE sales_pos
            SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ? AND status = ? AND lifecycle = 'active'
            """,
            (new_status, sales_po_id, self.tenant_id, expected_status),
        )
        return int(cursor.rowcount or 0) == 1
