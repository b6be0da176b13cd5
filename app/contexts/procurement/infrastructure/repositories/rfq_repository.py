from __future__ import annotations

from typing import List

from app.domain.contracts import Rfq
from app.infrastructure.repositories.base import BaseRepository


class RfqRepository(BaseRepository):
    def create(self, db, *, number: str, purchase_request_id: int, buyer_id: str, status: str = "DRAFT") -> int:
        cursor = db.execute(
            """
            INSERT INTO rfqs (number, purchase_request_id, buyer_id, status, tenant_id)
            VALUES (?, ?, ?, ?, ?)
            RETURNING id
            """,
            (number, purchase_request_id, buyer_id, status, self.tenant_id),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, rfq_id: int) -> Rfq | None:
        row = db.execute(
            """
            SELECT *
            FROM rfqs
            WHERE id = ? AND tenant_id = ? AND lifecycle = 'active'
            LIMIT 1
            """,
            (rfq_id, self.tenant_id),
        ).fetchone()
        return Rfq.from_row(row) if row else None

    def find_for_buyer(self, db, purchase_request_id: int, buyer_id: str) -> Rfq | None:
        row = db.execute(
            """
            SELECT *
            FROM rfqs
            WHERE purchase_request_id = ? AND buyer_id = ? AND tenant_id = ? AND lifecycle = 'active'
            LIMIT 1
            """,
            (purchase_request_id, buyer_id, self.tenant_id),
        ).fetchone()
        return Rfq.from_row(row) if row else None

    def list_for_request(self, db, purchase_request_id: int) -> List[Rfq]:
        rows = db.execute(
            """
            SELECT *
            FROM rfqs
            WHERE purchase_request_id = ? AND tenant_id = ? AND lifecycle = 'active'
            ORDER BY id
            """,
            (purchase_request_id, self.tenant_id),
        ).fetchall()
        return [Rfq.from_row(row) for row in rows]

    def compare_and_set_status(self, db, rfq_id: int, *, expected_status: str, new_status: str) -> bool:
        cursor = db.execute(
            """
            UPDATE rfqs
            SET status = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ? AND status = ? AND lifecycle = 'active'
            """,
            (new_status, rfq_id, self.tenant_id, expected_status),
        )
        return int(cursor.rowcount or 0) == 1

    def list_numbers_like(self, db, prefix: str) -> list[str]:
        rows = db.execute(
            "SELECT number FROM rfqs WHERE tenant_id = ? AND number LIKE ?",
            (self.tenant_id, f"{prefix}%"),
        ).fetchall()
        return [str(row["number"]) for row in rows]
