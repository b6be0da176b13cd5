from __future__ import annotations

from app.domain.contracts import SupplierSelection
from app.infrastructure.repositories.base import BaseRepository


class SupplierSelectionRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        purchase_request_id: int,
        quotation_id: int,
        selected_by: str,
        selection_reason: str,
        is_over_budget: bool,
        over_budget_reason: str | None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO supplier_selections (
                purchase_request_id, quotation_id, selected_by, selection_reason, is_over_budget,
                over_budget_reason, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                purchase_request_id,
                quotation_id,
                selected_by,
                selection_reason,
                1 if is_over_budget else 0,
                over_budget_reason,
                self.tenant_id,
            ),
        )
        return self.inserted_id(cursor)

    def get_for_request(self, db, purchase_request_id: int) -> SupplierSelection | None:
        row = db.execute(
            """
            SELECT *
            FROM supplier_selections
            WHERE purchase_request_id = ? AND tenant_id = ? AND lifecycle = 'active'
            LIMIT 1
            """,
            (purchase_request_id, self.tenant_id),
        ).fetchone()
        return SupplierSelection.from_row(row) if row else None
