from __future__ import annotations

from app.domain.contracts import BudgetException
from app.infrastructure.repositories.base import BaseRepository
from app.procurement.budget_gate import OverBudgetCheck


class BudgetExceptionRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        purchase_request_id: int,
        supplier_selection_id: int,
        check: OverBudgetCheck,
        reason: str,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO budget_exceptions (
                purchase_request_id, supplier_selection_id, pr_amount, purchase_amount, over_amount, over_percent,
                reason, status, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, 'PENDING', ?)
            RETURNING id
            """,
            (
                purchase_request_id,
                supplier_selection_id,
                check.declared_amount,
                check.selected_amount,
                check.over_amount,
                check.over_percent,
                reason,
                self.tenant_id,
            ),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, budget_exception_id: int) -> BudgetException | None:
        row = db.execute(
            "SELECT * FROM budget_exceptions WHERE id = ? AND tenant_id = ? AND lifecycle = 'active' LIMIT 1",
            (budget_exception_id, self.tenant_id),
        ).fetchone()
        return BudgetException.from_row(row) if row else None

    def get_pending_for_request(self, db, purchase_request_id: int) -> BudgetException | None:
        row = db.execute(
            """
            SELECT *
            FROM budget_exceptions
            WHERE purchase_request_id = ? AND tenant_id = ? AND status = 'PENDING' AND lifecycle = 'active'
            ORDER BY id DESC
            LIMIT 1
            """,
            (purchase_request_id, self.tenant_id),
        ).fetchone()
        return BudgetException.from_row(row) if row else None

    def decide(self, db, budget_exception_id: int, *, status: str, decided_by: str, note: str | None) -> bool:
        cursor = db.execute(
            """
            UPDATE budget_exceptions
            SET status = ?, decided_by = ?, decision_note = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ? AND status = 'PENDING' AND lifecycle = 'active'
            """,
            (status, decided_by, note, budget_exception_id, self.tenant_id),
        )
        return int(cursor.rowcount or 0) == 1
