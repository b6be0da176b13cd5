from __future__ import annotations

from decimal import Decimal
from typing import Any, List

from app.domain.contracts import PurchaseRequest
from app.infrastructure.repositories.base import DELETED, BaseRepository


class PurchaseRequestRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        number: str,
        requestor_id: str,
        department: str | None,
        purpose: str | None,
        total_amount: Decimal,
        currency: str,
        status: str,
        sales_po_id: int | None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO purchase_requests (
                number, requestor_id, department, purpose, total_amount, currency, status, sales_po_id, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (number, requestor_id, department, purpose, total_amount, currency, status, sales_po_id, self.tenant_id),
        )
        return self.inserted_id(cursor)

    def get_row(self, db, purchase_request_id: int, *, include_deleted: bool = False) -> dict | None:
        row = db.execute(
            f"""
            SELECT *
            FROM purchase_requests
            WHERE id = ? AND tenant_id = ? AND {self.lifecycle_clause(include_deleted=include_deleted)}
            LIMIT 1
            """,
            (purchase_request_id, self.tenant_id),
        ).fetchone()
        return dict(row) if row else None

    def get_by_id(self, db, purchase_request_id: int, *, include_deleted: bool = False) -> PurchaseRequest | None:
        row = self.get_row(db, purchase_request_id, include_deleted=include_deleted)
        return PurchaseRequest.from_row(row) if row else None

    def compare_and_set_status(
        self,
        db,
        purchase_request_id: int,
        *,
        expected_version: int,
        expected_status: str,
        new_status: str,
        increment_return_count: bool = False,
    ) -> bool:
        """Apply a status change only if nobody changed the request since it was read."""
        cursor = db.execute(
            """
            UPDATE purchase_requests
            SET status = ?,
                version = version + 1,
                return_count = return_count + ?,
                updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ? AND version = ? AND status = ? AND lifecycle = 'active'
            """,
            (
                new_status,
                1 if increment_return_count else 0,
                purchase_request_id,
                self.tenant_id,
                int(expected_version),
                expected_status,
            ),
        )
        return int(cursor.rowcount or 0) == 1

    def compare_and_update_fields(
        self,
        db,
        purchase_request_id: int,
        *,
        expected_version: int,
        fields: dict[str, Any],
    ) -> bool:
        updates = [f"{key} = ?" for key in fields.keys()]
        params: List[Any] = list(fields.values())
        params.extend([purchase_request_id, self.tenant_id, int(expected_version)])
        assignments = ", ".join([*updates, "version = version + 1", "updated_at = CURRENT_TIMESTAMP"])
        cursor = db.execute(
            f"""
            UPDATE purchase_requests
            SET {assignments}
            WHERE id = ? AND tenant_id = ? AND version = ? AND lifecycle = 'active'
            """,
            tuple(params),
        )
        return int(cursor.rowcount or 0) == 1

    def soft_delete(self, db, purchase_request_id: int, *, expected_version: int) -> bool:
        return self.compare_and_update_fields(
            db,
            purchase_request_id,
            expected_version=expected_version,
            fields={"lifecycle": DELETED},
        )

    def list_summary(self, db, *, status: str | None = None, limit: int = 200) -> list[dict]:
        params: List[Any] = [self.tenant_id]
        status_clause = ""
        if status:
            status_clause = "AND status = ?"
            params.append(status)
        params.append(int(limit))
        rows = db.execute(
            f"""
            SELECT id, number, status, department, requestor_id, total_amount, currency, version, return_count,
                   sales_po_id, created_at, updated_at
            FROM purchase_requests
            WHERE tenant_id = ? AND lifecycle = 'active' {status_clause}
            ORDER BY id DESC
            LIMIT ?
            """,
            tuple(params),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_numbers_like(self, db, prefix: str) -> list[str]:
        # Deleted requests keep their numbers reserved.
        rows = db.execute(
            "SELECT number FROM purchase_requests WHERE tenant_id = ? AND number LIKE ?",
            (self.tenant_id, f"{prefix}%"),
        ).fetchall()
        return [str(row["number"]) for row in rows]
