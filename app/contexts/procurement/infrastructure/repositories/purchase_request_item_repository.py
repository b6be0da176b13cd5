from __future__ import annotations

from typing import Any, List

from app.domain.contracts import ItemInput, PurchaseRequestItem
from app.infrastructure.repositories.base import BaseRepository


class PurchaseRequestItemRepository(BaseRepository):
    def create(self, db, *, purchase_request_id: int, line_no: int, item: ItemInput) -> int:
        cursor = db.execute(
            """
            INSERT INTO purchase_request_items (
                purchase_request_id, line_no, description, quantity, unit_price, amount,
                uom, manufacturer, specification, purchase_type, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                purchase_request_id,
                line_no,
                item.description,
                item.quantity,
                item.unit_price,
                item.amount,
                item.uom,
                item.manufacturer,
                item.specification,
                item.purchase_type,
                self.tenant_id,
            ),
        )
        return self.inserted_id(cursor)

    def list_for_request(
        self,
        db,
        purchase_request_id: int,
        *,
        include_deleted: bool = False,
    ) -> List[PurchaseRequestItem]:
        rows = db.execute(
            f"""
            SELECT *
            FROM purchase_request_items
            WHERE purchase_request_id = ? AND tenant_id = ? AND {self.lifecycle_clause(include_deleted=include_deleted)}
            ORDER BY line_no, id
            """,
            (purchase_request_id, self.tenant_id),
        ).fetchall()
        return [PurchaseRequestItem.from_row(row) for row in rows]

    def next_line_no(self, db, purchase_request_id: int) -> int:
        row = db.execute(
            """
            SELECT COALESCE(MAX(line_no), 0) AS max_line
            FROM purchase_request_items
            WHERE purchase_request_id = ? AND tenant_id = ?
            """,
            (purchase_request_id, self.tenant_id),
        ).fetchone()
        return int(row["max_line"] or 0) + 1

    def update_fields(self, db, item_id: int, purchase_request_id: int, fields: dict[str, Any]) -> bool:
        if not fields:
            return False
        updates = [f"{key} = ?" for key in fields.keys()]
        params: List[Any] = list(fields.values())
        params.extend([item_id, purchase_request_id, self.tenant_id])
        cursor = db.execute(
            f"""
            UPDATE purchase_request_items
            SET {", ".join(updates)}, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND purchase_request_id = ? AND tenant_id = ? AND lifecycle = 'active'
            """,
            tuple(params),
        )
        return int(cursor.rowcount or 0) == 1

    def soft_delete(self, db, item_id: int, purchase_request_id: int) -> bool:
        return self.update_fields(db, item_id, purchase_request_id, {"lifecycle": "deleted"})
