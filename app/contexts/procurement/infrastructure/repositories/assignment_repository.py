from __future__ import annotations

import json
from typing import List, Sequence

from app.domain.contracts import Assignment
from app.infrastructure.repositories.base import BaseRepository


class AssignmentRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        purchase_request_id: int,
        buyer_id: str,
        buyer_leader_id: str | None,
        scope: str,
        item_ids: Sequence[int],
        note: str | None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO pr_assignments (
                purchase_request_id, buyer_id, buyer_leader_id, scope, item_ids, note, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (
                purchase_request_id,
                buyer_id,
                buyer_leader_id,
                scope,
                json.dumps(sorted(int(item_id) for item_id in item_ids)),
                note,
                self.tenant_id,
            ),
        )
        return self.inserted_id(cursor)

    def get_by_id(self, db, assignment_id: int) -> Assignment | None:
        row = db.execute(
            "SELECT * FROM pr_assignments WHERE id = ? AND tenant_id = ? LIMIT 1",
            (assignment_id, self.tenant_id),
        ).fetchone()
        return Assignment.from_row(row) if row else None

    def list_for_request(self, db, purchase_request_id: int, *, include_deleted: bool = False) -> List[Assignment]:
        rows = db.execute(
            f"""
            SELECT *
            FROM pr_assignments
            WHERE purchase_request_id = ? AND tenant_id = ? AND {self.lifecycle_clause(include_deleted=include_deleted)}
            ORDER BY id
            """,
            (purchase_request_id, self.tenant_id),
        ).fetchall()
        return [Assignment.from_row(row) for row in rows]

    def soft_delete(self, db, assignment_id: int) -> bool:
        cursor = db.execute(
            """
            UPDATE pr_assignments
            SET lifecycle = 'deleted', updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ? AND lifecycle = 'active'
            """,
            (assignment_id, self.tenant_id),
        )
        return int(cursor.rowcount or 0) == 1
