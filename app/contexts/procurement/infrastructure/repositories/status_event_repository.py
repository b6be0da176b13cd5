from __future__ import annotations

from app.infrastructure.repositories.base import BaseRepository


class StatusEventRepository(BaseRepository):
    """Append-only audit trail; rows are never updated or deleted."""

    def add_event(
        self,
        db,
        *,
        entity: str,
        entity_id: int,
        action: str,
        from_status: str | None,
        to_status: str,
        actor_id: str | None,
        actor_role: str | None,
        reason: str | None = None,
        event_id: str | None = None,
    ) -> int:
        cursor = db.execute(
            """
            INSERT INTO status_events (
                entity, entity_id, action, from_status, to_status, actor_id, actor_role, reason, event_id, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING id
            """,
            (entity, entity_id, action, from_status, to_status, actor_id, actor_role, reason, event_id, self.tenant_id),
        )
        return self.inserted_id(cursor)

    def list_for_entity(self, db, *, entity: str, entity_id: int, limit: int = 200) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, entity, entity_id, action, from_status, to_status, actor_id, actor_role, reason, event_id,
                   occurred_at
            FROM status_events
            WHERE entity = ? AND entity_id = ? AND tenant_id = ?
            ORDER BY id ASC
            LIMIT ?
            """,
            (entity, entity_id, self.tenant_id, int(limit)),
        ).fetchall()
        history = self.rows_to_dicts(rows)
        for entry in history:
            entry["occurred_at"] = str(entry["occurred_at"]) if entry.get("occurred_at") is not None else None
        return history
