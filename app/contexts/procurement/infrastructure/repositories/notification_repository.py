from __future__ import annotations

import json
from typing import Any, Dict, List

from app.domain.contracts import Notification
from app.infrastructure.repositories.base import BaseRepository


class NotificationRepository(BaseRepository):
    def add_once(
        self,
        db,
        *,
        event_id: str,
        notification_type: str,
        recipient_role: str,
        recipient_id: str | None,
        purchase_request_id: int | None,
        message: str,
        payload: Dict[str, Any],
    ) -> bool:
        """Insert unless (tenant, event, recipient role) already exists; returns whether a row was added."""
        cursor = db.execute(
            """
            INSERT INTO notifications (
                event_id, type, recipient_role, recipient_id, purchase_request_id, message, payload, tenant_id
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (tenant_id, event_id, recipient_role) DO NOTHING
            """,
            (
                event_id,
                notification_type,
                recipient_role,
                recipient_id,
                purchase_request_id,
                message,
                json.dumps(payload, default=str, sort_keys=True),
                self.tenant_id,
            ),
        )
        return int(cursor.rowcount or 0) == 1

    def list_for_recipient(
        self,
        db,
        *,
        recipient_role: str,
        recipient_id: str | None = None,
        unread_only: bool = False,
        limit: int = 100,
    ) -> List[Notification]:
        params: List[Any] = [self.tenant_id, recipient_role]
        recipient_clause = ""
        if recipient_id:
            recipient_clause = "AND (recipient_id IS NULL OR recipient_id = ?)"
            params.append(recipient_id)
        unread_clause = "AND read_at IS NULL" if unread_only else ""
        params.append(int(limit))
        rows = db.execute(
            f"""
            SELECT *
            FROM notifications
            WHERE tenant_id = ? AND recipient_role = ? AND lifecycle = 'active' {recipient_clause} {unread_clause}
            ORDER BY id DESC
            LIMIT ?
            """,
            tuple(params),
        ).fetchall()
        return [Notification.from_row(row) for row in rows]

    def mark_read(self, db, notification_id: int, *, recipient_role: str, recipient_id: str | None = None) -> bool:
        cursor = db.execute(
            """
            UPDATE notifications
            SET read_at = CURRENT_TIMESTAMP
            WHERE id = ? AND tenant_id = ? AND recipient_role = ?
              AND (recipient_id IS NULL OR recipient_id = ?) AND read_at IS NULL
            """,
            (notification_id, self.tenant_id, recipient_role, recipient_id),
        )
        return int(cursor.rowcount or 0) == 1
