from __future__ import annotations

from typing import Any, Iterable


ACTIVE = "active"
DELETED = "deleted"


class TenantScopeRequiredError(ValueError):
    """Raised when a repository is instantiated without tenant scope."""


class BaseRepository:
    def __init__(self, *, tenant_id: str | None = None) -> None:
        scope = str(tenant_id or "").strip()
        if not scope:
            raise TenantScopeRequiredError("tenant_id is required for repository access")
        self.tenant_id = scope

    @staticmethod
    def inserted_id(cursor) -> int:
        # Drain the cursor so SQLite finishes the RETURNING statement before commit.
        row = cursor.fetchall()[0]
        return int(row["id"] if isinstance(row, dict) else row[0])

    @staticmethod
    def lifecycle_clause(*, table_alias: str | None = None, include_deleted: bool = False) -> str:
        if include_deleted:
            return "1 = 1"
        prefix = f"{table_alias.strip()}." if table_alias and str(table_alias).strip() else ""
        return f"{prefix}lifecycle = '{ACTIVE}'"

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]
