from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Set

from flask import g, has_request_context, request

from app.errors import PermissionError as AppPermissionError


ROLE_REQUESTOR = "requestor"
ROLE_DEPARTMENT_HEAD = "department_head"
ROLE_BRANCH_MANAGER = "branch_manager"
ROLE_BUYER = "buyer"
ROLE_BUYER_LEADER = "buyer_leader"
ROLE_BUYER_MANAGER = "buyer_manager"
ROLE_ACCOUNTANT = "accountant"
ROLE_WAREHOUSE = "warehouse"
ROLE_EXECUTIVE_BOARD = "executive_board"
ROLE_SALES = "sales"
ROLE_SYSTEM_ADMIN = "system_admin"
# Automatic follow-up transitions run under this role.
ROLE_SYSTEM = "system"

VALID_ROLES: Set[str] = {
    ROLE_REQUESTOR,
    ROLE_DEPARTMENT_HEAD,
    ROLE_BRANCH_MANAGER,
    ROLE_BUYER,
    ROLE_BUYER_LEADER,
    ROLE_BUYER_MANAGER,
    ROLE_ACCOUNTANT,
    ROLE_WAREHOUSE,
    ROLE_EXECUTIVE_BOARD,
    ROLE_SALES,
    ROLE_SYSTEM_ADMIN,
    ROLE_SYSTEM,
}

ROLE_ALIASES = {
    "bgd": ROLE_EXECUTIVE_BOARD,
    "manager": ROLE_DEPARTMENT_HEAD,
}

USER_ID_HEADER = "X-User-Id"
USER_ROLE_HEADER = "X-User-Role"


@dataclass(frozen=True)
class Actor:
    user_id: str
    role: str


def normalize_role(role: str | None, default: str = "") -> str:
    normalized = str(role or "").strip().lower().replace("-", "_")
    normalized = ROLE_ALIASES.get(normalized, normalized)
    if normalized in VALID_ROLES:
        return normalized
    return default if default in VALID_ROLES else ""


def normalize_allowed_roles(roles: Iterable[str]) -> Set[str]:
    allowed: Set[str] = set()
    for role in roles:
        normalized = normalize_role(role)
        if normalized:
            allowed.add(normalized)
    return allowed


def has_any_role(role: str | None, allowed_roles: Iterable[str]) -> bool:
    allowed = normalize_allowed_roles(allowed_roles)
    return not allowed or normalize_role(role) in allowed


def current_actor() -> Actor:
    """Identity of the caller, taken from the request headers.

    Authentication happens upstream; the API trusts the user id and role it is given.
    """
    cached = getattr(g, "actor", None) if has_request_context() else None
    if cached is not None:
        return cached
    user_id = str(request.headers.get(USER_ID_HEADER) or "").strip()
    role = normalize_role(request.headers.get(USER_ROLE_HEADER))
    if not user_id or not role or role == ROLE_SYSTEM:
        raise AppPermissionError(
            code="identity_required",
            message_key="identity_required",
            http_status=401,
            critical=False,
        )
    actor = Actor(user_id=user_id, role=role)
    g.actor = actor
    return actor


def require_roles(*allowed_roles: str, role: str | None = None) -> str:
    normalized_role = normalize_role(role) if role is not None else current_actor().role
    if normalized_role and has_any_role(normalized_role, allowed_roles):
        return normalized_role
    raise AppPermissionError(
        code="permission_denied",
        message_key="permission_denied",
        http_status=403,
        critical=False,
    )
