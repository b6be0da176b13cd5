from __future__ import annotations

from typing import Any, Dict

from app.ui_strings import error_message


class AppError(Exception):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True

    def __init__(
        self,
        code: str | None = None,
        message_key: str | None = None,
        http_status: int | None = None,
        critical: bool | None = None,
        details: str | None = None,
        payload: Dict[str, Any] | None = None,
    ) -> None:
        self.code = (code or self.default_code).strip()
        self.message_key = (message_key or self.default_message_key).strip()
        self.http_status = int(http_status or self.default_http_status)
        self.critical = bool(self.default_critical if critical is None else critical)
        self.details = (details or "").strip() or None
        self.payload = dict(payload or {})
        super().__init__(self.details or self.code)

    def user_message(self) -> str:
        fallback = error_message("unexpected_error", "The operation could not be completed.")
        return error_message(self.message_key, fallback)

    def to_response_payload(self, request_id: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error": self.code,
            "message": self.user_message(),
            "request_id": request_id,
        }
        if self.payload:
            payload.update(self.payload)
        return payload


class UserActionError(AppError):
    default_code = "action_invalid"
    default_message_key = "action_invalid"
    default_http_status = 400
    default_critical = False


class ValidationError(UserActionError):
    default_code = "validation_error"
    default_message_key = "validation_error"
    default_http_status = 400
    default_critical = False


class NotFoundError(UserActionError):
    default_code = "not_found"
    default_message_key = "not_found"
    default_http_status = 404
    default_critical = False


class PermissionError(UserActionError):
    default_code = "permission_denied"
    default_message_key = "permission_denied"
    default_http_status = 403
    default_critical = False


class InvalidTransitionError(UserActionError):
    """The (status, action) pair is not in the transition table, or the role is not allowed."""

    default_code = "invalid_transition"
    default_message_key = "invalid_transition"
    default_http_status = 409
    default_critical = False


class IncompleteAssignmentError(UserActionError):
    default_code = "incomplete_assignment"
    default_message_key = "incomplete_assignment"
    default_http_status = 409
    default_critical = False

    def __init__(self, unassigned_item_ids, **kwargs) -> None:
        self.unassigned_item_ids = sorted(int(item_id) for item_id in unassigned_item_ids)
        payload = dict(kwargs.pop("payload", None) or {})
        payload["unassigned_item_ids"] = list(self.unassigned_item_ids)
        super().__init__(payload=payload, **kwargs)


class MissingJustificationError(UserActionError):
    default_code = "missing_justification"
    default_message_key = "missing_justification"
    default_http_status = 422
    default_critical = False


class ConcurrentModificationError(UserActionError):
    """Recoverable: the caller should re-read the purchase request and retry."""

    default_code = "concurrent_modification"
    default_message_key = "concurrent_modification"
    default_http_status = 409
    default_critical = False


class DataIntegrityError(AppError):
    default_code = "data_integrity_violation"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True


class SystemError(AppError):
    default_code = "system_error"
    default_message_key = "unexpected_error"
    default_http_status = 500
    default_critical = True
