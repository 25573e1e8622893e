# ---------------------------------
# TYPED EXCEPTIONS
# ---------------------------------
from __future__ import annotations

from typing import Any

ROW_NOT_VISIBLE_CODE = "PGRST116"


class ExpenseAppError(RuntimeError):
    pass


class PreconditionError(ExpenseAppError):
    """Raised locally, before any gateway call, when session context is missing."""


class NotAuthenticatedError(PreconditionError):
    def __init__(self, message: str = "User not authenticated") -> None:
        super().__init__(message)


class NoOrganizationError(PreconditionError):
    def __init__(self, message: str = "No organization selected") -> None:
        super().__init__(message)


class ValidationFailedError(ExpenseAppError):
    """Raised when local input validation rejects a request."""


class GatewayError(ExpenseAppError):
    """Raised when the gateway answers with an error payload or is unreachable.

    The gateway's message is kept verbatim so callers can surface it.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
        details: Any = None,
        hint: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details
        self.hint = hint

    @classmethod
    def from_payload(cls, payload: Any, *, status_code: int) -> "GatewayError":
        if not isinstance(payload, dict):
            text = str(payload).strip() or f"Gateway request failed with status {status_code}"
            return cls(text, status_code=status_code)

        message = (
            payload.get("message")
            or payload.get("msg")
            or payload.get("error_description")
            or payload.get("error")
            or f"Gateway request failed with status {status_code}"
        )
        code = payload.get("code")
        if code is not None:
            code = str(code)
        error_cls = RowNotVisibleError if code == ROW_NOT_VISIBLE_CODE else cls
        return error_cls(
            str(message),
            code=code,
            status_code=status_code,
            details=payload.get("details"),
            hint=payload.get("hint"),
        )


class RowNotVisibleError(GatewayError):
    """The requested row does not exist or row-level policies hide it."""
