from __future__ import annotations

from sqlalchemy.exc import DBAPIError, DisconnectionError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError


class CellarError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, code: str | None = None, message: str = "", details: dict | None = None):
        self.code = code or self.code
        self.message = message or self.code
        self.details = details or {}
        super().__init__(self.message)

    def payload(self) -> dict:
        return {"error": {"code": self.code, "message": self.message, "details": self.details}}


class ValidationError(CellarError):
    code = "validation_error"
    status_code = 422


class ConflictError(CellarError):
    code = "conflict"
    status_code = 409


class InvalidStateError(CellarError):
    code = "invalid_state"
    status_code = 409


class AuthorizationError(CellarError):
    code = "forbidden"
    status_code = 403


class NotFoundError(CellarError):
    code = "not_found"
    status_code = 404


class TransientError(CellarError):
    """Storage was unreachable or busy; the whole operation may be retried."""

    code = "storage_unavailable"
    status_code = 503


def not_found(what: str = "Resource", details: dict | None = None) -> NotFoundError:
    return NotFoundError("not_found", f"{what} not found", details)


def forbidden(message: str = "You do not have permission for this action") -> AuthorizationError:
    return AuthorizationError("forbidden", message)


def validation_error(code: str, message: str, details: dict | None = None) -> ValidationError:
    return ValidationError(code, message, details)


def conflict(code: str, message: str, details: dict | None = None) -> ConflictError:
    return ConflictError(code, message, details)


def invalid_state(code: str, message: str, details: dict | None = None) -> InvalidStateError:
    return InvalidStateError(code, message, details)


def translate_db_error(exc: Exception) -> CellarError | None:
    if isinstance(exc, IntegrityError):
        return conflict("constraint_violation", "Write conflicts with existing data", {"reason": str(exc.orig)})
    if isinstance(exc, (OperationalError, DisconnectionError, PoolTimeoutError)):
        return TransientError("storage_unavailable", "Storage is unavailable, retry later")
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return TransientError("storage_unavailable", "Storage connection was lost, retry later")
    return None
