from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    VALIDATION = "validation"
    CONFLICT = "conflict"
    INFEASIBLE = "infeasible"
    GONE = "gone"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS[self]


_HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.VALIDATION: 400,
    ErrorKind.CONFLICT: 409,
    ErrorKind.INFEASIBLE: 422,
    ErrorKind.GONE: 410,
}


class RoundError(RuntimeError):
    """Base error for Secret Santa round operations.

    Every subclass pins ``kind`` so boundaries can branch on it instead of
    inspecting the exception type or a numeric code.
    """

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(kind={self.kind.value}, message={self.message!r})>"


class NotFoundError(RoundError):
    kind = ErrorKind.NOT_FOUND


class ForbiddenError(RoundError):
    kind = ErrorKind.FORBIDDEN


class ValidationError(RoundError):
    kind = ErrorKind.VALIDATION


class ConflictError(RoundError):
    kind = ErrorKind.CONFLICT


class InfeasibleError(ValidationError):
    kind = ErrorKind.INFEASIBLE


class GoneError(RoundError):
    kind = ErrorKind.GONE
