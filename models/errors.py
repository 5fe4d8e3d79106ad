"""Domain errors shared by every layer of the collector.

Each error class carries a fixed :class:`StatusClass`; two errors compare
equal when they share it, regardless of message, details or cause. This lets
callers ask "is this a NotFound" without caring how the error was enriched on
its way up. Enrichment never mutates the receiver::

    raise NotFound().with_msg("user without correlated devices").with_err(exc)
"""

from __future__ import annotations

import copy
from enum import IntEnum
from typing import Any, Dict, Optional


class StatusClass(IntEnum):
    """Error classification; values are the HTTP status codes they map to."""

    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    ALREADY_EXISTS = 409
    INTERNAL = 500


class DomainError(Exception):
    status_class: StatusClass = StatusClass.INTERNAL
    description: str = "internal server error"

    def __init__(
        self,
        message: str = "",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def _clone(self) -> "DomainError":
        clone = copy.copy(self)
        clone.details = dict(self.details)
        clone.__cause__ = self.__cause__
        return clone

    def with_msg(self, message: str) -> "DomainError":
        clone = self._clone()
        clone.message = message
        clone.args = (message,)
        return clone

    def with_err(self, cause: BaseException) -> "DomainError":
        clone = self._clone()
        clone.cause = cause
        clone.__cause__ = cause
        return clone

    def with_details(self, **details: Any) -> "DomainError":
        clone = self._clone()
        clone.details.update(details)
        return clone

    @property
    def status_code(self) -> int:
        return int(self.status_class)

    def to_payload(self) -> Dict[str, Any]:
        """Client-safe representation; the cause is never included."""
        return {
            "error": self.description,
            "message": self.message,
            "details": dict(self.details),
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DomainError):
            return NotImplemented
        return self.status_class is other.status_class

    def __hash__(self) -> int:
        return hash(self.status_class)

    def __str__(self) -> str:
        return f"{self.description}: {self.message}, {self.details}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(message={self.message!r}, details={self.details!r})"


class InternalError(DomainError):
    status_class = StatusClass.INTERNAL
    description = "internal server error"


class NotFound(DomainError):
    status_class = StatusClass.NOT_FOUND
    description = "not found"


class AlreadyExists(DomainError):
    status_class = StatusClass.ALREADY_EXISTS
    description = "resource already exists"


class BadRequest(DomainError):
    status_class = StatusClass.BAD_REQUEST
    description = "bad request"


class Forbidden(DomainError):
    status_class = StatusClass.FORBIDDEN
    description = "forbidden"


class Unauthorized(DomainError):
    status_class = StatusClass.UNAUTHORIZED
    description = "unauthorized"


def is_status(error: BaseException, status_class: StatusClass) -> bool:
    """True when ``error`` is a domain error of the given classification."""
    return isinstance(error, DomainError) and error.status_class is status_class
