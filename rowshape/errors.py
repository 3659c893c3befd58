"""Error taxonomy shared by the registry, the mapping engine and the service facade."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Iterable, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Stable identifiers for every failure a caller can observe."""

    MALFORMED_DESCRIPTOR = "malformed_descriptor"
    SECURITY_BLOCKED = "security_blocked"
    CAPACITY_EXCEEDED = "capacity_exceeded"
    CONNECTION_FAILED = "connection_failed"
    STATEMENT_TIMEOUT = "statement_timeout"
    SESSION_NOT_FOUND = "session_not_found"
    INVALID_IDENTIFIER = "invalid_identifier"
    IDENTIFIER_TOO_LONG = "identifier_too_long"
    MAPPING_INVALID = "mapping_invalid"
    UNKNOWN_TABLE = "unknown_table"
    UNKNOWN_COLUMNS = "unknown_columns"
    PATH_COLLISION = "path_collision"
    REQUEST_INVALID = "request_invalid"
    INTERNAL = "internal"


class RowShapeError(RuntimeError):
    """Base class for errors raised inside the package."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: Iterable[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: tuple[str, ...] = tuple(details or ())


class MalformedDescriptorError(RowShapeError):
    """Raised when a connection string cannot be parsed or targets the wrong protocol."""

    kind = ErrorKind.MALFORMED_DESCRIPTOR


class SecurityBlockedError(RowShapeError):
    """Raised when a connection string targets a blocked host or address range."""

    kind = ErrorKind.SECURITY_BLOCKED


class CapacityExceededError(RowShapeError):
    kind = ErrorKind.CAPACITY_EXCEEDED


class ConnectionFailedError(RowShapeError):
    kind = ErrorKind.CONNECTION_FAILED


class StatementTimeoutError(RowShapeError):
    kind = ErrorKind.STATEMENT_TIMEOUT


class SessionNotFoundError(RowShapeError):
    """Raised for unknown session ids; expired and never-issued ids look the same."""

    kind = ErrorKind.SESSION_NOT_FOUND


class InvalidIdentifierError(RowShapeError):
    kind = ErrorKind.INVALID_IDENTIFIER


class IdentifierTooLongError(RowShapeError):
    kind = ErrorKind.IDENTIFIER_TOO_LONG


class MappingInvalidError(RowShapeError):
    """Raised with every mapping violation collected in ``details``."""

    kind = ErrorKind.MAPPING_INVALID


class UnknownTableError(RowShapeError):
    kind = ErrorKind.UNKNOWN_TABLE

    def __init__(self, table: str) -> None:
        super().__init__(f'Table "{table}" not found')
        self.table = table


class UnknownColumnsError(RowShapeError):
    kind = ErrorKind.UNKNOWN_COLUMNS

    def __init__(self, names: Iterable[str]) -> None:
        self.names: tuple[str, ...] = tuple(names)
        super().__init__(f"Unknown columns: {', '.join(self.names)}", self.names)


class PathCollisionError(RowShapeError):
    """Raised when folding a row would overwrite a value with an object (or vice versa)."""

    kind = ErrorKind.PATH_COLLISION


class RequestInvalidError(RowShapeError):
    kind = ErrorKind.REQUEST_INVALID


@dataclass(frozen=True, slots=True)
class OperationError:
    """Caller-facing description of a failed operation."""

    kind: ErrorKind
    message: str
    details: tuple[str, ...] = ()

    @classmethod
    def from_exception(cls, exc: RowShapeError) -> OperationError:
        return cls(kind=exc.kind, message=exc.message, details=exc.details)


@dataclass(frozen=True, slots=True)
class OperationResult(Generic[T]):
    """Outcome of a service operation: either a value or an error, never both."""

    value: T | None = None
    error: OperationError | None = None

    @classmethod
    def success(cls, value: T) -> OperationResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: OperationError) -> OperationResult[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> ErrorKind | None:
        """Error kind of a failed result, ``None`` on success."""

        return self.error.kind if self.error else None

    def unwrap(self) -> T:
        """Return the value or raise the failure as a :class:`RowShapeError`."""

        if self.error is not None:
            exc = RowShapeError(self.error.message, self.error.details)
            exc.kind = self.error.kind
            raise exc
        return self.value  # type: ignore[return-value]


__all__ = [
    "CapacityExceededError",
    "ConnectionFailedError",
    "ErrorKind",
    "IdentifierTooLongError",
    "InvalidIdentifierError",
    "MalformedDescriptorError",
    "MappingInvalidError",
    "OperationError",
    "OperationResult",
    "PathCollisionError",
    "RequestInvalidError",
    "RowShapeError",
    "SecurityBlockedError",
    "SessionNotFoundError",
    "StatementTimeoutError",
    "UnknownColumnsError",
    "UnknownTableError",
]
