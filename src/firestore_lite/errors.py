from __future__ import annotations

from enum import IntEnum


class GrpcStatus(IntEnum):
    OK = 0
    CANCELLED = 1
    UNKNOWN = 2
    INVALID_ARGUMENT = 3
    DEADLINE_EXCEEDED = 4
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    PERMISSION_DENIED = 7
    RESOURCE_EXHAUSTED = 8
    FAILED_PRECONDITION = 9
    ABORTED = 10
    OUT_OF_RANGE = 11
    UNIMPLEMENTED = 12
    INTERNAL = 13
    UNAVAILABLE = 14
    DATA_LOSS = 15
    UNAUTHENTICATED = 16


class FirestoreError(Exception):
    """Base error for document store operations."""

    default_code = GrpcStatus.UNKNOWN

    def __init__(self, message: str, *, code: GrpcStatus | None = None) -> None:
        self.code = code if code is not None else self.default_code
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.code.name}: {self.message}"


class InvalidArgumentError(FirestoreError):
    default_code = GrpcStatus.INVALID_ARGUMENT


class InvalidPathError(InvalidArgumentError):
    """Raised when a collection or document path is malformed."""


class NotFoundError(FirestoreError):
    default_code = GrpcStatus.NOT_FOUND


class AlreadyExistsError(FirestoreError):
    default_code = GrpcStatus.ALREADY_EXISTS


class BackendUnavailableError(FirestoreError):
    """Raised when the backend cannot be reached. Never retried here."""

    default_code = GrpcStatus.UNAVAILABLE


class ConverterError(FirestoreError):
    """Raised when a data converter produces an unusable value."""

    default_code = GrpcStatus.INVALID_ARGUMENT


_STATUS_ERRORS: dict[GrpcStatus, type[FirestoreError]] = {
    GrpcStatus.INVALID_ARGUMENT: InvalidArgumentError,
    GrpcStatus.NOT_FOUND: NotFoundError,
    GrpcStatus.ALREADY_EXISTS: AlreadyExistsError,
    GrpcStatus.UNAVAILABLE: BackendUnavailableError,
    GrpcStatus.DEADLINE_EXCEEDED: BackendUnavailableError,
}


def error_for_status(code: GrpcStatus | int | str, message: str) -> FirestoreError:
    if isinstance(code, str):
        status = GrpcStatus.__members__.get(code.strip().upper(), GrpcStatus.UNKNOWN)
    else:
        try:
            status = GrpcStatus(int(code))
        except ValueError:
            status = GrpcStatus.UNKNOWN
    error_cls = _STATUS_ERRORS.get(status, FirestoreError)
    return error_cls(message, code=status)
