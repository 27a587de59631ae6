"""Typed errors raised by the task and artifact stores.

Every error carries a machine-readable ``code`` and a ``context`` mapping so
the tool layer can render a precise message without parsing strings.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

VALIDATION_ERROR = "VALIDATION_ERROR"
INVALID_INPUT = "INVALID_INPUT"

NOT_FOUND = "NOT_FOUND"
TASK_NOT_FOUND = "TASK_NOT_FOUND"
ARTIFACT_NOT_FOUND = "ARTIFACT_NOT_FOUND"
PARENT_NOT_FOUND = "PARENT_NOT_FOUND"

CIRCULAR_REFERENCE = "CIRCULAR_REFERENCE"
SELF_REFERENCE = "SELF_REFERENCE"

STORAGE_ERROR = "STORAGE_ERROR"
FILE_READ_ERROR = "FILE_READ_ERROR"
FILE_WRITE_ERROR = "FILE_WRITE_ERROR"
DIRECTORY_ERROR = "DIRECTORY_ERROR"
PARSE_ERROR = "PARSE_ERROR"
INITIALIZATION_ERROR = "INITIALIZATION_ERROR"
UNKNOWN_ERROR = "UNKNOWN_ERROR"


class CortexError(Exception):
    """Base class for every error raised by the storage engine."""

    def __init__(self, message: str, code: str, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.context: dict[str, Any] = dict(context or {})
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "timestamp": self.timestamp.isoformat(),
            "context": self.context,
        }


class ValidationError(CortexError, ValueError):
    """Malformed input caught before it reaches the store."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        code: str = VALIDATION_ERROR,
    ) -> None:
        super().__init__(message, code, {"field": field, "value": value})
        self.field = field
        self.value = value

    @classmethod
    def invalid_choice(cls, field: str, value: Any, choices: list[str]) -> "ValidationError":
        return cls(
            f"Invalid {field} {value!r}. Expected one of: {', '.join(choices)}.",
            field=field,
            value=value,
            code=INVALID_INPUT,
        )


class NotFoundError(CortexError):
    """A task, artifact or parent referenced by id does not exist."""

    def __init__(self, resource_type: str, resource_id: str, code: str = NOT_FOUND, **context: Any) -> None:
        super().__init__(
            f'{resource_type} with ID "{resource_id}" not found.',
            code,
            {"resource_type": resource_type, "resource_id": resource_id, **context},
        )
        self.resource_type = resource_type
        self.resource_id = resource_id

    @classmethod
    def task(cls, task_id: str) -> "NotFoundError":
        return cls("Task", task_id, TASK_NOT_FOUND)

    @classmethod
    def artifact(cls, task_id: str, phase: str) -> "NotFoundError":
        return cls(f"{phase} artifact", task_id, ARTIFACT_NOT_FOUND, phase=phase)

    @classmethod
    def parent(cls, parent_id: str) -> "NotFoundError":
        return cls("Parent task", parent_id, PARENT_NOT_FOUND)


class ConflictError(CortexError):
    """The requested change would break the hierarchy invariants."""

    @classmethod
    def circular_reference(cls, task_id: str, target_id: str) -> "ConflictError":
        return cls(
            "Moving task would create a circular reference.",
            CIRCULAR_REFERENCE,
            {"task_id": task_id, "target_id": target_id},
        )

    @classmethod
    def self_reference(cls, task_id: str, operation: str) -> "ConflictError":
        return cls(
            f"Task cannot {operation} itself.",
            SELF_REFERENCE,
            {"task_id": task_id, "operation": operation},
        )


class StorageError(CortexError):
    """Filesystem read, write, parse or directory failure."""

    def __init__(
        self,
        message: str,
        code: str = STORAGE_ERROR,
        path: Optional[str] = None,
        operation: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(message, code, {"path": path, "operation": operation, **context})
        self.path = path
        self.operation = operation

    @classmethod
    def read_error(cls, path: Any, original: Optional[BaseException] = None) -> "StorageError":
        return cls(
            f"Failed to read file: {path}",
            FILE_READ_ERROR,
            str(path),
            "read",
            original_error=_describe(original),
        )

    @classmethod
    def write_error(cls, path: Any, original: Optional[BaseException] = None) -> "StorageError":
        return cls(
            f"Failed to write file: {path}",
            FILE_WRITE_ERROR,
            str(path),
            "write",
            original_error=_describe(original),
        )

    @classmethod
    def directory_error(cls, path: Any, original: Optional[BaseException] = None) -> "StorageError":
        return cls(
            f"Directory operation failed: {path}",
            DIRECTORY_ERROR,
            str(path),
            "directory",
            original_error=_describe(original),
        )

    @classmethod
    def parse_error(cls, path: Any, fmt: str, original: Optional[BaseException] = None) -> "StorageError":
        return cls(
            f"Failed to parse {fmt} file: {path}",
            PARSE_ERROR,
            str(path),
            "parse",
            format=fmt,
            original_error=_describe(original),
        )

    @classmethod
    def initialization_error(cls, path: Any, message: str) -> "StorageError":
        return cls(message, INITIALIZATION_ERROR, str(path), "initialize")


def _describe(exc: Optional[BaseException]) -> Optional[str]:
    if exc is None:
        return None
    return f"{exc.__class__.__name__}: {exc}"


def is_cortex_error(exc: BaseException) -> bool:
    return isinstance(exc, CortexError)


def error_message(exc: BaseException) -> str:
    """Best-effort human message for any exception."""
    if isinstance(exc, CortexError):
        return exc.message
    return str(exc) or exc.__class__.__name__


def wrap_error(exc: BaseException) -> CortexError:
    """Return *exc* unchanged if it is already typed, else wrap it."""
    if isinstance(exc, CortexError):
        return exc
    return StorageError(error_message(exc), UNKNOWN_ERROR, original_error=_describe(exc))
