"""Domain exception types and error aggregation for sync runs.

Every failure raised by a collaborator (Drive, OpenAI, vector store, state
store) is wrapped in a ``SyncError`` subclass carrying a stable ``code`` and a
``context`` dict, so a run's error summary and the log lines look the same no
matter where the failure originated.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class SyncError(Exception):
    """Base class for domain errors."""

    code = "SYNC_ERROR"

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


class SourceError(SyncError):
    """Document source (Google Drive) failure."""

    code = "SOURCE_ERROR"


class EmbeddingError(SyncError):
    """Embedding provider failure, including dimension mismatches."""

    code = "EMBEDDING_ERROR"


class VectorStoreError(SyncError):
    """Vector store failure."""

    code = "VECTOR_STORE_ERROR"


class StateError(SyncError):
    """Persisted state read/write failure."""

    code = "STATE_ERROR"


class UnknownError(SyncError):
    """A raised or collected value that was not an ``Exception``."""

    code = "UNKNOWN_ERROR"


def normalize_error(value: Any) -> Exception:
    """Convert an arbitrary raised or collected value into an ``Exception``.

    Exceptions pass through untouched; anything else becomes an
    ``UnknownError`` whose context records the original value's type.
    """
    if isinstance(value, Exception):
        return value
    context = {"original_type": type(value).__name__}
    if isinstance(value, BaseException):
        return UnknownError(f"{type(value).__name__}: {value}", context)
    if isinstance(value, str):
        return UnknownError(value, context)
    if isinstance(value, dict):
        message = value.get("message")
        if isinstance(message, str) and message:
            return UnknownError(message, context)
        return UnknownError(f"Unknown error: {value!r}", context)
    if value is None:
        return UnknownError("Unknown error", context)
    return UnknownError(f"Unknown error: {value!r}", context)


def error_message(error: BaseException) -> str:
    message = str(error)
    return message or type(error).__name__


class ErrorCollector:
    """Collects per-document failures during a sync run."""

    def __init__(self) -> None:
        self._errors: List[Dict[str, Any]] = []

    def add_error(self, error: Any, context: Optional[Dict[str, Any]] = None) -> None:
        error = normalize_error(error)
        entry: Dict[str, Any] = {
            "type": type(error).__name__,
            "message": error_message(error),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if isinstance(error, SyncError):
            entry["code"] = error.code
        if context:
            entry["context"] = dict(context)
        self._errors.append(entry)

    def summary(self) -> Dict[str, Any]:
        return {"total_errors": len(self._errors), "errors": list(self._errors)}

    @property
    def total(self) -> int:
        return len(self._errors)

    def messages(self) -> List[str]:
        return [entry["message"] for entry in self._errors]

    def has_errors(self) -> bool:
        return bool(self._errors)

    def clear(self) -> None:
        self._errors = []
