"""Custom exception hierarchy for price list import errors.

Every error carries a machine-readable ``kind`` so callers can turn it into a
structured response without inspecting message text.
"""
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Machine-readable error kinds exposed to callers."""
    UNSUPPORTED_FORMAT = "unsupported_format"
    MALFORMED_SOURCE = "malformed_source"
    MISSING_MAPPING = "missing_mapping"
    STALE_CACHE = "stale_cache"
    NO_CANDIDATES = "no_candidates"
    APPLY_CONFLICT = "apply_conflict"
    PARTIAL_WRITE_FAILURE = "partial_write_failure"
    NOT_IMPLEMENTED = "not_implemented"
    MISSING_SOURCE = "missing_source"
    TEMPLATE_NOT_FOUND = "template_not_found"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    PERSISTENCE = "persistence"


class PriceImportError(Exception):
    """Base exception for all price import errors."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        """Initialize error with message and optional structured details."""
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a structured error payload."""
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class UnsupportedFormatError(PriceImportError):
    """Raised when no registered parser supports the file."""
    kind = ErrorKind.UNSUPPORTED_FORMAT


class MalformedSourceError(PriceImportError):
    """Raised when a file claims a supported format but cannot be read."""
    kind = ErrorKind.MALFORMED_SOURCE


class MissingMappingError(PriceImportError):
    """Raised when a template has no column mapping configured."""
    kind = ErrorKind.MISSING_MAPPING


class StaleCacheError(PriceImportError):
    """Internal signal: the normalized cache no longer matches the source file.

    Never surfaced to callers, the template store catches it and re-parses.
    """
    kind = ErrorKind.STALE_CACHE


class NoCandidatesError(PriceImportError):
    """Raised when the template's catalog filters yield zero items."""
    kind = ErrorKind.NO_CANDIDATES


class ApplyConflictError(PriceImportError):
    """Raised when an apply is already running for the template."""
    kind = ErrorKind.APPLY_CONFLICT


class PartialWriteFailureError(PriceImportError):
    """Raised when one or more catalog writes failed mid-batch.

    ``stats`` reports exactly which rows were written and which failed.
    """
    kind = ErrorKind.PARTIAL_WRITE_FAILURE

    def __init__(self, message: str, stats: Any, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.stats = stats

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["stats"] = self.stats.model_dump(mode="json")
        return payload


class ParserNotImplementedError(PriceImportError):
    """Raised by parser extension points that are declared but not built."""
    kind = ErrorKind.NOT_IMPLEMENTED


class MissingSourceError(PriceImportError):
    """Raised when the source file is missing from storage or not selected."""
    kind = ErrorKind.MISSING_SOURCE


class TemplateNotFoundError(PriceImportError):
    """Raised when an import template does not exist."""
    kind = ErrorKind.TEMPLATE_NOT_FOUND


class OperationTimeoutError(PriceImportError):
    """Raised when a file read, parse or catalog query exceeds its timeout."""
    kind = ErrorKind.TIMEOUT


class ValidationError(PriceImportError):
    """Raised when caller input fails validation."""
    kind = ErrorKind.VALIDATION


class PersistenceError(PriceImportError):
    """Raised when the template store database operation fails."""
    kind = ErrorKind.PERSISTENCE
