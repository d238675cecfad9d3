"""Error handling module."""
from price_import.errors.exceptions import (
    ErrorKind,
    PriceImportError,
    UnsupportedFormatError,
    MalformedSourceError,
    MissingMappingError,
    StaleCacheError,
    NoCandidatesError,
    ApplyConflictError,
    PartialWriteFailureError,
    ParserNotImplementedError,
    MissingSourceError,
    TemplateNotFoundError,
    OperationTimeoutError,
    ValidationError,
    PersistenceError,
)

__all__ = [
    "ErrorKind",
    "PriceImportError",
    "UnsupportedFormatError",
    "MalformedSourceError",
    "MissingMappingError",
    "StaleCacheError",
    "NoCandidatesError",
    "ApplyConflictError",
    "PartialWriteFailureError",
    "ParserNotImplementedError",
    "MissingSourceError",
    "TemplateNotFoundError",
    "OperationTimeoutError",
    "ValidationError",
    "PersistenceError",
]
