"""Error taxonomy for the CV ingestion pipeline.

Every failure the orchestrator can report is an ``IngestionError`` carrying
an ``ErrorKind``. The orchestrator hands the error back as a value on the
``IngestionResult`` instead of letting it escape to the caller.
"""

from __future__ import annotations

import enum
from typing import Any


class ErrorKind(str, enum.Enum):
    MALFORMED_REFERENCE = "malformed_reference"
    UNREACHABLE = "unreachable"
    UNSUPPORTED_FORMAT = "unsupported_format"
    UNREADABLE_DOCUMENT = "unreadable_document"
    EXTRACTION_REJECTED = "extraction_rejected"
    EXTRACTION_EXHAUSTED = "extraction_exhausted"
    VALIDATION = "validation"
    PERSISTENCE = "persistence"


USER_MESSAGES = {
    ErrorKind.MALFORMED_REFERENCE: "The stored CV link is not a valid file location.",
    ErrorKind.UNREACHABLE: "The CV file could not be accessed. Try uploading it again.",
    ErrorKind.UNSUPPORTED_FORMAT: "Unsupported file type. Please upload a PDF or Word document.",
    ErrorKind.UNREADABLE_DOCUMENT: (
        "No readable text found in the document. "
        "The file is likely scanned or image-based."
    ),
    ErrorKind.EXTRACTION_REJECTED: "The CV parsing service rejected the request.",
    ErrorKind.EXTRACTION_EXHAUSTED: "The CV parsing service is unavailable. Please try again later.",
    ErrorKind.VALIDATION: "Some CV sections could not be read.",
    ErrorKind.PERSISTENCE: "The parsed CV could not be saved.",
}


class CVParseError(Exception):
    """Base exception for all cvparse errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigError(CVParseError):
    """Configuration could not be loaded or is invalid."""


class StorageError(CVParseError):
    """A blob store operation failed."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code


# === Ingestion errors ===


class IngestionError(CVParseError):
    """A terminal failure of one ingestion stage."""

    kind: ErrorKind = ErrorKind.UNREACHABLE

    @property
    def user_message(self) -> str:
        return USER_MESSAGES[self.kind]


class FileAccessError(IngestionError):
    """The stored document could not be read."""

    def __init__(
        self,
        message: str,
        reason: ErrorKind = ErrorKind.UNREACHABLE,
        details: dict[str, Any] | None = None,
    ) -> None:
        if reason not in (ErrorKind.MALFORMED_REFERENCE, ErrorKind.UNREACHABLE):
            raise ValueError(f"Not a file access reason: {reason}")
        super().__init__(message, details)
        self.reason = reason
        self.kind = reason


class UnsupportedFormatError(IngestionError):
    kind = ErrorKind.UNSUPPORTED_FORMAT

    def __init__(self, file_name: str) -> None:
        super().__init__(f"Unsupported file format: {file_name!r}", {"file_name": file_name})
        self.file_name = file_name


class UnreadableDocumentError(IngestionError):
    kind = ErrorKind.UNREADABLE_DOCUMENT


class ExtractionServiceError(IngestionError):
    """The extraction endpoint failed, either outright or after all retries."""

    def __init__(
        self,
        message: str,
        fatal: bool,
        attempts: int,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.fatal = fatal
        self.attempts = attempts
        self.status_code = status_code
        self.kind = ErrorKind.EXTRACTION_REJECTED if fatal else ErrorKind.EXTRACTION_EXHAUSTED


class PersistenceError(IngestionError):
    kind = ErrorKind.PERSISTENCE
