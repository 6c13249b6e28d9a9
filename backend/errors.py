"""
Document engine exceptions.

Payload errors (missing or unusable input) and calculation errors are kept in
separate branches so callers can tell a bad record from a legally impossible
computation.
"""
from __future__ import annotations

from typing import Any


class DocumentError(Exception):
    """Base exception for all document engine errors."""
    code = "document_error"


class PayloadError(DocumentError):
    """Raised when business records or a payload cannot be used as given."""
    code = "payload_error"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class MissingFieldError(PayloadError):
    """A mandatory field is absent or blank. `field` is the dotted path."""
    code = "missing_field"

    def __init__(self, field: str, document_type: str | None = None):
        self.document_type = document_type
        where = f" for {document_type}" if document_type else ""
        super().__init__(f"Missing mandatory field '{field}'{where}", field=field)


class InvalidFieldError(PayloadError):
    """A value central to a legal formula is not numeric (or not a usable date or code)."""
    code = "invalid_field"

    def __init__(self, field: str, value: Any, expected: str = "numeric"):
        self.value = value
        super().__init__(f"Field '{field}' must be {expected}, got {value!r}", field=field)


class CalculationError(DocumentError):
    """Raised when inputs are outside a formula's domain (e.g. index <= 0)."""
    code = "calculation_error"


class UnknownDocumentTypeError(DocumentError):
    code = "unknown_document_type"

    def __init__(self, document_type: str):
        self.document_type = document_type
        super().__init__(f"Unknown document type: {document_type}")


class RenderError(DocumentError):
    """Raised when the PDF runtime is unavailable or fails."""
    code = "render_error"
