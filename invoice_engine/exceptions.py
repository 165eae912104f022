"""
Custom exceptions for invoice parsing operations.

Only extraction failures are raised by the engine. A field that cannot be
found, or a candidate value that fails a plausibility check, is reported as
``None`` (or an omitted line item) together with a trace entry instead.
"""

from typing import Optional, Dict, Any


class InvoiceProcessingError(Exception):
    """Base exception for all invoice processing errors."""

    def __init__(self, message: str, pdf_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.pdf_path = pdf_path
        self.details = details or {}

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.pdf_path:
            base_msg = f"{base_msg} (PDF: {self.pdf_path})"
        return base_msg


class TextExtractionError(InvoiceProcessingError):
    """Raised when text cannot be extracted from an invoice file."""

    def __init__(self, message: str, pdf_path: Optional[str] = None,
                 page_number: Optional[int] = None,
                 extraction_method: Optional[str] = None,
                 original_error: Optional[Exception] = None):
        super().__init__(message, pdf_path)
        self.page_number = page_number
        self.extraction_method = extraction_method
        self.original_error = original_error

        if page_number is not None:
            self.details['page_number'] = page_number
        if extraction_method:
            self.details['extraction_method'] = extraction_method
        if original_error:
            self.details['original_error'] = str(original_error)
            self.details['error_type'] = type(original_error).__name__


class PDFReadabilityError(TextExtractionError):
    """Raised when the input bytes are not a readable PDF document."""


class ExtractionCancelledError(TextExtractionError):
    """Raised when extraction is cancelled or runs past its deadline."""

    def __init__(self, message: str, pdf_path: Optional[str] = None,
                 page_number: Optional[int] = None,
                 deadline_exceeded: bool = False):
        super().__init__(message, pdf_path, page_number=page_number)
        self.deadline_exceeded = deadline_exceeded
        self.details['deadline_exceeded'] = deadline_exceeded
