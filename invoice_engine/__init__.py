"""
Invoice parsing engine.

This package turns supplier invoice PDFs into structured data: header
metadata, purchased line items, and default values for a transaction form,
together with a trace of which heuristics fired.
"""

from .cancellation import CancellationToken
from .exceptions import (
    InvoiceProcessingError,
    TextExtractionError,
    PDFReadabilityError,
    ExtractionCancelledError,
)
from .invoice_processor import (
    InvoiceProcessor,
    find_pdf_files,
)
from .line_item_extractor import LineItemExtractor, cluster_fragments
from .metadata_extractor import MetadataExtractor, normalize_date
from .models import (
    TextFragment,
    ExtractedText,
    ParsedInvoiceMetadata,
    ParsedLineItem,
    PrefillFormData,
    ProcessedInvoice,
    FileOutcome,
    BatchResult,
)
from .rule_matcher import match_rule, suggest_text_pattern
from .text_extractor import TextExtractor, PdfPlumberTextExtractor
from .trace import ParseTrace, TraceEntry

__all__ = [
    'CancellationToken',
    'InvoiceProcessingError',
    'TextExtractionError',
    'PDFReadabilityError',
    'ExtractionCancelledError',
    'InvoiceProcessor',
    'find_pdf_files',
    'LineItemExtractor',
    'cluster_fragments',
    'MetadataExtractor',
    'normalize_date',
    'TextFragment',
    'ExtractedText',
    'ParsedInvoiceMetadata',
    'ParsedLineItem',
    'PrefillFormData',
    'ProcessedInvoice',
    'FileOutcome',
    'BatchResult',
    'match_rule',
    'suggest_text_pattern',
    'TextExtractor',
    'PdfPlumberTextExtractor',
    'ParseTrace',
    'TraceEntry',
]
