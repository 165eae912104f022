"""
Data models for parsed invoice information.

This module defines the immutable records produced by the parsing engine:
positioned text from the extractor, invoice metadata, purchased line items,
and the per-file and per-batch results of the orchestrator.
"""

from dataclasses import dataclass, field
from datetime import date as date_type
from decimal import Decimal
from typing import List, Optional, Dict, Any, Tuple

from .trace import TraceEntry


def _decimal_to_json(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


@dataclass(frozen=True)
class TextFragment:
    """
    A run of text placed on a PDF page.

    Attributes:
        text: The text content of the fragment
        x: Horizontal position of the fragment's left edge
        y: Vertical position of the fragment's baseline, measured bottom-up
        page_index: Zero-based page the fragment was found on
    """
    text: str
    x: float
    y: float
    page_index: int = 0


@dataclass(frozen=True)
class ExtractedText:
    """Output of a text extractor: the full text blob plus positioned fragments."""
    full_text: str
    fragments: Tuple[TextFragment, ...] = ()
    page_count: int = 0


@dataclass(frozen=True)
class ParsedInvoiceMetadata:
    """
    Header-level data recovered from an invoice.

    Every field is optional; a field that no heuristic could recover is None.

    Attributes:
        invoice_number: Supplier invoice number
        invoice_reference: Customer order / PO reference
        date: Invoice date as YYYY-MM-DD (or the raw text if it could not be split)
        site_name: Cleaned delivery site name from the "Deliver To" block
        supplier_name: Canonical supplier display name
        total_amount: Invoice total, within [10, 100000)
        vat_amount: VAT total, within (0, 50000)
        matched_rule_id: Id of the parsing rule that matched, if any
        matched_rule_category_id: Default category of the matched rule
        matched_rule_supplier_id: Supplier of the matched rule
        matched_rule_site_id: Default site of the matched rule
    """
    invoice_number: Optional[str] = None
    invoice_reference: Optional[str] = None
    date: Optional[str] = None
    site_name: Optional[str] = None
    supplier_name: Optional[str] = None
    total_amount: Optional[Decimal] = None
    vat_amount: Optional[Decimal] = None
    matched_rule_id: Optional[str] = None
    matched_rule_category_id: Optional[str] = None
    matched_rule_supplier_id: Optional[str] = None
    matched_rule_site_id: Optional[str] = None

    def is_empty(self) -> bool:
        """True when no header field at all could be recovered."""
        return all(value is None for value in (
            self.invoice_number, self.invoice_reference, self.date,
            self.site_name, self.supplier_name, self.total_amount,
            self.vat_amount,
        ))

    def to_dict(self) -> Dict[str, Any]:
        """Convert metadata to dictionary for serialization."""
        return {
            'invoice_number': self.invoice_number,
            'invoice_reference': self.invoice_reference,
            'date': self.date,
            'site_name': self.site_name,
            'supplier_name': self.supplier_name,
            'total_amount': _decimal_to_json(self.total_amount),
            'vat_amount': _decimal_to_json(self.vat_amount),
            'matched_rule_id': self.matched_rule_id,
            'matched_rule_category_id': self.matched_rule_category_id,
            'matched_rule_supplier_id': self.matched_rule_supplier_id,
            'matched_rule_site_id': self.matched_rule_site_id,
        }


@dataclass(frozen=True)
class ParsedLineItem:
    """
    A purchased item recognised on one invoice line.

    Attributes:
        product_code: Supplier product code (never empty)
        product_name: Normalised product name
        quantity: Quantity ordered (positive)
        unit: Unit of sale, e.g. CASE, SINGLE, BOX, or UNIT when unknown
        price_per_unit: Unit price
        total_price: Line total
        line_number: One-based line number in the clustered text
        line_format: Name of the heuristic that recognised the line
    """
    product_code: str
    product_name: str
    quantity: Decimal
    unit: str
    price_per_unit: Decimal
    total_price: Decimal
    line_number: Optional[int] = None
    line_format: Optional[str] = None

    def is_valid(self) -> bool:
        """Check the invariants every accepted line item must satisfy."""
        return (
            bool(self.product_code.strip()) and
            self.quantity > 0 and
            self.price_per_unit >= 0 and
            self.total_price >= 0
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert line item to dictionary for serialization."""
        return {
            'product_code': self.product_code,
            'product_name': self.product_name,
            'quantity': _decimal_to_json(self.quantity),
            'unit': self.unit,
            'price_per_unit': _decimal_to_json(self.price_per_unit),
            'total_price': _decimal_to_json(self.total_price),
            'line_number': self.line_number,
            'line_format': self.line_format,
        }


@dataclass(frozen=True)
class PrefillFormData:
    """Default values for the transaction form a reviewer confirms before saving."""
    transaction_date: str
    invoice_number: str = ""
    invoice_reference: str = ""
    amount: str = ""
    site_id: str = ""
    supplier_id: str = ""
    category_id: str = ""
    notes: str = ""

    @classmethod
    def from_metadata(cls, metadata: ParsedInvoiceMetadata,
                      today: Optional[date_type] = None) -> 'PrefillFormData':
        """Map parsed metadata onto form defaults, filling gaps with empty values."""
        today = today or date_type.today()
        return cls(
            transaction_date=metadata.date or today.isoformat(),
            invoice_number=metadata.invoice_number or "",
            invoice_reference=metadata.invoice_reference or "",
            amount=str(metadata.total_amount) if metadata.total_amount else "",
            site_id=metadata.matched_rule_site_id or "",
            supplier_id=metadata.matched_rule_supplier_id or "",
            category_id=metadata.matched_rule_category_id or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'transaction_date': self.transaction_date,
            'invoice_number': self.invoice_number,
            'invoice_reference': self.invoice_reference,
            'amount': self.amount,
            'site_id': self.site_id,
            'supplier_id': self.supplier_id,
            'category_id': self.category_id,
            'notes': self.notes,
        }


@dataclass(frozen=True)
class ProcessedInvoice:
    """Everything the engine recovered from one invoice file."""
    source_file: str
    metadata: ParsedInvoiceMetadata
    line_items: Tuple[ParsedLineItem, ...]
    prefill_form_data: PrefillFormData
    trace: Tuple[TraceEntry, ...] = ()

    def to_dict(self, include_trace: bool = False) -> Dict[str, Any]:
        """Convert the processed invoice to dictionary for serialization."""
        result = {
            'source_file': self.source_file,
            'metadata': self.metadata.to_dict(),
            'line_items': [item.to_dict() for item in self.line_items],
            'prefill_form_data': self.prefill_form_data.to_dict(),
        }
        if include_trace:
            result['trace'] = [entry.to_dict() for entry in self.trace]
        return result


# Outcome status values for batch processing
STATUS_OK = 'ok'
STATUS_PARTIAL = 'partial'
STATUS_FAILED = 'failed'


@dataclass(frozen=True)
class FileOutcome:
    """Result of processing a single file within a batch."""
    source_file: str
    invoice: Optional[ProcessedInvoice] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    processing_time: float = 0.0

    @property
    def success(self) -> bool:
        return self.invoice is not None

    @property
    def status(self) -> str:
        """
        'failed' when extraction failed, 'partial' when the file was read but
        yielded no metadata and no line items, 'ok' otherwise.
        """
        if self.invoice is None:
            return STATUS_FAILED
        if self.invoice.metadata.is_empty() and not self.invoice.line_items:
            return STATUS_PARTIAL
        return STATUS_OK

    def to_dict(self, include_trace: bool = False) -> Dict[str, Any]:
        return {
            'source_file': self.source_file,
            'status': self.status,
            'error_type': self.error_type,
            'error_message': self.error_message,
            'invoice': self.invoice.to_dict(include_trace) if self.invoice else None,
        }


@dataclass
class BatchResult:
    """Result of processing multiple invoice files."""
    outcomes: List[FileOutcome] = field(default_factory=list)
    total_processing_time: float = 0.0

    @property
    def total_files(self) -> int:
        return len(self.outcomes)

    @property
    def successful_files(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failed_files(self) -> int:
        return self.total_files - self.successful_files

    def get_failures(self) -> List[FileOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]

    def get_invoices(self) -> List[ProcessedInvoice]:
        return [outcome.invoice for outcome in self.outcomes if outcome.invoice is not None]

    def to_dict(self, include_trace: bool = False) -> Dict[str, Any]:
        return {
            'total_files': self.total_files,
            'successful_files': self.successful_files,
            'failed_files': self.failed_files,
            'total_processing_time': round(self.total_processing_time, 3),
            'files': [outcome.to_dict(include_trace) for outcome in self.outcomes],
        }
