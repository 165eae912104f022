"""
Invoice Processor - orchestrates the parsing pipeline for invoice files.

For each file the processor extracts text, matches a parsing rule, recovers
the header metadata and line items, and maps the metadata onto transaction
form defaults. Files are independent: in a batch, one file failing (or
running past its deadline) is recorded against that file only.

Usage Examples:

    from invoice_engine import InvoiceProcessor
    from rules import JsonRuleStore

    processor = InvoiceProcessor()
    invoice = processor.process_invoice("invoice.pdf", JsonRuleStore("rules.json"))
    print(invoice.metadata.invoice_number, len(invoice.line_items))

    # Several files at once, each with a 30 second extraction deadline
    batch = processor.process_batch(["a.pdf", "b.pdf"], rules, max_workers=4,
                                    timeout_per_file=30)
    for outcome in batch.outcomes:
        print(outcome.source_file, outcome.status)
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import date as date_type
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from rules.models import ParsingRule
from rules.rule_store import RuleStore

from .cancellation import CancellationToken
from .exceptions import TextExtractionError, PDFReadabilityError
from .line_item_extractor import LineItemExtractor
from .metadata_extractor import MetadataExtractor
from .models import (
    BatchResult,
    ExtractedText,
    FileOutcome,
    PrefillFormData,
    ProcessedInvoice,
)
from .text_extractor import PdfPlumberTextExtractor, TextExtractor
from .trace import ParseTrace


InvoiceSource = Union[str, Path, bytes, Tuple[str, bytes]]
RuleSource = Union[RuleStore, Iterable[ParsingRule]]

DEFAULT_MAX_WORKERS = 4


class InvoiceProcessor:
    """
    Main orchestrator for invoice parsing.

    The processor holds no per-invoice state, so a single instance can be
    shared by all worker threads of a batch.
    """

    def __init__(self,
                 text_extractor: Optional[TextExtractor] = None,
                 metadata_extractor: Optional[MetadataExtractor] = None,
                 line_item_extractor: Optional[LineItemExtractor] = None,
                 logger: Optional[logging.Logger] = None,
                 today: Optional[date_type] = None):
        """
        Initialize the invoice processor.

        Args:
            text_extractor: PDF text extractor. Defaults to PdfPlumberTextExtractor.
            metadata_extractor: Header field extractor
            line_item_extractor: Line item extractor
            logger: Optional logger instance
            today: Date used for the form's transaction date when the invoice
                has none. Defaults to the current date at processing time.
        """
        self.logger = logger or self._create_default_logger()
        self.text_extractor = text_extractor or PdfPlumberTextExtractor()
        self.metadata_extractor = metadata_extractor or MetadataExtractor(self.logger)
        self.line_item_extractor = line_item_extractor or LineItemExtractor(self.logger)
        self.today = today

    def _create_default_logger(self) -> logging.Logger:
        """Create a default logger for invoice processing."""
        logger = logging.getLogger('invoice_engine.processor')
        if not logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            logger.addHandler(handler)
            logger.setLevel(logging.INFO)
        return logger

    def process_invoice(self,
                        source: InvoiceSource,
                        rules: RuleSource = (),
                        cancel_token: Optional[CancellationToken] = None,
                        source_name: Optional[str] = None) -> ProcessedInvoice:
        """
        Process a single invoice.

        Args:
            source: Path to a PDF, raw PDF bytes, or a (name, bytes) pair
            rules: Parsing rules as a list or a RuleStore
            cancel_token: Optional cancellation token for text extraction
            source_name: Name reported for the file; defaults to the path

        Returns:
            ProcessedInvoice with metadata, line items, form defaults and trace

        Raises:
            TextExtractionError: If the file cannot be read or decoded, or
                extraction is cancelled
        """
        name, data = _load_source(source, source_name)
        self.logger.info(f"Processing invoice: {name}")

        extracted = self.text_extractor.extract_text(data, cancel_token, name)
        invoice = self.parse_extracted(extracted, _resolve_rules(rules), name)

        self.logger.info(f"Processed invoice {name}: "
                         f"invoice number {invoice.metadata.invoice_number}, "
                         f"{len(invoice.line_items)} line items")
        return invoice

    def parse_extracted(self, extracted: ExtractedText,
                        rules: Sequence[ParsingRule] = (),
                        source_name: str = '<memory>') -> ProcessedInvoice:
        """
        Run the parsing stages on text that has already been extracted.

        Never raises for content it cannot understand: missing fields are None
        and unrecognised lines are omitted.
        """
        trace = ParseTrace()
        if not extracted.full_text.strip():
            self.logger.warning(f"No text found in {source_name}")

        metadata = self.metadata_extractor.extract(extracted.full_text, rules, trace)

        if extracted.fragments:
            line_items = self.line_item_extractor.extract(extracted.fragments, trace)
        else:
            line_items = self.line_item_extractor.extract_from_text(extracted.full_text, trace)

        prefill = PrefillFormData.from_metadata(metadata, self.today)

        return ProcessedInvoice(
            source_file=source_name,
            metadata=metadata,
            line_items=tuple(line_items),
            prefill_form_data=prefill,
            trace=trace.entries,
        )

    def process_batch(self,
                      sources: Sequence[InvoiceSource],
                      rules: RuleSource = (),
                      max_workers: int = DEFAULT_MAX_WORKERS,
                      timeout_per_file: Optional[float] = None,
                      progress_callback: Optional[Callable[[int, int, str], None]] = None,
                      cancel_tokens: Optional[Sequence[CancellationToken]] = None) -> BatchResult:
        """
        Process several invoices concurrently.

        Rules are loaded once for the whole batch. Every file gets its own
        cancellation token whose deadline starts when the file starts
        processing. When the caller supplies tokens, each file's token is
        derived from the caller's token for that file, so cancelling it
        abandons that file only (or every file sharing it).

        Args:
            sources: Invoice sources, as accepted by process_invoice
            rules: Parsing rules as a list or a RuleStore
            max_workers: Maximum number of worker threads
            timeout_per_file: Extraction deadline for each file, in seconds
            progress_callback: Called with (completed, total, source name)
            cancel_tokens: Optional caller tokens, one per source

        Returns:
            BatchResult with one outcome per source, in input order

        Raises:
            RuleStoreError: If the rule store cannot be read
            ValueError: If cancel_tokens does not have one token per source
        """
        start_time = time.time()
        total = len(sources)
        if cancel_tokens is not None and len(cancel_tokens) != total:
            raise ValueError(f"Expected {total} cancellation tokens, got {len(cancel_tokens)}")
        active_rules = _resolve_rules(rules)

        self.logger.info(f"Starting batch of {total} invoices with {max_workers} workers")

        outcomes: List[Optional[FileOutcome]] = [None] * total
        if total:
            with ThreadPoolExecutor(max_workers=max(1, max_workers)) as executor:
                futures = [
                    executor.submit(self._process_one, source, active_rules, timeout_per_file,
                                    cancel_tokens[index] if cancel_tokens is not None else None)
                    for index, source in enumerate(sources)
                ]
                for index, future in enumerate(futures):
                    outcome = future.result()
                    outcomes[index] = outcome
                    if progress_callback:
                        progress_callback(index + 1, total, outcome.source_file)

        result = BatchResult(outcomes=list(outcomes),
                             total_processing_time=time.time() - start_time)
        self.logger.info(f"Batch complete: {result.successful_files}/{result.total_files} "
                         f"files processed successfully")
        return result

    def _process_one(self, source: InvoiceSource, rules: Sequence[ParsingRule],
                     timeout: Optional[float],
                     caller_token: Optional[CancellationToken] = None) -> FileOutcome:
        start_time = time.time()
        name = _source_name(source)
        cancel_token = CancellationToken(timeout, parent=caller_token)

        try:
            invoice = self.process_invoice(source, rules, cancel_token)
            return FileOutcome(
                source_file=invoice.source_file,
                invoice=invoice,
                processing_time=time.time() - start_time,
            )
        except TextExtractionError as e:
            self.logger.warning(f"Failed to extract text from {name}: {e}")
            error = e
        except Exception as e:
            self.logger.error(f"Unexpected error processing {name}: {e}", exc_info=True)
            error = e

        return FileOutcome(
            source_file=name,
            error_type=type(error).__name__,
            error_message=str(error),
            processing_time=time.time() - start_time,
        )


def _source_name(source: InvoiceSource, source_name: Optional[str] = None) -> str:
    if source_name:
        return source_name
    if isinstance(source, tuple):
        return source[0]
    if isinstance(source, (bytes, bytearray)):
        return '<memory>'
    return str(source)


def _load_source(source: InvoiceSource, source_name: Optional[str] = None) -> Tuple[str, bytes]:
    """Return (name, pdf bytes) for any supported source."""
    name = _source_name(source, source_name)
    if isinstance(source, tuple):
        return name, source[1]
    if isinstance(source, (bytes, bytearray)):
        return name, bytes(source)

    path = Path(source)
    if not path.is_file():
        raise PDFReadabilityError("Invoice file not found", pdf_path=name)
    try:
        return name, path.read_bytes()
    except OSError as e:
        raise TextExtractionError(f"Cannot read invoice file: {e}", pdf_path=name,
                                  original_error=e) from e


def _resolve_rules(rules: RuleSource) -> List[ParsingRule]:
    if isinstance(rules, RuleStore):
        return rules.list_active_rules()
    return list(rules or ())


def find_pdf_files(paths: Iterable[Union[str, Path]], recursive: bool = True) -> List[Path]:
    """
    Expand files and directories into a list of PDF files.

    Directories are searched for *.pdf / *.PDF files; explicitly named files
    are kept whatever their extension. Duplicates are removed and the order of
    the given paths is preserved, with each directory's files sorted.
    """
    found: List[Path] = []
    seen = set()

    for entry in paths:
        entry = Path(entry)
        if entry.is_dir():
            glob = entry.rglob if recursive else entry.glob
            candidates = sorted(set(glob("*.pdf")) | set(glob("*.PDF")))
        else:
            candidates = [entry]

        for candidate in candidates:
            if candidate not in seen:
                seen.add(candidate)
                found.append(candidate)

    return found
