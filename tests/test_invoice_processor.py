"""
Tests for the invoice processing orchestrator: single files, batches,
cancellation and the pdfplumber adapter.
"""

import logging
from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from invoice_engine.cancellation import CancellationToken
from invoice_engine.exceptions import (
    ExtractionCancelledError,
    PDFReadabilityError,
    TextExtractionError,
)
from invoice_engine.invoice_processor import InvoiceProcessor, find_pdf_files
from invoice_engine.models import (
    ExtractedText,
    TextFragment,
    STATUS_FAILED,
    STATUS_OK,
    STATUS_PARTIAL,
)
from invoice_engine.text_extractor import PdfPlumberTextExtractor
from rules import InMemoryRuleStore, ParsingRule


class TestInvoiceProcessor:
    """Test cases for processing a single invoice."""

    @pytest.fixture(autouse=True)
    def _processor(self, fake_extractor):
        self.extractor = fake_extractor
        self.processor = InvoiceProcessor(
            text_extractor=fake_extractor,
            logger=logging.getLogger('test_invoice_processor'),
            today=date(2025, 3, 1),
        )
        self.rules = [
            ParsingRule(id="eden", text_pattern="Eden Farm", supplier_id="sup-eden",
                        default_category_id="cat-produce", default_site_id="site-allerton",
                        priority=1),
        ]

    def test_process_invoice_from_bytes(self):
        invoice = self.processor.process_invoice(b"eden", self.rules, source_name="eden.pdf")

        assert invoice.source_file == "eden.pdf"
        assert invoice.metadata.invoice_number == "123456"
        assert invoice.metadata.matched_rule_id == "eden"
        assert [item.product_code for item in invoice.line_items] == ["ABC1234", "A12345"]

    def test_prefill_form_data(self):
        invoice = self.processor.process_invoice(b"eden", self.rules)
        prefill = invoice.prefill_form_data

        assert prefill.transaction_date == "2025-08-04"
        assert prefill.invoice_number == "123456"
        assert prefill.invoice_reference == "PO 7781"
        assert prefill.amount == "245.60"
        assert prefill.supplier_id == "sup-eden"
        assert prefill.category_id == "cat-produce"
        assert prefill.site_id == "site-allerton"

    def test_prefill_defaults_when_nothing_found(self):
        invoice = self.processor.process_invoice(b"blank")

        assert invoice.metadata.is_empty()
        assert invoice.line_items == ()
        assert invoice.prefill_form_data.transaction_date == "2025-03-01"
        assert invoice.prefill_form_data.amount == ""

    def test_rules_from_store(self):
        store = InMemoryRuleStore(self.rules)
        invoice = self.processor.process_invoice(b"eden", store)
        assert invoice.metadata.matched_rule_id == "eden"

    def test_process_invoice_from_path(self, tmp_path):
        pdf_path = tmp_path / "bunzl.pdf"
        pdf_path.write_bytes(b"bunzl")

        invoice = self.processor.process_invoice(pdf_path)

        assert invoice.source_file == str(pdf_path)
        assert invoice.metadata.total_amount == Decimal("72.42")

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(PDFReadabilityError):
            self.processor.process_invoice(tmp_path / "missing.pdf")

    def test_extraction_failure_propagates(self):
        with pytest.raises(TextExtractionError):
            self.processor.process_invoice(b"corrupt")

    def test_processing_is_idempotent(self):
        first = self.processor.process_invoice(b"bunzl", self.rules)
        second = self.processor.process_invoice(b"bunzl", self.rules)
        assert first == second

    def test_trace_is_returned(self):
        invoice = self.processor.process_invoice(b"bunzl")
        fields = {entry.field for entry in invoice.trace}

        assert {'invoice_number', 'date', 'total_amount', 'line_item'} <= fields
        assert 'trace' in invoice.to_dict(include_trace=True)
        assert 'trace' not in invoice.to_dict()

    def test_fragments_preferred_over_full_text(self):
        line = "12345 Green Tea Bags 4 BOX 3.20 12.80 15.00 1"
        fragments = tuple(TextFragment(token, i * 20.0, 300.0) for i, token in enumerate(line.split()))
        self.extractor.documents[b"fragments"] = ExtractedText(
            full_text="Invoice No. 777777", fragments=fragments, page_count=1)

        invoice = self.processor.process_invoice(b"fragments")

        assert invoice.metadata.invoice_number == "777777"
        assert [item.product_code for item in invoice.line_items] == ["12345"]

    def test_cancelled_token_stops_extraction(self):
        token = CancellationToken()
        token.cancel()

        with pytest.raises(ExtractionCancelledError) as exc_info:
            self.processor.process_invoice(b"eden", cancel_token=token)
        assert exc_info.value.deadline_exceeded is False


class TestBatchProcessing:
    """Test cases for batch processing."""

    @pytest.fixture(autouse=True)
    def _processor(self, fake_extractor):
        self.extractor = fake_extractor
        self.processor = InvoiceProcessor(
            text_extractor=fake_extractor,
            logger=logging.getLogger('test_batch_processing'),
        )

    def test_batch_isolation(self):
        sources = [("first.pdf", b"eden"), ("second.pdf", b"corrupt"), ("third.pdf", b"bunzl")]

        result = self.processor.process_batch(sources, max_workers=3)

        assert result.total_files == 3
        assert result.successful_files == 2
        assert result.failed_files == 1
        assert [outcome.source_file for outcome in result.outcomes] == \
            ["first.pdf", "second.pdf", "third.pdf"]

        first, second, third = result.outcomes
        assert first.invoice.metadata.invoice_number == "123456"
        assert third.invoice.metadata.invoice_number == "B7654321"
        assert second.invoice is None
        assert second.error_type == "PDFReadabilityError"
        assert second.status == STATUS_FAILED

    def test_statuses(self):
        sources = [("eden.pdf", b"eden"), ("blank.pdf", b"blank"), ("bad.pdf", b"bad")]
        result = self.processor.process_batch(sources)

        assert [outcome.status for outcome in result.outcomes] == \
            [STATUS_OK, STATUS_PARTIAL, STATUS_FAILED]
        assert len(result.get_invoices()) == 2
        assert [outcome.source_file for outcome in result.get_failures()] == ["bad.pdf"]

    def test_batch_matches_single_file_results(self):
        rules = [ParsingRule(id="bunzl", text_pattern="Bunzl", priority=2)]
        single = self.processor.process_invoice(("bunzl.pdf", b"bunzl"), rules)
        batch = self.processor.process_batch([("bunzl.pdf", b"bunzl")] * 3, rules, max_workers=2)

        assert all(invoice == single for invoice in batch.get_invoices())

    def test_timeout_is_per_file(self):
        self.extractor.delay = 0.05
        result = self.processor.process_batch(
            [("slow.pdf", b"eden"), ("slow2.pdf", b"bunzl")], timeout_per_file=0.001)

        assert result.failed_files == 2
        assert all(outcome.error_type == "ExtractionCancelledError" for outcome in result.outcomes)

    def test_progress_callback(self):
        calls = []
        self.processor.process_batch(
            [("a.pdf", b"eden"), ("b.pdf", b"bunzl")],
            progress_callback=lambda current, total, name: calls.append((current, total, name)))

        assert calls == [(1, 2, "a.pdf"), (2, 2, "b.pdf")]

    def test_empty_batch(self):
        result = self.processor.process_batch([])
        assert result.total_files == 0
        assert result.to_dict()['files'] == []

    def test_caller_token_cancels_one_file(self):
        tokens = [CancellationToken(), CancellationToken(), CancellationToken()]
        tokens[1].cancel()

        result = self.processor.process_batch(
            [("a.pdf", b"eden"), ("b.pdf", b"bunzl"), ("c.pdf", b"bunzl")],
            max_workers=2, cancel_tokens=tokens)

        assert [outcome.status for outcome in result.outcomes] == \
            [STATUS_OK, STATUS_FAILED, STATUS_OK]
        assert result.outcomes[1].error_type == "ExtractionCancelledError"

    def test_shared_caller_token_cancels_whole_batch(self):
        batch_token = CancellationToken()
        batch_token.cancel()

        result = self.processor.process_batch(
            [("a.pdf", b"eden"), ("b.pdf", b"bunzl")], cancel_tokens=[batch_token] * 2)

        assert result.failed_files == 2

    def test_caller_tokens_combine_with_timeout(self):
        self.extractor.delay = 0.05
        result = self.processor.process_batch(
            [("slow.pdf", b"eden")], timeout_per_file=0.001,
            cancel_tokens=[CancellationToken()])

        assert result.outcomes[0].error_type == "ExtractionCancelledError"

    def test_cancel_tokens_must_match_sources(self):
        with pytest.raises(ValueError):
            self.processor.process_batch([("a.pdf", b"eden")],
                                         cancel_tokens=[CancellationToken()] * 2)

    def test_rule_store_read_once_per_batch(self):
        store = MagicMock(spec=InMemoryRuleStore)
        store.list_active_rules.return_value = []

        self.processor.process_batch([("a.pdf", b"eden"), ("b.pdf", b"bunzl")], store)

        store.list_active_rules.assert_called_once_with()


class TestCancellationToken:
    """Test cases for CancellationToken."""

    def test_fresh_token_is_not_cancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        token.raise_if_cancelled()

    def test_cancel(self):
        token = CancellationToken(timeout=60)
        token.cancel()

        assert token.cancelled
        assert not token.deadline_exceeded
        with pytest.raises(ExtractionCancelledError):
            token.raise_if_cancelled("a.pdf", 2)

    def test_deadline(self):
        token = CancellationToken(timeout=0)

        assert token.deadline_exceeded
        with pytest.raises(ExtractionCancelledError) as exc_info:
            token.raise_if_cancelled("a.pdf")
        assert exc_info.value.deadline_exceeded
        assert exc_info.value.details['deadline_exceeded'] is True

    def test_tokens_are_independent(self):
        first, second = CancellationToken(), CancellationToken()
        first.cancel()
        assert not second.cancelled

    def test_parent_cancellation_reaches_children(self):
        parent = CancellationToken()
        child = CancellationToken(timeout=60, parent=parent)
        parent.cancel()

        assert child.cancelled
        assert child.cancel_requested
        assert not child.deadline_exceeded

    def test_child_cancellation_does_not_reach_parent(self):
        parent = CancellationToken()
        child = CancellationToken(parent=parent)
        child.cancel()

        assert child.cancelled
        assert not parent.cancelled

    def test_parent_deadline_applies_to_children(self):
        child = CancellationToken(parent=CancellationToken(timeout=0))

        with pytest.raises(ExtractionCancelledError) as exc_info:
            child.raise_if_cancelled("a.pdf")
        assert exc_info.value.deadline_exceeded


class TestPdfPlumberTextExtractor:
    """Test cases for the pdfplumber adapter."""

    def setup_method(self):
        """Set up test fixtures."""
        self.extractor = PdfPlumberTextExtractor()

    def test_corrupt_bytes_raise(self):
        with pytest.raises(TextExtractionError) as exc_info:
            self.extractor.extract_text(b"this is not a pdf", source_name="bad.pdf")
        assert exc_info.value.pdf_path == "bad.pdf"

    def test_empty_bytes_raise(self):
        with pytest.raises(PDFReadabilityError):
            self.extractor.extract_text(b"")

    def test_cancelled_before_open(self):
        token = CancellationToken()
        token.cancel()
        with patch('invoice_engine.text_extractor.pdfplumber.open') as mock_open:
            with pytest.raises(ExtractionCancelledError):
                self.extractor.extract_text(b"%PDF-1.4", token)
            mock_open.assert_not_called()

    def test_pages_and_fragments(self):
        page_one = MagicMock()
        page_one.height = 800
        page_one.extract_text.return_value = "Invoice No. 123456"
        page_one.extract_words.return_value = [
            {'text': 'Invoice', 'x0': 10, 'bottom': 100},
            {'text': 'No.', 'x0': 60, 'bottom': 101},
        ]
        page_two = MagicMock()
        page_two.height = 800
        page_two.extract_text.return_value = None
        page_two.extract_words.return_value = []

        pdf = MagicMock()
        pdf.pages = [page_one, page_two]

        with patch('invoice_engine.text_extractor.pdfplumber.open', return_value=pdf):
            extracted = self.extractor.extract_text(b"%PDF-1.4")

        assert extracted.full_text == "Invoice No. 123456"
        assert extracted.page_count == 2
        assert [fragment.text for fragment in extracted.fragments] == ["Invoice", "No."]
        assert extracted.fragments[0].y == 700.0
        assert extracted.fragments[1].page_index == 0

    def test_cancelled_between_pages(self):
        token = CancellationToken()
        page = MagicMock()
        page.height = 800
        page.extract_words.return_value = []

        def cancel_after_first_page(*args, **kwargs):
            token.cancel()
            return "page text"

        page.extract_text.side_effect = cancel_after_first_page
        pdf = MagicMock()
        pdf.pages = [page, page]

        with patch('invoice_engine.text_extractor.pdfplumber.open', return_value=pdf):
            with pytest.raises(ExtractionCancelledError) as exc_info:
                self.extractor.extract_text(b"%PDF-1.4", token, "two.pdf")
        assert exc_info.value.page_number == 2


class TestFindPdfFiles:
    """Test cases for PDF discovery."""

    def test_directories_and_files(self, tmp_path):
        (tmp_path / "a.pdf").write_bytes(b"a")
        (tmp_path / "notes.txt").write_text("x")
        nested = tmp_path / "nested"
        nested.mkdir()
        (nested / "b.PDF").write_bytes(b"b")
        explicit = tmp_path / "explicit.bin"
        explicit.write_bytes(b"c")

        found = find_pdf_files([tmp_path, explicit, tmp_path / "a.pdf"])

        assert found == [tmp_path / "a.pdf", nested / "b.PDF", explicit]

    def test_non_recursive(self, tmp_path):
        (tmp_path / "a.pdf").write_bytes(b"a")
        nested = tmp_path / "nested"
        nested.mkdir()
        (nested / "b.pdf").write_bytes(b"b")

        assert find_pdf_files([tmp_path], recursive=False) == [tmp_path / "a.pdf"]
