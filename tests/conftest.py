"""
Shared fixtures for the invoice parser tests.

Invoices are represented by their extracted text; a fake text extractor maps
file contents to that text so no real PDFs are needed.
"""

import time

import pytest

from invoice_engine.exceptions import PDFReadabilityError
from invoice_engine.models import ExtractedText
from invoice_engine.text_extractor import TextExtractor


EDEN_INVOICE_TEXT = """Eden Farm Hulleys Ltd
Invoice No. 123456
Date 04/08/25
Your Order No. PO 7781 INVOICE
Deliver To:
Yo Sushi - Tesco Superstore Allerton
Liverpool
L19 5PF
Account No 4455
ABC1234 Salmon Fillet 2 CASE £12.50 £25.00 V
A12345 Soy Sauce Dark 6 BTL £4.10 £24.60 V
Total Amount £245.60
VAT Amount £40.93"""

BUNZL_INVOICE_TEXT = """Bunzl Catering Supplies Ltd
Invoice: B7654321 TAX POINT DATE 15/01/2024
Order No: 556677
Deliver To
Rollwave Foods Ltd
12 Smithdown Rd
Yo Sushi Smithdown
Account No 9911
14351 Nori Half Sheets WPL (A) 110x 100pcs 47.55 47.55 0.00 1
12345 Green Tea Bags 4 BOX 3.20 12.80 15.00 1
Total Goods 60.35
VAT @ 20% £12.07
TOTAL £72.42"""


class FakeTextExtractor(TextExtractor):
    """Returns canned text for known file contents; anything else is unreadable."""

    def __init__(self, documents, delay: float = 0.0):
        self.documents = dict(documents)
        self.delay = delay

    def extract_text(self, data, cancel_token=None, source_name=None):
        if self.delay:
            time.sleep(self.delay)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled(source_name)
        if data not in self.documents:
            raise PDFReadabilityError("Cannot open PDF", pdf_path=source_name)

        document = self.documents[data]
        if isinstance(document, ExtractedText):
            return document
        return ExtractedText(full_text=document, page_count=1)


@pytest.fixture
def eden_text():
    return EDEN_INVOICE_TEXT


@pytest.fixture
def bunzl_text():
    return BUNZL_INVOICE_TEXT


@pytest.fixture
def fake_extractor():
    """Extractor that knows b"eden", b"bunzl" and b"blank" files."""
    return FakeTextExtractor({
        b"eden": EDEN_INVOICE_TEXT,
        b"bunzl": BUNZL_INVOICE_TEXT,
        b"blank": "",
    })
