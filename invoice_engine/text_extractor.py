"""
Text extraction from invoice PDFs.

The engine only depends on the TextExtractor interface: given the bytes of a
PDF it returns the full text blob plus positioned text fragments in reading
order. PdfPlumberTextExtractor implements it with pdfplumber.
"""

import io
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import pdfplumber

from .cancellation import CancellationToken
from .exceptions import PDFReadabilityError, TextExtractionError, ExtractionCancelledError
from .models import ExtractedText, TextFragment


logger = logging.getLogger(__name__)


class TextExtractor(ABC):
    """
    Abstract PDF-to-text collaborator.
    """

    @abstractmethod
    def extract_text(self, data: bytes, cancel_token: Optional[CancellationToken] = None,
                     source_name: Optional[str] = None) -> ExtractedText:
        """
        Extract text from a PDF document.

        Args:
            data: Raw bytes of the PDF file
            cancel_token: Optional token checked between pages
            source_name: Name of the source file, used in error messages

        Returns:
            ExtractedText with the full text and positioned fragments

        Raises:
            TextExtractionError: If the document cannot be decoded
        """
        pass


class PdfPlumberTextExtractor(TextExtractor):
    """
    TextExtractor backed by pdfplumber.

    Fragment y coordinates are measured bottom-up in PDF units, so the line
    clustering tolerance is expressed in points.
    """

    def __init__(self, x_tolerance: float = 3, y_tolerance: float = 3):
        self.x_tolerance = x_tolerance
        self.y_tolerance = y_tolerance

    def extract_text(self, data: bytes, cancel_token: Optional[CancellationToken] = None,
                     source_name: Optional[str] = None) -> ExtractedText:
        if not data:
            raise PDFReadabilityError("Invoice file is empty", pdf_path=source_name)
        if cancel_token is not None:
            cancel_token.raise_if_cancelled(source_name)

        try:
            pdf = pdfplumber.open(io.BytesIO(data))
        except Exception as e:
            raise PDFReadabilityError(
                f"Cannot open PDF: {e}",
                pdf_path=source_name,
                extraction_method='pdfplumber',
                original_error=e
            ) from e

        try:
            with pdf:
                page_count = len(pdf.pages)
                logger.debug(f"PDF opened successfully, found {page_count} pages")

                page_texts: List[str] = []
                fragments: List[TextFragment] = []

                for page_index, page in enumerate(pdf.pages):
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled(source_name, page_index + 1)

                    page_text = page.extract_text(x_tolerance=self.x_tolerance,
                                                  y_tolerance=self.y_tolerance)
                    if page_text:
                        page_texts.append(page_text)
                    else:
                        logger.warning(f"Page {page_index + 1}: no text extracted")

                    words = page.extract_words(x_tolerance=self.x_tolerance,
                                               y_tolerance=self.y_tolerance,
                                               use_text_flow=True)
                    for word in words:
                        fragments.append(TextFragment(
                            text=word['text'],
                            x=float(word['x0']),
                            y=float(page.height) - float(word['bottom']),
                            page_index=page_index,
                        ))
        except ExtractionCancelledError:
            raise
        except Exception as e:
            raise TextExtractionError(
                f"Error during text extraction: {e}",
                pdf_path=source_name,
                extraction_method='pdfplumber',
                original_error=e
            ) from e

        full_text = '\n'.join(page_texts)
        logger.debug(f"Extracted {len(full_text)} characters and {len(fragments)} "
                     f"fragments from {page_count} pages")
        return ExtractedText(full_text=full_text, fragments=tuple(fragments),
                             page_count=page_count)
