"""
Invoice metadata extraction.

This module recovers header-level fields (invoice number, date, order
reference, delivery site, totals, VAT and supplier) from the full text of an
invoice. Every field is resolved independently through its own ordered
cascade of patterns, so a field that cannot be found never affects another.
"""

import logging
import re
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from rules.models import ParsingRule

from .exceptions import TextExtractionError
from .models import ParsedInvoiceMetadata
from .patterns import (
    FieldCascade,
    FieldPattern,
    compile_patterns,
    length_validator,
    parse_amount,
    range_validator,
)
from .rule_matcher import match_rule
from .trace import ParseTrace


logger = logging.getLogger(__name__)

DATE_VALUE = r'(\d{2}/\d{2}/\d{2,4})'
AMOUNT_VALUE = r'([\d,]+\.\d{2})'


def normalize_date(date_str: str) -> str:
    """
    Convert a dd/mm/yy[yy] date to ISO YYYY-MM-DD.

    Two digit years are taken to be in the 2000s. A string that does not split
    into exactly three parts on '/' or '-' is returned unchanged.
    """
    parts = re.split(r'[/\-]', date_str)
    if len(parts) != 3:
        return date_str

    day, month, year = parts
    if len(year) == 2:
        year = '20' + year
    return f"{year}-{month.zfill(2)}-{day.zfill(2)}"


class MetadataExtractor:
    """
    Extracts ParsedInvoiceMetadata from invoice text.

    Pattern lists are tried in order and the first acceptable candidate wins.
    Candidates that match but fail a plausibility check (e.g. a total below
    £10) are discarded as though they had not matched.
    """

    INVOICE_NUMBER_PATTERNS = [
        (r'Invoice\s+No\.?\s+([A-Z0-9]+)', re.IGNORECASE),
        (r'Invoice[:\s]+([A-Z0-9]+)(?=\s+TAX|\s+Order|\s+\d{2}/|\s*$)', re.IGNORECASE),
        (r'^(\d{6})\s+\d{2}/\d{2}/\d{2}', re.MULTILINE),
        (r'^([A-Z]\d{7})$', re.MULTILINE),
    ]

    DATE_PATTERNS = [
        r'Date\s+' + DATE_VALUE,
        r'TAX POINT DATE\s+' + DATE_VALUE,
        DATE_VALUE + r'\s+INVOICE',
        r'Invoice\s+Date[:\s]*' + DATE_VALUE,
    ]

    REFERENCE_PATTERNS = [
        r'Your\s+Order\s+No\.?\s+([A-Za-z0-9\s/\-]+?)(?=\s+INVOICE|\s+Delivered|\s+TAX|$)',
        r'Order\s+No:?\s+(\d{5,7})',
        r'REFERENCE\s+([A-Za-z0-9\s/\-]+?)(?=\s|$)',
    ]

    TOTAL_AMOUNT_PATTERNS = [
        (r'Total\s+Amount\s+£' + AMOUNT_VALUE, re.IGNORECASE),
        (AMOUNT_VALUE + r'\s+Total\s+Amount', re.IGNORECASE),
        (r'TOTAL\s+£' + AMOUNT_VALUE, re.IGNORECASE),
        (r'Total[:\s]+£' + AMOUNT_VALUE, 0),
        # Trailing amount at the end of a line, with no later amount anywhere
        (r'£' + AMOUNT_VALUE + r'[ \t]*$(?![\s\S]*£)', re.MULTILINE),
    ]

    VAT_AMOUNT_PATTERNS = [
        r'VAT\s+@\s+\d+%\s+£' + AMOUNT_VALUE,
        r'VAT\s+Amount\s+£' + AMOUNT_VALUE,
        r'Total\s+VAT\s+£' + AMOUNT_VALUE,
        r'VAT\s+£' + AMOUNT_VALUE,
        r'Value\s+Added\s+Tax\s+£' + AMOUNT_VALUE,
    ]

    DELIVER_TO_PATTERN = re.compile(r'Deliver To[:\s]+(.*?)(?:Account No|$)',
                                    re.IGNORECASE | re.DOTALL)

    # Boilerplate removed from every "Deliver To" line, in order
    SITE_NAME_CLEANUPS = [
        (r'^Rollwave\s+Foods\s+Ltd', re.IGNORECASE),
        (r'Yo\s+Sushi\s*-?\s*', re.IGNORECASE),
        (r'Asda\s+', re.IGNORECASE),
        (r'Tesco\s+Superstore?\s*', re.IGNORECASE),
        (r'\d+\s+Smithdown\s+Rd', re.IGNORECASE),
        (r'Mather\s+Avenue', re.IGNORECASE),
        (r'Liverpool', re.IGNORECASE),
        (r'L\d+\s*\d*[A-Z]{0,2}', re.IGNORECASE),
        (r'^\d{10,11}$', 0),
        (r'^\d+$', 0),
    ]

    DEFAULT_SUPPLIERS = [
        (r'Eden\s+Farm\s+Hulleys', 'Eden Farm'),
        (r'Bunzl\s+Catering', 'Bunzl Catering'),
    ]

    TOTAL_RANGE = (Decimal('10'), Decimal('100000'))
    VAT_RANGE = (Decimal('0'), Decimal('50000'))

    def __init__(self, logger: Optional[logging.Logger] = None,
                 suppliers: Optional[Sequence[Tuple[str, str]]] = None):
        """
        Initialize MetadataExtractor.

        Args:
            logger: Optional logger instance. Defaults to the module logger.
            suppliers: (pattern, display name) pairs that identify suppliers.
                Defaults to DEFAULT_SUPPLIERS.
        """
        self.logger = logger or logging.getLogger(__name__)

        self._invoice_number_validator = length_validator(5, 12, forbidden=('Invoice', 'Order'))
        self._total_validator = range_validator(*self.TOTAL_RANGE)
        self._vat_validator = range_validator(*self.VAT_RANGE, include_minimum=False)

        self.invoice_number_cascade = FieldCascade('invoice_number', [
            FieldPattern(re.compile(pattern, flags), validate=self._invoice_number_validator)
            for pattern, flags in self.INVOICE_NUMBER_PATTERNS
        ])
        self.date_cascade = FieldCascade('date', compile_patterns(
            self.DATE_PATTERNS, re.IGNORECASE, convert=normalize_date
        ))
        self.reference_cascade = FieldCascade('invoice_reference', compile_patterns(
            self.REFERENCE_PATTERNS, re.IGNORECASE, validate=length_validator(3, 30)
        ))
        self.total_cascade = FieldCascade('total_amount', [
            FieldPattern(re.compile(pattern, flags), convert=parse_amount,
                         validate=self._total_validator)
            for pattern, flags in self.TOTAL_AMOUNT_PATTERNS
        ])
        self.vat_cascade = FieldCascade('vat_amount', compile_patterns(
            self.VAT_AMOUNT_PATTERNS, re.IGNORECASE, convert=parse_amount,
            validate=self._vat_validator
        ))

        self._site_cleanups = [re.compile(pattern, flags) for pattern, flags in self.SITE_NAME_CLEANUPS]
        self._suppliers = [
            (re.compile(pattern, re.IGNORECASE), name)
            for pattern, name in (suppliers if suppliers is not None else self.DEFAULT_SUPPLIERS)
        ]

    def extract(self, text: str, rules: Iterable[ParsingRule] = (),
                trace: Optional[ParseTrace] = None) -> ParsedInvoiceMetadata:
        """
        Extract invoice metadata from full invoice text.

        Args:
            text: Full invoice text
            rules: Parsing rules, in any order; inactive rules are ignored
            trace: Optional trace collecting every heuristic attempt

        Returns:
            ParsedInvoiceMetadata with None for every field that was not found

        Raises:
            TextExtractionError: If no text was supplied at all
        """
        if text is None:
            raise TextExtractionError("No invoice text available for metadata extraction")

        self.logger.debug(f"Parsing text: {text[:500]!r}")

        rule = match_rule(text, rules, trace)

        invoice_number = self.invoice_number_cascade.resolve(
            text, trace, self._rule_steps(rule, 'invoice_number_pattern',
                                          validate=self._invoice_number_validator))
        date = self.date_cascade.resolve(
            text, trace, self._rule_steps(rule, 'date_pattern', convert=normalize_date))
        reference = self.reference_cascade.resolve(text, trace)
        site_name = self.extract_site_name(text, rule, trace)
        total_amount = self.total_cascade.resolve(
            text, trace, self._rule_steps(rule, 'amount_pattern', convert=parse_amount,
                                          validate=self._total_validator))
        vat_amount = self.vat_cascade.resolve(text, trace)
        supplier_name = self.extract_supplier_name(text, trace)

        metadata = ParsedInvoiceMetadata(
            invoice_number=invoice_number,
            invoice_reference=reference,
            date=date,
            site_name=site_name,
            supplier_name=supplier_name,
            total_amount=total_amount,
            vat_amount=vat_amount,
            matched_rule_id=rule.id if rule else None,
            matched_rule_category_id=rule.default_category_id if rule else None,
            matched_rule_supplier_id=rule.supplier_id if rule else None,
            matched_rule_site_id=rule.default_site_id if rule else None,
        )
        self.logger.debug(f"Extracted metadata - Invoice: {invoice_number}, Date: {date}, "
                          f"Total: {total_amount}, Site: {site_name}")
        return metadata

    @staticmethod
    def _rule_steps(rule: Optional[ParsingRule], attribute: str, **kwargs) -> List[FieldPattern]:
        """A matched rule's own pattern for a field, tried before the built-in ones."""
        pattern = getattr(rule, attribute, None) if rule else None
        if not pattern:
            return []
        return [FieldPattern(re.compile(pattern, re.IGNORECASE | re.MULTILINE), **kwargs)]

    def extract_site_name(self, text: str, rule: Optional[ParsingRule] = None,
                          trace: Optional[ParseTrace] = None) -> Optional[str]:
        """
        Extract the delivery site name from the "Deliver To" section.

        Each line of the section is cleaned with the matched rule's replacements
        and then the default boilerplate removals. The first cleaned line that
        looks like a name is returned.
        """
        match = self.DELIVER_TO_PATTERN.search(text)
        if not match:
            if trace is not None:
                trace.record('site_name', 0, False)
            self.logger.debug("No Deliver To section found")
            return None

        lines = [line.strip() for line in match.group(1).split('\n')]
        lines = [line for line in lines if line]
        replacements = rule.site_name_replacements if rule else ()

        for index, line in enumerate(lines):
            cleaned = self.clean_site_line(line, replacements)
            reason = self._site_rejection(cleaned)
            if trace is not None:
                trace.record('site_name', index, reason is None, reason)
            if reason is None:
                self.logger.debug(f"Extracted site name: {cleaned}")
                return cleaned

        self.logger.debug("No site name found in Deliver To section")
        return None

    def clean_site_line(self, line: str, replacements: Sequence[str] = ()) -> str:
        """Strip rule replacements and default boilerplate from one line."""
        cleaned = line
        for replacement in replacements:
            try:
                cleaned = re.sub(replacement, '', cleaned, flags=re.IGNORECASE)
            except re.error:
                cleaned = re.sub(re.escape(replacement), '', cleaned, flags=re.IGNORECASE)

        for pattern in self._site_cleanups:
            cleaned = pattern.sub('', cleaned)
        return cleaned.strip()

    @staticmethod
    def _site_rejection(cleaned: str) -> Optional[str]:
        if len(cleaned) <= 2:
            return "too short"
        if cleaned[0].isdigit():
            return "starts with a digit"
        if not re.search(r'[a-zA-Z]', cleaned):
            return "no letters"
        return None

    def extract_supplier_name(self, text: str,
                              trace: Optional[ParseTrace] = None) -> Optional[str]:
        """Identify the supplier from its fixed fingerprint table."""
        for index, (pattern, name) in enumerate(self._suppliers):
            matched = bool(pattern.search(text))
            if trace is not None:
                trace.record('supplier_name', index, matched)
            if matched:
                return name
        return None
