"""
Line item extraction from positioned invoice text.

PDFs store text as positioned runs rather than lines, so fragments are first
clustered into visual lines by their vertical position. Each line is then
offered to an ordered chain of line formats; the first format that recognises
the line produces the item and no further formats are tried for it.

Formats, in order:
    1. Supplier format A, strict: code, name, qty, CASE|SINGLE|PACKn|BOX,
       £unit price, £line total, trailing VAT flag "V"
    2. Supplier format B, strict: 5 digit code, name, qty, unit, price,
       value, RRP, trailing VAT code
    3. Format A, tokenised from the "V" flag backwards
    4. Format B, tokenised from the trailing VAT code backwards
    5. Aggressive fallback: any line starting with a product code and
       carrying at least two numbers (lowest confidence, can be disabled)
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional, Sequence, Tuple

from .models import ParsedLineItem, TextFragment
from .trace import ParseTrace


logger = logging.getLogger(__name__)

DEFAULT_LINE_TOLERANCE = 5.0

MIN_LINE_LENGTH = 10

# Lines containing any of these are never line items
NON_ITEM_KEYWORDS = [
    'VAT Code', 'VAT Rate', 'Currency', 'Payment within',
    'All items included', 'Total Goods', 'TOTAL',
]

ANNOTATION_SUFFIXES = [r'\(A\)$', r'\(F\)$', r'\(FS\)$', r'\(AS\)$']

_LEADING_INT = re.compile(r'^\s*[+-]?\d+')
_LEADING_NUMBER = re.compile(r'^\s*[+-]?(?:\d+\.?\d*|\.\d+)')


def leading_int(token: Optional[str]) -> Optional[int]:
    """Read the integer a token starts with ('110x' -> 110); None if it has none."""
    if token is None:
        return None
    match = _LEADING_INT.match(token)
    return int(match.group(0)) if match else None


def leading_decimal(token: Optional[str]) -> Optional[Decimal]:
    """Read the decimal number a token starts with ('47.55V' -> 47.55); None if it has none."""
    if token is None:
        return None
    match = _LEADING_NUMBER.match(token)
    if not match:
        return None
    try:
        return Decimal(match.group(0).strip())
    except InvalidOperation:
        return None


def normalize_product_name(name: str) -> str:
    """Collapse whitespace and drop trailing annotation codes such as (A) or (FS)."""
    cleaned = re.sub(r'\s+', ' ', name).strip()
    for suffix in ANNOTATION_SUFFIXES:
        cleaned = re.sub(suffix, '', cleaned)
    return cleaned.strip()


def cluster_fragments(fragments: Iterable[TextFragment],
                      tolerance: float = DEFAULT_LINE_TOLERANCE) -> List[str]:
    """
    Group positioned fragments into visual lines.

    Fragments are walked in reading order. A new line starts whenever a
    fragment's vertical position differs from the previous fragment's by more
    than the tolerance, or when the page changes. Fragments on a line are
    joined with single spaces in their original order.
    """
    lines = []
    current: List[str] = []
    last_y: Optional[float] = None
    last_page: Optional[int] = None

    def flush():
        line = ' '.join(current).strip()
        if line:
            lines.append(line)

    for fragment in fragments:
        new_page = last_page is not None and fragment.page_index != last_page
        if new_page or (last_y is not None and abs(fragment.y - last_y) > tolerance):
            flush()
            current = []
        current.append(fragment.text)
        last_y = fragment.y
        last_page = fragment.page_index

    flush()
    return lines


@dataclass(frozen=True)
class LineCandidate:
    """Raw fields a line format recovered from a line, before validation."""
    code: str
    name: str
    quantity: Optional[Decimal]
    unit: str
    price_per_unit: Optional[Decimal]
    total_price: Optional[Decimal]


class LineFormat(ABC):
    """
    A single heuristic for recognising an invoice line.
    """

    name = 'line_format'

    @abstractmethod
    def parse(self, line: str) -> Optional[LineCandidate]:
        """
        Recognise a line.

        Args:
            line: One clustered line of invoice text

        Returns:
            LineCandidate if the line has this format's shape, None otherwise
        """
        pass


class StrictFormatA(LineFormat):
    """Code, name, qty, pack unit, £price, £total, V."""

    name = 'format_a'
    PATTERN = re.compile(
        r'^([A-Z]+\d{4,5}|[A-Z]\d{5})\s+'  # Product code
        r'(.+?)\s+'  # Name
        r'(\d+)\s+'  # Quantity
        r'(CASE|SINGLE|PACK\d*|BOX)\s+'  # Unit
        r'£([\d.]+)\s+'  # Unit price
        r'£([\d.]+)\s+'  # Line total
        r'V\s*$',  # VAT flag
        re.IGNORECASE
    )

    def parse(self, line: str) -> Optional[LineCandidate]:
        match = self.PATTERN.match(line)
        if not match:
            return None
        code, name, qty, unit, price, total = match.groups()
        return LineCandidate(
            code=code.strip(),
            name=name.strip(),
            quantity=leading_decimal(qty),
            unit=unit.strip(),
            price_per_unit=leading_decimal(price),
            total_price=leading_decimal(total),
        )


class StrictFormatB(LineFormat):
    """5 digit code, name, qty, unit, price, value, RRP, VAT code."""

    name = 'format_b'
    PATTERN = re.compile(
        r'^(\d{5})\s+'  # Product code
        r'(.+?)\s+'  # Name
        r'(\d+)\s+'  # Quantity
        r'(.+?)\s+'  # Unit
        r'([\d.]+)\s+'  # Price
        r'([\d.]+)\s+'  # Value
        r'([\d.]+)\s+'  # RRP
        r'\d+\s*$'  # VAT code
    )

    def parse(self, line: str) -> Optional[LineCandidate]:
        match = self.PATTERN.match(line)
        if not match:
            return None
        code, name, qty, unit, price, value, _rrp = match.groups()
        return LineCandidate(
            code=code.strip(),
            name=name.strip(),
            quantity=leading_decimal(qty),
            unit=unit.strip(),
            price_per_unit=leading_decimal(price),
            total_price=leading_decimal(value),
        )


class LooseFormatA(LineFormat):
    """Format A read backwards from the last standalone "V" token."""

    name = 'format_a_tokens'
    PREFIX = re.compile(r'^([A-Z]\d{5}|[A-Z]{1,2}\d{5})\s+(.+?)$')

    def parse(self, line: str) -> Optional[LineCandidate]:
        if not self.PREFIX.match(line):
            return None
        parts = line.split()
        if len(parts) < 6 or 'V' not in parts:
            return None

        v_index = len(parts) - 1 - parts[::-1].index('V')
        # code, at least one name token, then qty, unit, price, total before V
        if v_index < 5:
            return None

        qty = leading_int(parts[v_index - 4])
        return LineCandidate(
            code=parts[0],
            name=' '.join(parts[1:v_index - 4]),
            quantity=Decimal(qty) if qty is not None else None,
            unit=parts[v_index - 3],
            price_per_unit=leading_decimal(parts[v_index - 2].replace('£', '')),
            total_price=leading_decimal(parts[v_index - 1].replace('£', '')),
        )


class LooseFormatB(LineFormat):
    """Format B read backwards from a trailing 1-2 digit VAT code."""

    name = 'format_b_tokens'
    PREFIX = re.compile(r'^(\d{5})\s+(.+?)$')

    def parse(self, line: str) -> Optional[LineCandidate]:
        if not self.PREFIX.match(line):
            return None
        parts = line.split()
        if len(parts) < 6:
            return None

        vat_code = parts[-1]
        if leading_int(vat_code) is None or len(vat_code) > 2:
            return None

        # parts[-2] is the RRP, which is not kept
        qty = leading_int(parts[-6])
        return LineCandidate(
            code=parts[0],
            name=' '.join(parts[1:-6]),
            quantity=Decimal(qty) if qty is not None else None,
            unit=parts[-5],
            price_per_unit=leading_decimal(parts[-4]),
            total_price=leading_decimal(parts[-3]),
        )


class AggressiveFallbackFormat(LineFormat):
    """
    Last resort: a leading product code followed by at least two numbers.

    The first number after the code is taken as the quantity, the second to
    last as the line total and the one before that as the unit price. This
    can misread unusual layouts, so it only runs when nothing stricter
    matched.
    """

    name = 'aggressive_fallback'
    PATTERN = re.compile(r'^(\d{4,6}|[A-Z]{1,3}\d{4,6})\s+(.+?)\s+([\d.]+)\s+([\d.]+)')
    MIN_NAME_LENGTH = 3

    def parse(self, line: str) -> Optional[LineCandidate]:
        match = self.PATTERN.match(line)
        if not match:
            return None
        code, name_and_rest = match.group(1), match.group(2)

        numbers = [leading_decimal(token) for token in re.findall(r'[\d.]+', line)[1:]]
        numbers = [number for number in numbers if number is not None and number > 0]
        if len(numbers) < 2:
            return None

        total_price = numbers[-2]
        price_per_unit = numbers[-3] if len(numbers) >= 3 else total_price
        quantity = numbers[0]

        name_match = re.match(r'^(.+?)\s+\d', name_and_rest)
        if name_match:
            product_name = name_match.group(1).strip()
        else:
            product_name = re.split(r'\s+\d', name_and_rest)[0].strip()
        if len(product_name) < self.MIN_NAME_LENGTH:
            return None

        return LineCandidate(
            code=code.strip(),
            name=product_name,
            quantity=quantity,
            unit='UNIT',
            price_per_unit=price_per_unit,
            total_price=total_price,
        )


class LineItemExtractor:
    """
    Extracts ParsedLineItem records from invoice lines.

    Never raises for unrecognised content; lines that no format accepts are
    simply omitted.
    """

    def __init__(self, logger: Optional[logging.Logger] = None,
                 line_tolerance: float = DEFAULT_LINE_TOLERANCE,
                 enable_aggressive_fallback: bool = True,
                 formats: Optional[Sequence[LineFormat]] = None):
        """
        Initialize LineItemExtractor.

        Args:
            logger: Optional logger instance. Defaults to the module logger.
            line_tolerance: Maximum vertical distance between fragments on one line
            enable_aggressive_fallback: Whether to try the low confidence fallback format
            formats: Override the format chain entirely
        """
        self.logger = logger or logging.getLogger(__name__)
        self.line_tolerance = line_tolerance
        self.enable_aggressive_fallback = enable_aggressive_fallback
        if formats is None:
            formats = [StrictFormatA(), StrictFormatB(), LooseFormatA(), LooseFormatB()]
            if enable_aggressive_fallback:
                formats.append(AggressiveFallbackFormat())
        self.formats = list(formats)

    def extract(self, fragments: Iterable[TextFragment],
                trace: Optional[ParseTrace] = None) -> List[ParsedLineItem]:
        """Cluster positioned fragments into lines and extract items from them."""
        lines = cluster_fragments(fragments, self.line_tolerance)
        self.logger.debug(f"Clustered fragments into {len(lines)} lines")
        return self.extract_from_lines(lines, trace)

    def extract_from_text(self, text: str,
                          trace: Optional[ParseTrace] = None) -> List[ParsedLineItem]:
        """Extract items from text that is already split into lines."""
        return self.extract_from_lines(text.split('\n'), trace)

    def extract_from_lines(self, lines: Iterable[str],
                           trace: Optional[ParseTrace] = None) -> List[ParsedLineItem]:
        items = []
        for line_number, line in enumerate(lines, 1):
            line = line.strip()
            if self._is_skipped_line(line):
                continue

            item = self.parse_line(line, line_number, trace)
            if item:
                items.append(item)

        self.logger.debug(f"Extracted {len(items)} line items")
        return items

    def parse_line(self, line: str, line_number: Optional[int] = None,
                   trace: Optional[ParseTrace] = None) -> Optional[ParsedLineItem]:
        """
        Offer one line to each format in turn.

        Returns:
            The item from the first format that recognises the line and whose
            values pass validation, or None
        """
        for index, line_format in enumerate(self.formats):
            candidate = line_format.parse(line)
            if candidate is None:
                self._record(trace, index, False, None, line_number)
                continue

            item, reason = self._accept(candidate, line_format.name, line_number)
            self._record(trace, index, item is not None, reason, line_number)
            if item is not None:
                self.logger.debug(f"Line {line_number}: {line_format.name} match: "
                                  f"{item.product_code} {item.product_name}")
                return item
        return None

    @staticmethod
    def _is_skipped_line(line: str) -> bool:
        if len(line) < MIN_LINE_LENGTH:
            return True
        return any(keyword in line for keyword in NON_ITEM_KEYWORDS)

    @staticmethod
    def _accept(candidate: LineCandidate, format_name: str,
                line_number: Optional[int]) -> Tuple[Optional[ParsedLineItem], Optional[str]]:
        if not candidate.code:
            return None, "missing product code"
        if candidate.quantity is None or candidate.price_per_unit is None:
            return None, "non-numeric quantity or price"
        if candidate.total_price is None:
            return None, "non-numeric total"
        if candidate.quantity <= 0:
            return None, "quantity not positive"
        if candidate.price_per_unit < 0 or candidate.total_price < 0:
            return None, "negative price"

        product_name = normalize_product_name(candidate.name)
        if not product_name:
            return None, "missing product name"

        return ParsedLineItem(
            product_code=candidate.code,
            product_name=product_name,
            quantity=candidate.quantity,
            unit=candidate.unit,
            price_per_unit=candidate.price_per_unit,
            total_price=candidate.total_price,
            line_number=line_number,
            line_format=format_name,
        ), None

    @staticmethod
    def _record(trace: Optional[ParseTrace], index: int, matched: bool,
                reason: Optional[str], line_number: Optional[int]) -> None:
        if trace is not None:
            trace.record('line_item', index, matched, reason, line_number)
