"""
Ordered heuristic cascades for resolving a single invoice field.

A cascade is an ordered list of (pattern, converter, validator) steps. Steps
are tried lazily; the first whose pattern matches and whose converted value
passes its validator wins. A matching candidate that fails conversion or
validation is discarded and the next step is tried, exactly as if it had not
matched at all.
"""

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

from .trace import ParseTrace

# A validator returns None to accept a value, or a short rejection reason.
Validator = Callable[[Any], Optional[str]]


def _identity(value: str) -> str:
    return value


@dataclass(frozen=True)
class FieldPattern:
    """A single step of a field cascade."""
    regex: re.Pattern
    convert: Callable[[str], Any] = _identity
    validate: Optional[Validator] = None

    def attempt(self, text: str) -> Optional[re.Match]:
        return self.regex.search(text)


def compile_patterns(patterns: Iterable[Union[str, re.Pattern]], flags: int = 0,
                     convert: Callable[[str], Any] = _identity,
                     validate: Optional[Validator] = None) -> List[FieldPattern]:
    """Build cascade steps that share one converter and validator."""
    steps = []
    for pattern in patterns:
        regex = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, flags)
        steps.append(FieldPattern(regex=regex, convert=convert, validate=validate))
    return steps


class FieldCascade:
    """
    Resolve one field by trying its patterns in order.

    Extra steps (for example a parsing rule's own pattern for the field) can
    be supplied per call; they are tried before the built-in steps and are
    numbered from zero in the trace, with the built-in steps following on.
    """

    def __init__(self, field: str, steps: Sequence[FieldPattern]):
        self.field = field
        self.steps = list(steps)

    def resolve(self, text: str, trace: Optional[ParseTrace] = None,
                extra_steps: Sequence[FieldPattern] = ()) -> Optional[Any]:
        for index, step in enumerate(list(extra_steps) + self.steps):
            match = step.attempt(text)
            if not match:
                self._record(trace, index, False)
                continue

            raw = (match.group(1) if step.regex.groups else match.group(0)) or ""
            raw = raw.strip()
            if not raw:
                self._record(trace, index, False, "empty capture")
                continue

            try:
                value = step.convert(raw)
            except (ValueError, InvalidOperation):
                self._record(trace, index, False, f"unparseable value {raw!r}")
                continue

            reason = step.validate(value) if step.validate else None
            if reason:
                self._record(trace, index, False, reason)
                continue

            self._record(trace, index, True)
            return value
        return None

    def _record(self, trace: Optional[ParseTrace], index: int, matched: bool,
                reason: Optional[str] = None) -> None:
        if trace is not None:
            trace.record(self.field, index, matched, reason)


def parse_amount(raw: str) -> Decimal:
    """Parse a currency amount such as '1,234.56' into a Decimal."""
    return Decimal(raw.replace(',', ''))


def range_validator(minimum: Decimal, maximum: Decimal,
                    include_minimum: bool = True) -> Validator:
    """Accept amounts within [minimum, maximum) or (minimum, maximum)."""
    def validate(value: Decimal) -> Optional[str]:
        below = value < minimum if include_minimum else value <= minimum
        if below or value >= maximum:
            return f"amount {value} outside plausible range"
        return None
    return validate


def length_validator(minimum: int, maximum: int,
                     forbidden: Sequence[str] = ()) -> Validator:
    """Accept strings whose length is within [minimum, maximum]."""
    forbidden_lower = {word.lower() for word in forbidden}

    def validate(value: str) -> Optional[str]:
        if not minimum <= len(value) <= maximum:
            return f"length {len(value)} outside {minimum}-{maximum}"
        if value.lower() in forbidden_lower:
            return f"label word {value!r}"
        return None
    return validate
