"""
Diagnostic trace of heuristic attempts made while parsing an invoice.

Each field (and each candidate line item) is resolved by trying an ordered
list of heuristics. The trace records every attempt so callers and tests can
see which heuristic fired, and why a matching candidate was thrown away.
"""

from dataclasses import dataclass
from typing import List, Optional, Dict, Any, Tuple


@dataclass(frozen=True)
class TraceEntry:
    """
    One heuristic attempt.

    Attributes:
        field: Field being resolved (e.g. 'invoice_number', 'line_item')
        pattern_index: Zero-based position of the heuristic in its cascade
        matched: True when the heuristic matched and its value was accepted
        rejected_reason: Why a matching candidate was discarded, if it was
        line_number: Clustered line number, for line item attempts
    """
    field: str
    pattern_index: int
    matched: bool
    rejected_reason: Optional[str] = None
    line_number: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'field': self.field,
            'pattern_index': self.pattern_index,
            'matched': self.matched,
            'rejected_reason': self.rejected_reason,
            'line_number': self.line_number,
        }


class ParseTrace:
    """Collects trace entries for a single parse."""

    def __init__(self):
        self._entries: List[TraceEntry] = []

    def record(self, field: str, pattern_index: int, matched: bool,
               rejected_reason: Optional[str] = None,
               line_number: Optional[int] = None) -> None:
        self._entries.append(TraceEntry(
            field=field,
            pattern_index=pattern_index,
            matched=matched,
            rejected_reason=rejected_reason,
            line_number=line_number,
        ))

    @property
    def entries(self) -> Tuple[TraceEntry, ...]:
        return tuple(self._entries)

    def for_field(self, field: str) -> List[TraceEntry]:
        return [entry for entry in self._entries if entry.field == field]

    def fired(self, field: str, line_number: Optional[int] = None) -> Optional[int]:
        """Return the index of the heuristic that produced the field's value, if any."""
        for entry in self._entries:
            if entry.field != field or not entry.matched:
                continue
            if line_number is not None and entry.line_number != line_number:
                continue
            return entry.pattern_index
        return None

    def __len__(self) -> int:
        return len(self._entries)
