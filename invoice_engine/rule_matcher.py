"""
Parsing rule matching.

The matched rule for an invoice is the highest priority active rule whose
text pattern appears (case-insensitively) anywhere in the invoice text.
Rules with equal priority keep the order they were supplied in.
"""

import logging
import re
from typing import Iterable, List, Optional

from rules.models import ParsingRule

from .trace import ParseTrace


logger = logging.getLogger(__name__)

# Company-name shapes used to propose a fingerprint for a new rule
COMPANY_NAME_PATTERN = re.compile(r'([A-Z][A-Za-z\s&]+(?:Ltd|Limited|Farm|Group|Services))')


def order_rules(rules: Iterable[ParsingRule]) -> List[ParsingRule]:
    """Active rules in evaluation order: priority descending, stable on ties."""
    active = [rule for rule in rules if rule.is_active]
    return sorted(active, key=lambda rule: rule.priority, reverse=True)


def match_rule(text: str, rules: Iterable[ParsingRule],
               trace: Optional[ParseTrace] = None) -> Optional[ParsingRule]:
    """
    Find the rule that applies to an invoice.

    The rule list is sorted on every call; storage order is never trusted.

    Args:
        text: Full invoice text
        rules: Candidate rules, in any order
        trace: Optional trace; each rule tried is recorded as a "rule" entry
            numbered by its position in evaluation order

    Returns:
        The matched rule, or None when no active rule's pattern is present
    """
    lowered = text.lower()
    for index, rule in enumerate(order_rules(rules)):
        matched = rule.text_pattern.lower() in lowered
        if trace is not None:
            trace.record('rule', index, matched)
        if matched:
            logger.debug(f"Matched parsing rule {rule.id!r} "
                         f"(pattern {rule.text_pattern!r}, priority {rule.priority})")
            return rule
    return None


def suggest_text_pattern(text: str) -> Optional[str]:
    """
    Propose a text pattern for a new rule from an invoice's text.

    Picks the first phrase that looks like a company name, e.g. "Bunzl
    Catering Supplies Ltd". Returns None when nothing looks like one.
    """
    match = COMPANY_NAME_PATTERN.search(text)
    if not match:
        return None
    suggestion = re.sub(r'\s+', ' ', match.group(1)).strip()
    return suggestion or None
