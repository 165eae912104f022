"""
Parsing rule configuration for the invoice parsing engine.

This package provides the parsing rule model and the stores rules are loaded
from.
"""

from .models import (
    ParsingRule,
    RuleValidationError,
    RuleStoreError,
    parse_active_flag,
    parse_replacements,
)
from .rule_store import RuleStore, InMemoryRuleStore, JsonRuleStore

__all__ = [
    'ParsingRule',
    'RuleValidationError',
    'RuleStoreError',
    'parse_active_flag',
    'parse_replacements',
    'RuleStore',
    'InMemoryRuleStore',
    'JsonRuleStore',
]
