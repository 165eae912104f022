"""
CLI Context module for the invoice document parser.

This module provides the shared context and decorators used across CLI commands,
preventing circular imports between cli.main and command modules.
"""

import os
import logging

import click

from invoice_engine import InvoiceProcessor, LineItemExtractor, MetadataExtractor
from invoice_engine.invoice_processor import DEFAULT_MAX_WORKERS
from rules import RuleStore, InMemoryRuleStore, JsonRuleStore
from cli.exceptions import ConfigurationError


RULES_ENV = 'INVOICE_PARSER_RULES'
WORKERS_ENV = 'INVOICE_PARSER_WORKERS'
TIMEOUT_ENV = 'INVOICE_PARSER_TIMEOUT'


class CLIContext:
    """Context object to share state between CLI commands."""

    def __init__(self):
        self.verbose = False
        self.quiet = False
        # Environment variables supply defaults; global options override them
        self.rules_path = os.environ.get(RULES_ENV)
        self.max_workers = _env_number(WORKERS_ENV, int, DEFAULT_MAX_WORKERS)
        self.timeout = _env_number(TIMEOUT_ENV, float, None)

    def get_rule_store(self) -> RuleStore:
        """Rule store for the configured rules file, or an empty store when none is set."""
        if not self.rules_path:
            return InMemoryRuleStore()
        return JsonRuleStore(self.rules_path)

    def get_processor(self, enable_aggressive_fallback: bool = True) -> InvoiceProcessor:
        """Create an invoice processor logging through the invoice_engine logger."""
        logger = logging.getLogger('invoice_engine')
        return InvoiceProcessor(
            metadata_extractor=MetadataExtractor(logger),
            line_item_extractor=LineItemExtractor(
                logger, enable_aggressive_fallback=enable_aggressive_fallback),
            logger=logger,
        )


def _env_number(name: str, convert, default):
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    try:
        number = convert(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    if number <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value!r}")
    return number


# Pass context between commands
pass_context = click.make_pass_decorator(CLIContext, ensure=True)
