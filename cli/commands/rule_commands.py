"""
Parsing rule commands for the CLI interface.

This module implements rule inspection commands:
- list: Show the active rules in the order they are evaluated
- test: Show which rule matches an invoice
"""

import logging
from pathlib import Path

import click

from cli.context import pass_context
from cli.exceptions import ConfigurationError, ProcessingError
from cli.formatters import format_table, print_info, print_success, print_warning
from invoice_engine import CancellationToken, TextExtractionError, match_rule, suggest_text_pattern
from invoice_engine.rule_matcher import order_rules
from rules import RuleStoreError


logger = logging.getLogger(__name__)


@click.group(name='rules')
def rules_group():
    """Parsing rule commands."""
    pass


def _load_rules(ctx):
    if not ctx.rules_path:
        raise ConfigurationError("No rules file configured. Use --rules or set INVOICE_PARSER_RULES")
    try:
        return ctx.get_rule_store().list_rules()
    except RuleStoreError as e:
        raise ConfigurationError(str(e)) from e


@rules_group.command(name='list')
@click.option('--all', 'show_all', is_flag=True, help='Include inactive rules')
@pass_context
def list_rules(ctx, show_all):
    """
    List parsing rules in evaluation order (highest priority first).

    Examples:
        invoice-parser --rules rules.json rules list
    """
    rules = _load_rules(ctx)
    ordered = order_rules(rules)
    if show_all:
        ordered += [rule for rule in rules if not rule.is_active]

    if not ordered:
        print_info("No parsing rules configured")
        return

    rows = [
        {
            'id': rule.id,
            'text_pattern': rule.text_pattern,
            'priority': rule.priority,
            'active': rule.is_active,
            'supplier_id': rule.supplier_id,
            'category_id': rule.default_category_id,
            'site_id': rule.default_site_id,
        }
        for rule in ordered
    ]
    click.echo(format_table(rows))


@rules_group.command(name='test')
@click.argument('pdf_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@pass_context
def test_rule(ctx, pdf_path):
    """
    Show which parsing rule matches an invoice.

    When no rule matches, a text pattern for a new rule is suggested from
    the invoice's company name.
    """
    rules = _load_rules(ctx)
    processor = ctx.get_processor()

    try:
        extracted = processor.text_extractor.extract_text(
            pdf_path.read_bytes(), CancellationToken(ctx.timeout), str(pdf_path))
    except TextExtractionError as e:
        raise ProcessingError(str(e)) from e

    rule = match_rule(extracted.full_text, rules)
    if rule:
        print_success(f"Matched rule {rule.id} (pattern '{rule.text_pattern}', "
                      f"priority {rule.priority})")
        return

    print_warning("No parsing rule matches this invoice")
    suggestion = suggest_text_pattern(extracted.full_text)
    if suggestion:
        print_info(f"Suggested text pattern: {suggestion}")
