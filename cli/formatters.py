"""
Output formatting utilities for the CLI interface.

This module provides functions for setting up logging and displaying parse
results as JSON, tables and summaries.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import click
from tabulate import tabulate


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """
    Setup logging configuration for the CLI application.

    Args:
        verbose: Enable verbose (DEBUG) logging
        quiet: Suppress non-essential output (WARNING+ only)
    """
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    # Configure root logger
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    logging.getLogger('invoice_engine').setLevel(level)

    # pdfminer is very chatty at DEBUG level
    if not verbose:
        logging.getLogger('pdfminer').setLevel(logging.WARNING)
        logging.getLogger('pdfplumber').setLevel(logging.WARNING)


def format_currency(amount: Optional[Union[Decimal, float]]) -> str:
    """Format a numeric amount as pounds sterling, or N/A when missing."""
    if amount is None:
        return "N/A"
    return f"£{float(amount):,.2f}"


def format_json(data: Any, indent: int = 2) -> str:
    """
    Format data as JSON string.

    Args:
        data: Data to format as JSON
        indent: JSON indentation level

    Returns:
        Formatted JSON string
    """
    def json_serializer(obj):
        """Custom JSON serializer for special types."""
        if isinstance(obj, Decimal):
            return str(obj)
        elif isinstance(obj, datetime):
            return obj.isoformat()
        elif hasattr(obj, 'to_dict'):
            return obj.to_dict()
        raise TypeError(f"Object of type {type(obj)} is not JSON serializable")

    return json.dumps(data, indent=indent, default=json_serializer, ensure_ascii=False)


def write_json(data: Any, output_file: Union[str, Path]) -> None:
    """Write data as JSON to a file, creating parent directories as needed."""
    output_file = Path(output_file)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(format_json(data) + "\n", encoding='utf-8')


def format_table(data: List[Dict[str, Any]], headers: Optional[List[str]] = None,
                 tablefmt: str = "simple") -> str:
    """
    Format rows as a table using tabulate.

    Args:
        data: List of dictionaries containing row data
        headers: Optional list of column headers
        tablefmt: Table format style

    Returns:
        Formatted table string
    """
    if not data:
        return "No data to display."

    if headers is None:
        headers = list(data[0].keys())

    rows = []
    for row in data:
        formatted_row = []
        for header in headers:
            value = row.get(header)
            if isinstance(value, Decimal):
                formatted_row.append(format_currency(value))
            elif isinstance(value, bool):
                formatted_row.append("Yes" if value else "No")
            else:
                formatted_row.append(str(value) if value is not None else "")
        rows.append(formatted_row)

    return tabulate(rows, headers=headers, tablefmt=tablefmt)


def print_success(message: str) -> None:
    """Print a success message with green checkmark."""
    click.echo(click.style(f"✓ {message}", fg='green'))


def print_warning(message: str) -> None:
    """Print a warning message with yellow warning symbol."""
    click.echo(click.style(f"⚠ Warning: {message}", fg='yellow'), err=True)


def print_error(message: str) -> None:
    """Print an error message with red X symbol."""
    click.echo(click.style(f"✗ Error: {message}", fg='red'), err=True)


def print_info(message: str, err: bool = False) -> None:
    """Print an info message with blue info symbol."""
    click.echo(click.style(f"ℹ {message}", fg='blue'), err=err)


def display_summary(title: str, stats: Dict[str, Any], err: bool = False) -> None:
    """
    Display a formatted summary with title and statistics.

    Args:
        title: Summary title
        stats: Dictionary of statistics to display
        err: Write to stderr, keeping stdout free for machine-readable output
    """
    click.echo(f"\n{title}", err=err)
    click.echo("=" * len(title), err=err)

    for key, value in stats.items():
        formatted_key = key.replace('_', ' ').title()
        if isinstance(value, Decimal):
            formatted_value = format_currency(value)
        elif value is None:
            formatted_value = "N/A"
        else:
            formatted_value = str(value)
        click.echo(f"  {formatted_key}: {formatted_value}", err=err)
