"""
Invoice parsing commands for the CLI interface.

This module implements the invoice-related commands:
- parse: Parse a single invoice PDF
- batch: Parse many invoice PDFs concurrently
- text: Show the text extracted from an invoice
"""

import logging
from pathlib import Path
from typing import List, Optional

import click

from cli.context import pass_context
from cli.exceptions import CLIError, ConfigurationError, FileNotFoundError, ProcessingError
from cli.formatters import (
    display_summary,
    format_json,
    print_info,
    print_success,
    print_warning,
    write_json,
)
from invoice_engine import CancellationToken, TextExtractionError, cluster_fragments, find_pdf_files
from rules import RuleStoreError


logger = logging.getLogger(__name__)


def _emit(payload, output: Optional[Path], quiet: bool) -> None:
    if output:
        write_json(payload, output)
        if not quiet:
            print_success(f"Results written to {output}")
    else:
        click.echo(format_json(payload))


@click.command(name='parse')
@click.argument('pdf_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path),
              help='Write the JSON result to a file instead of stdout')
@click.option('--trace', 'include_trace', is_flag=True,
              help='Include the heuristic trace in the output')
@click.option('--no-aggressive', is_flag=True,
              help='Disable the low confidence line item fallback')
@pass_context
def parse(ctx, pdf_path, output, include_trace, no_aggressive):
    """
    Parse a single invoice PDF and print the result as JSON.

    Examples:
        # Parse an invoice using the rules file from INVOICE_PARSER_RULES
        invoice-parser parse invoice.pdf

        # Save the result, including which heuristics fired
        invoice-parser --rules rules.json parse invoice.pdf --trace -o result.json
    """
    processor = ctx.get_processor(enable_aggressive_fallback=not no_aggressive)

    try:
        invoice = processor.process_invoice(pdf_path, ctx.get_rule_store(),
                                            CancellationToken(ctx.timeout))
    except RuleStoreError as e:
        raise ConfigurationError(str(e)) from e
    except TextExtractionError as e:
        logger.error(f"Failed to parse {pdf_path}: {e}")
        raise ProcessingError(str(e)) from e

    _emit(invoice.to_dict(include_trace), output, ctx.quiet)


@click.command(name='batch')
@click.argument('paths', nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option('--workers', '-w', type=click.IntRange(min=1),
              help='Number of worker threads (default: INVOICE_PARSER_WORKERS or 4)')
@click.option('--timeout', '-t', type=click.FloatRange(min=0, min_open=True),
              help='Extraction deadline per file in seconds (default: INVOICE_PARSER_TIMEOUT)')
@click.option('--output', '-o', type=click.Path(dir_okay=False, path_type=Path),
              help='Write the JSON summary to a file instead of stdout')
@click.option('--trace', 'include_trace', is_flag=True,
              help='Include the heuristic trace for each file')
@click.option('--recursive/--no-recursive', default=True,
              help='Search directories recursively for PDFs')
@click.option('--fail-on-error', is_flag=True,
              help='Exit with an error if any file could not be read')
@pass_context
def batch(ctx, paths, workers, timeout, output, include_trace, recursive, fail_on_error):
    """
    Parse many invoices. PATHS may be PDF files or directories of PDFs.

    Each file is processed independently: a file that cannot be read is
    reported as failed without affecting the others.

    Examples:
        # Parse every PDF under a folder with 8 workers
        invoice-parser batch ./invoices --workers 8

        # Fail the run if any invoice is unreadable
        invoice-parser batch a.pdf b.pdf --fail-on-error -o summary.json
    """
    for path in paths:
        if not path.exists():
            raise FileNotFoundError(str(path))

    pdf_files: List[Path] = find_pdf_files(paths, recursive)
    if not pdf_files:
        print_warning("No PDF files found")
        return

    max_workers = workers or ctx.max_workers
    timeout = timeout or ctx.timeout
    processor = ctx.get_processor()

    if not ctx.quiet:
        print_info(f"Parsing {len(pdf_files)} invoice(s) with {max_workers} worker(s)", err=True)

    try:
        rules = ctx.get_rule_store().list_active_rules()
    except RuleStoreError as e:
        raise ConfigurationError(str(e)) from e

    if ctx.quiet:
        result = processor.process_batch(pdf_files, rules, max_workers, timeout)
    else:
        with click.progressbar(length=len(pdf_files), label='Parsing invoices',
                               file=click.get_text_stream('stderr')) as bar:
            result = processor.process_batch(
                pdf_files, rules, max_workers, timeout,
                progress_callback=lambda current, total, name: bar.update(1)
            )

    _emit(result.to_dict(include_trace), output, ctx.quiet)

    if not ctx.quiet:
        display_summary("Batch Summary", {
            'total_files': result.total_files,
            'successful_files': result.successful_files,
            'failed_files': result.failed_files,
            'processing_time': f"{result.total_processing_time:.2f}s",
        }, err=True)

    for failure in result.get_failures():
        print_warning(f"{failure.source_file}: {failure.error_message}")

    if fail_on_error and result.failed_files:
        raise ProcessingError(f"{result.failed_files} of {result.total_files} files failed")


@click.command(name='text')
@click.argument('pdf_path', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option('--lines', 'show_lines', is_flag=True,
              help='Show the clustered lines used for line item extraction')
@click.option('--tolerance', type=float, default=5.0, show_default=True,
              help='Vertical tolerance for grouping text into lines')
@pass_context
def text(ctx, pdf_path, show_lines, tolerance):
    """
    Show the text extracted from an invoice.

    Useful when writing a parsing rule: the rule's text pattern must appear in
    this text.
    """
    processor = ctx.get_processor()

    try:
        extracted = processor.text_extractor.extract_text(
            pdf_path.read_bytes(), CancellationToken(ctx.timeout), str(pdf_path))
    except TextExtractionError as e:
        raise ProcessingError(str(e)) from e
    except OSError as e:
        raise CLIError(f"Cannot read {pdf_path}: {e}") from e

    if show_lines:
        for number, line in enumerate(cluster_fragments(extracted.fragments, tolerance), 1):
            click.echo(f"{number:4d}: {line}")
    else:
        click.echo(extracted.full_text)
