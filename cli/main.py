"""
Main CLI entry point for the invoice document parser.

This module provides the main command-line interface with its command groups
and global options.
"""

import sys
import logging

import click

from cli.context import CLIContext, pass_context
from cli.version import get_version, get_version_info
from cli.commands import parse_commands, rule_commands
from cli.exceptions import CLIError
from cli.formatters import setup_logging


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Suppress non-essential output')
@click.option('--rules', 'rules_path', type=click.Path(dir_okay=False),
              help='Parsing rules JSON file (default: INVOICE_PARSER_RULES)')
@click.version_option(version=get_version(), prog_name="invoice-parser")
@click.pass_context
def cli(ctx, verbose, quiet, rules_path):
    """
    Invoice Document Parser - CLI Tool

    Extracts invoice numbers, dates, totals, delivery sites and line items
    from supplier invoice PDFs.

    Examples:
        # Parse one invoice
        invoice-parser parse invoice.pdf

        # Parse a folder of invoices with a rules file
        invoice-parser --rules rules.json batch ./invoices

        # See which rule an invoice matches
        invoice-parser --rules rules.json rules test invoice.pdf
    """
    cli_ctx = CLIContext()
    cli_ctx.verbose = verbose
    cli_ctx.quiet = quiet
    if rules_path:
        cli_ctx.rules_path = rules_path
    ctx.obj = cli_ctx

    setup_logging(verbose, quiet)


@cli.command()
@click.option('--detailed', is_flag=True, help='Show library and git details')
@pass_context
def version(ctx, detailed):
    """
    Display version information.

    Examples:
        invoice-parser version --detailed
    """
    if not detailed:
        click.echo(f"Invoice Document Parser v{get_version()}")
        return

    info = get_version_info()
    click.echo(f"Invoice Document Parser v{info['version']}")
    click.echo("=" * 40)
    for key, value in info.items():
        label = key.replace('_', ' ').title()
        click.echo(f"{label:20}: {value if value is not None else 'N/A'}")


# Register commands
cli.add_command(parse_commands.parse)
cli.add_command(parse_commands.batch)
cli.add_command(parse_commands.text)
cli.add_command(rule_commands.rules_group)


def main():
    """Main entry point for the CLI application."""
    try:
        cli(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.exceptions.Abort:
        click.echo("\nOperation cancelled by user.", err=True)
        sys.exit(1)
    except CLIError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user.", err=True)
        sys.exit(1)
    except Exception as e:
        logger = logging.getLogger(__name__)
        logger.exception("Unexpected error occurred")
        click.echo(f"Unexpected error: {e}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
