"""
CLI package for the invoice document parser.

This package provides the command-line interface for parsing invoice PDFs,
batch processing folders of invoices, and inspecting parsing rules.
"""

from .version import __version__
