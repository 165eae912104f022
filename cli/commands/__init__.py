"""
CLI command modules for the invoice document parser.

- parse_commands: Invoice parsing (parse, batch, text)
- rule_commands: Parsing rule inspection
"""

from . import parse_commands, rule_commands

__all__ = [
    'parse_commands',
    'rule_commands',
]
