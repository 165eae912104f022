"""
Data models and validation for invoice parsing rules.

A parsing rule is operator-configured: it associates a text fingerprint that
appears on a supplier's invoices with a default supplier, category and site,
plus instructions for cleaning the delivery site name.
"""

from dataclasses import dataclass, field
import re
from typing import Optional, Any, Dict, Tuple, Union, Iterable


class RuleValidationError(Exception):
    """Raised when parsing rule data fails validation."""
    pass


class RuleStoreError(Exception):
    """Raised when parsing rules cannot be loaded from their store."""
    pass


def _optional_id(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


_TRUE_STRINGS = {'true', 'yes', 'y', 'on', '1'}
_FALSE_STRINGS = {'false', 'no', 'n', 'off', '0'}


def parse_active_flag(value: Any) -> bool:
    """
    Read a stored is_active value.

    A missing or null value means active. Booleans, 0/1 and the usual
    true/false words are accepted; anything else is a validation error.
    """
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise RuleValidationError(f"is_active must be a boolean, got {value!r}")


def parse_replacements(value: Union[str, Iterable[str], None]) -> Tuple[str, ...]:
    """
    Normalise site name replacements.

    Accepts either a list of fragments or the newline separated text the rule
    editor stores; blank entries are dropped and order is preserved.
    """
    if value is None:
        return ()
    if isinstance(value, str):
        value = value.split('\n')
    return tuple(item.strip() for item in value if item and item.strip())


@dataclass(frozen=True)
class ParsingRule:
    """
    Represents a parsing rule as configured by an operator.

    Attributes:
        id: Opaque rule identifier
        text_pattern: Substring (case-insensitive) that activates the rule
        supplier_id: Supplier to associate with matching invoices
        default_category_id: Transaction category to default to
        default_site_id: Site to default to
        site_name_replacements: Fragments stripped from "Deliver To" lines, in order
        priority: Higher priorities are evaluated first
        is_active: Inactive rules never match
        invoice_number_pattern: Optional regex tried before the built-in invoice number patterns
        date_pattern: Optional regex tried before the built-in date patterns
        amount_pattern: Optional regex tried before the built-in total amount patterns
        notes: Free text for operators
    """
    id: str
    text_pattern: str
    supplier_id: Optional[str] = None
    default_category_id: Optional[str] = None
    default_site_id: Optional[str] = None
    site_name_replacements: Tuple[str, ...] = ()
    priority: int = 0
    is_active: bool = True
    invoice_number_pattern: Optional[str] = None
    date_pattern: Optional[str] = None
    amount_pattern: Optional[str] = None
    notes: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        """Validate rule data after initialization."""
        self.validate()

    def validate(self) -> None:
        """
        Validate rule data according to business rules.

        Raises:
            RuleValidationError: If validation fails
        """
        if not self.id or not str(self.id).strip():
            raise RuleValidationError("Rule id cannot be empty")

        if not isinstance(self.text_pattern, str) or not self.text_pattern.strip():
            raise RuleValidationError(f"Rule {self.id}: text pattern cannot be empty")

        if not isinstance(self.priority, int) or isinstance(self.priority, bool):
            raise RuleValidationError(f"Rule {self.id}: priority must be an integer")

        if not isinstance(self.is_active, bool):
            raise RuleValidationError(f"Rule {self.id}: is_active must be a boolean")

        if not isinstance(self.site_name_replacements, tuple):
            raise RuleValidationError(f"Rule {self.id}: site name replacements must be a tuple")

        for name in ('invoice_number_pattern', 'date_pattern', 'amount_pattern'):
            pattern = getattr(self, name)
            if pattern is None:
                continue
            try:
                re.compile(pattern)
            except re.error as e:
                raise RuleValidationError(f"Rule {self.id}: invalid {name}: {e}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ParsingRule':
        """Create a rule from a stored record."""
        try:
            priority = data.get('priority', 0)
            return cls(
                id=str(data['id']),
                text_pattern=data.get('text_pattern', ''),
                supplier_id=_optional_id(data.get('supplier_id')),
                default_category_id=_optional_id(data.get('default_category_id')),
                default_site_id=_optional_id(data.get('default_site_id')),
                site_name_replacements=parse_replacements(data.get('site_name_replacements')),
                priority=int(priority) if priority is not None else 0,
                is_active=parse_active_flag(data.get('is_active')),
                invoice_number_pattern=data.get('invoice_number_pattern') or None,
                date_pattern=data.get('date_pattern') or None,
                amount_pattern=data.get('amount_pattern') or None,
                notes=data.get('notes'),
            )
        except KeyError as e:
            raise RuleValidationError(f"Rule record missing required field: {e}")
        except (TypeError, ValueError) as e:
            raise RuleValidationError(f"Invalid rule record: {e}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert rule to dictionary for serialization."""
        return {
            'id': self.id,
            'text_pattern': self.text_pattern,
            'supplier_id': self.supplier_id,
            'default_category_id': self.default_category_id,
            'default_site_id': self.default_site_id,
            'site_name_replacements': list(self.site_name_replacements),
            'priority': self.priority,
            'is_active': self.is_active,
            'invoice_number_pattern': self.invoice_number_pattern,
            'date_pattern': self.date_pattern,
            'amount_pattern': self.amount_pattern,
            'notes': self.notes,
        }
