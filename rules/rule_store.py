"""
Rule stores supply the parsing rules the engine matches invoices against.

Stores make no ordering promise: the rule matcher sorts by priority itself on
every call. A store only filters out inactive rules.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Iterable, Union

from .models import ParsingRule, RuleStoreError, RuleValidationError


logger = logging.getLogger(__name__)


class RuleStore(ABC):
    """
    Abstract source of parsing rules.
    """

    @abstractmethod
    def list_rules(self) -> List[ParsingRule]:
        """Return every configured rule, active or not, in any order."""
        pass

    def list_active_rules(self) -> List[ParsingRule]:
        """Return the active rules, in any order."""
        return [rule for rule in self.list_rules() if rule.is_active]


class InMemoryRuleStore(RuleStore):
    """Rule store backed by a list held in memory."""

    def __init__(self, rules: Iterable[ParsingRule] = ()):
        self._rules = list(rules)

    def list_rules(self) -> List[ParsingRule]:
        return list(self._rules)


class JsonRuleStore(RuleStore):
    """
    Rule store backed by a JSON file.

    The file holds either a list of rule records or an object with a "rules"
    list. The file is re-read on every call so edits take effect on the next
    invoice without restarting.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def list_rules(self) -> List[ParsingRule]:
        if not self.path.exists():
            raise RuleStoreError(f"Rules file not found: {self.path}")

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise RuleStoreError(f"Rules file is not valid JSON: {self.path}: {e}")
        except OSError as e:
            raise RuleStoreError(f"Cannot read rules file {self.path}: {e}")

        if isinstance(data, dict):
            data = data.get('rules', [])
        if not isinstance(data, list):
            raise RuleStoreError(f"Rules file must contain a list of rules: {self.path}")

        rules = []
        for index, record in enumerate(data):
            if not isinstance(record, dict):
                raise RuleStoreError(f"Rule #{index + 1} in {self.path} is not an object")
            try:
                rules.append(ParsingRule.from_dict(record))
            except RuleValidationError as e:
                raise RuleStoreError(f"Rule #{index + 1} in {self.path} is invalid: {e}") from e

        logger.debug(f"Loaded {len(rules)} parsing rules from {self.path}")
        return rules
