"""
Unit tests for parsing rules, rule stores and rule matching.
"""

import json

import pytest

from invoice_engine.rule_matcher import match_rule, order_rules, suggest_text_pattern
from invoice_engine.trace import ParseTrace
from rules import (
    InMemoryRuleStore,
    JsonRuleStore,
    ParsingRule,
    RuleStoreError,
    RuleValidationError,
    parse_active_flag,
    parse_replacements,
)


class TestParsingRule:
    """Test cases for the ParsingRule model."""

    def test_valid_rule(self):
        rule = ParsingRule(id="r1", text_pattern="Eden Farm", priority=3)
        assert rule.is_active
        assert rule.site_name_replacements == ()

    def test_empty_text_pattern_rejected(self):
        with pytest.raises(RuleValidationError):
            ParsingRule(id="r1", text_pattern="  ")

    def test_empty_id_rejected(self):
        with pytest.raises(RuleValidationError):
            ParsingRule(id="", text_pattern="Eden")

    def test_priority_must_be_integer(self):
        with pytest.raises(RuleValidationError):
            ParsingRule(id="r1", text_pattern="Eden", priority="high")
        with pytest.raises(RuleValidationError):
            ParsingRule(id="r1", text_pattern="Eden", priority=True)

    def test_invalid_override_pattern_rejected(self):
        with pytest.raises(RuleValidationError) as exc_info:
            ParsingRule(id="r1", text_pattern="Eden", date_pattern="Date (")
        assert "date_pattern" in str(exc_info.value)

    def test_from_dict(self):
        rule = ParsingRule.from_dict({
            'id': 7,
            'text_pattern': 'Bunzl',
            'supplier_id': ' sup-1 ',
            'default_category_id': '',
            'site_name_replacements': 'Unit 4\n\nRollwave',
            'priority': '5',
        })

        assert rule.id == "7"
        assert rule.supplier_id == "sup-1"
        assert rule.default_category_id is None
        assert rule.site_name_replacements == ("Unit 4", "Rollwave")
        assert rule.priority == 5

    def test_from_dict_missing_id(self):
        with pytest.raises(RuleValidationError):
            ParsingRule.from_dict({'text_pattern': 'Bunzl'})

    def test_from_dict_bad_priority(self):
        with pytest.raises(RuleValidationError):
            ParsingRule.from_dict({'id': 'r1', 'text_pattern': 'Bunzl', 'priority': 'high'})

    def test_to_dict_round_trip(self):
        rule = ParsingRule(id="r1", text_pattern="Eden", site_name_replacements=("A", "B"),
                           priority=2, amount_pattern=r'Due\s+([\d.]+)', notes="weekly")
        assert ParsingRule.from_dict(rule.to_dict()) == rule

    def test_parse_replacements(self):
        assert parse_replacements(None) == ()
        assert parse_replacements(["  a ", "", "b"]) == ("a", "b")

    def test_from_dict_active_flag_strings(self):
        base = {'id': 'r1', 'text_pattern': 'Bunzl'}

        assert ParsingRule.from_dict(dict(base, is_active="false")).is_active is False
        assert ParsingRule.from_dict(dict(base, is_active="No")).is_active is False
        assert ParsingRule.from_dict(dict(base, is_active="true")).is_active is True
        assert ParsingRule.from_dict(dict(base, is_active=0)).is_active is False

    def test_from_dict_null_active_flag_means_active(self):
        rule = ParsingRule.from_dict({'id': 'r1', 'text_pattern': 'Bunzl', 'is_active': None})
        assert rule.is_active is True

    def test_from_dict_unrecognised_active_flag(self):
        with pytest.raises(RuleValidationError):
            ParsingRule.from_dict({'id': 'r1', 'text_pattern': 'Bunzl', 'is_active': "maybe"})

    def test_parse_active_flag(self):
        assert parse_active_flag(True) is True
        assert parse_active_flag(" OFF ") is False
        with pytest.raises(RuleValidationError):
            parse_active_flag(2)


class TestRuleMatcher:
    """Test cases for rule matching."""

    def setup_method(self):
        """Set up test fixtures."""
        self.text = "Eden Farm Hulleys Ltd\nInvoice No. 123456"
        self.low = ParsingRule(id="low", text_pattern="eden farm", priority=1)
        self.high = ParsingRule(id="high", text_pattern="HULLEYS", priority=5)

    def test_highest_priority_wins(self):
        assert match_rule(self.text, [self.low, self.high]).id == "high"

    def test_priority_independent_of_input_order(self):
        assert match_rule(self.text, [self.high, self.low]).id == \
            match_rule(self.text, [self.low, self.high]).id

    def test_equal_priority_keeps_supplied_order(self):
        first = ParsingRule(id="first", text_pattern="Eden", priority=2)
        second = ParsingRule(id="second", text_pattern="Farm", priority=2)

        assert match_rule(self.text, [first, second]).id == "first"
        assert match_rule(self.text, [second, first]).id == "second"

    def test_inactive_rules_skipped(self):
        inactive = ParsingRule(id="off", text_pattern="Eden", priority=100, is_active=False)
        assert match_rule(self.text, [inactive, self.low]).id == "low"

    def test_match_is_case_insensitive(self):
        rule = ParsingRule(id="r1", text_pattern="EDEN farm")
        assert match_rule("invoice from Eden Farm Hulleys", [rule]) is rule

    def test_trace_records_rules_tried(self):
        trace = ParseTrace()
        other = ParsingRule(id="other", text_pattern="Bunzl", priority=9)

        assert match_rule(self.text, [self.low, other], trace).id == "low"
        assert [(entry.pattern_index, entry.matched) for entry in trace.for_field('rule')] == \
            [(0, False), (1, True)]

    def test_no_match(self):
        assert match_rule(self.text, [ParsingRule(id="x", text_pattern="Bunzl")]) is None
        assert match_rule(self.text, []) is None

    def test_order_rules(self):
        inactive = ParsingRule(id="off", text_pattern="x", is_active=False)
        assert [rule.id for rule in order_rules([self.low, inactive, self.high])] == ["high", "low"]

    def test_suggest_text_pattern(self):
        text = "Bunzl Catering Supplies Ltd\nInvoice: 12345"
        assert suggest_text_pattern(text) == "Bunzl Catering Supplies Ltd"
        assert suggest_text_pattern("invoice 12345") is None


class TestRuleStores:
    """Test cases for rule stores."""

    def test_in_memory_store(self):
        store = InMemoryRuleStore([
            ParsingRule(id="a", text_pattern="A"),
            ParsingRule(id="b", text_pattern="B", is_active=False),
        ])

        assert [rule.id for rule in store.list_rules()] == ["a", "b"]
        assert [rule.id for rule in store.list_active_rules()] == ["a"]

    def test_json_store_list(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps([
            {'id': 'a', 'text_pattern': 'Eden', 'priority': 1},
            {'id': 'b', 'text_pattern': 'Bunzl', 'is_active': False},
        ]))

        store = JsonRuleStore(path)

        assert [rule.id for rule in store.list_rules()] == ["a", "b"]
        assert [rule.id for rule in store.list_active_rules()] == ["a"]

    def test_json_store_object_form(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps({'rules': [{'id': 'a', 'text_pattern': 'Eden'}]}))
        assert len(JsonRuleStore(path).list_rules()) == 1

    def test_json_store_rereads_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text("[]")
        store = JsonRuleStore(path)
        assert store.list_rules() == []

        path.write_text(json.dumps([{'id': 'a', 'text_pattern': 'Eden'}]))
        assert len(store.list_rules()) == 1

    def test_json_store_missing_file(self, tmp_path):
        with pytest.raises(RuleStoreError):
            JsonRuleStore(tmp_path / "missing.json").list_rules()

    def test_json_store_invalid_json(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text("{not json")
        with pytest.raises(RuleStoreError):
            JsonRuleStore(path).list_rules()

    def test_json_store_invalid_record(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text(json.dumps([{'id': 'a', 'text_pattern': ''}]))
        with pytest.raises(RuleStoreError) as exc_info:
            JsonRuleStore(path).list_rules()
        assert "Rule #1" in str(exc_info.value)
