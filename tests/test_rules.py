"""
test_rules.py
--------------
Test suite for the rule layer.

Run from the project root:
    python -m pytest tests/test_rules.py -v

Tests are organized by layer:
    - Condition Evaluator
    - Rule Engine (matching, application, validation)
    - Rule Loader
"""

import sys
import os
import copy
import pytest
from datetime import date

# Ensure the project root is on the path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from config.config_loader import reset_config
from core.exceptions import InputValidationError
from core.models import (
    NumericCondition, RuleAction, RuleCondition, TextCondition, Transaction,
    TransactionRule, make_condition,
)
from rules.condition_evaluator import evaluate_condition
from rules.rule_engine import RuleEngine, format_action, format_condition
from rules.rule_loader import load_rules, rules_from_records


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def reset_config_cache():
    """Clears config cache before each test for isolation."""
    reset_config()
    yield
    reset_config()


def _tx(
    merchant: str = "Amazon Marketplace",
    amount: float = 75.0,
    category: str = "Uncategorized",
    **overrides,
) -> Transaction:
    fields = dict(
        id="tx-1",
        date=date(2025, 10, 1),
        amount=amount,
        merchant=merchant,
        category=category,
        account="Amex Gold",
        type="debit",
        status="posted",
    )
    fields.update(overrides)
    return Transaction(**fields)


def _rule(
    conditions=None,
    actions=None,
    logic: str = "and",
    enabled: bool = True,
    rule_id: str = "rule-1",
    name: str = "Test rule",
) -> TransactionRule:
    return TransactionRule(
        id=rule_id,
        name=name,
        enabled=enabled,
        logic=logic,
        conditions=list(conditions) if conditions is not None else [
            make_condition("merchant", "contains", "amazon"),
        ],
        actions=list(actions) if actions is not None else [
            RuleAction(type="setCategory", value="Shopping"),
        ],
    )


def _amazon_rule() -> TransactionRule:
    return _rule(
        conditions=[
            make_condition("merchant", "contains", "amazon"),
            make_condition("amount", "greaterThan", 50),
        ],
        actions=[RuleAction(type="setCategory", value="Shopping")],
    )


# =============================================================================
# CONDITION EVALUATOR TESTS
# =============================================================================

class TestConditionEvaluator:
    def test_make_condition_picks_variant(self):
        assert isinstance(make_condition("merchant", "contains", "x"), TextCondition)
        assert isinstance(make_condition("amount", "greaterThan", 5), NumericCondition)
        assert isinstance(make_condition("amount", "greaterThan", 5.5), NumericCondition)
        assert type(make_condition("amount", "equals", None)) is RuleCondition

    @pytest.mark.parametrize("operator, value, expected", [
        ("equals", "Amazon Marketplace", True),
        ("equals", "amazon marketplace", False),    # equality is case-sensitive
        ("notEquals", "Netflix", True),
        ("notEquals", "Amazon Marketplace", False),
        ("contains", "MARKET", True),
        ("contains", "netflix", False),
        ("notContains", "netflix", True),
        ("notContains", "amazon", False),
    ])
    def test_text_operators(self, operator, value, expected):
        condition = make_condition("merchant", operator, value)
        assert evaluate_condition(_tx(), condition) is expected

    @pytest.mark.parametrize("operator, value, expected", [
        ("greaterThan", 50, True),
        ("greaterThan", 75, False),
        ("lessThan", 100, True),
        ("greaterThanOrEqual", 75, True),
        ("lessThanOrEqual", 74.99, False),
        ("equals", 75, True),
        ("notEquals", 75.0, False),
    ])
    def test_numeric_operators(self, operator, value, expected):
        condition = make_condition("amount", operator, value)
        assert evaluate_condition(_tx(amount=75.0), condition) is expected

    def test_contains_on_numeric_field_is_false(self):
        assert evaluate_condition(_tx(), make_condition("amount", "contains", "75")) is False
        assert evaluate_condition(_tx(), make_condition("amount", "notContains", "75")) is False

    def test_ordering_on_text_field_is_false(self):
        assert evaluate_condition(_tx(), make_condition("merchant", "greaterThan", 5)) is False
        assert evaluate_condition(_tx(), make_condition("amount", "greaterThan", "50")) is False

    def test_equals_does_not_coerce(self):
        assert evaluate_condition(_tx(amount=15.99), make_condition("amount", "equals", "15.99")) is False
        assert evaluate_condition(_tx(amount=15.99), make_condition("amount", "notEquals", "15.99")) is True

    def test_bool_is_not_a_number(self):
        condition = RuleCondition(field="amount", operator="greaterThan", value=True)
        assert evaluate_condition(_tx(), condition) is False

    def test_unknown_operator_and_field_are_false(self):
        assert evaluate_condition(_tx(), RuleCondition("merchant", "startsWith", "Ama")) is False
        assert evaluate_condition(_tx(), RuleCondition("payee", "equals", "Amazon")) is False
        assert evaluate_condition(_tx(), RuleCondition("", "equals", "Amazon")) is False

    @pytest.mark.parametrize("field, value", [
        ("id", "tx-1"),
        ("notes", None),
        ("tags", ()),
        ("__class__", Transaction),
    ])
    def test_non_condition_attributes_are_not_readable(self, field, value):
        assert evaluate_condition(_tx(), RuleCondition(field, "equals", value)) is False

    def test_malformed_field_or_operator_is_false(self):
        assert evaluate_condition(_tx(), RuleCondition(field=1, operator="equals", value="x")) is False
        assert evaluate_condition(_tx(), RuleCondition(field=None, operator="equals", value="x")) is False
        assert evaluate_condition(_tx(), make_condition("merchant", ["contains"], "amazon")) is False
        assert evaluate_condition(_tx(), make_condition("amount", {"op": "gt"}, 5)) is False

    def test_malformed_conditions_do_not_break_matching(self):
        rule = _rule(
            logic="or",
            conditions=[
                RuleCondition(field=1, operator="equals", value="x"),
                make_condition("merchant", ["contains"], "amazon"),
                make_condition("merchant", "contains", "amazon"),
            ],
        )
        engine = RuleEngine()
        assert engine.matches(_tx(), rule) is True
        assert engine.apply_rules(_tx(), [rule]).category == "Shopping"
        assert [r.id for r in engine.find_matching(_tx(), [rule])] == ["rule-1"]
        assert engine.validate(rule).is_valid is False


# =============================================================================
# RULE ENGINE TESTS: MATCHING & APPLICATION
# =============================================================================

class TestRuleEngine:
    def test_amazon_rule_scenario(self):
        engine = RuleEngine()
        rule = _amazon_rule()

        big = engine.apply_rule(_tx("Amazon Marketplace", 75.0), rule)
        assert big.category == "Shopping"

        small = engine.apply_rule(_tx("Amazon Marketplace", 20.0), rule)
        assert small.category == "Uncategorized"

    def test_non_matching_returns_same_object(self):
        tx = _tx(amount=20.0)
        assert RuleEngine().apply_rule(tx, _amazon_rule()) is tx

    def test_input_transaction_not_modified(self):
        tx = _tx()
        RuleEngine().apply_rule(tx, _amazon_rule())
        assert tx.category == "Uncategorized"

    def test_disabled_and_empty_rules_never_match(self):
        engine = RuleEngine()
        assert engine.matches(_tx(), _rule(enabled=False)) is False
        assert engine.matches(_tx(), _rule(conditions=[])) is False

    def test_and_vs_or_logic(self):
        conditions = [
            make_condition("merchant", "contains", "amazon"),
            make_condition("category", "equals", "Groceries"),
        ]
        engine = RuleEngine()
        assert engine.matches(_tx(), _rule(conditions=conditions, logic="and")) is False
        assert engine.matches(_tx(), _rule(conditions=conditions, logic="or")) is True

    def test_rules_are_order_sensitive(self):
        r1 = _rule(rule_id="r1", actions=[RuleAction("setCategory", "A")])
        r2 = _rule(rule_id="r2", actions=[RuleAction("setCategory", "B")])
        engine = RuleEngine()
        assert engine.apply_rules(_tx(), [r1, r2]).category == "B"
        assert engine.apply_rules(_tx(), [r2, r1]).category == "A"

    def test_later_rules_see_earlier_effects(self):
        r1 = _rule(rule_id="r1", actions=[RuleAction("setCategory", "Shopping")])
        r2 = _rule(
            rule_id="r2",
            conditions=[make_condition("category", "equals", "Shopping")],
            actions=[RuleAction("addTag", "retail")],
        )
        result = RuleEngine().apply_rules(_tx(), [r1, r2])
        assert result.tags == ("retail",)
        # Reversed, r2 does not match yet
        assert RuleEngine().apply_rules(_tx(), [r2, r1]).tags == ()

    def test_disabled_rules_skipped(self):
        r1 = _rule(rule_id="r1", actions=[RuleAction("setCategory", "A")])
        r2 = _rule(rule_id="r2", enabled=False, actions=[RuleAction("setCategory", "B")])
        assert RuleEngine().apply_rules(_tx(), [r1, r2]).category == "A"

    def test_add_tag_is_idempotent(self):
        rule = _rule(actions=[RuleAction("addTag", "online")])
        engine = RuleEngine()
        once = engine.apply_rule(_tx(), rule)
        twice = engine.apply_rule(once, rule)
        assert once.tags == ("online",)
        assert twice.tags == ("online",)

    def test_add_tag_keeps_existing_tags(self):
        rule = _rule(actions=[RuleAction("addTag", "online"), RuleAction("addTag", "online")])
        result = RuleEngine().apply_rule(_tx(tags=("gift",)), rule)
        assert result.tags == ("gift", "online")

    def test_all_action_types(self):
        rule = _rule(actions=[
            RuleAction("setCategory", "Shopping"),
            RuleAction("setStatus", "to_review"),
            RuleAction("assignGoal", "goal-emergency"),
            RuleAction("markRecurring", "recurring-42"),
        ])
        result = RuleEngine().apply_rule(_tx(), rule)
        assert result.category == "Shopping"
        assert result.status == "to_review"
        assert result.goal_id == "goal-emergency"
        assert result.is_recurring is True
        assert result.recurring_id == "recurring-42"

    def test_unknown_action_type_ignored(self):
        rule = _rule(actions=[RuleAction("deleteTransaction", "x"), RuleAction("setCategory", "A")])
        assert RuleEngine().apply_rule(_tx(), rule).category == "A"

    def test_apply_to_many_is_independent(self):
        txns = [_tx(amount=75.0, id="a"), _tx(amount=20.0, id="b"), _tx("Netflix", 80.0, id="c")]
        results = RuleEngine().apply_to_many(txns, [_amazon_rule()])
        assert [t.category for t in results] == ["Shopping", "Uncategorized", "Uncategorized"]
        assert results[1] is txns[1]

    def test_find_matching_preserves_order(self):
        r1 = _rule(rule_id="r1")
        r2 = _rule(rule_id="r2", conditions=[make_condition("merchant", "contains", "netflix")])
        r3 = _amazon_rule()
        r3.id = "r3"
        matching = RuleEngine().find_matching(_tx(), [r3, r2, r1])
        assert [r.id for r in matching] == ["r3", "r1"]


# =============================================================================
# RULE ENGINE TESTS: VALIDATION
# =============================================================================

class TestRuleValidation:
    def test_valid_rule(self):
        result = RuleEngine().validate(_amazon_rule())
        assert result.is_valid is True
        assert result.errors == []

    def test_zero_conditions(self):
        result = RuleEngine().validate(_rule(conditions=[]))
        assert result.is_valid is False
        assert any("condition" in e.lower() for e in result.errors)

    def test_zero_actions(self):
        result = RuleEngine().validate(_rule(actions=[]))
        assert result.is_valid is False
        assert "At least one action is required" in result.errors

    def test_blank_name(self):
        result = RuleEngine().validate(_rule(name="   "))
        assert "Rule name is required" in result.errors

    def test_condition_missing_parts(self):
        rule = _rule(conditions=[RuleCondition(field="", operator="", value="")])
        errors = RuleEngine().validate(rule).errors
        assert "Condition 1: Field is required" in errors
        assert "Condition 1: Operator is required" in errors
        assert "Condition 1: Value is required" in errors

    def test_zero_is_a_valid_value(self):
        rule = _rule(conditions=[make_condition("amount", "greaterThan", 0)])
        assert RuleEngine().validate(rule).is_valid is True

    def test_action_blank_value_and_missing_type(self):
        rule = _rule(actions=[RuleAction("setCategory", "  "), RuleAction("", "x")])
        errors = RuleEngine().validate(rule).errors
        assert "Action 1: Value is required" in errors
        assert "Action 2: Type is required" in errors

    def test_type_mismatches_reported(self):
        rule = _rule(conditions=[
            make_condition("amount", "contains", "75"),
            make_condition("merchant", "greaterThan", 5),
        ])
        errors = RuleEngine().validate(rule).errors
        assert "Condition 1: Field 'amount' does not take a text value" in errors
        assert "Condition 2: Field 'merchant' does not take a numeric value" in errors
        assert "Condition 2: Operator 'greaterThan' cannot be used with a numeric value" not in errors

    def test_operator_not_allowed_for_variant(self):
        rule = _rule(conditions=[make_condition("merchant", "lessThan", "z")])
        errors = RuleEngine().validate(rule).errors
        assert errors == ["Condition 1: Operator 'lessThan' cannot be used with a text value"]

    def test_unknown_names_reported(self):
        rule = _rule(
            logic="xor",
            conditions=[make_condition("payee", "startsWith", "A")],
            actions=[RuleAction("deleteTransaction", "x")],
        )
        errors = RuleEngine().validate(rule).errors
        assert "Unknown logic 'xor' (expected 'and' or 'or')" in errors
        assert "Condition 1: Unknown field 'payee'" in errors
        assert "Condition 1: Unknown operator 'startsWith'" in errors
        assert "Action 1: Unknown action type 'deleteTransaction'" in errors

    def test_non_scalar_value_reported(self):
        rule = _rule(conditions=[RuleCondition("amount", "equals", True)])
        errors = RuleEngine().validate(rule).errors
        assert errors == ["Condition 1: Value must be text or a number"]

    def test_validate_does_not_mutate(self):
        rule = _rule(name="", conditions=[], actions=[])
        before = copy.deepcopy(rule)
        RuleEngine().validate(rule)
        assert rule == before

    def test_formatting(self):
        assert format_condition(make_condition("amount", "greaterThan", 50)) == 'amount is greater than "50"'
        assert format_condition(make_condition("merchant", "notContains", "uber")) == 'merchant does not contain "uber"'
        assert format_action(RuleAction("setCategory", "Shopping")) == 'Set category to "Shopping"'
        assert format_action(RuleAction("markRecurring", "r-1")) == 'Mark as recurring "r-1"'


# =============================================================================
# RULE LOADER TESTS
# =============================================================================

class TestRuleLoader:
    def test_records_to_rules(self):
        rules = rules_from_records([{
            "id": "r-amazon",
            "name": "Amazon",
            "logic": "AND",
            "conditions": [
                {"field": "merchant", "operator": "contains", "value": "amazon"},
                {"field": "amount", "operator": "greaterThan", "value": 50},
            ],
            "actions": [{"type": "setCategory", "value": "Shopping"}],
            "createdAt": "2025-01-01",
        }])
        rule = rules[0]
        assert rule.logic == "and"
        assert isinstance(rule.conditions[0], TextCondition)
        assert isinstance(rule.conditions[1], NumericCondition)
        assert rule.created_at == "2025-01-01"
        assert RuleEngine().apply_rule(_tx(), rule).category == "Shopping"

    def test_malformed_records_raise(self):
        with pytest.raises(InputValidationError):
            rules_from_records([{"name": "x", "conditions": "merchant contains amazon"}])
        with pytest.raises(InputValidationError):
            rules_from_records(["not a rule"])
        with pytest.raises(InputValidationError):
            rules_from_records({"rules": []})

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text(
            "- id: r1\n"
            "  name: Streaming\n"
            "  logic: or\n"
            "  conditions:\n"
            "    - {field: merchant, operator: contains, value: netflix}\n"
            "  actions:\n"
            "    - {type: addTag, value: streaming}\n"
        )
        rules = load_rules(str(path))
        assert [r.id for r in rules] == ["r1"]
        assert rules[0].logic == "or"
        assert RuleEngine().validate(rules[0]).is_valid

    def test_bad_yaml_raises(self, tmp_path):
        path = tmp_path / "rules.yaml"
        path.write_text("rules: [unclosed\n")
        with pytest.raises(InputValidationError):
            load_rules(str(path))

    def test_bundled_rules_are_valid(self):
        path = os.path.join(os.path.dirname(__file__), "..", "config", "rules.yaml")
        rules = load_rules(path)
        assert len(rules) == 3
        engine = RuleEngine()
        assert all(engine.validate(r).is_valid for r in rules)
        assert [r.enabled for r in rules] == [True, True, False]
