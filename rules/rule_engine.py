"""
rule_engine.py
---------------
Applies user-defined TransactionRules to transactions.

A rule matches when its conditions hold under its logic ("and": all of them,
"or": at least one). A matching rule's actions are folded left-to-right over
a copy of the transaction. Rules are applied in the order given and are not
commutative: a later setCategory wins over an earlier one.

Rule definitions are checked with validate(), which collects problems as
strings and never raises. Callers must check ValidationResult.is_valid
before storing or using a rule.

Usage:
    engine = RuleEngine()
    categorized = engine.apply_to_many(transactions, rules)
"""

from dataclasses import replace
from typing import Iterable, List

from core.models import (
    ACTION_TYPES,
    RULE_LOGICS,
    RuleAction,
    RuleCondition,
    Transaction,
    TransactionRule,
    ValidationResult,
    is_number,
)
from rules.condition_evaluator import evaluate_condition


OPERATOR_LABELS = {
    "equals": "equals",
    "notEquals": "does not equal",
    "contains": "contains",
    "notContains": "does not contain",
    "greaterThan": "is greater than",
    "lessThan": "is less than",
    "greaterThanOrEqual": "is greater than or equal to",
    "lessThanOrEqual": "is less than or equal to",
}

ACTION_LABELS = {
    "setCategory": "Set category to",
    "addTag": "Add tag",
    "setStatus": "Set status to",
    "assignGoal": "Assign to goal",
    "markRecurring": "Mark as recurring",
}


def _format_value(value) -> str:
    if is_number(value) and float(value).is_integer():
        return str(int(value))
    return str(value)


def format_condition(condition: RuleCondition) -> str:
    """e.g. 'amount is greater than "50"'."""
    label = OPERATOR_LABELS.get(condition.operator, condition.operator)
    return f'{condition.field} {label} "{_format_value(condition.value)}"'


def format_action(action: RuleAction) -> str:
    """e.g. 'Set category to "Shopping"'."""
    label = ACTION_LABELS.get(action.type, action.type)
    return f'{label} "{action.value}"'


class RuleEngine:
    """
    Stateless rule evaluator. All methods return new values; neither
    transactions nor rules are modified.
    """

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE: MATCHING
    # -------------------------------------------------------------------------

    def matches(self, transaction: Transaction, rule: TransactionRule) -> bool:
        """False for disabled rules and rules without conditions."""
        if not rule.enabled or not rule.conditions:
            return False

        results = (evaluate_condition(transaction, c) for c in rule.conditions)
        if rule.logic == "and":
            return all(results)
        return any(results)

    def find_matching(
        self, transaction: Transaction, rules: Iterable[TransactionRule]
    ) -> List[TransactionRule]:
        """Rules that match the transaction, in input order."""
        return [rule for rule in rules if self.matches(transaction, rule)]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE: APPLICATION
    # -------------------------------------------------------------------------

    def apply_rule(self, transaction: Transaction, rule: TransactionRule) -> Transaction:
        """Returns the transaction itself if the rule does not match."""
        if not self.matches(transaction, rule):
            return transaction

        updated = transaction
        for action in rule.actions:
            updated = self._apply_action(updated, action)
        return updated

    def apply_rules(self, transaction: Transaction, rules: Iterable[TransactionRule]) -> Transaction:
        """Folds every enabled rule over the transaction, in order."""
        updated = transaction
        for rule in rules:
            if rule.enabled:
                updated = self.apply_rule(updated, rule)
        return updated

    def apply_to_many(
        self, transactions: Iterable[Transaction], rules: Iterable[TransactionRule]
    ) -> List[Transaction]:
        """apply_rules() over each transaction independently."""
        rules = list(rules)
        return [self.apply_rules(t, rules) for t in transactions]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE: VALIDATION
    # -------------------------------------------------------------------------

    def validate(self, rule: TransactionRule) -> ValidationResult:
        """Collects every problem with a rule definition. Never raises."""
        errors: List[str] = []

        if not rule.name or not str(rule.name).strip():
            errors.append("Rule name is required")

        if rule.logic not in RULE_LOGICS:
            errors.append(f"Unknown logic '{rule.logic}' (expected 'and' or 'or')")

        if not rule.conditions:
            errors.append("At least one condition is required")

        for index, condition in enumerate(rule.conditions or [], start=1):
            errors.extend(
                f"Condition {index}: {problem}" for problem in self._condition_errors(condition)
            )

        if not rule.actions:
            errors.append("At least one action is required")

        for index, action in enumerate(rule.actions or [], start=1):
            if not action.type:
                errors.append(f"Action {index}: Type is required")
            elif action.type not in ACTION_TYPES:
                errors.append(f"Action {index}: Unknown action type '{action.type}'")
            if not isinstance(action.value, str) or not action.value.strip():
                errors.append(f"Action {index}: Value is required")

        return ValidationResult(is_valid=not errors, errors=errors)

    # -------------------------------------------------------------------------
    # INTERNAL
    # -------------------------------------------------------------------------

    @staticmethod
    def _condition_errors(condition: RuleCondition) -> List[str]:
        problems = []
        if not condition.field:
            problems.append("Field is required")
        if not condition.operator:
            problems.append("Operator is required")

        value = condition.value
        if value is None or value == "":
            problems.append("Value is required")
        elif not (is_number(value) or isinstance(value, str)):
            problems.append("Value must be text or a number")

        problems.extend(condition.type_errors())
        return problems

    @staticmethod
    def _apply_action(transaction: Transaction, action: RuleAction) -> Transaction:
        if action.type == "setCategory":
            return replace(transaction, category=action.value)

        if action.type == "addTag":
            tags = tuple(transaction.tags or ())
            if action.value in tags:
                return transaction
            return replace(transaction, tags=tags + (action.value,))

        if action.type == "setStatus":
            return replace(transaction, status=action.value)

        if action.type == "assignGoal":
            return replace(transaction, goal_id=action.value)

        if action.type == "markRecurring":
            return replace(transaction, is_recurring=True, recurring_id=action.value)

        return transaction
