"""
condition_evaluator.py
-----------------------
Evaluates one RuleCondition against one Transaction.

Evaluation never raises. A condition whose operator does not fit the field's
value type (e.g. "contains" on amount, "greaterThan" on merchant) simply
evaluates to False, as does an unknown operator or field. Only the
condition fields (merchant, category, amount, account, type, status) are
readable; other Transaction attributes count as unknown.
"""

import operator as op

from core.models import CONDITION_FIELDS, RuleCondition, Transaction, is_number


_ORDERING = {
    "greaterThan": op.gt,
    "lessThan": op.lt,
    "greaterThanOrEqual": op.ge,
    "lessThanOrEqual": op.le,
}

_MISSING = object()


def field_value(transaction: Transaction, field: str):
    """Raw value of a condition field on a transaction, or a sentinel."""
    if not isinstance(field, str) or field not in CONDITION_FIELDS:
        return _MISSING
    return getattr(transaction, field, _MISSING)


def _same_value(left, right) -> bool:
    # No coercion: "15" never equals 15.
    if is_number(left) and is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def evaluate_condition(transaction: Transaction, condition: RuleCondition) -> bool:
    """
    Returns True if the transaction satisfies the condition.

    Operators:
        equals / notEquals          strict (in)equality, no type coercion
        contains / notContains      text only, case-insensitive substring
        greaterThan ... lessThanOrEqual
                                    numbers only
    """
    actual = field_value(transaction, condition.field)
    if actual is _MISSING:
        return False
    expected = condition.value
    if not isinstance(condition.operator, str):
        return False

    if condition.operator == "equals":
        return _same_value(actual, expected)

    if condition.operator == "notEquals":
        return not _same_value(actual, expected)

    if condition.operator in ("contains", "notContains"):
        if not (isinstance(actual, str) and isinstance(expected, str)):
            return False
        found = expected.lower() in actual.lower()
        return found if condition.operator == "contains" else not found

    if condition.operator in _ORDERING:
        if not (is_number(actual) and is_number(expected)):
            return False
        return _ORDERING[condition.operator](actual, expected)

    return False
