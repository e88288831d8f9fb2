"""
models.py
----------
Core domain models. These are the typed contracts between engine layers.

- Transaction: Input record from the host's ingestion layer. Immutable;
  the engine only ever produces modified copies.

- RecurringPattern / RecurringTransactionGroup: Output of the detection
  layer. Created fresh on every detection run.

- Subscription / UpcomingBill: Tracked subscriptions and the bill schedule
  projected from them.

- TransactionRule and its parts: User-defined rules consumed by the rule
  engine. RuleCondition is a tagged variant (TextCondition vs
  NumericCondition) so that field/operator/value disagreement can be
  reported at validation time.
"""

import numbers
from dataclasses import dataclass, field
from datetime import date
from typing import ClassVar


# Frequencies the detector may emit; config frequency_buckets must be a subset.
FREQUENCIES = ("daily", "weekly", "biweekly", "monthly", "quarterly", "yearly")

FREQUENCY_LABELS = {
    "daily": "Daily",
    "weekly": "Weekly",
    "biweekly": "Every 2 weeks",
    "monthly": "Monthly",
    "quarterly": "Quarterly",
    "yearly": "Yearly",
}

SUBSCRIPTION_STATUSES = ("active", "cancelled", "paused", "trial")

TEXT_FIELDS = ("merchant", "category", "account", "type", "status")
NUMERIC_FIELDS = ("amount",)
CONDITION_FIELDS = ("merchant", "category", "amount", "account", "type", "status")

TEXT_OPERATORS = ("equals", "notEquals", "contains", "notContains")
NUMERIC_OPERATORS = (
    "equals", "notEquals",
    "greaterThan", "lessThan", "greaterThanOrEqual", "lessThanOrEqual",
)
CONDITION_OPERATORS = (
    "equals", "notEquals", "contains", "notContains",
    "greaterThan", "lessThan", "greaterThanOrEqual", "lessThanOrEqual",
)

ACTION_TYPES = ("setCategory", "addTag", "setStatus", "assignGoal", "markRecurring")
RULE_LOGICS = ("and", "or")


def is_number(value) -> bool:
    """True for real numbers, excluding bools."""
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


# =============================================================================
# TRANSACTIONS
# =============================================================================

@dataclass(frozen=True)
class Transaction:
    """A single posted or pending transaction."""

    id: str
    date: date                       # date or datetime
    amount: float                    # Signed; sign convention is the host's
    merchant: str
    category: str
    account: str
    type: str                        # "debit" | "credit"
    status: str                      # "pending" | "posted" | "cleared" | "to_review"
    tags: tuple[str, ...] = ()
    goal_id: str | None = None
    is_recurring: bool = False
    recurring_id: str | None = None
    notes: str | None = None


# =============================================================================
# RECURRING DETECTION
# =============================================================================

@dataclass
class RecurringPattern:
    """Inferred billing cadence for a merchant."""

    frequency: str                   # One of FREQUENCIES
    interval: int                    # Multiplier, e.g. 2 = every other period
    next_date: date
    confidence: float                # 0.0 – 1.0. How periodic the timing is.
    day_of_week: int | None = None   # 0 = Sunday … 6 = Saturday
    day_of_month: int | None = None  # 1 – 31


@dataclass
class TransactionSummary:
    """Slimmed-down transaction reference kept on a recurring group."""

    id: str
    date: date
    amount: float
    description: str


@dataclass
class RecurringTransactionGroup:
    """
    One merchant whose transactions recur on a recognizable cadence.

    Produced by RecurringTransactionDetector. Never persisted by the engine.
    """

    merchant_name: str               # Normalization key
    category: str
    pattern: RecurringPattern
    transactions: list[TransactionSummary]
    average_amount: float            # Mean of absolute amounts
    variance: float                  # Coefficient of variation. Lower = more stable.
    is_subscription: bool


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================

@dataclass
class Subscription:
    """
    A tracked subscription. Status only changes through core.lifecycle.
    """

    id: str
    merchant_name: str
    amount: float                    # Nominal charge per period
    pattern: RecurringPattern
    category: str
    first_detected: date
    last_charged: date
    status: str                      # One of SUBSCRIPTION_STATUSES
    transaction_ids: list[str] = field(default_factory=list)
    average_amount: float = 0.0
    total_spent: float = 0.0
    occurrences: int = 0
    notes: str | None = None
    cancellation_date: date | None = None
    trial_end_date: date | None = None
    is_low_usage: bool = False


@dataclass
class UpcomingBill:
    """A projected charge. Recomputed on demand, never stored."""

    subscription: Subscription
    due_date: date
    estimated_amount: float
    days_until_due: int              # Negative when past due
    is_past_due: bool


# =============================================================================
# RULES
# =============================================================================

@dataclass(frozen=True)
class RuleCondition:
    """
    Base condition. Use TextCondition / NumericCondition, or make_condition().

    A bare RuleCondition is still evaluable, but validate() can only check
    its field and operator names, not whether they agree with the value.
    """

    field: str
    operator: str
    value: str | float | None
    id: str = ""

    kind: ClassVar[str] = "untyped"
    allowed_fields: ClassVar[tuple[str, ...]] = ()
    allowed_operators: ClassVar[tuple[str, ...]] = ()

    def type_errors(self) -> list[str]:
        """Field/operator/value disagreements for this variant."""
        errors = []
        if self.field and self.field not in CONDITION_FIELDS:
            errors.append(f"Unknown field '{self.field}'")
        if self.operator and self.operator not in CONDITION_OPERATORS:
            errors.append(f"Unknown operator '{self.operator}'")
        if errors or self.kind == "untyped":
            return errors

        if self.field and self.field not in self.allowed_fields:
            errors.append(f"Field '{self.field}' does not take a {self.kind} value")
        if self.operator and self.operator not in self.allowed_operators:
            errors.append(f"Operator '{self.operator}' cannot be used with a {self.kind} value")
        return errors


@dataclass(frozen=True)
class TextCondition(RuleCondition):
    """Condition comparing a text field against a string."""

    value: str = ""

    kind: ClassVar[str] = "text"
    allowed_fields: ClassVar[tuple[str, ...]] = TEXT_FIELDS
    allowed_operators: ClassVar[tuple[str, ...]] = TEXT_OPERATORS


@dataclass(frozen=True)
class NumericCondition(RuleCondition):
    """Condition comparing a numeric field against a number."""

    value: float = 0.0

    kind: ClassVar[str] = "numeric"
    allowed_fields: ClassVar[tuple[str, ...]] = NUMERIC_FIELDS
    allowed_operators: ClassVar[tuple[str, ...]] = NUMERIC_OPERATORS


def make_condition(field: str, operator: str, value, id: str = "") -> RuleCondition:
    """Builds the condition variant matching the value's type."""
    if is_number(value):
        return NumericCondition(field=field, operator=operator, value=value, id=id)
    if isinstance(value, str):
        return TextCondition(field=field, operator=operator, value=value, id=id)
    return RuleCondition(field=field, operator=operator, value=value, id=id)


@dataclass(frozen=True)
class RuleAction:
    """One transformation applied when a rule matches."""

    type: str                        # One of ACTION_TYPES
    value: str
    id: str = ""


@dataclass
class TransactionRule:
    """A user-defined rule: conditions joined by `logic`, then ordered actions."""

    id: str
    name: str
    enabled: bool = True
    logic: str = "and"               # "and" | "or"
    conditions: list[RuleCondition] = field(default_factory=list)
    actions: list[RuleAction] = field(default_factory=list)
    description: str | None = None
    created_at: str = ""
    updated_at: str = ""


@dataclass
class ValidationResult:
    """Outcome of RuleEngine.validate()."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
