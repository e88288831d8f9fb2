"""
pipeline.py
------------
Main orchestration layer. Wires together:
    1. RecurringTransactionDetector  →  produces RecurringTransactionGroups
    2. Promotion + SubscriptionProjector  →  upcoming bills and cost figures
    3. RuleEngine                    →  rule-applied transactions
    4. Output serialization          →  flat DataFrames for CSV output

Stages 1–2 and stage 3 are independent; run() does both on the same
transaction snapshot.

Usage:
    from pipeline import SubscriptionPipeline

    pipeline = SubscriptionPipeline()
    result = pipeline.run(transactions, rules, today=date(2025, 10, 20))
"""

import logging
import pandas as pd
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, List

from core.ingest import transactions_to_frame
from core.lifecycle import promote_group
from core.models import (
    RecurringTransactionGroup,
    Transaction,
    TransactionRule,
    UpcomingBill,
)
from core.recurring_detector import RecurringTransactionDetector, format_frequency
from core.subscription_projector import SubscriptionProjector, SubscriptionSummary
from rules.rule_engine import RuleEngine

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Everything one run produces, as DataFrames ready for output."""

    groups: List[RecurringTransactionGroup] = field(default_factory=list)
    summary: SubscriptionSummary | None = None
    invalid_rules: dict = field(default_factory=dict)   # rule id -> errors
    groups_df: pd.DataFrame = field(default_factory=pd.DataFrame)
    bills_df: pd.DataFrame = field(default_factory=pd.DataFrame)
    transactions_df: pd.DataFrame = field(default_factory=pd.DataFrame)


GROUP_COLUMNS = [
    "merchant_name", "category", "frequency", "frequency_label",
    "confidence", "confidence_level", "next_date", "average_amount", "variance",
    "is_subscription", "occurrences", "transaction_ids",
]

BILL_COLUMNS = [
    "subscription_id", "merchant_name", "due_date", "estimated_amount",
    "days_until_due", "is_past_due",
]


class SubscriptionPipeline:
    """
    End-to-end run: detection → projection, and rule application.

    Only subscription-like groups (is_subscription=True) are promoted for
    the bill projection; every detected group is still reported.
    """

    def __init__(self):
        self.detector = RecurringTransactionDetector()
        self.projector = SubscriptionProjector()
        self.engine = RuleEngine()

        logger.info(
            f"Pipeline initialized. "
            f"Min confidence: {self.detector.min_confidence}. "
            f"Upcoming window: {self.projector.upcoming_window_days} days."
        )

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def run(
        self,
        transactions: Iterable[Transaction],
        rules: Iterable[TransactionRule],
        today: date,
    ) -> PipelineResult:
        """
        Run detection, projection and rule application.

        Rules that fail RuleEngine.validate() are skipped and reported in
        PipelineResult.invalid_rules.
        """
        transactions = list(transactions)
        logger.info(f"Pipeline starting. Input: {len(transactions):,} transactions.")

        # --- Stage 1: Recurring detection ---
        groups = self.detector.detect(transactions)
        logger.info(f"Stage 1 complete. Recurring groups: {len(groups):,}.")

        # --- Stage 2: Projection over promoted subscriptions ---
        summary = self.project(groups, today)
        logger.info(
            f"Stage 2 complete. Upcoming bills: {len(summary.upcoming_bills):,}. "
            f"Monthly cost: {summary.monthly_cost:,.2f}."
        )

        # --- Stage 3: Rules ---
        usable, invalid = self._split_rules(rules)
        updated = self.engine.apply_to_many(transactions, usable)
        changed = sum(1 for before, after in zip(transactions, updated) if before is not after)
        logger.info(
            f"Stage 3 complete. Rules applied: {len(usable):,} "
            f"(skipped invalid: {len(invalid):,}). Transactions changed: {changed:,}."
        )

        return PipelineResult(
            groups=groups,
            summary=summary,
            invalid_rules=invalid,
            groups_df=self._serialize_groups(groups),
            bills_df=self._serialize_bills(summary.upcoming_bills),
            transactions_df=transactions_to_frame(updated),
        )

    def run_detection_only(self, transactions: Iterable[Transaction]) -> List[RecurringTransactionGroup]:
        """
        Run only Stage 1 (recurring detection). Useful for debugging.
        """
        return self.detector.detect(transactions)

    def project(self, groups: List[RecurringTransactionGroup], today: date) -> SubscriptionSummary:
        """Promotes subscription-like groups and summarizes them for today."""
        subscriptions = [
            promote_group(group, subscription_id=f"sub-{i + 1}")
            for i, group in enumerate(g for g in groups if g.is_subscription)
        ]
        return self.projector.summarize(subscriptions, today)

    # -------------------------------------------------------------------------
    # INTERNAL
    # -------------------------------------------------------------------------

    def _split_rules(self, rules: Iterable[TransactionRule]) -> tuple[list, dict]:
        usable: List[TransactionRule] = []
        invalid: dict = {}
        for rule in rules:
            result = self.engine.validate(rule)
            if result.is_valid:
                usable.append(rule)
            else:
                invalid[rule.id] = result.errors
                logger.warning(f"Skipping invalid rule '{rule.id}': {'; '.join(result.errors)}")
        return usable, invalid

    def _serialize_groups(self, groups: List[RecurringTransactionGroup]) -> pd.DataFrame:
        """One row per group, highest confidence first (detector order)."""
        if not groups:
            return pd.DataFrame(columns=GROUP_COLUMNS)

        rows = []
        for g in groups:
            rows.append({
                "merchant_name": g.merchant_name,
                "category": g.category,
                "frequency": g.pattern.frequency,
                "frequency_label": format_frequency(g.pattern.frequency),
                "confidence": round(g.pattern.confidence, 4),
                "confidence_level": self.detector.confidence_level(g.pattern.confidence),
                "next_date": g.pattern.next_date.strftime("%Y-%m-%d"),
                "average_amount": round(g.average_amount, 2),
                "variance": round(g.variance, 4),
                "is_subscription": g.is_subscription,
                "occurrences": len(g.transactions),
                "transaction_ids": "|".join(t.id for t in g.transactions),
            })
        return pd.DataFrame(rows, columns=GROUP_COLUMNS)

    @staticmethod
    def _serialize_bills(bills: List[UpcomingBill]) -> pd.DataFrame:
        if not bills:
            return pd.DataFrame(columns=BILL_COLUMNS)

        rows = [
            {
                "subscription_id": b.subscription.id,
                "merchant_name": b.subscription.merchant_name,
                "due_date": b.due_date.strftime("%Y-%m-%d"),
                "estimated_amount": round(b.estimated_amount, 2),
                "days_until_due": b.days_until_due,
                "is_past_due": b.is_past_due,
            }
            for b in bills
        ]
        return pd.DataFrame(rows, columns=BILL_COLUMNS)
