"""
recurring_detector.py
----------------------
Merchant-level recurring transaction detection engine.

This is the shared foundation layer. It does NOT decide what a subscription
costs or when it is due; it only answers one question:

    "For this merchant, is there a periodic payment pattern?"

Output: a RecurringTransactionGroup per qualifying merchant. These groups are
surfaced as "detected recurring payments" candidates and can be promoted to
tracked subscriptions (see core.lifecycle.promote_group).

Design decisions:
    - Grouping key is the normalized merchant name (core.normalizer). Category
      and account are ignored for grouping.
    - Cadence is inferred from the MEAN inter-transaction gap, bucketed into
      fixed frequency windows. Timing confidence is 1 - (std / mean) of gaps.
    - All thresholds and bucket windows are read from config.yaml.
"""

import math
import numpy as np
import pandas as pd
from typing import Iterable, List

from core.models import (
    FREQUENCIES,
    FREQUENCY_LABELS,
    RecurringPattern,
    RecurringTransactionGroup,
    Transaction,
    TransactionSummary,
)
from core.normalizer import normalize_merchant_name
from config.config_loader import get_recurring_detection_config, get_confidence_levels


SECONDS_PER_DAY = 24 * 60 * 60

# Frequencies anchored to a day of the month vs. a day of the week.
_MONTH_ANCHORED = ("monthly", "quarterly", "yearly")
_WEEK_ANCHORED = ("weekly", "biweekly")


def round_half_up(value: float) -> int:
    """Rounds .5 away from zero for positive values (2.5 -> 3, not 2)."""
    return int(math.floor(value + 0.5))


def format_frequency(frequency: str) -> str:
    """Display label for a frequency ("biweekly" -> "Every 2 weeks"). Unknown values pass through."""
    return FREQUENCY_LABELS.get(frequency, frequency)


class RecurringTransactionDetector:
    """
    Detects recurring payment patterns in transaction data.

    Usage:
        detector = RecurringTransactionDetector()
        groups = detector.detect(transactions)
    """

    def __init__(self):
        self.config = get_recurring_detection_config()
        self.min_occurrences = self.config["min_occurrences"]
        self.min_confidence = self.config["min_confidence"]
        self.subscription_max_variance = self.config["subscription_max_variance"]
        self.subscription_min_confidence = self.config["subscription_min_confidence"]
        self.amount_match_tolerance = self.config["amount_match_tolerance"]
        self.frequency_buckets = self.config["frequency_buckets"]
        unknown = [name for name in self.frequency_buckets if name not in FREQUENCIES]
        if unknown:
            raise ValueError(
                f"Unknown frequency bucket(s) in config: {unknown}. "
                f"Expected a subset of: {list(FREQUENCIES)}"
            )
        self.confidence_levels = get_confidence_levels()

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE
    # -------------------------------------------------------------------------

    def detect(self, transactions: Iterable[Transaction]) -> List[RecurringTransactionGroup]:
        """
        Run recurring payment detection over a batch of transactions.

        Args:
            transactions: Transaction records. Not modified.

        Returns:
            List of RecurringTransactionGroup, one per qualifying merchant,
            sorted by descending timing confidence. Merchants with a single
            transaction or irregular timing are silently left out.
        """
        transactions = list(transactions)
        if not transactions:
            return []

        df = self._prepare(transactions)
        results: List[RecurringTransactionGroup] = []

        # sort=False keeps merchants in first-seen order so ties stay stable
        for merchant_key, group in df.groupby("merchant_key", sort=False):
            # Filter: minimum occurrences gate
            if len(group) < self.min_occurrences:
                continue

            group = group.sort_values("date", kind="stable")
            members = [transactions[i] for i in group["position"]]

            recurring_group = self._build_group(merchant_key, group, members)
            if recurring_group is not None:
                results.append(recurring_group)

        results.sort(key=lambda g: g.pattern.confidence, reverse=True)
        return results

    def confidence_level(self, confidence: float) -> str:
        """Maps a timing confidence to a label ("low" … "very_high")."""
        for level_name, bounds in self.confidence_levels.items():
            if bounds["min_score"] <= confidence < bounds["max_score"]:
                return level_name
        return "low"

    def matches_group(self, transaction: Transaction, group: RecurringTransactionGroup) -> bool:
        """
        Does a single transaction belong to an already detected group?

        Requires the same normalized merchant and an absolute amount within
        amount_match_tolerance of the group's average.
        """
        if normalize_merchant_name(transaction.merchant) != group.merchant_name:
            return False
        return self._amounts_similar(abs(transaction.amount), group.average_amount)

    @staticmethod
    def find_group_for_transaction(
        transaction_id: str, groups: List[RecurringTransactionGroup]
    ) -> RecurringTransactionGroup | None:
        """Returns the first group listing this transaction id, or None."""
        for group in groups:
            if any(summary.id == transaction_id for summary in group.transactions):
                return group
        return None

    # -------------------------------------------------------------------------
    # INTERNAL: DATA PREPARATION
    # -------------------------------------------------------------------------

    def _prepare(self, transactions: List[Transaction]) -> pd.DataFrame:
        """
        Builds the working frame: one row per transaction, with its position
        in the input list so rows can be mapped back to records.
        """
        return pd.DataFrame({
            "position": range(len(transactions)),
            "merchant_key": [normalize_merchant_name(t.merchant) for t in transactions],
            "date": pd.to_datetime([t.date for t in transactions]),
            "amount": [float(t.amount) for t in transactions],
        })

    # -------------------------------------------------------------------------
    # INTERNAL: GROUP CONSTRUCTION
    # -------------------------------------------------------------------------

    def _build_group(
        self, merchant_key: str, group: pd.DataFrame, members: List[Transaction]
    ) -> RecurringTransactionGroup | None:
        """
        Builds a RecurringTransactionGroup from one merchant's transactions.

        Returns None if the timing does not fall in a frequency bucket or the
        timing confidence is not above min_confidence.
        """
        pattern = self._infer_pattern(group["date"])
        if pattern is None or pattern.confidence <= self.min_confidence:
            return None

        # --- Amount statistics ---
        amounts = np.abs(group["amount"].to_numpy(dtype=float))
        average_amount = float(np.mean(amounts))
        variance = self._coefficient_of_variation(amounts, average_amount)

        # Low amount variability + very regular timing = subscription
        is_subscription = (
            variance < self.subscription_max_variance
            and pattern.confidence > self.subscription_min_confidence
        )

        return RecurringTransactionGroup(
            merchant_name=merchant_key,
            category=members[0].category,
            pattern=pattern,
            transactions=[
                TransactionSummary(id=t.id, date=t.date, amount=t.amount, description=t.merchant)
                for t in members
            ],
            average_amount=average_amount,
            variance=variance,
            is_subscription=is_subscription,
        )

    # -------------------------------------------------------------------------
    # INTERNAL: CADENCE DETECTION
    # -------------------------------------------------------------------------

    def _infer_pattern(self, dates: pd.Series) -> RecurringPattern | None:
        """
        Determines frequency, confidence and next expected date from a
        date-ascending series.

        Logic:
            1. Compute all inter-transaction gaps in whole days.
            2. Confidence = 1 - std/mean of the gaps, clamped to [0, 1].
            3. Classify the mean gap against the configured buckets.
            4. Next date = last date + mean gap (rounded) days.
        """
        gaps = self._gap_days(dates)
        if len(gaps) == 0:
            return None

        mean_gap = float(np.mean(gaps))
        std_gap = float(np.std(gaps))
        confidence = self._timing_confidence(mean_gap, std_gap)

        frequency = self._classify_frequency(mean_gap)
        if frequency is None:
            return None

        last = dates.iloc[-1]
        next_date = (last + pd.Timedelta(days=round_half_up(mean_gap))).date()

        # JS-style weekday: 0 = Sunday
        day_of_week = (last.weekday() + 1) % 7 if frequency in _WEEK_ANCHORED else None
        day_of_month = last.day if frequency in _MONTH_ANCHORED else None

        return RecurringPattern(
            frequency=frequency,
            interval=1,
            next_date=next_date,
            confidence=confidence,
            day_of_week=day_of_week,
            day_of_month=day_of_month,
        )

    @staticmethod
    def _gap_days(dates: pd.Series) -> np.ndarray:
        """Consecutive gaps, ceil(|delta| / 1 day)."""
        deltas = np.diff(dates.to_numpy(dtype="datetime64[ns]"))
        seconds = np.abs(deltas / np.timedelta64(1, "s"))
        return np.ceil(seconds / SECONDS_PER_DAY)

    @staticmethod
    def _timing_confidence(mean_gap: float, std_gap: float) -> float:
        """1 - coefficient of variation of the gaps, clamped to [0, 1]."""
        if mean_gap <= 0:
            return 0.0
        return min(max(0.0, 1.0 - std_gap / mean_gap), 1.0)

    def _classify_frequency(self, mean_gap: float) -> str | None:
        """First bucket whose inclusive window contains the mean gap."""
        for frequency, window in self.frequency_buckets.items():
            if window["min_gap_days"] <= mean_gap <= window["max_gap_days"]:
                return frequency
        return None

    @staticmethod
    def _coefficient_of_variation(amounts: np.ndarray, average: float) -> float:
        """sqrt(mean(((a - avg) / avg)^2)). Zero when the average is zero."""
        if average == 0:
            return 0.0
        return float(np.sqrt(np.mean(((amounts - average) / average) ** 2)))

    def _amounts_similar(self, amount: float, reference: float) -> bool:
        """Relative difference against the pair's mean magnitude."""
        scale = (abs(amount) + abs(reference)) / 2
        if scale == 0:
            return True
        return abs(amount - reference) / scale <= self.amount_match_tolerance
