"""
subscription_projector.py
--------------------------
Cost aggregates and upcoming-bill schedules derived from subscriptions.

Everything here is a pure function of the subscriptions handed in and an
explicit "today". Callers decide which subscriptions to pass: the
dashboard figures are normally computed over active ones only, which is
what summarize() does.

Known inconsistency, kept on purpose: category_spending() only normalizes
monthly / quarterly / yearly charges. Weekly, biweekly and daily charges are
counted at their nominal amount there, while monthly_cost() scales them.
"""

import math
import pandas as pd
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Tuple

from core.models import SUBSCRIPTION_STATUSES, Subscription, UpcomingBill
from config.config_loader import get_subscription_projection_config


def _as_date(value) -> date:
    """Midnight-normalizes a date, datetime or ISO string to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return pd.Timestamp(value).date()


def days_until_date(target, today) -> int:
    """
    Whole days from today until target. Negative when target is in the past.

    Both values are normalized to midnight first, so the result is exact.
    """
    return (_as_date(target) - _as_date(today)).days


def format_next_billing_date(target, today) -> str:
    """Human-readable relative due date ("Today", "In 3 days", "Nov 3", ...)."""
    days = days_until_date(target, today)

    if days < 0:
        return "Overdue"
    if days == 0:
        return "Today"
    if days == 1:
        return "Tomorrow"
    if days <= 7:
        return f"In {days} days"
    if days <= 30:
        return f"In {math.ceil(days / 7)} weeks"

    target_date = _as_date(target)
    label = f"{target_date.strftime('%b')} {target_date.day}"
    if target_date.year != _as_date(today).year:
        label += f", {target_date.year}"
    return label


@dataclass
class SubscriptionSummary:
    """Dashboard figures for one evaluation date."""

    today: date
    active: List[Subscription] = field(default_factory=list)
    monthly_cost: float = 0.0
    yearly_projection: float = 0.0
    upcoming_bills: List[UpcomingBill] = field(default_factory=list)
    category_spending: List[Tuple[str, float]] = field(default_factory=list)
    to_review: List[Subscription] = field(default_factory=list)
    status_counts: Dict[str, int] = field(default_factory=dict)   # over all statuses


class SubscriptionProjector:
    """
    Projects costs and bill schedules from subscriptions.

    Usage:
        projector = SubscriptionProjector()
        bills = projector.upcoming_bills(active, today=date(2025, 10, 20))
    """

    def __init__(self):
        self.config = get_subscription_projection_config()
        self.monthly_factors: Dict[str, float] = self.config["monthly_factors"]
        self.category_factors: Dict[str, float] = self.config["category_factors"]
        self.upcoming_window_days = self.config["upcoming_window_days"]
        self.review_amount_threshold = self.config["review_amount_threshold"]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE: COSTS
    # -------------------------------------------------------------------------

    def monthly_equivalent(self, subscription: Subscription) -> float:
        """Nominal amount scaled to one month. Unknown frequencies scale like daily."""
        factor = self.monthly_factors.get(
            subscription.pattern.frequency, self.monthly_factors["daily"]
        )
        return subscription.amount * factor

    def monthly_cost(self, subscriptions: Iterable[Subscription]) -> float:
        """Sum of monthly equivalents."""
        return sum((self.monthly_equivalent(s) for s in subscriptions), 0.0)

    def yearly_projection(self, subscriptions: Iterable[Subscription]) -> float:
        """monthly_cost x 12."""
        return self.monthly_cost(subscriptions) * 12

    def category_spending(self, subscriptions: Iterable[Subscription]) -> List[Tuple[str, float]]:
        """
        Monthly spend per category, largest first.

        Only frequencies listed under category_factors are scaled; everything
        else is taken at face value.
        """
        subscriptions = list(subscriptions)
        if not subscriptions:
            return []

        frame = pd.DataFrame({
            "category": [s.category for s in subscriptions],
            "monthly_amount": [
                s.amount * self.category_factors.get(s.pattern.frequency, 1.0)
                for s in subscriptions
            ],
        })
        totals = (
            frame.groupby("category", sort=False)["monthly_amount"]
            .sum()
            .sort_values(ascending=False, kind="stable")
        )
        return [(str(category), float(amount)) for category, amount in totals.items()]

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE: SCHEDULE
    # -------------------------------------------------------------------------

    def upcoming_bills(self, subscriptions: Iterable[Subscription], today) -> List[UpcomingBill]:
        """
        Bills due within upcoming_window_days of today, soonest first.

        There is no lower bound: past-due bills stay in the list with a
        negative days_until_due.
        """
        bills: List[UpcomingBill] = []

        for subscription in subscriptions:
            days_until = days_until_date(subscription.pattern.next_date, today)
            if days_until > self.upcoming_window_days:
                continue

            bills.append(UpcomingBill(
                subscription=subscription,
                due_date=_as_date(subscription.pattern.next_date),
                estimated_amount=subscription.average_amount,
                days_until_due=days_until,
                is_past_due=days_until < 0,
            ))

        bills.sort(key=lambda b: b.days_until_due)
        return bills

    # -------------------------------------------------------------------------
    # PUBLIC INTERFACE: GROUPINGS
    # -------------------------------------------------------------------------

    @staticmethod
    def active_subscriptions(subscriptions: Iterable[Subscription]) -> List[Subscription]:
        return [s for s in subscriptions if s.status == "active"]

    def subscriptions_to_review(self, subscriptions: Iterable[Subscription]) -> List[Subscription]:
        """Low-usage or expensive subscriptions worth a second look."""
        return [
            s for s in subscriptions
            if s.is_low_usage or s.amount > self.review_amount_threshold
        ]

    @staticmethod
    def subscriptions_by_category(subscriptions: Iterable[Subscription]) -> Dict[str, List[Subscription]]:
        categories: Dict[str, List[Subscription]] = {}
        for s in subscriptions:
            categories.setdefault(s.category, []).append(s)
        return categories

    @staticmethod
    def status_counts(subscriptions: Iterable[Subscription]) -> Dict[str, int]:
        """Subscriptions per status, in SUBSCRIPTION_STATUSES order. Unknown statuses are not counted."""
        counts = {status: 0 for status in SUBSCRIPTION_STATUSES}
        for s in subscriptions:
            if s.status in counts:
                counts[s.status] += 1
        return counts

    def summarize(self, subscriptions: Iterable[Subscription], today) -> SubscriptionSummary:
        """
        All dashboard figures, computed over the active subscriptions only.
        status_counts is the exception: it covers every subscription passed in.
        """
        subscriptions = list(subscriptions)
        active = self.active_subscriptions(subscriptions)
        monthly = self.monthly_cost(active)

        return SubscriptionSummary(
            today=_as_date(today),
            active=active,
            monthly_cost=monthly,
            yearly_projection=monthly * 12,
            upcoming_bills=self.upcoming_bills(active, today),
            category_spending=self.category_spending(active),
            to_review=self.subscriptions_to_review(active),
            status_counts=self.status_counts(subscriptions),
        )
