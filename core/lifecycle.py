"""
lifecycle.py
-------------
Subscription status transitions and promotion of detected groups.

Subscriptions are caller-owned state. Every function here returns a new
Subscription (or a new list); nothing is modified in place and nothing is
ever deleted.

Allowed transitions:
    active  -> paused     pause()
    paused  -> active     resume()
    active  -> cancelled  cancel()   terminal, records cancellation_date

trial -> active happens outside the engine. Nothing leaves "cancelled".
"""

import logging
from dataclasses import replace
from datetime import date
from typing import Callable, Iterable, List

from core.exceptions import InvalidTransitionError
from core.models import RecurringTransactionGroup, Subscription

logger = logging.getLogger(__name__)


# target status -> statuses it may be entered from
ALLOWED_TRANSITIONS = {
    "paused": ("active",),
    "active": ("paused",),
    "cancelled": ("active",),
}


def can_transition(subscription: Subscription, target: str) -> bool:
    return subscription.status in ALLOWED_TRANSITIONS.get(target, ())


def _transition(subscription: Subscription, target: str, **changes) -> Subscription:
    if not can_transition(subscription, target):
        raise InvalidTransitionError(subscription.id, subscription.status, target)
    logger.debug(f"Subscription {subscription.id}: {subscription.status} -> {target}")
    return replace(subscription, status=target, **changes)


def pause(subscription: Subscription) -> Subscription:
    return _transition(subscription, "paused")


def resume(subscription: Subscription) -> Subscription:
    return _transition(subscription, "active")


def cancel(subscription: Subscription, on_date: date) -> Subscription:
    """Cancels an active subscription as of on_date."""
    return _transition(subscription, "cancelled", cancellation_date=on_date)


def add_note(subscription: Subscription, note: str) -> Subscription:
    """Replaces the subscription's note."""
    return replace(subscription, notes=note)


def update_subscription(subscription: Subscription, **changes) -> Subscription:
    """
    Copies a subscription with non-status fields changed.

    Status changes must go through pause / resume / cancel.
    """
    if "status" in changes:
        raise ValueError("Use pause(), resume() or cancel() to change status")
    return replace(subscription, **changes)


def apply_transition(
    subscriptions: Iterable[Subscription],
    subscription_id: str,
    transition: Callable[..., Subscription],
    *args,
    **kwargs,
) -> List[Subscription]:
    """
    Applies a transition to one subscription in a caller-owned list.

    Returns a new list; the matching entry is replaced, all others are
    passed through. Unknown ids leave the list unchanged.

    Usage:
        subs = apply_transition(subs, "sub-1", cancel, date(2025, 10, 20))
    """
    return [
        transition(s, *args, **kwargs) if s.id == subscription_id else s
        for s in subscriptions
    ]


def promote_group(group: RecurringTransactionGroup, subscription_id: str) -> Subscription:
    """
    Builds an active Subscription from a detected recurring group.

    The display name comes from the most recent transaction's merchant
    string; the group itself only carries the normalized key.
    """
    summaries = group.transactions
    last = summaries[-1] if summaries else None

    return Subscription(
        id=subscription_id,
        merchant_name=last.description if last else group.merchant_name,
        amount=group.average_amount,
        pattern=group.pattern,
        category=group.category,
        first_detected=summaries[0].date if summaries else group.pattern.next_date,
        last_charged=last.date if last else group.pattern.next_date,
        status="active",
        transaction_ids=[t.id for t in summaries],
        average_amount=group.average_amount,
        total_spent=sum(abs(t.amount) for t in summaries),
        occurrences=len(summaries),
    )
