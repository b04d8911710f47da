from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from .models import SubscriptionStatus, User

_PAYMENT_REQUIRED = {SubscriptionStatus.PENDING, SubscriptionStatus.CANCELED}


@dataclass(frozen=True)
class SubscriptionCheck:
    status: SubscriptionStatus | None
    expired: bool
    requires_payment: bool


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def evaluate_subscription(user: User, now: datetime | None = None) -> SubscriptionCheck:
    """Apply billing-date and trial expiry to the user's stored status."""
    now = now or datetime.now(timezone.utc)
    status = user.subscription_status
    expired = False

    if status == SubscriptionStatus.ACTIVE:
        billing_at = parse_timestamp(user.next_billing_at)
        if billing_at is not None and now > billing_at:
            status, expired = SubscriptionStatus.PENDING, True
    elif status == SubscriptionStatus.TRIAL:
        trial_ends = parse_timestamp(user.trial_ends_at)
        if trial_ends is not None and now > trial_ends:
            status, expired = SubscriptionStatus.PENDING, True

    return SubscriptionCheck(status=status, expired=expired, requires_payment=status in _PAYMENT_REQUIRED)


def apply_subscription_check(user: User, now: datetime | None = None) -> User:
    check = evaluate_subscription(user, now)
    if not check.expired:
        return user
    return user.model_copy(update={"subscription_status": check.status})


def trial_time_left(user: User, now: datetime | None = None) -> timedelta:
    now = now or datetime.now(timezone.utc)
    trial_ends = parse_timestamp(user.trial_ends_at)
    if trial_ends is None:
        return timedelta(0)
    return max(trial_ends - now, timedelta(0))
