"""Per-user subscriptions and monthly usage quotas.

New users get the default free-tier subscription on first lookup. Usage is
counted per billing period; an expired period rolls over to a fresh one with
zeroed counters the next time the subscription is read.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum

from ..errors import QuotaExceeded, SubscriptionInactive

logger = logging.getLogger(__name__)

DAY_SECONDS = 24 * 60 * 60


class SubscriptionTier(str, Enum):
    FREE = "free"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"


@dataclass
class UsageTotals:
    requests: int = 0
    tokens: int = 0
    cost: float = 0.0


@dataclass
class Subscription:
    user_id: str
    team_id: str
    monthly_requests: int
    max_tokens_per_request: int
    period_start: float
    period_end: float
    tier: SubscriptionTier = SubscriptionTier.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    usage: UsageTotals = field(default_factory=UsageTotals)


class QuotaTracker:
    """Thread-safe in-memory subscription store."""

    def __init__(
        self,
        monthly_requests: int = 100,
        max_tokens_per_request: int = 4000,
        period_days: int = 30,
    ):
        self._lock = threading.Lock()
        self._subscriptions: dict[str, Subscription] = {}
        self._monthly_requests = monthly_requests
        self._max_tokens_per_request = max_tokens_per_request
        self._period = period_days * DAY_SECONDS

    @staticmethod
    def _key(user_id: str, team_id: str) -> str:
        return f"{team_id}:{user_id}"

    def _get_or_create(self, user_id: str, team_id: str) -> Subscription:
        key = self._key(user_id, team_id)
        now = time.time()
        sub = self._subscriptions.get(key)
        if sub is None:
            sub = Subscription(
                user_id=user_id,
                team_id=team_id,
                monthly_requests=self._monthly_requests,
                max_tokens_per_request=self._max_tokens_per_request,
                period_start=now,
                period_end=now + self._period,
            )
            self._subscriptions[key] = sub
        elif now >= sub.period_end:
            sub.period_start = now
            sub.period_end = now + self._period
            sub.usage = UsageTotals()
        return sub

    def get_subscription(self, user_id: str, team_id: str) -> Subscription:
        with self._lock:
            return self._get_or_create(user_id, team_id)

    def set_subscription(self, subscription: Subscription) -> None:
        with self._lock:
            key = self._key(subscription.user_id, subscription.team_id)
            self._subscriptions[key] = subscription

    def _admit(self, user_id: str, team_id: str) -> Subscription:
        # Caller holds the lock
        sub = self._get_or_create(user_id, team_id)
        if sub.status != SubscriptionStatus.ACTIVE:
            raise SubscriptionInactive(user_id, team_id, sub.status.value)
        if sub.usage.requests >= sub.monthly_requests:
            logger.info("Quota exhausted for %s/%s", team_id, user_id,
                        extra={"user_id": user_id})
            raise QuotaExceeded(user_id, team_id, sub.monthly_requests)
        return sub

    def check(self, user_id: str, team_id: str) -> Subscription:
        """Raise if the user may not dispatch; otherwise return a snapshot.

        Nothing is charged. Use :meth:`reserve` when the caller is about to
        dispatch, so that concurrent requests cannot overshoot the limit.
        """
        with self._lock:
            return _snapshot(self._admit(user_id, team_id))

    def reserve(self, user_id: str, team_id: str, requests: int = 1) -> Subscription:
        """Check the quota and charge ``requests`` in one step.

        Returns a snapshot taken after the charge. Hand the reservation back
        with :meth:`release` if the dispatch it covers fails.
        """
        with self._lock:
            sub = self._admit(user_id, team_id)
            sub.usage.requests += requests
            return _snapshot(sub)

    def release(self, user_id: str, team_id: str, requests: int = 1) -> None:
        with self._lock:
            sub = self._get_or_create(user_id, team_id)
            sub.usage.requests = max(0, sub.usage.requests - requests)

    def record_usage(
        self,
        user_id: str,
        team_id: str,
        requests: int = 1,
        tokens: int = 0,
        cost: float = 0.0,
    ) -> None:
        with self._lock:
            sub = self._get_or_create(user_id, team_id)
            sub.usage.requests += requests
            sub.usage.tokens += tokens
            sub.usage.cost += cost


def _snapshot(sub: Subscription) -> Subscription:
    return replace(sub, usage=replace(sub.usage))
