"""Exponential backoff for payout retries.

A failed payout that has been attempted ``n`` times may be retried once
``2 ** n`` minutes have passed since its last attempt.
"""

import math
from datetime import UTC, datetime, timedelta
from typing import NamedTuple


class RetryWindow(NamedTuple):
    eligible: bool
    wait_minutes: int


def required_wait(attempts: int) -> timedelta:
    return timedelta(minutes=2 ** max(attempts, 0))


def retry_window(attempts: int, last_attempt_at: datetime | None, now: datetime) -> RetryWindow:
    """Whether a retry is allowed at ``now``, and if not, how many whole minutes remain."""
    if last_attempt_at is None:
        return RetryWindow(True, 0)
    if last_attempt_at.tzinfo is None:
        last_attempt_at = last_attempt_at.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    ready_at = last_attempt_at + required_wait(attempts)
    if now >= ready_at:
        return RetryWindow(True, 0)
    remaining = (ready_at - now).total_seconds()
    return RetryWindow(False, max(1, math.ceil(remaining / 60)))
