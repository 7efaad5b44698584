"""Error taxonomy for the payment lifecycle.

``InvalidTransition`` and ``InsufficientReserve`` are validation errors, so
anything that already handles ``protean.exceptions.ValidationError`` keeps
working; the API layer maps them to their own status codes.
"""

from protean.exceptions import ValidationError


class InvalidTransition(ValidationError):
    """An illegal state-machine edge was requested. The aggregate is unchanged."""

    def __init__(self, current: str, target: str, reason: str | None = None, field: str = "status"):
        self.current = current
        self.target = target
        message = f"Cannot transition from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__({field: [message]})


class InsufficientReserve(ValidationError):
    """A payout retry was requested before its backoff window elapsed."""

    def __init__(self, wait_minutes: int):
        self.wait_minutes = wait_minutes
        super().__init__({"retry": [f"Retry available in {wait_minutes} minute(s)"]})


class GatewayError(Exception):
    """A payment provider rejected a call or returned an embedded error."""

    def __init__(self, provider: str, message: str, status_code: int | None = None):
        self.provider = provider
        self.message = message
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


class AmbiguousMatchError(Exception):
    """More than one order could satisfy a payment notification."""

    def __init__(self, step: str, candidate_ids: list[str]):
        self.step = step
        self.candidate_ids = candidate_ids
        super().__init__(f"{len(candidate_ids)} candidates at {step}")


class FeeScheduleError(Exception):
    """A provider fee schedule is unsorted, overlapping or has gaps."""
