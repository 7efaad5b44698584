"""Mobile-money transaction fee schedules.

Each provider publishes a tiered table of ``{min, max, fee}`` bands over
``[1, 1_000_000]`` minor units. Tables are validated when this module is
imported: a gap, overlap, unsorted band or decreasing fee stops the process
rather than mispricing settlements.

Amounts above the modeled ceiling (or on a provider without a table) return
a fee of 0 with ``modeled=False``; settlement math built on such a quote must
be checked by hand.
"""

from dataclasses import dataclass

import structlog

from marketplace.exceptions import FeeScheduleError

logger = structlog.get_logger(__name__)

MODELED_FLOOR = 1
MODELED_CEILING = 1_000_000


@dataclass(frozen=True)
class FeeBand:
    min_amount: int
    max_amount: int
    fee: int

    def contains(self, amount: int) -> bool:
        return self.min_amount <= amount <= self.max_amount


@dataclass(frozen=True)
class FeeQuote:
    fee: int
    modeled: bool


class FeeSchedule:
    """An ordered, contiguous set of fee bands for one provider."""

    def __init__(self, provider: str, bands: list[tuple[int, int, int]]) -> None:
        self.provider = provider
        self.bands = tuple(FeeBand(lo, hi, fee) for lo, hi, fee in bands)
        self._validate()

    def _validate(self) -> None:
        if not self.bands:
            raise FeeScheduleError(f"{self.provider}: fee schedule has no bands")

        first, last = self.bands[0], self.bands[-1]
        if first.min_amount != MODELED_FLOOR:
            raise FeeScheduleError(f"{self.provider}: first band starts at {first.min_amount}, expected {MODELED_FLOOR}")
        if last.max_amount != MODELED_CEILING:
            raise FeeScheduleError(f"{self.provider}: last band ends at {last.max_amount}, expected {MODELED_CEILING}")

        previous = None
        for band in self.bands:
            if band.min_amount > band.max_amount:
                raise FeeScheduleError(f"{self.provider}: band {band.min_amount}-{band.max_amount} is inverted")
            if band.fee < 0:
                raise FeeScheduleError(f"{self.provider}: negative fee in band {band.min_amount}-{band.max_amount}")
            if previous is not None:
                if band.min_amount <= previous.max_amount:
                    raise FeeScheduleError(
                        f"{self.provider}: band {band.min_amount}-{band.max_amount} overlaps "
                        f"{previous.min_amount}-{previous.max_amount}"
                    )
                if band.min_amount != previous.max_amount + 1:
                    raise FeeScheduleError(
                        f"{self.provider}: gap between {previous.max_amount} and {band.min_amount}"
                    )
                if band.fee < previous.fee:
                    raise FeeScheduleError(
                        f"{self.provider}: fee decreases from {previous.fee} to {band.fee} at {band.min_amount}"
                    )
            previous = band

    def fee(self, amount: int) -> int:
        for band in self.bands:
            if band.contains(amount):
                return band.fee
        return 0

    def is_modeled(self, amount: int) -> bool:
        return MODELED_FLOOR <= amount <= MODELED_CEILING


# MTN Mobile Money (Uganda) send-money tiers
MTN_SCHEDULE = FeeSchedule(
    "mtn",
    [
        (1, 5_000, 150),
        (5_001, 30_000, 300),
        (30_001, 125_000, 500),
        (125_001, 250_000, 1_000),
        (250_001, 500_000, 2_000),
        (500_001, 1_000_000, 5_000),
    ],
)

# Airtel Money (Uganda) send-money tiers
AIRTEL_SCHEDULE = FeeSchedule(
    "airtel",
    [
        (1, 4_999, 110),
        (5_000, 29_999, 330),
        (30_000, 124_999, 550),
        (125_000, 249_999, 1_100),
        (250_000, 499_999, 2_200),
        (500_000, 1_000_000, 5_500),
    ],
)

SCHEDULES: dict[str, FeeSchedule] = {
    MTN_SCHEDULE.provider: MTN_SCHEDULE,
    AIRTEL_SCHEDULE.provider: AIRTEL_SCHEDULE,
}


def fee(amount: int, provider: str) -> int:
    """Transaction fee for ``amount`` on ``provider``; 0 when no band matches."""
    schedule = SCHEDULES.get((provider or "").lower())
    if schedule is None:
        return 0
    return schedule.fee(amount)


def quote(amount: int, provider: str) -> FeeQuote:
    """Like ``fee`` but also reports whether the amount is inside the modeled range."""
    schedule = SCHEDULES.get((provider or "").lower())
    if schedule is None or not schedule.is_modeled(amount):
        logger.warning("Fee outside modeled schedule", provider=provider, amount=amount)
        return FeeQuote(fee=0, modeled=False)
    return FeeQuote(fee=schedule.fee(amount), modeled=True)


def has_schedule(provider: str) -> bool:
    return (provider or "").lower() in SCHEDULES
