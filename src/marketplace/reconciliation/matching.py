"""Ranked matching of an inbound payment to the single order it pays for.

The ladder is evaluated top to bottom and stops at the first step that yields
exactly one candidate:

1. exact reference (order number or stored payment reference)
2. exact amount among pending mobile-money orders inside the window
3. exact amount among the pending orders of the courier who sent the money
4. amount within the tolerance among pending mobile-money orders inside the
   window, applied as a partial payment only

A step with more than one candidate never resolves. An ambiguous reference
ends the ladder at once, so a referenced payment only ever lands on an order
the reference names. Any other ambiguous step moves on, and if nothing below
it is unique either the whole match is ambiguous.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog

from marketplace.config import get_settings
from marketplace.courier.courier import find_courier_by_phone
from marketplace.exceptions import AmbiguousMatchError
from marketplace.order import queries
from marketplace.reconciliation.notification import MatchType

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Match:
    order_id: str
    match_type: MatchType
    partial: bool = False


def _unique(step: MatchType, orders) -> str | None:
    ids = sorted({str(order.id) for order in orders})
    if len(ids) > 1:
        raise AmbiguousMatchError(step.value, ids)
    return ids[0] if ids else None


def _by_reference(inbound, now, settings):
    return queries.find_by_reference(inbound.reference)


def _by_exact_amount(inbound, now, settings):
    window = timedelta(hours=settings.reconciliation_window_hours)
    return [o for o in queries.pending_mobile_money_orders(now, window) if o.total_amount == inbound.amount]


def _by_courier(inbound, now, settings):
    courier = find_courier_by_phone(inbound.sender_phone)
    if courier is None:
        return []
    return [o for o in queries.pending_orders_for_courier(str(courier.id)) if o.total_amount == inbound.amount]


def _by_tolerance(inbound, now, settings):
    window = timedelta(hours=settings.reconciliation_window_hours)
    tolerance = settings.reconciliation_tolerance
    return [
        o
        for o in queries.pending_mobile_money_orders(now, window)
        if abs(o.total_amount - inbound.amount) <= tolerance
    ]


_LADDER = (
    (MatchType.EXACT_REFERENCE, _by_reference, False),
    (MatchType.EXACT_AMOUNT, _by_exact_amount, False),
    (MatchType.COURIER, _by_courier, False),
    (MatchType.TOLERANCE, _by_tolerance, True),
)


def find_match(inbound, now: datetime | None = None) -> Match | None:
    """Return the unique match for ``inbound``.

    Returns None when no step produced a candidate. Raises
    ``AmbiguousMatchError`` (with every candidate seen) when the reference
    names several orders, or when some later step produced several and none
    produced exactly one.
    """
    now = now or datetime.now(UTC)
    settings = get_settings()
    ambiguous: list[AmbiguousMatchError] = []

    for match_type, search, partial in _LADDER:
        try:
            order_id = _unique(match_type, search(inbound, now, settings))
        except AmbiguousMatchError as exc:
            logger.info(
                "Ambiguous match step",
                step=exc.step,
                candidates=len(exc.candidate_ids),
                transaction_id=inbound.transaction_id,
            )
            if match_type is MatchType.EXACT_REFERENCE:
                raise
            ambiguous.append(exc)
            continue
        if order_id is not None:
            return Match(order_id=order_id, match_type=match_type, partial=partial)

    if ambiguous:
        candidate_ids = sorted({cid for exc in ambiguous for cid in exc.candidate_ids})
        raise AmbiguousMatchError(ambiguous[0].step, candidate_ids)
    return None
