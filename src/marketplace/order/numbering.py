"""Order number allocation: ``ORD-YY-MM-####``, monotonic per calendar month.

One ``OrderNumberSequence`` record per month holds the last issued value.
Callers must hold ``sequence_lock`` from reading the sequence until the
unit of work that stores it commits; ``lifecycle.place_order`` does this.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError
from protean.fields import Integer, String
from protean.utils.globals import current_domain

from marketplace.domain import marketplace


@marketplace.aggregate
class OrderNumberSequence:
    period = String(identifier=True, max_length=5)  # "YY-MM"
    last_value = Integer(default=0)

    def next_number(self) -> str:
        self.last_value = (self.last_value or 0) + 1
        return f"ORD-{self.period}-{self.last_value:04d}"


def period_for(moment: datetime) -> str:
    return moment.strftime("%y-%m")


def allocate_order_number(moment: datetime | None = None) -> str:
    moment = moment or datetime.now(UTC)
    repo = current_domain.repository_for(OrderNumberSequence)
    period = period_for(moment)
    try:
        sequence = repo.get(period)
    except ObjectNotFoundError:
        sequence = OrderNumberSequence(period=period)
    number = sequence.next_number()
    repo.add(sequence)
    return number
