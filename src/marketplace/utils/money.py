"""Integer minor-unit arithmetic."""

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount: int, percentage: float) -> int:
    """``percentage`` percent of ``amount``, rounded half up."""
    return round_half_up(Decimal(amount) * Decimal(str(percentage)) / Decimal(100))


def split_by_weight(total: int, weights: dict[str, int]) -> dict[str, int]:
    """Split ``total`` across keys in proportion to ``weights``.

    Largest-remainder apportionment: every key gets the floor of its exact
    share and the leftover units go to the largest fractional parts (ties by
    key order). Shares are never negative and always add back to ``total``.
    """
    if not weights:
        return {}
    keys = list(weights)
    weight_sum = sum(weights.values())
    if weight_sum <= 0:
        shares = {key: 0 for key in keys}
        shares[keys[0]] = total
        return shares

    exact = {key: Decimal(total) * Decimal(weights[key]) / Decimal(weight_sum) for key in keys}
    shares = {key: int(exact[key]) for key in keys}
    leftover = total - sum(shares.values())
    by_remainder = sorted(keys, key=lambda k: (-(exact[k] - shares[k]), keys.index(k)))
    for key in by_remainder[:leftover]:
        shares[key] += 1
    return shares
