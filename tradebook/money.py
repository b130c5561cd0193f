"""Minor-unit (cents) helpers.

Every amount inside the engines is an ``int`` of cents. External prices are
converted exactly once, through :func:`to_cents`, at the point where they
enter the system.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("1")


def to_cents(dollars: Decimal | int | str) -> int:
    """Convert a dollar amount to integer cents, rounding half up."""
    value = Decimal(str(dollars)) * 100
    return int(value.quantize(CENT, rounding=ROUND_HALF_UP))


def round_cents(cents: Decimal) -> int:
    """Round a fractional cent amount to an integer number of cents."""
    return int(Decimal(cents).quantize(CENT, rounding=ROUND_HALF_UP))


def format_cents(cents: int) -> str:
    """Render cents as a dollar string, e.g. ``-123456`` -> ``-$1,234.56``."""
    sign = "-" if cents < 0 else ""
    return f"{sign}${Decimal(abs(cents)) / 100:,.2f}"


def allocate_pro_rata(total: int, weights: list[Decimal]) -> list[int]:
    """Split ``total`` cents across ``weights`` so the parts sum to ``total``.

    Uses largest-remainder rounding; ties go to the earlier weight.
    """
    if not weights:
        return []
    weight_sum = sum(weights, Decimal("0"))
    if weight_sum == 0:
        return [0] * len(weights)

    sign = -1 if total < 0 else 1
    magnitude = abs(total)
    exact = [Decimal(magnitude) * w / weight_sum for w in weights]
    floors = [int(e) for e in exact]
    leftover = magnitude - sum(floors)
    order = sorted(range(len(weights)), key=lambda i: (-(exact[i] - floors[i]), i))
    for i in order[:leftover]:
        floors[i] += 1
    return [sign * part for part in floors]
