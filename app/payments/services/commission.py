"""
Commission and gateway fee arithmetic.

Pure functions over integer kobo. Decimal is used for the percentage
maths and the result is rounded half-up to whole kobo, so the same input
always yields the same split and commission + seller_share == amount.

The schedule comes from settings.PLATFORM_COMMISSION_TIERS, a list of
[upper_bound_naira | None, percent] pairs applied marginally:

    [[10000, "6.5"], [20000, "5.5"], [50000, "4.5"], [100000, "4"], [None, "2.5"]]

The first ₦10,000 is charged 6.5%, the next ₦10,000 5.5%, and so on.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

KOBO_PER_NAIRA = 100

DEFAULT_COMMISSION_TIERS = [[None, "3"]]

# Paystack local-channel fee used to net refunds
GATEWAY_FEE_PERCENT = Decimal("1.5")
GATEWAY_FEE_FLAT_KOBO = 100 * KOBO_PER_NAIRA
GATEWAY_FEE_FLAT_THRESHOLD_KOBO = 2_500 * KOBO_PER_NAIRA
GATEWAY_FEE_CAP_KOBO = 2_000 * KOBO_PER_NAIRA


@dataclass(frozen=True)
class CommissionSplit:
    amount_kobo: int
    commission_kobo: int
    seller_share_kobo: int


def naira_to_kobo(amount) -> int:
    """Convert a naira amount (Decimal, str or number) to whole kobo, half-up."""
    return int((Decimal(str(amount)) * KOBO_PER_NAIRA).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def kobo_to_naira(amount_kobo: int) -> Decimal:
    return (Decimal(amount_kobo) / KOBO_PER_NAIRA).quantize(Decimal("0.01"))


def get_commission_tiers(raw=None) -> list[tuple[int | None, Decimal]]:
    """
    Normalise a tier table into [(upper_bound_kobo | None, percent)].

    Raises:
        ValueError: If the table is empty, unordered, or has an unbounded
            tier anywhere but last
    """
    if raw is None:
        raw = getattr(settings, "PLATFORM_COMMISSION_TIERS", None) or DEFAULT_COMMISSION_TIERS

    tiers = []
    previous_bound = 0
    for index, (upper_bound, percent) in enumerate(raw):
        rate = Decimal(str(percent))
        if rate < 0 or rate > 100:
            raise ValueError(f"Commission percent out of range: {percent}")
        if upper_bound is None:
            if index != len(raw) - 1:
                raise ValueError("Only the last commission tier may be unbounded")
            tiers.append((None, rate))
            continue
        bound_kobo = naira_to_kobo(upper_bound)
        if bound_kobo <= previous_bound:
            raise ValueError("Commission tier bounds must be strictly increasing")
        tiers.append((bound_kobo, rate))
        previous_bound = bound_kobo

    if not tiers:
        raise ValueError("At least one commission tier is required")
    return tiers


def calculate_commission(amount_kobo: int, tiers=None) -> CommissionSplit:
    """
    Split an amount into platform commission and seller share.

    Amounts above the last bounded tier with no unbounded tier fall back to
    the last tier's rate.

    Example:
        >>> calculate_commission(500_000, [[None, "3"]])
        CommissionSplit(amount_kobo=500000, commission_kobo=15000, seller_share_kobo=485000)
    """
    if amount_kobo <= 0:
        raise ValueError("amount_kobo must be positive")

    schedule = get_commission_tiers(tiers)

    commission = Decimal(0)
    lower = 0
    last_rate = schedule[-1][1]
    for upper, rate in schedule:
        if amount_kobo <= lower:
            break
        top = amount_kobo if upper is None else min(amount_kobo, upper)
        commission += Decimal(top - lower) * rate / 100
        if upper is None:
            lower = amount_kobo
            break
        lower = upper

    if lower < amount_kobo:
        commission += Decimal(amount_kobo - lower) * last_rate / 100

    commission_kobo = int(commission.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return CommissionSplit(
        amount_kobo=amount_kobo,
        commission_kobo=commission_kobo,
        seller_share_kobo=amount_kobo - commission_kobo,
    )


def calculate_gateway_fee(amount_kobo: int) -> int:
    """
    Paystack's local fee on an inbound charge: 1.5%, plus ₦100 when the
    amount exceeds ₦2,500, capped at ₦2,000.
    """
    fee = Decimal(amount_kobo) * GATEWAY_FEE_PERCENT / 100
    if amount_kobo > GATEWAY_FEE_FLAT_THRESHOLD_KOBO:
        fee += GATEWAY_FEE_FLAT_KOBO
    fee_kobo = int(fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return min(fee_kobo, GATEWAY_FEE_CAP_KOBO, amount_kobo)
