"""Reward splitting with exact rational arithmetic.

All amounts are kept as ``fractions.Fraction`` until a participant's payout
is cut to whole currency units, so results never depend on float rounding.
"""

import logging
import math
from decimal import Decimal
from fractions import Fraction

from .models import Payouts, RewardSplit

logger = logging.getLogger(__name__)


def to_fraction(value: int | str | Decimal | Fraction) -> Fraction:
    """Convert a reward or fee value to an exact fraction (floats rejected)."""
    if isinstance(value, float):
        raise TypeError("Float amounts are not accepted, use Decimal or str")
    return Fraction(value)


def charge_fee(value: Fraction, fee_percent: int | str | Decimal | Fraction) -> tuple[Fraction, Fraction]:
    """Return (value after fee deduction, fee value)."""
    fee_value = value * to_fraction(fee_percent) / 100
    return value - fee_value, fee_value


def calculate_rewards_for_shares(
    shares: dict[str, int],
    total_shares: int,
    reward: Fraction,
) -> Payouts:
    """Split ``reward`` proportionally to ``shares``, truncating each payout."""
    if total_shares <= 0:
        raise ValueError(f"total_shares must be positive, got {total_shares}")

    rewards: Payouts = {}
    for login in sorted(shares):
        n = shares[login]
        percent = Fraction(n, total_shares)
        worker_reward = reward * percent
        worker_reward_int = math.trunc(worker_reward)
        rewards[login] = rewards.get(login, 0) + worker_reward_int
        logger.debug(
            f"login: {login}, percent: {percent}, workerReward: {worker_reward}, "
            f"workerRewardInt: {worker_reward_int}"
        )
    return rewards


def split_rewards(
    block_reward: int,
    extra_reward: int | None,
    shares: dict[str, int],
    total_shares: int,
    fee_percent: int | str | Decimal | Fraction,
    fee_address: str | None = None,
) -> RewardSplit:
    """Compute revenue, profits and per-participant payouts for one block.

    The pool fee is charged on the block reward only. ``extra_reward`` is
    added to revenue and pool profit after the miner split, so it accrues
    entirely to the pool. When ``fee_address`` is set it receives everything
    in ``floor(revenue)`` not paid out to miners, which is the pool profit
    plus the remainders left by truncating each miner payout.
    """
    revenue = Fraction(block_reward)
    miners_profit, pool_profit = charge_fee(revenue, fee_percent)

    payouts = calculate_rewards_for_shares(shares, total_shares, miners_profit)

    if extra_reward is not None:
        extra = Fraction(extra_reward)
        pool_profit += extra
        revenue += extra

    if fee_address:
        unallocated = math.floor(revenue) - sum(payouts.values())
        payouts[fee_address] = payouts.get(fee_address, 0) + unallocated

    return RewardSplit(
        revenue=revenue,
        miners_profit=miners_profit,
        pool_profit=pool_profit,
        payouts=payouts,
    )


def format_amount(value: Fraction, precision: int = 8) -> str:
    """Render a fraction as a fixed-point decimal string.

    The last digit is rounded half away from zero.
    """
    scale = 10**precision
    scaled = abs(value) * scale
    units = math.floor(scaled)
    if scaled - units >= Fraction(1, 2):
        units += 1

    sign = "-" if value < 0 and units else ""
    whole, frac = divmod(units, scale)
    if precision == 0:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{frac:0{precision}d}"
