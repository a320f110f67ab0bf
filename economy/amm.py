"""
Wealth Wars — economy/amm.py
Liquidity Pool Engine: constant-product wealth/credits swaps.
=============================================================
Version:     0.4
Stack:       Python 3.11+
Status:      Pure functions. No state, no events.

Architecture notes
------------------
- reserve_a holds wealth, reserve_b holds credits. A_TO_B sells wealth
  for credits, B_TO_A buys wealth with credits.
- For input x on reserves (r_in, r_out):
      k        = r_in * r_out
      raw_out  = r_out - k / (r_in + x)
      fee      = raw_out * fee_bps / 10000
      out      = raw_out - fee
  The fee stays in the pool: committed reserves are (r_in + x, r_out - out),
  so k never decreases across a swap.
- Price is the marginal rate r_out / r_in on the curve. price_after uses
  the curve reserves (r_in + x, r_out - raw_out).
- Quotes are floats; the controller floors amounts credited to accounts.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from economy.errors import FailureReason
from economy.state import LiquidityPool

BPS_DENOMINATOR: int = 10_000


class SwapDirection(str, Enum):
    A_TO_B = "a_to_b"
    B_TO_A = "b_to_a"


@dataclass(frozen=True)
class SwapQuote:
    direction: SwapDirection
    amount_in: float
    raw_out: float
    fee: float
    amount_out: float
    price_before: float
    price_after: float
    price_impact: float             # percent
    reserve_in_after: float         # committed reserves (fee retained)
    reserve_out_after: float


def _reserves(pool: LiquidityPool, direction: SwapDirection) -> Tuple[float, float]:
    if direction == SwapDirection.A_TO_B:
        return pool.reserve_a, pool.reserve_b
    return pool.reserve_b, pool.reserve_a


def spot_price(pool: LiquidityPool, direction: SwapDirection) -> float:
    r_in, r_out = _reserves(pool, direction)
    if r_in <= 0:
        return 0.0
    return r_out / r_in


def effective_fee_bps(pool: LiquidityPool, fee_discount_percent: float = 0.0) -> float:
    discount = min(100.0, max(0.0, fee_discount_percent))
    return pool.fee_bps * (1 - discount / 100)


def quote_swap(
    pool: LiquidityPool,
    direction: SwapDirection,
    amount_in: float,
    fee_discount_percent: float = 0.0,
) -> Tuple[Optional[FailureReason], Optional[SwapQuote]]:
    """Price a swap without touching the pool. Deterministic for equal inputs."""
    if pool.paused:
        return FailureReason.POOL_PAUSED, None
    if amount_in <= 0:
        return FailureReason.INVALID_AMOUNT, None
    if amount_in > pool.max_trade_size:
        return FailureReason.TRADE_TOO_LARGE, None

    r_in, r_out = _reserves(pool, direction)
    if r_in <= 0 or r_out <= 0:
        return FailureReason.INSUFFICIENT_LIQUIDITY, None

    k = r_in * r_out
    new_in = r_in + amount_in
    raw_out = r_out - k / new_in
    fee = raw_out * effective_fee_bps(pool, fee_discount_percent) / BPS_DENOMINATOR
    amount_out = raw_out - fee
    if amount_out <= 0 or raw_out >= r_out:
        return FailureReason.INSUFFICIENT_LIQUIDITY, None

    price_before = r_out / r_in
    price_after = (r_out - raw_out) / new_in
    impact = abs(price_after - price_before) / price_before * 100

    return None, SwapQuote(
        direction=direction,
        amount_in=amount_in,
        raw_out=raw_out,
        fee=fee,
        amount_out=amount_out,
        price_before=price_before,
        price_after=price_after,
        price_impact=impact,
        reserve_in_after=new_in,
        reserve_out_after=r_out - amount_out,
    )


def apply_quote(pool: LiquidityPool, quote: SwapQuote) -> LiquidityPool:
    if quote.direction == SwapDirection.A_TO_B:
        return replace(pool, reserve_a=quote.reserve_in_after, reserve_b=quote.reserve_out_after)
    return replace(pool, reserve_b=quote.reserve_in_after, reserve_a=quote.reserve_out_after)


def minimum_received(quoted_amount_out: float, max_slippage_percent: float) -> float:
    return quoted_amount_out * (1 - max_slippage_percent / 100)


def execute_swap(
    pool: LiquidityPool,
    direction: SwapDirection,
    amount_in: float,
    quoted_amount_out: float,
    max_slippage_percent: float,
    fee_discount_percent: float = 0.0,
) -> Tuple[Optional[FailureReason], Optional[SwapQuote], LiquidityPool]:
    """
    Re-price against the current reserves and commit if the minimum-received
    guard holds. On failure the input pool is returned unchanged.
    """
    if not 0 <= max_slippage_percent <= 100:
        return FailureReason.INVALID_AMOUNT, None, pool

    reason, quote = quote_swap(pool, direction, amount_in, fee_discount_percent)
    if reason is not None:
        return reason, None, pool

    if quote.amount_out < minimum_received(quoted_amount_out, max_slippage_percent):
        return FailureReason.SLIPPAGE_EXCEEDED, quote, pool

    return None, quote, apply_quote(pool, quote)


def add_liquidity(
    pool: LiquidityPool, amount_a: float, amount_b: float
) -> Tuple[Optional[FailureReason], LiquidityPool]:
    if amount_a <= 0 or amount_b <= 0:
        return FailureReason.INVALID_AMOUNT, pool
    return None, replace(
        pool,
        reserve_a=pool.reserve_a + amount_a,
        reserve_b=pool.reserve_b + amount_b,
    )


def set_paused(pool: LiquidityPool, paused: bool) -> LiquidityPool:
    return replace(pool, paused=paused)
