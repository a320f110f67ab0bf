"""
Wealth Wars — economy/balance.py
Balance / Yield Calculator: outlet growth, milestones, risk, work multipliers.
=============================================================================
Version:     0.4
Stack:       Python 3.11+ | stdlib math
Status:      Pure functions. No state, no events.

Design Variables (defaults; live values come from rules.toml [outlets]/[work])
-------------------------------------------------------------------------------
  OUTLET_GROWTH           1.15               — geometric cost growth per outlet
  MILESTONES              (10, 25, 50, 100)  — outlet counts that boost profit
  MILESTONE_BONUS         1.2                — multiplier per milestone reached
  WORK_MULTIPLIER_CAP     200                — percent cap on business bonuses
"""

from __future__ import annotations

import math
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple
from dataclasses import replace

from economy.state import Asset, AssetCondition

# ============================================================
# DESIGN VARIABLE DEFAULTS
# Change here or override at runtime. Never hardcode elsewhere.
# ============================================================

OUTLET_GROWTH: float = 1.15
MILESTONES: Tuple[int, ...] = (10, 25, 50, 100)
MILESTONE_BONUS: float = 1.2
WORK_MULTIPLIER_CAP: int = 200


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ============================================================
# OUTLETS & MILESTONES
# ============================================================

def milestone_multiplier(
    outlets: int,
    milestones: Sequence[int] = MILESTONES,
    bonus: float = MILESTONE_BONUS,
) -> float:
    multiplier = 1.0
    for threshold in milestones:
        if outlets >= threshold:
            multiplier *= bonus
    return multiplier


def next_milestone(outlets: int, milestones: Sequence[int] = MILESTONES) -> Optional[int]:
    for threshold in milestones:
        if outlets < threshold:
            return threshold
    return None


def outlet_cost(asset: Asset, qty: int, growth: float = OUTLET_GROWTH) -> int:
    """
    Total cost of buying `qty` more outlets.

    Outlet i (0-based, counted from the current total) costs
    cost_per_outlet * growth ** (outlets + i - 1); the sum is rounded.
    """
    current = max(1, asset.outlets)
    total = 0.0
    for i in range(qty):
        total += asset.cost_per_outlet * growth ** (current + i - 1)
    return round_half_up(total)


def profit_per_cycle(asset: Asset) -> float:
    return asset.yield_per_tick * asset.outlets * asset.multiplier


def add_outlets(
    asset: Asset,
    qty: int,
    milestones: Sequence[int] = MILESTONES,
    bonus: float = MILESTONE_BONUS,
) -> Asset:
    outlets = asset.outlets + qty
    return replace(
        asset,
        outlets=outlets,
        multiplier=milestone_multiplier(outlets, milestones, bonus),
    )


# ============================================================
# PORTFOLIO METRICS
# ============================================================

def calculate_asset_value(assets: Iterable[Asset]) -> int:
    return sum(a.yield_per_tick * a.level for a in assets)


def calculate_risk(assets: Iterable[Asset]) -> int:
    """100 minus the average condition of the basic assets; 0 with none."""
    conditions = [a.condition for a in assets]
    if not conditions:
        return 0
    return round_half_up(100 - sum(conditions) / len(conditions))


def profit_per_second(assets: Iterable[Asset], now: float) -> float:
    """Only managed assets or assets with a running cycle are producing."""
    total = 0.0
    for asset in assets:
        running = asset.next_ready_at is not None and now < asset.next_ready_at
        if asset.manager_hired or running:
            total += profit_per_cycle(asset) / asset.cycle_seconds
    return total


def prestige_score(level: int, wealth: int, asset_value: int) -> float:
    return math.floor(level * wealth / 1000) + asset_value / 100


# ============================================================
# PRODUCTION CYCLES
# ============================================================

def run_cycle(asset: Asset, now: float) -> Tuple[int, Asset]:
    """
    Advance an asset's production cycle.

    Returns (profit, updated asset). An idle asset starts a cycle and pays
    nothing. A finished cycle pays out; managed assets pay every cycle that
    completed since and keep running, unmanaged ones go idle.
    """
    if asset.next_ready_at is None:
        return 0, replace(asset, next_ready_at=now + asset.cycle_seconds)

    if now < asset.next_ready_at:
        return 0, asset

    cycles = 1
    if asset.manager_hired:
        cycles += int((now - asset.next_ready_at) // asset.cycle_seconds)
        next_ready = asset.next_ready_at + cycles * asset.cycle_seconds
    else:
        next_ready = None

    profit = int(math.floor(profit_per_cycle(asset) * cycles))
    return profit, replace(asset, next_ready_at=next_ready)


# ============================================================
# WORK MULTIPLIERS
# ============================================================

def business_work_multiplier(
    assets: Iterable[Asset],
    sabotage_damage: float = 0.0,
    cap_percent: int = WORK_MULTIPLIER_CAP,
) -> float:
    """1 + capped basic-business bonus, scaled down by unrepaired sabotage."""
    percent = min(cap_percent, sum(a.work_multiplier * a.outlets for a in assets))
    damage = min(100.0, max(0.0, sabotage_damage))
    return (1 + percent / 100) * (1 - damage / 100)


def enhanced_work_multiplier(
    active_ids: Sequence[str],
    work_multipliers: Mapping[str, int],
    conditions: Mapping[str, AssetCondition],
    cap_percent: int = WORK_MULTIPLIER_CAP,
) -> float:
    """
    1 + capped bonus from the active enhanced businesses.

    Each contributes work_multiplier * efficiency * (1 + upgrade bonus);
    offline businesses contribute nothing.
    """
    percent = 0.0
    for asset_id in active_ids:
        base = work_multipliers.get(asset_id, 0)
        cond = conditions.get(asset_id)
        if cond is None:
            percent += base
            continue
        if cond.is_offline:
            continue
        percent += base * cond.efficiency_multiplier * (1 + cond.upgrade_bonus)
    return 1 + min(cap_percent, percent) / 100


def online_assets(
    active_ids: Sequence[str], conditions: Mapping[str, AssetCondition]
) -> List[str]:
    """Active ids whose business is neither offline nor broken."""
    out = []
    for asset_id in active_ids:
        cond = conditions.get(asset_id)
        if cond is not None and (cond.is_offline or cond.condition <= 0):
            continue
        out.append(asset_id)
    return out
