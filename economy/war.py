"""
Wealth Wars — economy/war.py
Ratio Engine: Wealth Asset Ratio (WAR), efficiency tiers, trend, achievements.
============================================================================
Version:     0.4
Stack:       Python 3.11+ | numpy (ranking)
Status:      Pure functions. No state, no events.

Architecture notes
------------------
- ratio = wealth / portfolio_value, 0 when the portfolio is empty.
  portfolio_value is the summed acquisition cost of owned enhanced
  businesses (wealth-denominated, same unit as the wealth balance).
- Trend compares the oldest and newest of the last three samples, taken
  after the new sample is appended: > +0.05 rising, < -0.05 falling.
- History is append-only; nothing is ever trimmed.
- Rank is not computed here from one record. rank_by_ratio() ranks a whole
  leaderboard snapshot at once.

Efficiency tiers
----------------
  >= 0.8 legendary   >= 0.6 excellent   >= 0.4 good   >= 0.2 average   else poor
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Mapping

import numpy as np

from economy.state import WARRecord, WARSample

# ============================================================
# DESIGN VARIABLE DEFAULTS
# ============================================================

TREND_THRESHOLD: float = 0.05
TREND_WINDOW: int = 3

_EFFICIENCY_TIERS = (
    (0.8, "legendary"),
    (0.6, "excellent"),
    (0.4, "good"),
    (0.2, "average"),
)

# (id, name, threshold)
_RATIO_ACHIEVEMENTS = (
    ("war_rookie", "WAR Rookie", 0.25),
    ("efficiency_expert", "Efficiency Expert", 0.50),
    ("war_master", "WAR Master", 0.80),
    ("war_legend", "WAR Legend", 1.0),
)


def calculate_ratio(wealth: float, portfolio_value: float) -> float:
    if portfolio_value == 0:
        return 0.0
    return wealth / portfolio_value


def efficiency_tier(ratio: float) -> str:
    for threshold, name in _EFFICIENCY_TIERS:
        if ratio >= threshold:
            return name
    return "poor"


def trend(history: tuple) -> str:
    recent = history[-TREND_WINDOW:]
    if len(recent) < 2:
        return "stable"
    delta = recent[-1].ratio - recent[0].ratio
    if delta > TREND_THRESHOLD:
        return "rising"
    if delta < -TREND_THRESHOLD:
        return "falling"
    return "stable"


def update_war(
    record: WARRecord,
    wealth: int,
    portfolio_value: int,
    now: float,
    trigger: str = "update",
) -> WARRecord:
    ratio = calculate_ratio(wealth, portfolio_value)
    sample = WARSample(
        timestamp=now,
        ratio=ratio,
        trigger=trigger,
        portfolio_value=portfolio_value,
        wealth=wealth,
    )
    history = record.history + (sample,)
    return replace(
        record,
        current=ratio,
        peak=max(record.peak, ratio),
        trend=trend(history),
        efficiency=efficiency_tier(ratio),
        history=history,
    )


def rank_by_ratio(records: Mapping[str, WARRecord]) -> Dict[str, int]:
    """1-based ranks by current ratio, highest first; ties keep input order."""
    ids = list(records)
    if not ids:
        return {}
    ratios = np.array([records[i].current for i in ids], dtype=np.float64)
    order = np.argsort(-ratios, kind="stable")
    return {ids[idx]: rank + 1 for rank, idx in enumerate(order)}


# ============================================================
# ACHIEVEMENTS & RECOMMENDATIONS
# ============================================================

@dataclass(frozen=True)
class WARAchievement:
    id: str
    name: str
    achieved: bool
    progress: float                 # percent, capped at 100


def war_achievements(record: WARRecord) -> List[WARAchievement]:
    ratio = record.current
    out = [
        WARAchievement(aid, name, ratio >= threshold, min(100.0, ratio / threshold * 100))
        for aid, name, threshold in _RATIO_ACHIEVEMENTS
    ]
    peak = record.peak
    out.append(WARAchievement(
        "peak_performer",
        "Peak Performer",
        peak > 0 and ratio == peak,
        ratio / peak * 100 if peak > 0 else 0.0,
    ))
    return out


def war_recommendations(record: WARRecord) -> List[str]:
    tips: List[str] = []
    if record.current < 0.1:
        tips.append("Poor WAR efficiency: favour businesses that pay for themselves.")
    if record.efficiency == "good":
        tips.append("Technology upgrades can push efficiency toward excellent.")
    if record.trend == "falling":
        tips.append("WAR is declining: review recent purchases and maintenance.")
    if record.efficiency == "legendary":
        tips.append("Legendary efficiency attracts attacks: invest in defence.")
    return tips
