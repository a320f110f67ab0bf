"""
Wealth Wars — economy/synergy.py
Synergy Evaluator: category alliances with priority-based override.
===================================================================
Version:     0.4
Stack:       Python 3.11+ | Pydantic v2 (SynergyDef tables)
Status:      Pure functions. No state, no events.

Architecture notes
------------------
- A synergy is satisfied when every required category holds at least
  ceil(min_businesses / len(required_categories)) assets. Synergies flagged
  spans_all_categories (Complete Monopoly) need one asset in each category.
- Aggregation never stacks overlapping stats: for every effect key, a
  synergy contributes only when no active synergy of strictly higher
  priority defines that same key. Equal-priority synergies both count.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Sequence

from economy.data_loader import EnhancedAssetDef, SynergyDef

# ============================================================
# EFFECT KEYS
# ============================================================

WORK_MULTIPLIER_BONUS = "work_multiplier_bonus"
ATTACK_SUCCESS_BONUS = "attack_success_bonus"
DEFENSE_BONUS = "defense_bonus"
WEALTH_THEFT_BONUS = "wealth_theft_bonus"
DAILY_WEALTH_BONUS = "daily_wealth_bonus"
COUNTER_ATTACK_BONUS = "counter_attack_bonus"
WEALTH_LOSS_REDUCTION = "wealth_loss_reduction"


@dataclass(frozen=True)
class SynergyEffects:
    """Summed, override-resolved effects of the active synergies."""
    values: Dict[str, float] = field(default_factory=dict)

    def get(self, key: str) -> float:
        return self.values.get(key, 0.0)


@dataclass(frozen=True)
class SynergyProgress:
    synergy_id: str
    percent: int
    owned: int
    required: int
    missing: List[str]


def count_categories(
    asset_ids: Iterable[str], catalog: Mapping[str, EnhancedAssetDef]
) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for asset_id in asset_ids:
        asset = catalog.get(asset_id)
        if asset is None:
            continue
        counts[asset.category] = counts.get(asset.category, 0) + 1
    return counts


def required_per_category(synergy: SynergyDef) -> int:
    if synergy.spans_all_categories:
        return 1
    return math.ceil(synergy.min_businesses / len(synergy.required_categories))


def requirement_met(synergy: SynergyDef, counts: Mapping[str, int]) -> bool:
    needed = required_per_category(synergy)
    return all(counts.get(cat, 0) >= needed for cat in synergy.required_categories)


def active_synergies(
    asset_ids: Sequence[str],
    catalog: Mapping[str, EnhancedAssetDef],
    synergies: Iterable[SynergyDef],
) -> List[SynergyDef]:
    """Satisfied synergies, highest priority first."""
    counts = count_categories(asset_ids, catalog)
    active = [s for s in synergies if requirement_met(s, counts)]
    return sorted(active, key=lambda s: s.priority, reverse=True)


def aggregate_effects(active: Sequence[SynergyDef]) -> SynergyEffects:
    totals: Dict[str, float] = {}
    for synergy in active:
        for key, value in synergy.effects.items():
            if not value:
                continue
            overridden = any(
                other.priority > synergy.priority and other.effects.get(key)
                for other in active
            )
            if overridden:
                continue
            totals[key] = totals.get(key, 0.0) + value
    return SynergyEffects(values=totals)


def evaluate(
    asset_ids: Sequence[str],
    catalog: Mapping[str, EnhancedAssetDef],
    synergies: Iterable[SynergyDef],
) -> SynergyEffects:
    return aggregate_effects(active_synergies(asset_ids, catalog, synergies))


def synergy_progress(
    asset_ids: Sequence[str],
    catalog: Mapping[str, EnhancedAssetDef],
    synergies: Iterable[SynergyDef],
) -> List[SynergyProgress]:
    """Progress toward every synergy not yet active, closest first."""
    counts = count_categories(asset_ids, catalog)
    out: List[SynergyProgress] = []
    for synergy in synergies:
        if requirement_met(synergy, counts):
            continue
        needed = required_per_category(synergy)
        owned = 0
        required = 0
        missing: List[str] = []
        for cat in synergy.required_categories:
            have = counts.get(cat, 0)
            required += needed
            owned += min(have, needed)
            if have < needed:
                short = needed - have
                plural = "es" if short > 1 else ""
                missing.append(f"{short} more {cat} business{plural}")
        percent = int(math.floor(owned / required * 100)) if required else 0
        out.append(SynergyProgress(synergy.id, percent, owned, required, missing))
    return sorted(out, key=lambda p: p.percent, reverse=True)
