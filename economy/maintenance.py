"""
Wealth Wars — economy/maintenance.py
Degradation & Maintenance Engine: condition decay, repairs, offline windows.
===========================================================================
Version:     0.4
Stack:       Python 3.11+ | Pydantic v2 (maintenance tables)
Status:      Pure functions. No state, no events.

Architecture notes
------------------
- Condition is a float in [0, 100]. Decay per check is
  rate * elapsed_days * slowdown, where slowdown is 0.5 inside the window
  after the last maintenance (or before an action's slowdown_until) and
  1.0 otherwise.
- Offline businesses do not decay. When an offline window has elapsed the
  business comes back online and only the time since offline_until counts.
- upgrade_bonus only grows. maintenance_history only appends.

Efficiency step function
------------------------
  condition >= 80 -> 1.00      >= 60 -> 0.95      >= 40 -> 0.85
  condition >= 20 -> 0.70      >  0  -> 0.50      == 0  -> 0.00

Warning levels
--------------
  >= 60 good      >= 40 caution      > 0 critical      == 0 broken
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional

from economy.data_loader import (
    DegradationDef,
    EnhancedAssetDef,
    MaintenanceActionDef,
    MaintenanceRulesDef,
)
from economy.state import DAY, HOUR, AssetCondition, MaintenanceRecord

# ============================================================
# STEP TABLES
# ============================================================

_EFFICIENCY_STEPS = ((80, 1.0), (60, 0.95), (40, 0.85), (20, 0.70))

# Recommendation priority per warning level: (action, priority)
_RECOMMENDATION_TABLE = {
    "broken":   ("major", 100),
    "critical": ("emergency", 80),
    "caution":  ("routine", 60),
}
UPGRADE_RECOMMENDATION_PRIORITY: int = 40
UPGRADE_RECOMMENDATION_MAX_CONDITION: float = 90
UPGRADE_RECOMMENDATION_MAX_BONUS: float = 0.2


def degradation_rate(category: str, tier: str, table: DegradationDef) -> float:
    return table.category_rates[category] * table.tier_multipliers[tier]


def efficiency_multiplier(condition: float) -> float:
    for threshold, value in _EFFICIENCY_STEPS:
        if condition >= threshold:
            return value
    if condition > 0:
        return 0.50
    return 0.0


def warning_level(condition: float) -> str:
    if condition >= 60:
        return "good"
    if condition >= 40:
        return "caution"
    if condition > 0:
        return "critical"
    return "broken"


def with_condition(cond: AssetCondition, value: float) -> AssetCondition:
    """Set condition (clamped) and refresh the derived fields."""
    value = min(100.0, max(0.0, value))
    return replace(
        cond,
        condition=value,
        efficiency_multiplier=efficiency_multiplier(value),
        warning_level=warning_level(value),
    )


def initialize_condition(
    asset: EnhancedAssetDef, table: DegradationDef, now: float
) -> AssetCondition:
    """A freshly bought business starts at 100 and counts as just maintained."""
    return AssetCondition(
        asset_id=asset.id,
        condition=100.0,
        last_maintained=now,
        degradation_rate=degradation_rate(asset.category, asset.tier, table),
    )


# ============================================================
# DEGRADATION
# ============================================================

def _slowdown(cond: AssetCondition, now: float, rules: MaintenanceRulesDef) -> float:
    recently = now - cond.last_maintained <= rules.slowdown_window_days * DAY
    granted = cond.slowdown_until is not None and now < cond.slowdown_until
    return rules.slowdown_factor if recently or granted else 1.0


def degrade(
    cond: AssetCondition, last_check: float, now: float, rules: MaintenanceRulesDef
) -> AssetCondition:
    start = last_check
    if cond.is_offline and cond.offline_until is not None and now >= cond.offline_until:
        start = max(start, cond.offline_until)
        cond = replace(cond, is_offline=False, offline_until=None)

    if cond.is_offline or cond.condition <= 0:
        return cond

    days = max(0.0, now - start) / DAY
    loss = cond.degradation_rate * days * _slowdown(cond, now, rules)
    return with_condition(cond, cond.condition - loss)


def process_degradation(
    conditions: Mapping[str, AssetCondition],
    last_check: float,
    now: float,
    rules: MaintenanceRulesDef,
) -> Dict[str, AssetCondition]:
    return {
        asset_id: degrade(cond, last_check, now, rules)
        for asset_id, cond in conditions.items()
    }


# ============================================================
# MAINTENANCE
# ============================================================

@dataclass(frozen=True)
class MaintenanceOutcome:
    condition: AssetCondition
    cost: int
    record: MaintenanceRecord


def scaling_factor(asset_cost: int, rules: MaintenanceRulesDef) -> float:
    if asset_cost > rules.high_cost_threshold:
        return rules.high_cost_factor
    if asset_cost > rules.mid_cost_threshold:
        return rules.mid_cost_factor
    return 1.0


def synergy_discount(active_synergy_count: int, rules: MaintenanceRulesDef) -> float:
    percent = min(
        rules.synergy_discount_cap_percent,
        active_synergy_count * rules.synergy_discount_percent,
    )
    return 1 - percent / 100


def maintenance_cost(
    asset_cost: int,
    action: MaintenanceActionDef,
    active_synergy_count: int,
    rules: MaintenanceRulesDef,
) -> int:
    raw = (
        asset_cost
        * action.cost_multiplier
        * scaling_factor(asset_cost, rules)
        * synergy_discount(active_synergy_count, rules)
    )
    # round() strips float noise such as 3.9999999999 before flooring
    return int(math.floor(round(max(1.0, raw), 9)))


def perform_maintenance(
    cond: AssetCondition,
    asset_cost: int,
    action: MaintenanceActionDef,
    active_synergy_count: int,
    now: float,
    rules: MaintenanceRulesDef,
) -> MaintenanceOutcome:
    """Apply an action. The caller checks affordability before committing."""
    cost = maintenance_cost(asset_cost, action, active_synergy_count, rules)
    before = cond.condition
    restored = with_condition(cond, before + action.condition_restored)

    record = MaintenanceRecord(
        timestamp=now,
        action=action.id,
        cost=cost,
        condition_before=before,
        condition_after=restored.condition,
        downtime_hours=action.offline_hours,
    )

    offline = action.offline_hours > 0
    slowdown_until = cond.slowdown_until
    if action.slowdown_days > 0:
        granted = now + action.slowdown_days * DAY
        slowdown_until = max(granted, slowdown_until or 0.0)
    updated = replace(
        restored,
        last_maintained=now,
        is_offline=offline,
        offline_until=now + action.offline_hours * HOUR if offline else None,
        slowdown_until=slowdown_until,
        upgrade_bonus=cond.upgrade_bonus + action.efficiency_bonus,
        maintenance_history=cond.maintenance_history + (record,),
    )
    return MaintenanceOutcome(condition=updated, cost=cost, record=record)


# ============================================================
# NOTICES & RECOMMENDATIONS
# ============================================================

@dataclass(frozen=True)
class MaintenanceNotice:
    asset_id: str
    kind: str                       # warning | critical | broken | maintenance_complete
    message: str


def maintenance_notices(
    conditions: Mapping[str, AssetCondition],
    catalog: Mapping[str, EnhancedAssetDef],
    now: float,
) -> List[MaintenanceNotice]:
    notices: List[MaintenanceNotice] = []
    for asset_id, cond in conditions.items():
        asset = catalog.get(asset_id)
        if asset is None:
            continue
        pct = int(math.floor(cond.condition))
        if cond.warning_level == "broken":
            notices.append(MaintenanceNotice(
                asset_id, "broken", f"{asset.name} has broken down completely"))
        elif cond.warning_level == "critical":
            notices.append(MaintenanceNotice(
                asset_id, "critical", f"{asset.name} in critical condition ({pct}%)"))
        elif cond.warning_level == "caution":
            notices.append(MaintenanceNotice(
                asset_id, "warning", f"{asset.name} needs maintenance ({pct}% condition)"))

        if cond.is_offline and cond.offline_until is not None and now >= cond.offline_until:
            notices.append(MaintenanceNotice(
                asset_id, "maintenance_complete", f"{asset.name} maintenance completed"))
    return notices


@dataclass(frozen=True)
class Recommendation:
    asset_id: str
    action: str
    cost: int
    priority: int


def maintenance_recommendations(
    conditions: Mapping[str, AssetCondition],
    catalog: Mapping[str, EnhancedAssetDef],
    actions: Mapping[str, MaintenanceActionDef],
    budget: int,
    active_synergy_count: int,
    rules: MaintenanceRulesDef,
) -> List[Recommendation]:
    """Affordable next actions, most urgent first."""
    out: List[Recommendation] = []
    for asset_id, cond in conditions.items():
        asset = catalog.get(asset_id)
        if asset is None:
            continue

        choice: Optional[tuple] = _RECOMMENDATION_TABLE.get(cond.warning_level)
        if choice is None:
            if (
                cond.condition < UPGRADE_RECOMMENDATION_MAX_CONDITION
                and cond.upgrade_bonus < UPGRADE_RECOMMENDATION_MAX_BONUS
            ):
                choice = ("upgrade", UPGRADE_RECOMMENDATION_PRIORITY)
            else:
                continue

        action_id, priority = choice
        cost = maintenance_cost(asset.cost, actions[action_id], active_synergy_count, rules)
        if cost <= budget:
            out.append(Recommendation(asset_id, action_id, cost, priority))
    return sorted(out, key=lambda r: r.priority, reverse=True)


def portfolio_maintenance_cost(
    conditions: Mapping[str, AssetCondition],
    catalog: Mapping[str, EnhancedAssetDef],
    action: MaintenanceActionDef,
    active_synergy_count: int,
    rules: MaintenanceRulesDef,
) -> int:
    """What one action on every business below 'good' would cost."""
    total = 0
    for asset_id, cond in conditions.items():
        asset = catalog.get(asset_id)
        if asset is None or cond.warning_level == "good":
            continue
        total += maintenance_cost(asset.cost, action, active_synergy_count, rules)
    return total
