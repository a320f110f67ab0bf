import pytest
from economy.data_loader import get_economy_config
from economy.maintenance import (
    degradation_rate,
    degrade,
    efficiency_multiplier,
    initialize_condition,
    maintenance_cost,
    maintenance_notices,
    maintenance_recommendations,
    perform_maintenance,
    portfolio_maintenance_cost,
    process_degradation,
    warning_level,
    with_condition,
)
from economy.state import DAY, HOUR

CONFIG = get_economy_config()
RULES = CONFIG.maintenance_rules
ACTIONS = CONFIG.maintenance_actions
CATALOG = CONFIG.enhanced_assets

def _fresh(asset_id="consulting_firm", now=0.0):
    return initialize_condition(CATALOG[asset_id], CONFIG.degradation, now)

def test_degradation_rate():
    # offensive 3.5 * advanced 1.2
    assert degradation_rate("offensive", "advanced", CONFIG.degradation) == pytest.approx(4.2)
    assert _fresh().degradation_rate == pytest.approx(4.2)
    assert _fresh().condition == 100.0

def test_efficiency_steps():
    assert efficiency_multiplier(100) == 1.0
    assert efficiency_multiplier(80) == 1.0
    assert efficiency_multiplier(79.9) == 0.95
    assert efficiency_multiplier(40) == 0.85
    assert efficiency_multiplier(20) == 0.70
    assert efficiency_multiplier(5) == 0.50
    assert efficiency_multiplier(0) == 0.0

def test_efficiency_is_monotone():
    values = [efficiency_multiplier(c) for c in range(0, 101)]
    assert values == sorted(values)

def test_warning_levels():
    assert warning_level(60) == "good"
    assert warning_level(45) == "caution"
    assert warning_level(10) == "critical"
    assert warning_level(0) == "broken"

def test_with_condition_clamps():
    assert with_condition(_fresh(), 150).condition == 100.0
    broken = with_condition(_fresh(), -5)
    assert broken.condition == 0.0
    assert broken.warning_level == "broken"

def test_degrade_outside_slowdown_window():
    # 4.2 * 10 days = 42 -> 58
    cond = degrade(_fresh(), 0.0, 10 * DAY, RULES)
    assert cond.condition == pytest.approx(58.0)
    assert cond.warning_level == "caution"
    assert cond.efficiency_multiplier == 0.85

def test_degrade_inside_slowdown_window():
    # 4.2 * 2 days * 0.5 = 4.2 -> 95.8
    cond = degrade(_fresh(), 0.0, 2 * DAY, RULES)
    assert cond.condition == pytest.approx(95.8)

def test_degrade_floors_at_zero():
    cond = degrade(_fresh(), 0.0, 100 * DAY, RULES)
    assert cond.condition == 0.0
    assert cond.warning_level == "broken"

def test_offline_asset_returns_and_counts_time_since():
    cond = _fresh(now=-30 * DAY)
    from dataclasses import replace
    cond = replace(cond, is_offline=True, offline_until=1 * DAY)
    # online at day 1, then 2 days at full rate: 4.2 * 2 = 8.4
    result = process_degradation({"consulting_firm": cond}, 0.0, 3 * DAY, RULES)["consulting_firm"]
    assert not result.is_offline
    assert result.offline_until is None
    assert result.condition == pytest.approx(91.6)

def test_offline_asset_does_not_decay():
    from dataclasses import replace
    cond = replace(_fresh(now=-30 * DAY), is_offline=True, offline_until=10 * DAY)
    assert degrade(cond, 0.0, 3 * DAY, RULES).condition == 100.0

def test_maintenance_cost_examples():
    # 45 * 0.08 = 3.6 -> 3
    assert maintenance_cost(45, ACTIONS["routine"], 0, RULES) == 3
    # 100 * 0.08 * 0.9 = 7.2 -> 7
    assert maintenance_cost(100, ACTIONS["routine"], 0, RULES) == 7
    # 200 * 0.35 * 0.8 = 56
    assert maintenance_cost(200, ACTIONS["upgrade"], 0, RULES) == 56
    # 56 * (1 - 0.10) = 50.4 -> 50
    assert maintenance_cost(200, ACTIONS["upgrade"], 2, RULES) == 50

def test_maintenance_cost_minimum_one():
    # 8 * 0.08 = 0.64 -> 1
    assert maintenance_cost(8, ACTIONS["routine"], 0, RULES) == 1

def test_synergy_discount_is_capped():
    # 10 synergies would be 50%, capped at 25%: 200 * 0.35 * 0.8 * 0.75 = 42
    assert maintenance_cost(200, ACTIONS["upgrade"], 10, RULES) == 42

def test_perform_major_maintenance():
    start = with_condition(_fresh(), 50)
    now = 20 * DAY
    outcome = perform_maintenance(start, 45, ACTIONS["major"], 0, now, RULES)
    cond = outcome.condition
    # 50 + 60 capped at 100
    assert cond.condition == 100.0
    assert cond.is_offline
    assert cond.offline_until == now + 8 * HOUR
    assert cond.slowdown_until == now + 7 * DAY
    assert cond.last_maintained == now
    assert outcome.cost == 9   # 45 * 0.20
    assert outcome.record.condition_before == 50
    assert len(cond.maintenance_history) == 1

def test_upgrade_bonus_accumulates():
    cond = _fresh()
    cond = perform_maintenance(cond, 45, ACTIONS["upgrade"], 0, 1 * DAY, RULES).condition
    cond = perform_maintenance(cond, 45, ACTIONS["upgrade"], 0, 20 * DAY, RULES).condition
    assert cond.upgrade_bonus == pytest.approx(0.2)
    assert len(cond.maintenance_history) == 2

def test_emergency_keeps_running_and_existing_slowdown():
    cond = perform_maintenance(_fresh(), 45, ACTIONS["upgrade"], 0, 0.0, RULES).condition
    granted = cond.slowdown_until
    cond = perform_maintenance(cond, 45, ACTIONS["emergency"], 0, 2 * DAY, RULES).condition
    assert not cond.is_offline
    assert cond.offline_until is None
    assert cond.slowdown_until == granted

def test_notices():
    conditions = {
        "consulting_firm": with_condition(_fresh(), 45),
        "security_firm": with_condition(_fresh("security_firm"), 0),
    }
    kinds = {n.asset_id: n.kind for n in maintenance_notices(conditions, CATALOG, 0.0)}
    assert kinds == {"consulting_firm": "warning", "security_firm": "broken"}

def test_recommendations_sorted_by_urgency():
    conditions = {
        "consulting_firm": with_condition(_fresh(), 45),                   # caution
        "security_firm": with_condition(_fresh("security_firm"), 0),       # broken
        "market_research": with_condition(_fresh("market_research"), 85),  # upgrade candidate
    }
    recs = maintenance_recommendations(conditions, CATALOG, ACTIONS, 1000, 0, RULES)
    assert [(r.asset_id, r.action) for r in recs] == [
        ("security_firm", "major"),
        ("consulting_firm", "routine"),
        ("market_research", "upgrade"),
    ]

def test_recommendations_respect_budget():
    conditions = {"security_firm": with_condition(_fresh("security_firm"), 0)}
    # major on a 40-cost business: 40 * 0.20 = 8
    assert maintenance_recommendations(conditions, CATALOG, ACTIONS, 7, 0, RULES) == []

def test_portfolio_cost_skips_good_assets():
    conditions = {
        "consulting_firm": with_condition(_fresh(), 45),
        "security_firm": _fresh("security_firm"),
    }
    # routine on consulting only: 3
    assert portfolio_maintenance_cost(conditions, CATALOG, ACTIONS["routine"], 0, RULES) == 3
