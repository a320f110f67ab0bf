import pytest
from economy.data_loader import SynergyDef, get_economy_config
from economy.synergy import (
    COUNTER_ATTACK_BONUS,
    WORK_MULTIPLIER_BONUS,
    active_synergies,
    aggregate_effects,
    count_categories,
    evaluate,
    required_per_category,
    synergy_progress,
)

CONFIG = get_economy_config()
CATALOG = CONFIG.enhanced_assets
SYNERGIES = CONFIG.synergies

def _ids(active):
    return [s.id for s in active]

def test_count_categories():
    counts = count_categories(["automation_factory", "fast_food_chain", "security_firm"], CATALOG)
    assert counts == {"efficiency": 2, "defensive": 1}

def test_required_per_category():
    by_id = {s.id: s for s in SYNERGIES}
    assert required_per_category(by_id["efficiency_network"]) == 2
    assert required_per_category(by_id["economic_empire"]) == 3
    # one of each category, not ceil(4 / 4) by coincidence
    assert required_per_category(by_id["complete_monopoly"]) == 1

def test_efficiency_network_active():
    effects = evaluate(["automation_factory", "fast_food_chain"], CATALOG, SYNERGIES)
    assert effects.get(WORK_MULTIPLIER_BONUS) == 25

def test_single_business_has_no_synergy():
    assert active_synergies(["consulting_firm"], CATALOG, SYNERGIES) == []

def test_complete_monopoly_one_of_each():
    ids = ["automation_factory", "security_firm", "consulting_firm", "marketing_agency"]
    assert _ids(active_synergies(ids, CATALOG, SYNERGIES)) == ["complete_monopoly"]

def test_monopoly_suppresses_lower_priority_work_bonus():
    ids = [
        "automation_factory", "fast_food_chain",
        "security_firm", "consulting_firm", "marketing_agency",
    ]
    active = active_synergies(ids, CATALOG, SYNERGIES)
    assert _ids(active) == ["complete_monopoly", "efficiency_network"]
    # 40 from the monopoly, the network's 25 is overridden
    assert aggregate_effects(active).get(WORK_MULTIPLIER_BONUS) == 40

def test_override_is_per_key():
    high = SynergyDef(id="high", name="High", required_categories=["utility"],
                      min_businesses=1, priority=5, effects={"work_multiplier_bonus": 40})
    low = SynergyDef(id="low", name="Low", required_categories=["utility"],
                     min_businesses=1, priority=2,
                     effects={"work_multiplier_bonus": 25, "counter_attack_bonus": 15})
    effects = aggregate_effects([high, low])
    assert effects.get(WORK_MULTIPLIER_BONUS) == 40
    assert effects.get(COUNTER_ATTACK_BONUS) == 15

def test_equal_priority_effects_sum():
    a = SynergyDef(id="a", name="A", required_categories=["utility"],
                   min_businesses=1, priority=2, effects={"defense_bonus": 10})
    b = SynergyDef(id="b", name="B", required_categories=["utility"],
                   min_businesses=1, priority=2, effects={"defense_bonus": 5})
    assert aggregate_effects([a, b]).get("defense_bonus") == 15

def test_synergy_progress():
    progress = {p.synergy_id: p for p in synergy_progress(["security_firm"], CATALOG, SYNERGIES)}
    alliance = progress["defensive_alliance"]
    assert alliance.percent == 50
    assert alliance.missing == ["1 more defensive business"]
    # 1 of 4 categories covered
    assert progress["complete_monopoly"].percent == 25
    assert "efficiency_network" in progress
