from dataclasses import replace

import pytest
from economy.combat import (
    CombatantView,
    activate_shield,
    apply_slippage,
    apply_to_battles,
    calculate_success_rate,
    calculate_theft,
    check_attack,
    current_streak,
    escalated_cost,
    expire_battle_state,
    failure_penalty,
    pay_tribute,
    raid_daily_yield,
    repair_cost,
    resolve_attack,
    settle_raids,
    slippage_multiplier,
    wealth_tier,
)
from economy.data_loader import get_economy_config
from economy.errors import FailureReason
from economy.state import HOUR, ActiveRaid, BattleState, StreakRecord, Tribute
from economy.synergy import SynergyEffects

CONFIG = get_economy_config()
TIERS = CONFIG.wealth_tiers
RULES = CONFIG.rules.battle
LAND = CONFIG.rules.land
ATTACKS = CONFIG.attacks
NOW = 1_000_000.0


class SeqRng:
    """Returns the given values from random() in order."""
    def __init__(self, *values):
        self.values = list(values)

    def random(self):
        return self.values.pop(0)


def _view(account_id, wealth=150, credits=100, **overrides):
    fields = dict(account_id=account_id, wealth=wealth, credits=credits, battle=BattleState())
    fields.update(overrides)
    return CombatantView(**fields)


def _resolve(attacker, defender, attack_id="standard", rng=None, cost=None):
    attack = ATTACKS[attack_id]
    return resolve_attack(
        attacker, defender, attack, NOW, cost if cost is not None else attack.cost,
        TIERS, RULES, LAND, rng or SeqRng(0.0),
    )

# --- tiers & rates ---

def test_wealth_tiers():
    assert wealth_tier(0, TIERS).id == "LOW"
    assert wealth_tier(100, TIERS).id == "MEDIUM"
    assert wealth_tier(150, TIERS).id == "MEDIUM"
    assert wealth_tier(500, TIERS).id == "WHALE"

def test_base_success_between_equal_tiers():
    # 0.6 + 0 (MEDIUM attacker) - 0 (MEDIUM defender)
    rate, breakdown = calculate_success_rate(_view("a", 100), _view("d", 150), ATTACKS["standard"], TIERS, RULES)
    assert rate == pytest.approx(0.6)
    assert breakdown["base"] == 0.6

def test_success_with_business_modifiers():
    attacker = _view("a", attack_bonus=0.15)
    defender = _view("d", defense_bonus=0.20)
    # 0.6 + 0.15 - 0.20
    rate, _ = calculate_success_rate(attacker, defender, ATTACKS["standard"], TIERS, RULES)
    assert rate == pytest.approx(0.55)

def test_bypass_ignores_defender_bonuses():
    attacker = _view("a", attack_bonus=0.15)
    defender = _view("d", defense_bonus=0.20, synergy=SynergyEffects({"defense_bonus": 25}))
    rate, breakdown = calculate_success_rate(attacker, defender, ATTACKS["wealth_assault"], TIERS, RULES)
    assert rate == pytest.approx(0.75)
    assert breakdown["bypassed_defenses"]

def test_defense_disruption_ignores_defender_bonuses():
    attacker = _view("a", disrupts_defenses=True)
    defender = _view("d", defense_bonus=0.20)
    rate, _ = calculate_success_rate(attacker, defender, ATTACKS["standard"], TIERS, RULES)
    assert rate == pytest.approx(0.6)

def test_success_rate_is_clamped():
    high, _ = calculate_success_rate(_view("a", attack_bonus=1.0), _view("d"), ATTACKS["standard"], TIERS, RULES)
    low, _ = calculate_success_rate(_view("a"), _view("d", defense_bonus=1.0), ATTACKS["standard"], TIERS, RULES)
    assert high == 0.95
    assert low == 0.10

# --- theft, escalation, slippage ---

def test_theft_medium_tier():
    # floor(150 * 0.10) = 15
    assert calculate_theft(150, TIERS) == 15

def test_theft_capped_by_tier():
    # floor(1000 * 0.15) = 150 -> max 50
    assert calculate_theft(1000, TIERS) == 50

def test_theft_bonus():
    # 15 * 1.2 = 18
    assert calculate_theft(150, TIERS, 20) == 18

def test_escalated_cost_rounds_up():
    assert escalated_cost(15, 0) == 15
    # 15 * 1.30 = 19.5 -> 20
    assert escalated_cost(15, 3) == 20
    # 25 * 1.10 = 27.5 -> 28
    assert escalated_cost(25, 1) == 28

def test_slippage():
    assert slippage_multiplier(0) == 1.0
    assert slippage_multiplier(2) == pytest.approx(0.8)
    assert slippage_multiplier(9) == 0.5
    # 15 * 0.8 = 12
    assert apply_slippage(15, 2, RULES) == 12

def test_current_streak_expires_after_window():
    battle = BattleState(consecutive_from={"a": StreakRecord(2, NOW - 25 * HOUR)})
    assert current_streak(battle, "a", NOW, 24) == 0
    battle = BattleState(consecutive_from={"a": StreakRecord(2, NOW - 23 * HOUR)})
    assert current_streak(battle, "a", NOW, 24) == 2

# --- eligibility ---

def _check(attacker, defender, attack_id="standard"):
    return check_attack(attacker, defender, ATTACKS[attack_id], NOW, RULES)

def test_check_passes():
    assert _check(_view("a"), _view("d")) == (None, 15)

def test_check_self_target():
    assert _check(_view("a"), _view("a"))[0] == FailureReason.SELF_TARGET

def test_check_below_minimum_wealth():
    assert _check(_view("a", 8), _view("d", 9))[0] == FailureReason.BELOW_MINIMUM_WEALTH

def test_check_stake_requirement():
    # 30 < 25% of 150, and the wealth range check is never reached
    reason, _ = _check(_view("a", 30), _view("d", 150), "wealth_assault")
    assert reason == FailureReason.OUT_OF_WEALTH_RANGE

def test_check_cooldown_before_funds():
    attacker = _view("a", credits=0, battle=BattleState(last_attack_by_type={"standard": NOW - HOUR}))
    assert _check(attacker, _view("d"))[0] == FailureReason.COOLDOWN_ACTIVE

def test_check_insufficient_funds():
    assert _check(_view("a", credits=14), _view("d"))[0] == FailureReason.INSUFFICIENT_FUNDS

def test_check_escalated_cost_needs_funds():
    defender = _view("d", battle=BattleState(consecutive_from={"a": StreakRecord(3, NOW - HOUR)}))
    reason, cost = _check(_view("a", credits=19), defender)
    assert cost == 20
    assert reason == FailureReason.INSUFFICIENT_FUNDS

def test_check_wealth_range():
    assert _check(_view("a", 100), _view("d", 201))[0] == FailureReason.OUT_OF_WEALTH_RANGE
    assert _check(_view("a", 100), _view("d", 49))[0] == FailureReason.OUT_OF_WEALTH_RANGE
    assert _check(_view("a", 100), _view("d", 200))[0] is None

def test_check_defense_immunity():
    defender = _view("d", battle=BattleState(last_defense_at=NOW - HOUR))
    assert _check(_view("a"), defender)[0] == FailureReason.DEFENSE_IMMUNE

def test_check_shield():
    defender = _view("d", battle=BattleState(shield_expiry=NOW + HOUR))
    assert _check(_view("a"), defender)[0] == FailureReason.SHIELDED

def test_check_tribute():
    defender = _view("d", battle=BattleState(tributes=(Tribute("a", NOW + HOUR),)))
    reason, _ = _check(_view("a"), defender)
    assert reason == FailureReason.TRIBUTE_PROTECTED
    assert reason.is_invalid_target

# --- resolution ---

def test_successful_standard_attack_steals():
    outcome = _resolve(_view("a"), _view("d"))
    assert outcome.success
    assert outcome.stolen == 15
    assert outcome.penalty == 0

def test_failed_attack_surcharge():
    outcome = _resolve(_view("a"), _view("d"), rng=SeqRng(0.99, 0.99))
    assert not outcome.success
    assert outcome.penalty == 5
    assert not outcome.counter_attack

def test_counter_attack_doubles_whole_loss():
    outcome = _resolve(_view("a"), _view("d"), rng=SeqRng(0.99, 0.0))
    assert outcome.counter_attack
    # 2 * (15 + 5) = 40, of which the 15 cost is already charged
    assert outcome.penalty == 25
    assert outcome.cost + outcome.penalty == 40

def test_counter_attack_bonus_scales_loss():
    defender = _view("d", synergy=SynergyEffects({"counter_attack_bonus": 30}))
    outcome = _resolve(_view("a"), defender, rng=SeqRng(0.99, 0.0))
    # floor(20 * 2 * 1.3) = 52, minus the 15 cost
    assert outcome.penalty == 37

def test_countered_half_cost_attack():
    outcome = _resolve(_view("a"), _view("d"), "wealth_assault", rng=SeqRng(0.99, 0.0))
    # 2 * (10 + 5) = 30, minus the 10 cost
    assert outcome.penalty == 20

def test_half_cost_penalty_rounds_up():
    assert failure_penalty(ATTACKS["wealth_assault"], 10) == 5
    assert failure_penalty(ATTACKS["land_siege"], 25) == 13

def test_wealth_loss_reduction():
    defender = _view("d", synergy=SynergyEffects({"wealth_loss_reduction": 25}))
    # floor(15 * 0.75) = 11
    assert _resolve(_view("a"), defender).stolen == 11
    # bypassing attacks ignore the reduction
    assert _resolve(_view("a"), defender, "wealth_assault").stolen == 15

def test_slippage_on_streak():
    defender = _view("d", battle=BattleState(consecutive_from={"a": StreakRecord(2, NOW - HOUR)}))
    outcome = _resolve(_view("a"), defender)
    assert outcome.consecutive == 2
    assert outcome.theft == 15
    assert outcome.stolen == 12

def test_sabotage_damage():
    assert _resolve(_view("a"), _view("d"), "business_sabotage").sabotage_damage == 30

def test_sabotage_blocked_by_immunity():
    outcome = _resolve(_view("a"), _view("d", full_immunity=True), "business_sabotage")
    assert outcome.sabotage_blocked
    assert outcome.sabotage_damage == 0

def test_sabotage_mitigated():
    outcome = _resolve(_view("a"), _view("d", partial_mitigation=True), "business_sabotage")
    assert outcome.sabotage_damage == 15

def test_land_siege_triggers_raid_on_third_success():
    defender = _view(
        "d", land_parcels=1,
        battle=BattleState(consecutive_from={"a": StreakRecord(2, NOW - HOUR)}),
    )
    outcome = _resolve(_view("a"), defender, "land_siege")
    assert outcome.raid is not None
    assert outcome.raid.raider_id == "a"
    # floor(16667 * 0.10 / 30) = 55
    assert outcome.raid.daily_yield == 55
    assert outcome.raid.days_remaining == 7

def test_no_raid_without_land_or_streak():
    assert _resolve(_view("a"), _view("d", land_parcels=1), "land_siege").raid is None
    defender = _view("d", battle=BattleState(consecutive_from={"a": StreakRecord(2, NOW - HOUR)}))
    assert _resolve(_view("a"), defender, "land_siege").raid is None

def test_raid_uses_its_own_window():
    defender = _view(
        "d", land_parcels=1,
        battle=BattleState(consecutive_from={"a": StreakRecord(2, NOW - 10 * HOUR)}),
    )
    narrow = LAND.model_copy(update={"raid_window_hours": 6})
    outcome = resolve_attack(
        _view("a"), defender, ATTACKS["land_siege"], NOW, 25,
        TIERS, RULES, narrow, SeqRng(0.0),
    )
    # still a streak of 2 for escalation, but too slow for a raid
    assert outcome.consecutive == 2
    assert outcome.raid is None

def test_raid_daily_yield_minimum():
    assert raid_daily_yield(0, LAND) == 1
    assert raid_daily_yield(2, LAND) == 111

def test_apply_to_battles_tracks_streak():
    outcome = _resolve(_view("a"), _view("d"))
    a_battle, d_battle = apply_to_battles("a", BattleState(), BattleState(), ATTACKS["standard"], outcome, NOW)
    assert a_battle.last_attack_by_type == {"standard": NOW}
    assert d_battle.last_defense_at == NOW
    assert d_battle.consecutive_from["a"].count == 1

    failed = _resolve(_view("a"), _view("d"), rng=SeqRng(0.99, 0.99))
    _, d_battle = apply_to_battles("a", a_battle, d_battle, ATTACKS["standard"], failed, NOW + 5 * HOUR)
    assert "a" not in d_battle.consecutive_from

def test_sabotage_damage_caps_at_100():
    outcome = _resolve(_view("a"), _view("d"), "business_sabotage")
    _, d_battle = apply_to_battles(
        "a", BattleState(), BattleState(sabotage_damage=90), ATTACKS["business_sabotage"], outcome, NOW
    )
    assert d_battle.sabotage_damage == 100

# --- shields, tribute, repair, expiry ---

def test_shield_activation():
    shield = CONFIG.shields["basic"]
    reason, battle = activate_shield(BattleState(), 100, shield, NOW)
    assert reason is None
    assert battle.shield_expiry == NOW + 24 * HOUR
    reason, same = activate_shield(battle, 100, shield, NOW + HOUR)
    assert reason == FailureReason.ALREADY_PROTECTED
    assert same is battle
    assert activate_shield(BattleState(), 24, shield, NOW)[0] == FailureReason.INSUFFICIENT_FUNDS

def test_tribute():
    reason, battle = pay_tribute(BattleState(), 60, "bully", NOW, RULES)
    assert reason is None
    assert battle.tributes == (Tribute("bully", NOW + 48 * HOUR),)
    assert pay_tribute(battle, 60, "bully", NOW, RULES)[0] == FailureReason.ALREADY_PROTECTED
    assert pay_tribute(BattleState(), 49, "bully", NOW, RULES)[0] == FailureReason.INSUFFICIENT_FUNDS

def test_repair_cost():
    assert repair_cost(30, 10) == 300
    assert repair_cost(15.5, 10) == 155

def test_expire_battle_state():
    battle = BattleState(
        tributes=(Tribute("x", NOW - 1), Tribute("y", NOW + 1)),
        consecutive_from={"old": StreakRecord(1, NOW - 30 * HOUR), "new": StreakRecord(1, NOW)},
        active_raids=(ActiveRaid("r", NOW, 55, 0),),
    )
    cleaned = expire_battle_state(battle, NOW, 24)
    assert [t.target_id for t in cleaned.tributes] == ["y"]
    assert list(cleaned.consecutive_from) == ["new"]
    assert cleaned.active_raids == ()

def test_settle_raids():
    raid = ActiveRaid("r", NOW, 55, 7)
    # 3 days of 555: raider takes 3 * 55
    payouts, remaining, left = settle_raids((raid,), 3, 1665)
    assert payouts == {"r": 165}
    assert remaining == (replace(raid, days_remaining=4),)
    assert left == 1500

def test_settle_raids_finishes():
    raid = ActiveRaid("r", NOW, 55, 2)
    payouts, remaining, left = settle_raids((raid,), 5, 2775)
    assert payouts == {"r": 110}
    assert remaining == ()
    assert left == 2665
