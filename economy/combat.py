"""
Wealth Wars — economy/combat.py
Combat Resolution Engine: eligibility, success roll, theft, escalation, raids.
=============================================================================
Version:     0.4
Stack:       Python 3.11+ | Pydantic v2 (attack / tier tables)
Status:      Pure functions. Randomness is injected; no state, no events.

Architecture notes
------------------
- Inputs are CombatantView snapshots built by the controller. The engine
  never reaches into an Account.
- Escalation and slippage are integer percent arithmetic so that
  "rounded up" and "floored" are exact:
      cost    = ceil(base * (100 + 10 * consecutive) / 100)
      loot    = floor(theft * max(50, 100 - 10 * consecutive) / 100)
- `consecutive` is the attacker's live success streak against this
  defender. It lives on the DEFENDER's BattleState, keyed by attacker id,
  and is cleared by a failure or by a gap longer than the streak window.
- The success roll is `rng.random() < success_rate`. A counter-attack
  roll is made only after a failed attack. A counter doubles the whole
  loss (cost + penalty); the cost is already charged, so the penalty
  becomes the doubled loss minus the cost.
- Land raids count the streak against land.raid_window_hours, which may
  differ from the escalation window.

Precondition order (first failure wins, nothing is committed)
--------------------------------------------------------------
  0. attacker == defender                   -> SELF_TARGET
  a. defender wealth < min_target_wealth    -> BELOW_MINIMUM_WEALTH
  b. stake attacks: attacker < 25% defender -> OUT_OF_WEALTH_RANGE
  c. attack type on cooldown                -> COOLDOWN_ACTIVE
  d. balance < escalated cost               -> INSUFFICIENT_FUNDS
  e. defender outside [0.5x, 2.0x] attacker -> OUT_OF_WEALTH_RANGE
  f. defender inside post-defense immunity  -> DEFENSE_IMMUNE
  g. defender shield active                 -> SHIELDED
  h. defender holds a live tribute vs. us   -> TRIBUTE_PROTECTED
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from economy.data_loader import (
    AttackTypeDef,
    BattleRulesDef,
    LandRulesDef,
    ShieldTierDef,
    WealthTierDef,
)
from economy.errors import FailureReason
from economy.state import HOUR, ActiveRaid, BattleState, StreakRecord, Tribute
from economy.synergy import (
    ATTACK_SUCCESS_BONUS,
    COUNTER_ATTACK_BONUS,
    DEFENSE_BONUS,
    WEALTH_LOSS_REDUCTION,
    WEALTH_THEFT_BONUS,
    SynergyEffects,
)


# ============================================================
# COMBATANT SNAPSHOT
# ============================================================

@dataclass(frozen=True)
class CombatantView:
    """
    Everything the engine may read about one side of a fight.

    attack_bonus / defense_bonus are the summed business modifiers of the
    side's active, online enhanced businesses (fractions, e.g. 0.15).
    """
    account_id: str
    wealth: int
    credits: int
    battle: BattleState
    attack_bonus: float = 0.0
    defense_bonus: float = 0.0
    synergy: SynergyEffects = field(default_factory=SynergyEffects)
    full_immunity: bool = False
    partial_mitigation: bool = False
    disrupts_defenses: bool = False
    land_parcels: int = 0

    def balance(self, currency: str) -> int:
        return self.wealth if currency == "wealth" else self.credits


@dataclass(frozen=True)
class AttackOutcome:
    success: bool
    success_rate: float
    cost: int
    currency: str
    consecutive: int                    # streak before this attack
    theft: int = 0                      # before slippage
    stolen: int = 0                     # wealth moved defender -> attacker
    penalty: int = 0                    # wealth lost by the attacker
    counter_attack: bool = False
    sabotage_damage: float = 0.0        # damage added to the defender
    sabotage_blocked: bool = False
    raid: Optional[ActiveRaid] = None
    breakdown: Dict[str, Any] = field(default_factory=dict)


# ============================================================
# TIERS, STREAKS, ESCALATION
# ============================================================

def wealth_tier(wealth: float, tiers: Sequence[WealthTierDef]) -> WealthTierDef:
    """Tiers are contiguous bands sorted by min_wealth."""
    chosen = tiers[0]
    for tier in tiers:
        if wealth >= tier.min_wealth:
            chosen = tier
    return chosen


def current_streak(
    defender_battle: BattleState, attacker_id: str, now: float, window_hours: float
) -> int:
    record = defender_battle.consecutive_from.get(attacker_id)
    if record is None or now - record.last_attack > window_hours * HOUR:
        return 0
    return record.count


def escalated_cost(base_cost: int, consecutive: int, step_percent: int = 10) -> int:
    numerator = base_cost * (100 + step_percent * consecutive)
    return -(-numerator // 100)


def slippage_percent(consecutive: int, step_percent: int = 10, floor_percent: int = 50) -> int:
    return max(floor_percent, 100 - step_percent * consecutive)


def slippage_multiplier(consecutive: int, step_percent: int = 10, floor_percent: int = 50) -> float:
    return slippage_percent(consecutive, step_percent, floor_percent) / 100


def apply_slippage(theft: int, consecutive: int, rules: BattleRulesDef) -> int:
    pct = slippage_percent(consecutive, rules.slippage_step_percent, rules.slippage_floor_percent)
    return theft * pct // 100


# ============================================================
# ELIGIBILITY
# ============================================================

def check_attack(
    attacker: CombatantView,
    defender: CombatantView,
    attack: AttackTypeDef,
    now: float,
    rules: BattleRulesDef,
) -> Tuple[Optional[FailureReason], int]:
    """Return (failure reason or None, escalated cost)."""
    consecutive = current_streak(
        defender.battle, attacker.account_id, now, rules.streak_window_hours
    )
    cost = escalated_cost(attack.cost, consecutive, rules.escalation_step_percent)

    if attacker.account_id == defender.account_id:
        return FailureReason.SELF_TARGET, cost
    if defender.wealth < rules.min_target_wealth:
        return FailureReason.BELOW_MINIMUM_WEALTH, cost
    if attack.requires_stake and attacker.wealth < defender.wealth * rules.stake_ratio:
        return FailureReason.OUT_OF_WEALTH_RANGE, cost

    last = attacker.battle.last_attack_by_type.get(attack.id)
    if last is not None and now - last < attack.cooldown_hours * HOUR:
        return FailureReason.COOLDOWN_ACTIVE, cost

    if attacker.balance(attack.currency) < cost:
        return FailureReason.INSUFFICIENT_FUNDS, cost

    lower = attacker.wealth * rules.range_min
    upper = attacker.wealth * rules.range_max
    if not lower <= defender.wealth <= upper:
        return FailureReason.OUT_OF_WEALTH_RANGE, cost

    last_defense = defender.battle.last_defense_at
    if last_defense is not None and now - last_defense < rules.defense_immunity_hours * HOUR:
        return FailureReason.DEFENSE_IMMUNE, cost

    if defender.battle.shield_expiry > now:
        return FailureReason.SHIELDED, cost

    for tribute in defender.battle.tributes:
        if tribute.target_id == attacker.account_id and tribute.expiry > now:
            return FailureReason.TRIBUTE_PROTECTED, cost

    return None, cost


# ============================================================
# SUCCESS & THEFT
# ============================================================

def ignores_defenses(attacker: CombatantView, attack: AttackTypeDef) -> bool:
    return attack.bypasses_defenses or attacker.disrupts_defenses


def calculate_success_rate(
    attacker: CombatantView,
    defender: CombatantView,
    attack: AttackTypeDef,
    tiers: Sequence[WealthTierDef],
    rules: BattleRulesDef,
) -> Tuple[float, Dict[str, Any]]:
    breakdown: Dict[str, Any] = {
        "base": rules.base_success,
        "attacker_wealth_mod": wealth_tier(attacker.wealth, tiers).success_modifier,
        "defender_wealth_mod": -wealth_tier(defender.wealth, tiers).success_modifier,
        "attacker_business_mod": attacker.attack_bonus,
        "attacker_synergy_mod": attacker.synergy.get(ATTACK_SUCCESS_BONUS) / 100,
        "defender_business_mod": 0.0,
        "defender_synergy_mod": 0.0,
        "bypassed_defenses": ignores_defenses(attacker, attack),
    }
    if not breakdown["bypassed_defenses"]:
        breakdown["defender_business_mod"] = -defender.defense_bonus
        breakdown["defender_synergy_mod"] = -defender.synergy.get(DEFENSE_BONUS) / 100

    rate = (
        breakdown["base"]
        + breakdown["attacker_wealth_mod"]
        + breakdown["defender_wealth_mod"]
        + breakdown["attacker_business_mod"]
        + breakdown["attacker_synergy_mod"]
        + breakdown["defender_business_mod"]
        + breakdown["defender_synergy_mod"]
    )
    rate = max(rules.min_success, min(rules.max_success, rate))
    return rate, breakdown


def calculate_theft(
    defender_wealth: int, tiers: Sequence[WealthTierDef], theft_bonus_percent: float = 0.0
) -> int:
    tier = wealth_tier(defender_wealth, tiers)
    # round() strips float noise such as 14.999999999 before flooring
    theft = math.floor(round(defender_wealth * tier.theft_rate, 9))
    if theft_bonus_percent:
        theft = math.floor(round(theft * (1 + theft_bonus_percent / 100), 9))
    return min(tier.max_theft, theft)


def failure_penalty(attack: AttackTypeDef, cost: int) -> int:
    if attack.failure_penalty == "half_cost":
        return -(-cost // 2)
    return attack.surcharge


def raid_daily_yield(land_parcels: int, land: LandRulesDef) -> int:
    per_day = land_parcels * land.monthly_yield_per_parcel * land.raid_yield_fraction
    return max(1, math.floor(per_day / land.days_per_month))


# ============================================================
# RESOLUTION
# ============================================================

def resolve_attack(
    attacker: CombatantView,
    defender: CombatantView,
    attack: AttackTypeDef,
    now: float,
    cost: int,
    tiers: Sequence[WealthTierDef],
    rules: BattleRulesDef,
    land: LandRulesDef,
    rng: Any,
) -> AttackOutcome:
    """
    Roll and settle an attack that already passed check_attack().

    The escalated cost is always charged. Balances are not touched here;
    the outcome says what moves and the controller commits it.
    """
    consecutive = current_streak(
        defender.battle, attacker.account_id, now, rules.streak_window_hours
    )
    rate, breakdown = calculate_success_rate(attacker, defender, attack, tiers, rules)
    success = rng.random() < rate

    if not success:
        penalty = failure_penalty(attack, cost)
        countered = rng.random() < rules.counter_chance
        if countered:
            bonus = defender.synergy.get(COUNTER_ATTACK_BONUS)
            loss = math.floor((cost + penalty) * 2 * (1 + bonus / 100))
            penalty = max(0, loss - cost)
        return AttackOutcome(
            success=False,
            success_rate=rate,
            cost=cost,
            currency=attack.currency,
            consecutive=consecutive,
            penalty=penalty,
            counter_attack=countered,
            breakdown=breakdown,
        )

    if attack.sabotage:
        damage = rules.sabotage_damage
        blocked = defender.full_immunity
        if blocked:
            damage = 0.0
        elif defender.partial_mitigation:
            damage *= rules.sabotage_mitigation
        return AttackOutcome(
            success=True,
            success_rate=rate,
            cost=cost,
            currency=attack.currency,
            consecutive=consecutive,
            sabotage_damage=damage,
            sabotage_blocked=blocked,
            breakdown=breakdown,
        )

    theft = calculate_theft(
        defender.wealth, tiers, attacker.synergy.get(WEALTH_THEFT_BONUS)
    )
    stolen = apply_slippage(theft, consecutive, rules)
    reduction = defender.synergy.get(WEALTH_LOSS_REDUCTION)
    if reduction and not ignores_defenses(attacker, attack):
        stolen = math.floor(stolen * (1 - reduction / 100))
    stolen = min(stolen, defender.wealth)

    raid = None
    already_raiding = any(
        r.raider_id == attacker.account_id for r in defender.battle.active_raids
    )
    if (
        attack.triggers_raid
        and defender.land_parcels > 0
        and not already_raiding
        and current_streak(
            defender.battle, attacker.account_id, now, land.raid_window_hours
        ) + 1 >= land.raid_attacks_required
    ):
        raid = ActiveRaid(
            raider_id=attacker.account_id,
            started_at=now,
            daily_yield=raid_daily_yield(defender.land_parcels, land),
            days_remaining=land.raid_days,
        )

    return AttackOutcome(
        success=True,
        success_rate=rate,
        cost=cost,
        currency=attack.currency,
        consecutive=consecutive,
        theft=theft,
        stolen=stolen,
        raid=raid,
        breakdown=breakdown,
    )


def apply_to_battles(
    attacker_id: str,
    attacker_battle: BattleState,
    defender_battle: BattleState,
    attack: AttackTypeDef,
    outcome: AttackOutcome,
    now: float,
) -> Tuple[BattleState, BattleState]:
    """New battle states for both sides after a resolved attack."""
    last_by_type = dict(attacker_battle.last_attack_by_type)
    last_by_type[attack.id] = now
    new_attacker = replace(attacker_battle, last_attack_by_type=last_by_type)

    streaks = dict(defender_battle.consecutive_from)
    if outcome.success:
        streaks[attacker_id] = StreakRecord(count=outcome.consecutive + 1, last_attack=now)
    else:
        streaks.pop(attacker_id, None)

    raids = defender_battle.active_raids
    if outcome.raid is not None:
        raids = raids + (outcome.raid,)

    new_defender = replace(
        defender_battle,
        last_defense_at=now,
        consecutive_from=streaks,
        active_raids=raids,
        sabotage_damage=min(100.0, defender_battle.sabotage_damage + outcome.sabotage_damage),
    )
    return new_attacker, new_defender


# ============================================================
# SHIELDS, TRIBUTE, REPAIR
# ============================================================

def activate_shield(
    battle: BattleState, balance: int, shield: ShieldTierDef, now: float
) -> Tuple[Optional[FailureReason], BattleState]:
    if battle.shield_expiry > now:
        return FailureReason.ALREADY_PROTECTED, battle
    if balance < shield.cost:
        return FailureReason.INSUFFICIENT_FUNDS, battle
    return None, replace(battle, shield_expiry=now + shield.duration_hours * HOUR)


def pay_tribute(
    battle: BattleState, balance: int, target_id: str, now: float, rules: BattleRulesDef
) -> Tuple[Optional[FailureReason], BattleState]:
    for tribute in battle.tributes:
        if tribute.target_id == target_id and tribute.expiry > now:
            return FailureReason.ALREADY_PROTECTED, battle
    if balance < rules.tribute_cost:
        return FailureReason.INSUFFICIENT_FUNDS, battle
    live = tuple(t for t in battle.tributes if t.expiry > now)
    tribute = Tribute(target_id=target_id, expiry=now + rules.tribute_hours * HOUR)
    return None, replace(battle, tributes=live + (tribute,))


def repair_cost(damage: float, per_point: int) -> int:
    return math.ceil(round(damage * per_point, 9))


# ============================================================
# EXPIRY & RAID SETTLEMENT
# ============================================================

def expire_battle_state(battle: BattleState, now: float, window_hours: float) -> BattleState:
    """Drop expired tributes, stale streaks and finished raids."""
    return replace(
        battle,
        tributes=tuple(t for t in battle.tributes if t.expiry > now),
        consecutive_from={
            k: v for k, v in battle.consecutive_from.items()
            if now - v.last_attack <= window_hours * HOUR
        },
        active_raids=tuple(r for r in battle.active_raids if r.days_remaining > 0),
    )


def settle_raids(
    raids: Sequence[ActiveRaid], days: int, gross_yield: int
) -> Tuple[Dict[str, int], Tuple[ActiveRaid, ...], int]:
    """
    Divert raid shares out of `days` worth of land yield.

    Returns (payout per raider, raids still running, yield left for the owner).
    """
    payouts: Dict[str, int] = {}
    remaining: List[ActiveRaid] = []
    left = gross_yield
    for raid in raids:
        paid_days = min(days, raid.days_remaining)
        share = min(left, paid_days * raid.daily_yield)
        left -= share
        payouts[raid.raider_id] = payouts.get(raid.raider_id, 0) + share
        if raid.days_remaining - paid_days > 0:
            remaining.append(replace(raid, days_remaining=raid.days_remaining - paid_days))
    return payouts, tuple(remaining), left
