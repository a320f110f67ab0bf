"""
Wealth Wars — economy/controller.py
Economy Controller: commands, the pure reducer, and the stateful adapter.
========================================================================
Version:     0.4
Stack:       Python 3.11+ | bespoke EventBus | engines in economy/*
Status:      Canonical. The only place state transitions are assembled.

Architecture notes
------------------
- reduce(state, command, now, config, rng) -> Transition is pure. It reads
  the accounts it needs, validates every precondition, then builds the new
  GameState once. A failed Transition always carries the input state object
  unchanged and no events.
- Time-based refreshes (degradation, expired tributes / streaks) are folded
  into the commit of a successful action; they are never committed alone
  except through CheckDegradation.
- Every committed account gets version + 1. Combat and tribute commit two
  accounts in the same GameState.
- Events are returned, not emitted. EconomyController emits them on the
  bus after the new state is in place.
- An attack that passes validation always commits (its cost is spent).
  Whether the roll was won is reported in result.amounts["won"].

Work rules (rules.toml [work])
------------------------------
  cooldown 2h, 1h while rapid_processing is active
  4 actions per session, then a 6h lockout; session resets after the
  lockout or after 6h idle
  reward = floor(base * business * enhanced * synergy * effect)
  base 25 (raised by breakthrough), 40 while a quick_service charge remains
  xp += 25 + 2 * streak; level = xp // 1000 + 1
"""

from __future__ import annotations

import math
import random
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from economy import amm, balance, combat, maintenance, synergy, war
from economy.data_loader import EconomyConfig, EnhancedAssetDef, get_economy_config
from economy.errors import ActionResult, FailureReason
from economy.events import (
    EVT_ABILITY_ACTIVATED,
    EVT_ACCOUNT_OPENED,
    EVT_ACCOUNT_SYNCED,
    EVT_ASSET_BACK_ONLINE,
    EVT_ASSET_BROKEN,
    EVT_ASSET_COLLECTED,
    EVT_ASSET_PURCHASED,
    EVT_ATTACK_RESOLVED,
    EVT_CONDITION_WARNING,
    EVT_COUNTER_ATTACK,
    EVT_ENHANCED_PURCHASED,
    EVT_LAND_YIELD_COLLECTED,
    EVT_LEVEL_UP,
    EVT_MAINTENANCE_PERFORMED,
    EVT_MILESTONE_REACHED,
    EVT_OUTLETS_PURCHASED,
    EVT_RAID_TRIGGERED,
    EVT_SABOTAGE_APPLIED,
    EVT_SABOTAGE_REPAIRED,
    EVT_SHIELD_ACTIVATED,
    EVT_SLOT_CHANGED,
    EVT_STREAK_ADVANCED,
    EVT_SWAP_EXECUTED,
    EVT_TRIBUTE_PAID,
    EVT_WAR_PEAK,
    EVT_WAR_UPDATED,
    EVT_WORK_COMPLETED,
    EVT_WORK_LOCKOUT,
    EconomyEvent,
    EventBus,
)
from economy.leaderboard import LeaderboardEntry, make_snapshot, rank_entries
from economy.state import (
    DAY,
    HOUR,
    Account,
    Asset,
    GameState,
    LiquidityPool,
)

# ============================================================
# ABILITY EFFECTS
# Closed set understood by the controller. Others are descriptive only.
# ============================================================

EFFECT_RAPID_PROCESSING = "rapid_processing"
EFFECT_QUICK_SERVICE = "quick_service"
EFFECT_WORK_BOOST = "work_boost"
EFFECT_FULL_IMMUNITY = "full_immunity"
EFFECT_PARTIAL_MITIGATION = "partial_mitigation"
EFFECT_DEFENSE_DISRUPTION = "defense_disruption"
EFFECT_CONVERSION_BOOST = "conversion_boost"


# ============================================================
# COMMANDS
# ============================================================

@dataclass(frozen=True)
class OpenAccount:
    account_id: str
    name: str
    land_parcels: int = 0

@dataclass(frozen=True)
class Work:
    account_id: str

@dataclass(frozen=True)
class BuyAsset:
    account_id: str
    asset_id: str

@dataclass(frozen=True)
class BuyOutlets:
    account_id: str
    asset_id: str
    qty: int = 1

@dataclass(frozen=True)
class CollectAsset:
    account_id: str
    asset_id: str

@dataclass(frozen=True)
class BuyEnhancedAsset:
    account_id: str
    asset_id: str

@dataclass(frozen=True)
class SetActiveSlot:
    account_id: str
    asset_id: str
    active: bool = True

@dataclass(frozen=True)
class ActivateAbility:
    account_id: str
    asset_id: str

@dataclass(frozen=True)
class PerformMaintenance:
    account_id: str
    asset_id: str
    action: str

@dataclass(frozen=True)
class CheckDegradation:
    account_id: str

@dataclass(frozen=True)
class Attack:
    account_id: str
    target_id: str
    attack_type: str = "standard"

@dataclass(frozen=True)
class ActivateShield:
    account_id: str
    tier: str

@dataclass(frozen=True)
class PayTribute:
    account_id: str
    target_id: str

@dataclass(frozen=True)
class RepairSabotage:
    account_id: str

@dataclass(frozen=True)
class Swap:
    account_id: str
    direction: str
    amount: int
    max_slippage_percent: float = 1.0
    quoted_amount_out: Optional[float] = None   # None: quote at execution

@dataclass(frozen=True)
class CollectLandYield:
    account_id: str

@dataclass(frozen=True)
class RefreshWAR:
    account_id: str
    trigger: str = "refresh"

@dataclass(frozen=True)
class SyncFromLedger:
    """One-way pull from the external wallet bridge. Only overwrites."""
    account_id: str
    credits: Optional[int] = None
    wealth: Optional[int] = None
    streak_days: Optional[int] = None
    land_parcels: Optional[int] = None


@dataclass(frozen=True)
class Transition:
    state: GameState
    result: ActionResult
    events: List[EconomyEvent] = field(default_factory=list)


# ============================================================
# STATE CONSTRUCTION
# ============================================================

def new_game_state(config: EconomyConfig) -> GameState:
    p = config.pool
    pool = LiquidityPool(
        reserve_a=p.reserve_a,
        reserve_b=p.reserve_b,
        fee_bps=p.fee_bps,
        max_trade_size=p.max_trade_size,
        paused=p.paused,
    )
    return GameState(accounts={}, pool=pool)


# ============================================================
# INTERNAL HELPERS
# ============================================================

def _fail(state: GameState, reason: FailureReason, message: str = "") -> Transition:
    return Transition(state=state, result=ActionResult.fail(reason, message))


def _commit(state: GameState, *accounts: Account) -> GameState:
    return state.with_accounts(*(replace(a, version=a.version + 1) for a in accounts))


def _event(key: str, source: str, target: Optional[str] = None, **data: Any) -> EconomyEvent:
    return EconomyEvent(event_key=key, source=source, target=target, data=data)


def _catalog_of(account: Account, config: EconomyConfig) -> Dict[str, EnhancedAssetDef]:
    return {i: config.enhanced_assets[i] for i in account.owned_enhanced if i in config.enhanced_assets}


def _online_active(account: Account) -> List[str]:
    return balance.online_assets(account.active_slots, account.conditions)


def _online_owned(account: Account) -> List[str]:
    return balance.online_assets(account.owned_enhanced, account.conditions)


def _active_synergies(account: Account, config: EconomyConfig) -> list:
    """Synergies count every owned business that is online, slotted or not."""
    return synergy.active_synergies(
        _online_owned(account), config.enhanced_assets, config.synergies
    )


def _synergy_effects(account: Account, config: EconomyConfig) -> synergy.SynergyEffects:
    return synergy.aggregate_effects(_active_synergies(account, config))


def _has_passive(account: Account, config: EconomyConfig, effect: str) -> bool:
    for asset in _catalog_of(account, config).values():
        ability = asset.ability
        if ability is not None and ability.mode == "passive" and ability.effect == effect:
            return True
    return False


def _sustained_magnitudes(account: Account, config: EconomyConfig, effect: str, now: float) -> List[float]:
    if not account.abilities.is_active(effect, now):
        return []
    out = []
    for asset in _catalog_of(account, config).values():
        ability = asset.ability
        if ability is not None and ability.mode == "sustained" and ability.effect == effect:
            out.append(ability.magnitude)
    return out


def _fee_discount(account: Account, config: EconomyConfig, now: float) -> float:
    """Best single conversion boost among owned passives and live sustained abilities."""
    boosts = list(_sustained_magnitudes(account, config, EFFECT_CONVERSION_BOOST, now))
    for asset in _catalog_of(account, config).values():
        ability = asset.ability
        if ability is not None and ability.mode == "passive" and ability.effect == EFFECT_CONVERSION_BOOST:
            boosts.append(ability.magnitude)
    return max(boosts, default=0.0)


def _combatant(account: Account, config: EconomyConfig, now: float) -> combat.CombatantView:
    online = _online_active(account)
    return combat.CombatantView(
        account_id=account.account_id,
        wealth=account.wealth,
        credits=account.credits,
        battle=account.battle,
        attack_bonus=sum(config.enhanced_assets[i].attack_bonus for i in online),
        defense_bonus=sum(config.enhanced_assets[i].defense_bonus for i in online),
        synergy=_synergy_effects(account, config),
        full_immunity=_has_passive(account, config, EFFECT_FULL_IMMUNITY),
        partial_mitigation=_has_passive(account, config, EFFECT_PARTIAL_MITIGATION),
        disrupts_defenses=account.abilities.is_active(EFFECT_DEFENSE_DISRUPTION, now),
        land_parcels=account.land_parcels,
    )


def _portfolio_value(account: Account, config: EconomyConfig) -> int:
    return sum(a.cost for a in _catalog_of(account, config).values())


def _refresh(account: Account, now: float, config: EconomyConfig) -> Tuple[Account, List[EconomyEvent]]:
    """Apply elapsed degradation and battle expiry up to `now`."""
    events: List[EconomyEvent] = []
    last = account.last_degradation_check
    conditions = account.conditions
    if conditions and last is not None and now > last:
        conditions = maintenance.process_degradation(
            account.conditions, last, now, config.maintenance_rules
        )
        for asset_id, cond in conditions.items():
            old = account.conditions[asset_id]
            if old.is_offline and not cond.is_offline:
                events.append(_event(EVT_ASSET_BACK_ONLINE, account.account_id, asset_id=asset_id))
            if cond.warning_level == old.warning_level:
                continue
            if cond.warning_level == "broken":
                events.append(_event(EVT_ASSET_BROKEN, account.account_id, asset_id=asset_id))
            elif cond.warning_level in ("caution", "critical"):
                events.append(_event(
                    EVT_CONDITION_WARNING, account.account_id,
                    asset_id=asset_id, level=cond.warning_level,
                    condition=round(cond.condition, 2),
                ))

    battle = combat.expire_battle_state(
        account.battle, now, config.rules.battle.streak_window_hours
    )
    refreshed = replace(
        account,
        conditions=conditions,
        last_degradation_check=max(now, last) if last is not None else now,
        battle=battle,
    )
    return refreshed, events


def _prerequisite_met(account: Account, prerequisite: str, config: EconomyConfig) -> bool:
    thresholds = config.rules.achievements
    if prerequisite in thresholds:
        return account.streak_days >= thresholds[prerequisite]
    return prerequisite in account.owned_enhanced or prerequisite in account.assets


# ============================================================
# HANDLERS
# Each takes (state, command, now, config, rng) and returns a Transition.
# ============================================================

def _open_account(state, cmd: OpenAccount, now, config, rng) -> Transition:
    if cmd.account_id in state.accounts:
        return _fail(state, FailureReason.ACCOUNT_EXISTS)
    if cmd.land_parcels < 0:
        return _fail(state, FailureReason.INVALID_AMOUNT)
    rules = config.rules
    account = Account(
        account_id=cmd.account_id,
        name=cmd.name,
        created_at=now,
        credits=rules.account.starting_credits,
        wealth=rules.account.starting_wealth,
        base_work_value=rules.work.base_value,
        last_degradation_check=now,
        land_parcels=cmd.land_parcels,
        last_land_collection=now,
        last_active=now,
    )
    new_state = _commit(state, account)
    return Transition(
        state=new_state,
        result=ActionResult.ok(f"Welcome, {cmd.name}", credits=account.credits, wealth=account.wealth),
        events=[_event(EVT_ACCOUNT_OPENED, cmd.account_id, name=cmd.name)],
    )


def _work(state, cmd: Work, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    account, events = _refresh(account, now, config)
    rules = config.rules.work
    ws = account.work

    if ws.lockout_until is not None and now < ws.lockout_until:
        minutes = math.ceil((ws.lockout_until - now) / 60)
        return _fail(state, FailureReason.COOLDOWN_ACTIVE, f"Work lockout: {minutes} minutes remaining")

    count = ws.session_count
    if ws.lockout_until is not None:
        count = 0
    elif ws.last_work_at is not None and now - ws.last_work_at >= rules.idle_reset_hours * HOUR:
        count = 0

    rapid = account.abilities.is_active(EFFECT_RAPID_PROCESSING, now)
    cooldown = (rules.rapid_cooldown_hours if rapid else rules.cooldown_hours) * HOUR
    if ws.last_work_at is not None and now - ws.last_work_at < cooldown:
        minutes = math.ceil((cooldown - (now - ws.last_work_at)) / 60)
        return _fail(state, FailureReason.COOLDOWN_ACTIVE, f"Work cooldown: {minutes} minutes remaining")

    # --- reward ---
    charges = dict(account.abilities.charges)
    quick = charges.get(EFFECT_QUICK_SERVICE, 0) > 0
    base = rules.quick_service_value if quick else account.base_work_value
    if quick:
        charges[EFFECT_QUICK_SERVICE] -= 1

    effects = _synergy_effects(account, config)
    business_mult = balance.business_work_multiplier(
        account.assets.values(), account.battle.sabotage_damage, rules.multiplier_cap_percent
    )
    enhanced_mult = balance.enhanced_work_multiplier(
        account.active_slots,
        {i: config.enhanced_assets[i].work_multiplier for i in account.active_slots},
        account.conditions,
        rules.multiplier_cap_percent,
    )
    synergy_mult = 1 + effects.get(synergy.WORK_MULTIPLIER_BONUS) / 100
    effect_mult = 1.0
    for magnitude in _sustained_magnitudes(account, config, EFFECT_WORK_BOOST, now):
        effect_mult *= 1 + magnitude / 100
    reward = int(math.floor(round(base * business_mult * enhanced_mult * synergy_mult * effect_mult, 9)))

    # --- streak / xp ---
    today = int(now // DAY)
    streak = account.streak_days
    if account.last_work_day is None or today - account.last_work_day > 1:
        streak = 1
    elif today - account.last_work_day == 1:
        streak += 1
    new_day = account.last_work_day != today
    xp = account.xp + rules.xp_base + rules.xp_per_streak_day * streak
    level = xp // rules.xp_per_level + 1
    daily_bonus = int(effects.get(synergy.DAILY_WEALTH_BONUS)) if new_day else 0

    count += 1
    lockout_until = now + rules.lockout_hours * HOUR if count >= rules.session_limit else None

    updated = replace(
        account,
        credits=account.credits + reward,
        wealth=account.wealth + daily_bonus,
        xp=xp,
        level=level,
        streak_days=streak,
        last_work_day=today,
        last_active=now,
        work=replace(ws, session_count=count, last_work_at=now, lockout_until=lockout_until),
        abilities=replace(account.abilities, charges=charges),
        total_work_actions=account.total_work_actions + 1,
        total_credits_earned=account.total_credits_earned + reward,
    )

    events.append(_event(
        EVT_WORK_COMPLETED, account.account_id,
        reward=reward, base=base, session_count=count, daily_bonus=daily_bonus,
    ))
    if streak > account.streak_days:
        events.append(_event(EVT_STREAK_ADVANCED, account.account_id, streak_days=streak))
    if level > account.level:
        events.append(_event(EVT_LEVEL_UP, account.account_id, level=level))
    if lockout_until is not None:
        events.append(_event(
            EVT_WORK_LOCKOUT, account.account_id, until=lockout_until, hours=rules.lockout_hours,
        ))

    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok(
            f"Earned {reward} credits", credits=reward, xp=xp, streak_days=streak,
            wealth=daily_bonus,
        ),
        events=events,
    )


def _buy_asset(state, cmd: BuyAsset, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    asset_def = config.basic_assets.get(cmd.asset_id)
    if asset_def is None:
        return _fail(state, FailureReason.UNKNOWN_ASSET)
    if cmd.asset_id in account.assets:
        return _fail(state, FailureReason.ALREADY_OWNED)
    if account.credits < asset_def.cost:
        return _fail(state, FailureReason.INSUFFICIENT_FUNDS, f"Need {asset_def.cost} credits")

    account, events = _refresh(account, now, config)
    outlets = config.rules.outlets
    asset = Asset(
        asset_id=asset_def.id,
        name=asset_def.name,
        cost=asset_def.cost,
        cost_per_outlet=asset_def.cost_per_outlet,
        yield_per_tick=asset_def.yield_per_tick,
        cycle_seconds=asset_def.cycle_seconds,
        work_multiplier=asset_def.work_multiplier,
        multiplier=balance.milestone_multiplier(1, outlets.milestones, outlets.milestone_bonus),
    )
    assets = dict(account.assets)
    assets[asset_def.id] = asset
    updated = replace(account, credits=account.credits - asset_def.cost, assets=assets, last_active=now)
    events.append(_event(EVT_ASSET_PURCHASED, account.account_id, asset_id=asset_def.id, cost=asset_def.cost))
    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok(f"Bought {asset_def.name}", credits=-asset_def.cost),
        events=events,
    )


def _buy_outlets(state, cmd: BuyOutlets, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    asset = account.assets.get(cmd.asset_id)
    if asset is None:
        return _fail(state, FailureReason.NOT_OWNED)
    if cmd.qty <= 0:
        return _fail(state, FailureReason.INVALID_AMOUNT)
    rules = config.rules.outlets
    cost = balance.outlet_cost(asset, cmd.qty, rules.growth)
    if account.credits < cost:
        return _fail(state, FailureReason.INSUFFICIENT_FUNDS, f"Need {cost} credits")

    account, events = _refresh(account, now, config)
    grown = balance.add_outlets(asset, cmd.qty, rules.milestones, rules.milestone_bonus)
    assets = dict(account.assets)
    assets[asset.asset_id] = grown
    updated = replace(account, credits=account.credits - cost, assets=assets, last_active=now)

    events.append(_event(
        EVT_OUTLETS_PURCHASED, account.account_id,
        asset_id=asset.asset_id, qty=cmd.qty, cost=cost, outlets=grown.outlets,
    ))
    if grown.multiplier > asset.multiplier:
        events.append(_event(
            EVT_MILESTONE_REACHED, account.account_id,
            asset_id=asset.asset_id, outlets=grown.outlets, multiplier=grown.multiplier,
        ))
    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok(f"Bought {cmd.qty} outlets", credits=-cost, outlets=grown.outlets),
        events=events,
    )


def _collect_asset(state, cmd: CollectAsset, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    asset = account.assets.get(cmd.asset_id)
    if asset is None:
        return _fail(state, FailureReason.NOT_OWNED)
    if asset.next_ready_at is not None and now < asset.next_ready_at:
        return _fail(state, FailureReason.COOLDOWN_ACTIVE, "Cycle still running")

    account, events = _refresh(account, now, config)
    profit, advanced = balance.run_cycle(asset, now)
    assets = dict(account.assets)
    assets[asset.asset_id] = advanced
    updated = replace(
        account,
        credits=account.credits + profit,
        assets=assets,
        total_credits_earned=account.total_credits_earned + profit,
        last_active=now,
    )
    if profit:
        events.append(_event(EVT_ASSET_COLLECTED, account.account_id, asset_id=asset.asset_id, profit=profit))
    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok("Collected" if profit else "Cycle started", credits=profit),
        events=events,
    )


def _buy_enhanced(state, cmd: BuyEnhancedAsset, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    asset_def = config.enhanced_assets.get(cmd.asset_id)
    if asset_def is None:
        return _fail(state, FailureReason.UNKNOWN_ASSET)
    if cmd.asset_id in account.owned_enhanced:
        return _fail(state, FailureReason.ALREADY_OWNED)
    missing = [p for p in asset_def.prerequisites if not _prerequisite_met(account, p, config)]
    if missing:
        return _fail(state, FailureReason.PREREQUISITE_NOT_MET, f"Requires {', '.join(missing)}")
    if account.wealth < asset_def.cost:
        return _fail(state, FailureReason.INSUFFICIENT_FUNDS, f"Need {asset_def.cost} wealth")

    account, events = _refresh(account, now, config)
    conditions = dict(account.conditions)
    conditions[asset_def.id] = maintenance.initialize_condition(asset_def, config.degradation, now)

    slots = account.active_slots
    slotted = len(slots) < config.rules.account.max_active_slots
    if slotted:
        slots = slots + (asset_def.id,)

    updated = replace(
        account,
        wealth=account.wealth - asset_def.cost,
        owned_enhanced=account.owned_enhanced + (asset_def.id,),
        active_slots=slots,
        conditions=conditions,
        last_active=now,
    )
    events.append(_event(EVT_ENHANCED_PURCHASED, account.account_id, asset_id=asset_def.id, cost=asset_def.cost))
    if slotted:
        events.append(_event(EVT_SLOT_CHANGED, account.account_id, asset_id=asset_def.id, active=True))
    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok(f"Bought {asset_def.name}", wealth=-asset_def.cost, slotted=slotted),
        events=events,
    )


def _set_active_slot(state, cmd: SetActiveSlot, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    if cmd.asset_id not in account.owned_enhanced:
        return _fail(state, FailureReason.NOT_OWNED)

    slots = account.active_slots
    if cmd.active:
        if cmd.asset_id in slots:
            return Transition(state=state, result=ActionResult.ok("Already active"))
        if len(slots) >= config.rules.account.max_active_slots:
            return _fail(state, FailureReason.SLOTS_FULL)
        slots = slots + (cmd.asset_id,)
    else:
        if cmd.asset_id not in slots:
            return Transition(state=state, result=ActionResult.ok("Already inactive"))
        slots = tuple(s for s in slots if s != cmd.asset_id)

    account, events = _refresh(account, now, config)
    updated = replace(account, active_slots=slots, last_active=now)
    events.append(_event(EVT_SLOT_CHANGED, account.account_id, asset_id=cmd.asset_id, active=cmd.active))
    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok("Slot updated", active_slots=list(slots)),
        events=events,
    )


def _activate_ability(state, cmd: ActivateAbility, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    if cmd.asset_id not in account.owned_enhanced:
        return _fail(state, FailureReason.NOT_OWNED)
    ability = config.enhanced_assets[cmd.asset_id].ability
    if ability is None or ability.mode == "passive":
        return _fail(state, FailureReason.ABILITY_UNAVAILABLE, "No activatable ability")
    if ability.mode == "upgrade" and ability.id in account.abilities.upgrades_applied:
        return _fail(state, FailureReason.ABILITY_UNAVAILABLE, "Upgrade already applied")
    last = account.abilities.last_used.get(ability.id)
    if last is not None and now - last < ability.cooldown_hours * HOUR:
        return _fail(state, FailureReason.COOLDOWN_ACTIVE)
    if account.wealth < ability.cost:
        return _fail(state, FailureReason.INSUFFICIENT_FUNDS, f"Need {ability.cost} wealth")

    account, events = _refresh(account, now, config)
    abilities = account.abilities
    last_used = dict(abilities.last_used)
    last_used[ability.id] = now
    base_work_value = account.base_work_value
    amounts: Dict[str, Any] = {"wealth": -ability.cost}

    if ability.mode == "instant":
        charges = dict(abilities.charges)
        charges[ability.effect] = ability.charges
        abilities = replace(abilities, charges=charges, last_used=last_used)
        amounts["charges"] = ability.charges
    elif ability.mode == "sustained":
        active_until = dict(abilities.active_until)
        active_until[ability.effect] = now + ability.duration_hours * HOUR
        abilities = replace(abilities, active_until=active_until, last_used=last_used)
        amounts["active_until"] = active_until[ability.effect]
    else:
        base_work_value += ability.base_work_delta
        abilities = replace(
            abilities,
            last_used=last_used,
            upgrades_applied=abilities.upgrades_applied + (ability.id,),
        )
        amounts["base_work_value"] = base_work_value

    updated = replace(
        account,
        wealth=account.wealth - ability.cost,
        abilities=abilities,
        base_work_value=base_work_value,
        last_active=now,
    )
    events.append(_event(
        EVT_ABILITY_ACTIVATED, account.account_id,
        asset_id=cmd.asset_id, ability=ability.id, mode=ability.mode,
    ))
    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok(f"{ability.name} activated", **amounts),
        events=events,
    )


def _perform_maintenance(state, cmd: PerformMaintenance, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    if cmd.asset_id not in account.owned_enhanced:
        return _fail(state, FailureReason.NOT_OWNED)
    action = config.maintenance_actions.get(cmd.action)
    if action is None:
        return _fail(state, FailureReason.UNKNOWN_ACTION)

    refreshed, events = _refresh(account, now, config)
    asset_def = config.enhanced_assets[cmd.asset_id]
    synergy_count = len(_active_synergies(refreshed, config))
    outcome = maintenance.perform_maintenance(
        refreshed.conditions[cmd.asset_id], asset_def.cost, action, synergy_count, now,
        config.maintenance_rules,
    )
    if refreshed.credits < outcome.cost:
        return _fail(state, FailureReason.INSUFFICIENT_FUNDS, f"Need {outcome.cost} credits")

    conditions = dict(refreshed.conditions)
    conditions[cmd.asset_id] = outcome.condition
    updated = replace(
        refreshed,
        credits=refreshed.credits - outcome.cost,
        conditions=conditions,
        total_maintenance_spent=refreshed.total_maintenance_spent + outcome.cost,
        last_active=now,
    )
    events.append(_event(
        EVT_MAINTENANCE_PERFORMED, account.account_id,
        asset_id=cmd.asset_id, action=action.id, cost=outcome.cost,
        condition=outcome.condition.condition,
    ))
    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok(
            f"{action.name} complete", credits=-outcome.cost,
            condition=outcome.condition.condition,
            offline_until=outcome.condition.offline_until,
        ),
        events=events,
    )


def _check_degradation(state, cmd: CheckDegradation, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    refreshed, events = _refresh(account, now, config)
    conditions = {k: round(v.condition, 2) for k, v in refreshed.conditions.items()}
    return Transition(
        state=_commit(state, refreshed),
        result=ActionResult.ok("Conditions updated", **conditions),
        events=events,
    )


def _attack(state, cmd: Attack, now, config, rng) -> Transition:
    attacker = state.account(cmd.account_id)
    defender = state.account(cmd.target_id)
    if attacker is None or defender is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    attack = config.attacks.get(cmd.attack_type)
    if attack is None:
        return _fail(state, FailureReason.UNKNOWN_ACTION)
    if attacker.account_id == defender.account_id:
        return _fail(state, FailureReason.SELF_TARGET)

    attacker, events = _refresh(attacker, now, config)
    defender, defender_events = _refresh(defender, now, config)
    events.extend(defender_events)

    battle_rules = config.rules.battle
    a_view = _combatant(attacker, config, now)
    d_view = _combatant(defender, config, now)
    reason, cost = combat.check_attack(a_view, d_view, attack, now, battle_rules)
    if reason is not None:
        return _fail(state, reason)

    outcome = combat.resolve_attack(
        a_view, d_view, attack, now, cost,
        config.wealth_tiers, battle_rules, config.rules.land, rng,
    )

    credits = attacker.credits
    wealth = attacker.wealth
    if attack.currency == "wealth":
        wealth -= cost
    else:
        credits -= cost
    penalty = min(outcome.penalty, wealth)
    wealth = wealth + outcome.stolen - penalty

    a_battle, d_battle = combat.apply_to_battles(
        attacker.account_id, attacker.battle, defender.battle, attack, outcome, now
    )
    won = outcome.success
    new_attacker = replace(
        attacker,
        credits=credits,
        wealth=wealth,
        battle=a_battle,
        battles_won=attacker.battles_won + int(won),
        battles_lost=attacker.battles_lost + int(not won),
        last_active=now,
    )
    new_defender = replace(
        defender,
        wealth=defender.wealth - outcome.stolen,
        battle=d_battle,
        battles_won=defender.battles_won + int(not won),
        battles_lost=defender.battles_lost + int(won),
    )

    events.append(_event(
        EVT_ATTACK_RESOLVED, attacker.account_id, defender.account_id,
        attack_type=attack.id, success=won, success_rate=round(outcome.success_rate, 4),
        cost=cost, stolen=outcome.stolen, penalty=penalty, consecutive=outcome.consecutive,
    ))
    if outcome.counter_attack:
        events.append(_event(EVT_COUNTER_ATTACK, defender.account_id, attacker.account_id, penalty=penalty))
    if attack.sabotage and won:
        events.append(_event(
            EVT_SABOTAGE_APPLIED, attacker.account_id, defender.account_id,
            damage=outcome.sabotage_damage, blocked=outcome.sabotage_blocked,
        ))
    if outcome.raid is not None:
        events.append(_event(
            EVT_RAID_TRIGGERED, attacker.account_id, defender.account_id,
            daily_yield=outcome.raid.daily_yield, days=outcome.raid.days_remaining,
        ))

    if won:
        message = f"{attack.name} succeeded"
    elif outcome.counter_attack:
        message = f"{attack.name} failed and was countered"
    else:
        message = f"{attack.name} failed"
    return Transition(
        state=_commit(state, new_attacker, new_defender),
        result=ActionResult.ok(
            message, won=won, cost=cost, currency=attack.currency,
            stolen=outcome.stolen, penalty=penalty, counter_attack=outcome.counter_attack,
            success_rate=outcome.success_rate, raid_triggered=outcome.raid is not None,
        ),
        events=events,
    )


def _activate_shield(state, cmd: ActivateShield, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    shield = config.shields.get(cmd.tier)
    if shield is None:
        return _fail(state, FailureReason.UNKNOWN_ACTION)

    refreshed, events = _refresh(account, now, config)
    funds = refreshed.wealth if shield.currency == "wealth" else refreshed.credits
    reason, battle = combat.activate_shield(refreshed.battle, funds, shield, now)
    if reason is not None:
        return _fail(state, reason)

    if shield.currency == "wealth":
        updated = replace(refreshed, wealth=refreshed.wealth - shield.cost, battle=battle, last_active=now)
    else:
        updated = replace(refreshed, credits=refreshed.credits - shield.cost, battle=battle, last_active=now)
    events.append(_event(EVT_SHIELD_ACTIVATED, account.account_id, tier=shield.id, expiry=battle.shield_expiry))
    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok(f"{shield.name} active", **{shield.currency: -shield.cost}, expiry=battle.shield_expiry),
        events=events,
    )


def _pay_tribute(state, cmd: PayTribute, now, config, rng) -> Transition:
    payer = state.account(cmd.account_id)
    target = state.account(cmd.target_id)
    if payer is None or target is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    if payer.account_id == target.account_id:
        return _fail(state, FailureReason.SELF_TARGET)

    rules = config.rules.battle
    payer, events = _refresh(payer, now, config)
    reason, battle = combat.pay_tribute(payer.battle, payer.wealth, target.account_id, now, rules)
    if reason is not None:
        return _fail(state, reason)

    new_payer = replace(payer, wealth=payer.wealth - rules.tribute_cost, battle=battle, last_active=now)
    new_target = replace(target, wealth=target.wealth + rules.tribute_cost)
    events.append(_event(
        EVT_TRIBUTE_PAID, payer.account_id, target.account_id,
        cost=rules.tribute_cost, expiry=battle.tributes[-1].expiry,
    ))
    return Transition(
        state=_commit(state, new_payer, new_target),
        result=ActionResult.ok("Tribute paid", wealth=-rules.tribute_cost, expiry=battle.tributes[-1].expiry),
        events=events,
    )


def _repair_sabotage(state, cmd: RepairSabotage, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    damage = account.battle.sabotage_damage
    if damage <= 0:
        return _fail(state, FailureReason.NOTHING_TO_REPAIR)
    cost = combat.repair_cost(damage, config.rules.battle.repair_cost_per_point)
    if account.credits < cost:
        return _fail(state, FailureReason.INSUFFICIENT_FUNDS, f"Need {cost} credits")

    account, events = _refresh(account, now, config)
    updated = replace(
        account,
        credits=account.credits - cost,
        battle=replace(account.battle, sabotage_damage=0.0),
        last_active=now,
    )
    events.append(_event(EVT_SABOTAGE_REPAIRED, account.account_id, cost=cost, damage=damage))
    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok("Sabotage repaired", credits=-cost),
        events=events,
    )


def _swap(state, cmd: Swap, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    try:
        direction = amm.SwapDirection(cmd.direction)
    except ValueError:
        return _fail(state, FailureReason.UNKNOWN_ACTION, f"Unknown direction {cmd.direction!r}")
    if cmd.amount <= 0:
        return _fail(state, FailureReason.INVALID_AMOUNT)

    spend_wealth = direction == amm.SwapDirection.A_TO_B
    available = account.wealth if spend_wealth else account.credits
    if available < cmd.amount:
        return _fail(state, FailureReason.INSUFFICIENT_FUNDS)

    discount = _fee_discount(account, config, now)
    quoted = cmd.quoted_amount_out
    if quoted is None:
        reason, quote = amm.quote_swap(state.pool, direction, cmd.amount, discount)
        if reason is not None:
            return _fail(state, reason)
        quoted = quote.amount_out

    reason, quote, pool = amm.execute_swap(
        state.pool, direction, cmd.amount, quoted, cmd.max_slippage_percent, discount
    )
    if reason is not None:
        return _fail(state, reason)

    received = int(math.floor(quote.amount_out))
    if received <= 0:
        return _fail(state, FailureReason.INVALID_AMOUNT, "Trade too small")
    # fractional output stays in the pool
    dust = quote.amount_out - received
    if spend_wealth:
        pool = replace(pool, reserve_b=pool.reserve_b + dust)
    else:
        pool = replace(pool, reserve_a=pool.reserve_a + dust)

    account, events = _refresh(account, now, config)
    if spend_wealth:
        updated = replace(account, wealth=account.wealth - cmd.amount, credits=account.credits + received)
    else:
        updated = replace(account, credits=account.credits - cmd.amount, wealth=account.wealth + received)
    updated = replace(updated, last_active=now)

    events.append(_event(
        EVT_SWAP_EXECUTED, account.account_id,
        direction=direction.value, amount_in=cmd.amount, amount_out=received,
        fee=quote.fee, price_impact=quote.price_impact,
    ))
    return Transition(
        state=_commit(state, updated).with_pool(pool),
        result=ActionResult.ok(
            "Swap executed", amount_in=cmd.amount, amount_out=received,
            price_impact=quote.price_impact, fee=quote.fee,
        ),
        events=events,
    )


def _collect_land_yield(state, cmd: CollectLandYield, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    if account.land_parcels <= 0:
        return _fail(state, FailureReason.NOTHING_TO_COLLECT, "No land parcels")
    last = account.last_land_collection if account.last_land_collection is not None else account.created_at
    days = int((now - last) // DAY)
    if days <= 0:
        return _fail(state, FailureReason.NOTHING_TO_COLLECT, "Land yield accrues daily")

    land = config.rules.land
    daily = account.land_parcels * land.monthly_yield_per_parcel // land.days_per_month
    gross = days * daily
    payouts, raids, kept = combat.settle_raids(account.battle.active_raids, days, gross)

    account, events = _refresh(account, now, config)
    owner = replace(
        account,
        wealth=account.wealth + kept,
        battle=replace(account.battle, active_raids=raids),
        last_land_collection=last + days * DAY,
        last_active=now,
    )
    raiders = []
    for raider_id, share in payouts.items():
        raider = state.account(raider_id)
        if raider is None or share <= 0:
            continue
        raiders.append(replace(raider, wealth=raider.wealth + share))

    events.append(_event(
        EVT_LAND_YIELD_COLLECTED, account.account_id,
        days=days, gross=gross, kept=kept, raided=gross - kept,
    ))
    return Transition(
        state=_commit(state, owner, *raiders),
        result=ActionResult.ok("Land yield collected", wealth=kept, raided=gross - kept, days=days),
        events=events,
    )


def _refresh_war(state, cmd: RefreshWAR, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    account, events = _refresh(account, now, config)
    previous = account.war
    record = war.update_war(previous, account.wealth, _portfolio_value(account, config), now, cmd.trigger)

    records = {aid: a.war for aid, a in state.accounts.items()}
    records[account.account_id] = record
    record = replace(record, rank=war.rank_by_ratio(records)[account.account_id])
    updated = replace(account, war=record)

    events.append(_event(
        EVT_WAR_UPDATED, account.account_id,
        ratio=record.current, trend=record.trend, efficiency=record.efficiency, rank=record.rank,
    ))
    if record.peak > previous.peak:
        events.append(_event(EVT_WAR_PEAK, account.account_id, peak=record.peak))
    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok(
            f"WAR {record.current:.3f} ({record.efficiency})",
            ratio=record.current, peak=record.peak, trend=record.trend, rank=record.rank,
        ),
        events=events,
    )


def _sync_from_ledger(state, cmd: SyncFromLedger, now, config, rng) -> Transition:
    account = state.account(cmd.account_id)
    if account is None:
        return _fail(state, FailureReason.UNKNOWN_ACCOUNT)
    fields = {
        name: value
        for name, value in (
            ("credits", cmd.credits),
            ("wealth", cmd.wealth),
            ("streak_days", cmd.streak_days),
            ("land_parcels", cmd.land_parcels),
        )
        if value is not None
    }
    if any(v < 0 for v in fields.values()):
        return _fail(state, FailureReason.INVALID_AMOUNT)

    updated = replace(account, **fields)
    if cmd.land_parcels is not None and cmd.land_parcels != account.land_parcels:
        # yield on a changed holding starts counting at the sync
        updated = replace(updated, last_land_collection=now)
    return Transition(
        state=_commit(state, updated),
        result=ActionResult.ok("Synced", **fields),
        events=[_event(EVT_ACCOUNT_SYNCED, account.account_id, **fields)],
    )


_HANDLERS: Dict[type, Callable[..., Transition]] = {
    OpenAccount: _open_account,
    Work: _work,
    BuyAsset: _buy_asset,
    BuyOutlets: _buy_outlets,
    CollectAsset: _collect_asset,
    BuyEnhancedAsset: _buy_enhanced,
    SetActiveSlot: _set_active_slot,
    ActivateAbility: _activate_ability,
    PerformMaintenance: _perform_maintenance,
    CheckDegradation: _check_degradation,
    Attack: _attack,
    ActivateShield: _activate_shield,
    PayTribute: _pay_tribute,
    RepairSabotage: _repair_sabotage,
    Swap: _swap,
    CollectLandYield: _collect_land_yield,
    RefreshWAR: _refresh_war,
    SyncFromLedger: _sync_from_ledger,
}


def reduce(
    state: GameState,
    command: Any,
    now: float,
    config: EconomyConfig,
    rng: Any = random,
) -> Transition:
    """(State, Command) -> (State, Result, Events). Pure apart from rng draws."""
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"Unknown command type: {type(command).__name__}")
    return handler(state, command, now, config, rng)


# ============================================================
# STATEFUL ADAPTER
# ============================================================

class EconomyController:
    """
    Holds the current GameState and applies commands one at a time.

    Usage:
        bus = EventBus()
        ctl = EconomyController(bus=bus)
        ctl.dispatch(OpenAccount("p1", "Alice"))
        alice = ctl.session("p1")
        alice.work()

    clock and rng are injectable so tests are deterministic.
    """

    def __init__(
        self,
        config: Optional[EconomyConfig] = None,
        bus: Optional[EventBus] = None,
        state: Optional[GameState] = None,
        clock: Callable[[], float] = time.time,
        rng: Any = None,
    ) -> None:
        self.config = config or get_economy_config()
        self.bus = bus or EventBus()
        self.clock = clock
        self.rng = rng or random.Random()
        self._state = state or new_game_state(self.config)

    @property
    def state(self) -> GameState:
        return self._state

    def dispatch(self, command: Any) -> ActionResult:
        transition = reduce(self._state, command, self.clock(), self.config, self.rng)
        self._state = transition.state
        self.bus.emit_all(transition.events)
        return transition.result

    def session(self, account_id: str) -> "PlayerSession":
        return PlayerSession(self, account_id)

    # ----------------------------------------------------------
    # Read-only queries
    # ----------------------------------------------------------

    def quote(self, direction: str, amount: float, account_id: Optional[str] = None):
        """Price a swap against the current pool. Returns (reason, quote)."""
        try:
            swap_direction = amm.SwapDirection(direction)
        except ValueError:
            return FailureReason.UNKNOWN_ACTION, None
        discount = 0.0
        account = self._state.account(account_id) if account_id else None
        if account is not None:
            discount = _fee_discount(account, self.config, self.clock())
        return amm.quote_swap(self._state.pool, swap_direction, amount, discount)

    def leaderboard(self, n: int = 10) -> List[LeaderboardEntry]:
        ranked = rank_entries([make_snapshot(a) for a in self._state.accounts.values()])
        return ranked[:n]

    def synergy_effects(self, account_id: str) -> synergy.SynergyEffects:
        return _synergy_effects(self._state.accounts[account_id], self.config)


class PlayerSession:
    """Command surface used by the presentation layer, bound to one account."""

    def __init__(self, controller: EconomyController, account_id: str) -> None:
        self.controller = controller
        self.account_id = account_id

    @property
    def account(self) -> Optional[Account]:
        return self.controller.state.account(self.account_id)

    def work(self) -> ActionResult:
        return self.controller.dispatch(Work(self.account_id))

    def buy_asset(self, asset_id: str) -> ActionResult:
        return self.controller.dispatch(BuyAsset(self.account_id, asset_id))

    def buy_outlets(self, asset_id: str, qty: int = 1) -> ActionResult:
        return self.controller.dispatch(BuyOutlets(self.account_id, asset_id, qty))

    def collect(self, asset_id: str) -> ActionResult:
        return self.controller.dispatch(CollectAsset(self.account_id, asset_id))

    def buy_enhanced_asset(self, asset_id: str) -> ActionResult:
        return self.controller.dispatch(BuyEnhancedAsset(self.account_id, asset_id))

    def set_active(self, asset_id: str, active: bool = True) -> ActionResult:
        return self.controller.dispatch(SetActiveSlot(self.account_id, asset_id, active))

    def activate_ability(self, asset_id: str) -> ActionResult:
        return self.controller.dispatch(ActivateAbility(self.account_id, asset_id))

    def perform_maintenance(self, asset_id: str, action_type: str) -> ActionResult:
        return self.controller.dispatch(PerformMaintenance(self.account_id, asset_id, action_type))

    def attack(self, target_id: str, attack_type: str = "standard") -> ActionResult:
        return self.controller.dispatch(Attack(self.account_id, target_id, attack_type))

    def activate_shield(self, tier: str) -> ActionResult:
        return self.controller.dispatch(ActivateShield(self.account_id, tier))

    def pay_tribute(self, target_id: str) -> ActionResult:
        return self.controller.dispatch(PayTribute(self.account_id, target_id))

    def repair_sabotage(self) -> ActionResult:
        return self.controller.dispatch(RepairSabotage(self.account_id))

    def swap(
        self,
        direction: str,
        amount: int,
        max_slippage: float = 1.0,
        quoted_amount_out: Optional[float] = None,
    ) -> ActionResult:
        return self.controller.dispatch(
            Swap(self.account_id, direction, amount, max_slippage, quoted_amount_out)
        )

    def collect_land_yield(self) -> ActionResult:
        return self.controller.dispatch(CollectLandYield(self.account_id))

    def refresh_war(self, trigger: str = "refresh") -> ActionResult:
        return self.controller.dispatch(RefreshWAR(self.account_id, trigger))
