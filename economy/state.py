"""
Wealth Wars — economy/state.py
Game State: immutable account, battle, pool and ratio records.
==============================================================
Version:     0.4
Stack:       Python 3.11+ | stdlib dataclasses
Status:      Canonical state shapes. No rules live here.

Architecture notes
------------------
- Every record is a frozen dataclass. Transitions build new records with
  dataclasses.replace(); dict and tuple fields are copied, never mutated.
- Time is epoch seconds (float) everywhere. Engines never read the clock;
  `now` is injected by the caller.
- GameState is the only value the controller commits. Two-account actions
  (combat, raids) replace both accounts in the same GameState.

Invariants
----------
  credits >= 0 and wealth >= 0 after every commit
  0 <= AssetCondition.condition <= 100
  AssetCondition.upgrade_bonus never decreases
  maintenance_history and WARRecord.history are append-only
  len(active_slots) <= max_active_slots
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

# ============================================================
# TIME UNITS
# ============================================================

HOUR: float = 3600.0
DAY: float = 86400.0


# ============================================================
# BASIC ASSETS
# ============================================================

@dataclass(frozen=True)
class Asset:
    """A credit-bought productive business with outlets and a yield cycle."""
    asset_id: str
    name: str
    cost: int
    cost_per_outlet: int
    yield_per_tick: int
    cycle_seconds: float
    work_multiplier: int
    level: int = 1
    outlets: int = 1
    multiplier: float = 1.0
    condition: float = 100.0
    manager_hired: bool = False
    next_ready_at: Optional[float] = None   # running cycle completes at


# ============================================================
# ENHANCED ASSET CONDITION
# ============================================================

@dataclass(frozen=True)
class MaintenanceRecord:
    timestamp: float
    action: str
    cost: int
    condition_before: float
    condition_after: float
    downtime_hours: float


@dataclass(frozen=True)
class AssetCondition:
    asset_id: str
    condition: float
    last_maintained: float
    degradation_rate: float
    efficiency_multiplier: float = 1.0
    warning_level: str = "good"             # good | caution | critical | broken
    is_offline: bool = False
    offline_until: Optional[float] = None
    slowdown_until: Optional[float] = None
    upgrade_bonus: float = 0.0
    maintenance_history: Tuple[MaintenanceRecord, ...] = ()


# ============================================================
# ABILITIES / WORK
# ============================================================

@dataclass(frozen=True)
class AbilityState:
    last_used: Dict[str, float] = field(default_factory=dict)      # ability id -> ts
    charges: Dict[str, int] = field(default_factory=dict)          # effect -> remaining
    active_until: Dict[str, float] = field(default_factory=dict)   # effect -> ts
    upgrades_applied: Tuple[str, ...] = ()

    def is_active(self, effect: str, now: float) -> bool:
        return self.active_until.get(effect, 0.0) > now


@dataclass(frozen=True)
class WorkSession:
    session_count: int = 0
    last_work_at: Optional[float] = None
    lockout_until: Optional[float] = None


# ============================================================
# BATTLE
# ============================================================

@dataclass(frozen=True)
class StreakRecord:
    """Consecutive successes by one attacker against the owning defender."""
    count: int
    last_attack: float


@dataclass(frozen=True)
class ActiveRaid:
    raider_id: str
    started_at: float
    daily_yield: int
    days_remaining: int


@dataclass(frozen=True)
class Tribute:
    """Protection bought by the owner against attacks from target_id."""
    target_id: str
    expiry: float


@dataclass(frozen=True)
class BattleState:
    last_attack_by_type: Dict[str, float] = field(default_factory=dict)
    last_defense_at: Optional[float] = None
    shield_expiry: float = 0.0
    consecutive_from: Dict[str, StreakRecord] = field(default_factory=dict)
    active_raids: Tuple[ActiveRaid, ...] = ()
    tributes: Tuple[Tribute, ...] = ()
    sabotage_damage: float = 0.0            # percent off the business multiplier


# ============================================================
# WAR (Wealth Asset Ratio)
# ============================================================

@dataclass(frozen=True)
class WARSample:
    timestamp: float
    ratio: float
    trigger: str
    portfolio_value: int
    wealth: int


@dataclass(frozen=True)
class WARRecord:
    current: float = 0.0
    peak: float = 0.0
    trend: str = "stable"                   # rising | falling | stable
    rank: Optional[int] = None
    efficiency: str = "poor"
    history: Tuple[WARSample, ...] = ()


# ============================================================
# LIQUIDITY POOL
# ============================================================

@dataclass(frozen=True)
class LiquidityPool:
    reserve_a: float                        # wealth
    reserve_b: float                        # credits
    fee_bps: int
    max_trade_size: float
    paused: bool = False

    @property
    def k(self) -> float:
        return self.reserve_a * self.reserve_b


# ============================================================
# ACCOUNT / GAME STATE
# ============================================================

@dataclass(frozen=True)
class Account:
    account_id: str
    name: str
    created_at: float
    credits: int = 0
    wealth: int = 0
    version: int = 0
    xp: int = 0
    level: int = 1
    streak_days: int = 0
    last_work_day: Optional[int] = None     # days since epoch
    last_active: Optional[float] = None
    work: WorkSession = field(default_factory=WorkSession)
    assets: Dict[str, Asset] = field(default_factory=dict)
    owned_enhanced: Tuple[str, ...] = ()
    active_slots: Tuple[str, ...] = ()
    conditions: Dict[str, AssetCondition] = field(default_factory=dict)
    last_degradation_check: Optional[float] = None
    base_work_value: int = 25
    abilities: AbilityState = field(default_factory=AbilityState)
    battle: BattleState = field(default_factory=BattleState)
    war: WARRecord = field(default_factory=WARRecord)
    land_parcels: int = 0
    last_land_collection: Optional[float] = None

    battles_won: int = 0
    battles_lost: int = 0
    total_work_actions: int = 0
    total_credits_earned: int = 0
    total_maintenance_spent: int = 0


@dataclass(frozen=True)
class GameState:
    accounts: Dict[str, Account]
    pool: LiquidityPool

    def account(self, account_id: str) -> Optional[Account]:
        return self.accounts.get(account_id)

    def with_accounts(self, *updated: Account) -> "GameState":
        """Return a new GameState with the given accounts replaced."""
        accounts = dict(self.accounts)
        for acct in updated:
            accounts[acct.account_id] = acct
        return GameState(accounts=accounts, pool=self.pool)

    def with_pool(self, pool: LiquidityPool) -> "GameState":
        return GameState(accounts=self.accounts, pool=pool)
