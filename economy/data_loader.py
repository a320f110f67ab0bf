"""
Wealth Wars — economy/data_loader.py
JIT Data Loaders for the economy TOML tables powered by Pydantic.
=============================================================================================
Version:     0.4 (Economy tables)
Stack:       Python 3.11+ | Pydantic v2 | tomllib
Status:      Core data validation and loading layer.

Tables live in data/economy/*.toml. Every table is required: a missing file
is a deployment error and raises FileNotFoundError. Loaded tables are frozen
models so engines can share one EconomyConfig without copying.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ConfigDict

# ================================================================================
# SCHEMAS
# ================================================================================

Currency = Literal["credits", "wealth"]
Category = Literal["efficiency", "defensive", "offensive", "utility"]
Tier = Literal["basic", "advanced", "premium", "legendary"]

class AttackTypeDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    cost: int
    currency: Currency
    cooldown_hours: float
    bypasses_defenses: bool = False
    requires_stake: bool = False # attacker must hold a stake in the target's wealth
    triggers_raid: bool = False
    sabotage: bool = False
    failure_penalty: Literal["surcharge", "half_cost"] = "surcharge"
    surcharge: int = 0
    description: str = ""

class WealthTierDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    min_wealth: int
    theft_rate: float
    success_modifier: float
    max_theft: int

class ShieldTierDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    cost: int
    duration_hours: float
    currency: Currency = "wealth"

class MaintenanceActionDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    cost_multiplier: float
    condition_restored: float
    offline_hours: float
    slowdown_days: float
    efficiency_bonus: float = 0.0 # permanent, cumulative (upgrade only)
    description: str = ""

class DegradationDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    category_rates: Dict[str, float]
    tier_multipliers: Dict[str, float]

class MaintenanceRulesDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    slowdown_window_days: float = 7
    slowdown_factor: float = 0.5
    high_cost_threshold: int = 100
    high_cost_factor: float = 0.8
    mid_cost_threshold: int = 50
    mid_cost_factor: float = 0.9
    synergy_discount_percent: int = 5
    synergy_discount_cap_percent: int = 25

class SynergyDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    required_categories: List[str]
    min_businesses: int
    priority: int
    spans_all_categories: bool = False # one of each category instead of the divided count
    effects: Dict[str, float] = Field(default_factory=dict)

# --- Ability descriptors: one model per mode, discriminated on "mode" ---

class InstantAbilityDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    mode: Literal["instant"]
    id: str
    name: str
    cost: int
    cooldown_hours: float
    charges: int
    effect: str
    description: str = ""

class SustainedAbilityDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    mode: Literal["sustained"]
    id: str
    name: str
    cost: int
    cooldown_hours: float
    duration_hours: float
    effect: str
    magnitude: float = 0.0
    description: str = ""

class UpgradeAbilityDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    mode: Literal["upgrade"]
    id: str
    name: str
    cost: int
    cooldown_hours: float
    base_work_delta: int
    effect: str
    description: str = ""

class PassiveAbilityDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    mode: Literal["passive"]
    id: str
    name: str
    effect: Optional[str] = None
    magnitude: float = 0.0
    description: str = ""

AbilityDef = Annotated[
    Union[InstantAbilityDef, SustainedAbilityDef, UpgradeAbilityDef, PassiveAbilityDef],
    Field(discriminator="mode"),
]

class EnhancedAssetDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    category: Category
    tier: Tier
    cost: int # wealth
    work_multiplier: int # percent
    attack_bonus: float = 0.0
    defense_bonus: float = 0.0
    prerequisites: List[str] = Field(default_factory=list)
    ability: Optional[AbilityDef] = None

class BasicAssetDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    cost: int # credits
    cost_per_outlet: int
    yield_per_tick: int
    cycle_seconds: float
    work_multiplier: int # percent per outlet

class PoolDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    reserve_a: float
    reserve_b: float
    fee_bps: int
    max_trade_size: float
    paused: bool = False

# --- rules.toml sections ---

class AccountRulesDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    starting_credits: int = 0
    starting_wealth: int = 150
    max_active_slots: int = 3

class WorkRulesDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    base_value: int = 25
    quick_service_value: int = 40
    cooldown_hours: float = 2
    rapid_cooldown_hours: float = 1
    session_limit: int = 4
    lockout_hours: float = 6
    idle_reset_hours: float = 6
    multiplier_cap_percent: int = 200
    xp_base: int = 25
    xp_per_streak_day: int = 2
    xp_per_level: int = 1000

class OutletRulesDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    growth: float = 1.15
    milestones: List[int] = Field(default_factory=lambda: [10, 25, 50, 100])
    milestone_bonus: float = 1.2

class BattleRulesDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    base_success: float = 0.6
    min_success: float = 0.10
    max_success: float = 0.95
    min_target_wealth: int = 10
    stake_ratio: float = 0.25
    range_min: float = 0.5
    range_max: float = 2.0
    defense_immunity_hours: float = 2
    counter_chance: float = 0.25
    escalation_step_percent: int = 10
    slippage_step_percent: int = 10
    slippage_floor_percent: int = 50
    streak_window_hours: float = 24
    sabotage_damage: float = 30
    sabotage_mitigation: float = 0.5
    repair_cost_per_point: int = 10
    tribute_cost: int = 50
    tribute_hours: float = 48

class LandRulesDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    monthly_yield_per_parcel: int = 16667
    days_per_month: int = 30
    raid_attacks_required: int = 3
    raid_window_hours: float = 24
    raid_yield_fraction: float = 0.10
    raid_days: int = 7

class RulesDef(BaseModel):
    model_config = ConfigDict(frozen=True)
    account: AccountRulesDef = Field(default_factory=AccountRulesDef)
    work: WorkRulesDef = Field(default_factory=WorkRulesDef)
    outlets: OutletRulesDef = Field(default_factory=OutletRulesDef)
    battle: BattleRulesDef = Field(default_factory=BattleRulesDef)
    land: LandRulesDef = Field(default_factory=LandRulesDef)
    achievements: Dict[str, int] = Field(default_factory=dict)

# --- Aggregate ---

class EconomyConfig(BaseModel):
    """Every table the engines read, validated once."""
    model_config = ConfigDict(frozen=True)
    attacks: Dict[str, AttackTypeDef]
    wealth_tiers: List[WealthTierDef] # ascending by min_wealth
    shields: Dict[str, ShieldTierDef]
    maintenance_actions: Dict[str, MaintenanceActionDef]
    maintenance_rules: MaintenanceRulesDef
    degradation: DegradationDef
    synergies: List[SynergyDef] # descending by priority
    enhanced_assets: Dict[str, EnhancedAssetDef]
    basic_assets: Dict[str, BasicAssetDef]
    pool: PoolDef
    rules: RulesDef

# ================================================================================
# LOADERS & CACHE (JIT)
# ================================================================================

_CONFIG_CACHE: Optional[EconomyConfig] = None

DATA_DIR = Path(__file__).parent.parent / "data" / "economy"

def _read_table(data_dir: Path, name: str) -> dict:
    path = data_dir / f"{name}.toml"
    if not path.exists():
        raise FileNotFoundError(f"Economy table not found: {path}")

    with open(path, "rb") as f:
        return tomllib.load(f)

def load_economy_config(data_dir: Path = DATA_DIR) -> EconomyConfig:
    """Loads and validates every economy table from data_dir. Not cached."""
    attacks = _read_table(data_dir, "attacks")["attacks"]
    tiers = _read_table(data_dir, "wealth_tiers")["tiers"]
    shields = _read_table(data_dir, "shields")["shields"]
    maintenance = _read_table(data_dir, "maintenance")
    synergies = _read_table(data_dir, "synergies")["synergies"]
    enhanced = _read_table(data_dir, "enhanced_assets")["assets"]
    basic = _read_table(data_dir, "basic_assets")["assets"]

    tier_defs = sorted((WealthTierDef(**t) for t in tiers), key=lambda t: t.min_wealth)
    synergy_defs = sorted(
        (SynergyDef(**s) for s in synergies), key=lambda s: s.priority, reverse=True
    )

    return EconomyConfig(
        attacks={a["id"]: AttackTypeDef(**a) for a in attacks},
        wealth_tiers=tier_defs,
        shields={s["id"]: ShieldTierDef(**s) for s in shields},
        maintenance_actions={
            a["id"]: MaintenanceActionDef(**a) for a in maintenance["actions"]
        },
        maintenance_rules=MaintenanceRulesDef(**maintenance.get("rules", {})),
        degradation=DegradationDef(**maintenance["degradation"]),
        synergies=synergy_defs,
        enhanced_assets={a["id"]: EnhancedAssetDef(**a) for a in enhanced},
        basic_assets={a["id"]: BasicAssetDef(**a) for a in basic},
        pool=PoolDef(**_read_table(data_dir, "pool")),
        rules=RulesDef(**_read_table(data_dir, "rules")),
    )

def get_economy_config() -> EconomyConfig:
    """Loads the bundled economy tables. Cached globally."""
    global _CONFIG_CACHE
    if _CONFIG_CACHE is not None:
        return _CONFIG_CACHE

    _CONFIG_CACHE = load_economy_config(DATA_DIR)
    return _CONFIG_CACHE

def get_enhanced_asset_def(asset_id: str) -> EnhancedAssetDef:
    """Looks up an enhanced business in the bundled catalog."""
    catalog = get_economy_config().enhanced_assets
    if asset_id not in catalog:
        raise KeyError(f"Enhanced asset not found: {asset_id}")
    return catalog[asset_id]
