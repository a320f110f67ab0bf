"""
Wealth Wars — economy/errors.py
Action results and the failure taxonomy.
========================================
Version:     0.4
Stack:       Python 3.11+ | stdlib enum/dataclasses
Status:      Canonical.

Domain failures are values, not exceptions. Every user-invoked action
returns an ActionResult; a failed result always comes with the unchanged
input state. Exceptions are reserved for configuration and programming
errors (missing tables, unknown command types).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class FailureReason(str, Enum):
    INSUFFICIENT_FUNDS = "insufficient_funds"
    COOLDOWN_ACTIVE = "cooldown_active"

    # Invalid target family
    OUT_OF_WEALTH_RANGE = "out_of_wealth_range"
    SHIELDED = "shielded"
    DEFENSE_IMMUNE = "defense_immune"
    BELOW_MINIMUM_WEALTH = "below_minimum_wealth"
    TRIBUTE_PROTECTED = "tribute_protected"
    SELF_TARGET = "self_target"

    ALREADY_OWNED = "already_owned"
    PREREQUISITE_NOT_MET = "prerequisite_not_met"
    POOL_PAUSED = "pool_paused"
    TRADE_TOO_LARGE = "trade_too_large"
    SLIPPAGE_EXCEEDED = "slippage_exceeded"
    ALREADY_PROTECTED = "already_protected"

    UNKNOWN_ACCOUNT = "unknown_account"
    ACCOUNT_EXISTS = "account_exists"
    UNKNOWN_ASSET = "unknown_asset"
    UNKNOWN_ACTION = "unknown_action"
    NOT_OWNED = "not_owned"
    SLOTS_FULL = "slots_full"
    INVALID_AMOUNT = "invalid_amount"
    INSUFFICIENT_LIQUIDITY = "insufficient_liquidity"
    ABILITY_UNAVAILABLE = "ability_unavailable"
    NOTHING_TO_REPAIR = "nothing_to_repair"
    NOTHING_TO_COLLECT = "nothing_to_collect"

    @property
    def is_invalid_target(self) -> bool:
        return self in _INVALID_TARGET


_INVALID_TARGET = frozenset({
    FailureReason.OUT_OF_WEALTH_RANGE,
    FailureReason.SHIELDED,
    FailureReason.DEFENSE_IMMUNE,
    FailureReason.BELOW_MINIMUM_WEALTH,
    FailureReason.TRIBUTE_PROTECTED,
    FailureReason.SELF_TARGET,
})


@dataclass(frozen=True)
class ActionResult:
    """
    Discriminated result returned by every command.

    success: True when the action committed.
    reason : set only on failure.
    amounts: named numbers describing what moved (flat, JSON-safe).
    message: short human-readable summary.
    """
    success: bool
    reason: Optional[FailureReason] = None
    amounts: Dict[str, Any] = field(default_factory=dict)
    message: str = ""

    @classmethod
    def ok(cls, message: str = "", **amounts: Any) -> "ActionResult":
        return cls(success=True, amounts=amounts, message=message)

    @classmethod
    def fail(cls, reason: FailureReason, message: str = "") -> "ActionResult":
        return cls(success=False, reason=reason, message=message or reason.value)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"success": self.success}
        if self.reason is not None:
            out["reason"] = self.reason.value
        if self.amounts:
            out["amounts"] = dict(self.amounts)
        if self.message:
            out["message"] = self.message
        return out
