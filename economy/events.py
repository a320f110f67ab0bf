"""
Wealth Wars — economy/events.py
Domain events and the typed pub-sub bus.
========================================
Version:     0.4
Stack:       Python 3.11+ | Pydantic v2 | bespoke pub-sub
Status:      Canonical.

Architecture notes
------------------
- Engines and the reducer never emit. They return lists of EconomyEvent;
  the controller emits them on the bus after the state is committed.
- Keys are "<domain>.<name>". A handler can follow one key, one domain
  ("combat.*") or every event ("*", used by NotificationCenter).
- Per-handler errors are swallowed and logged to stderr so emission
  always continues.
"""

from __future__ import annotations

import sys
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

# ============================================================
# CANONICAL EVENT KEYS
# Never use raw strings. Add new keys here only.
# ============================================================

EVT_ACCOUNT_OPENED          = "account.opened"
EVT_ACCOUNT_SYNCED          = "account.synced"

EVT_WORK_COMPLETED          = "work.completed"
EVT_WORK_LOCKOUT            = "work.lockout_started"
EVT_STREAK_ADVANCED         = "work.streak_advanced"
EVT_LEVEL_UP                = "work.level_up"

EVT_ASSET_PURCHASED         = "asset.purchased"
EVT_OUTLETS_PURCHASED       = "asset.outlets_purchased"
EVT_MILESTONE_REACHED       = "asset.milestone_reached"
EVT_ASSET_COLLECTED         = "asset.collected"
EVT_ENHANCED_PURCHASED      = "asset.enhanced_purchased"
EVT_SLOT_CHANGED            = "asset.slot_changed"
EVT_ABILITY_ACTIVATED       = "asset.ability_activated"

EVT_CONDITION_WARNING       = "maintenance.condition_warning"
EVT_ASSET_BROKEN            = "maintenance.asset_broken"
EVT_ASSET_BACK_ONLINE       = "maintenance.back_online"
EVT_MAINTENANCE_PERFORMED   = "maintenance.performed"

EVT_ATTACK_RESOLVED         = "combat.attack_resolved"
EVT_COUNTER_ATTACK          = "combat.counter_attack"
EVT_SABOTAGE_APPLIED        = "combat.sabotage_applied"
EVT_SABOTAGE_REPAIRED       = "combat.sabotage_repaired"
EVT_RAID_TRIGGERED          = "combat.raid_triggered"
EVT_SHIELD_ACTIVATED        = "combat.shield_activated"
EVT_TRIBUTE_PAID            = "combat.tribute_paid"
EVT_LAND_YIELD_COLLECTED    = "combat.land_yield_collected"

EVT_SWAP_EXECUTED           = "pool.swap_executed"

EVT_WAR_UPDATED             = "war.updated"
EVT_WAR_PEAK                = "war.new_peak"


# ============================================================
# EVENT MODEL  (Pydantic v2)
# data dict must remain flat + JSON-serializable.
# ============================================================

class EconomyEvent(BaseModel):
    """Base envelope. NotificationCenter receives these directly."""
    event_key: str
    source: str
    target: Optional[str] = None
    data: Dict[str, Any] = {}

    @property
    def domain(self) -> str:
        """Leading segment of the key: work, asset, combat, pool ..."""
        return self.event_key.split(".", 1)[0]

    def involves(self, account_id: str) -> bool:
        return account_id in (self.source, self.target)


# ============================================================
# EVENT BUS
# ============================================================

HandlerFn = Callable[[EconomyEvent], None]

WILDCARD = "*"


def domain_key(domain: str) -> str:
    """Subscription key for every event of one domain, e.g. "combat.*"."""
    return f"{domain}.{WILDCARD}"


class EventBus:
    """
    Bespoke pub-sub. Pass instance at construction. No global singleton.

    Handlers subscribe to an exact key (EVT_ATTACK_RESOLVED), a domain
    ("combat.*", see domain_key) or everything ("*", used by
    NotificationCenter). Delivery order is exact, then domain, then "*".
    Per-handler errors are logged to stderr and emission continues.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[HandlerFn]] = {}

    def subscribe(self, event_key: str, handler: HandlerFn) -> None:
        self._subscribers.setdefault(event_key, []).append(handler)

    def unsubscribe(self, event_key: str, handler: HandlerFn) -> None:
        handlers = self._subscribers.get(event_key)
        if handlers:
            self._subscribers[event_key] = [h for h in handlers if h is not handler]

    def handlers_for(self, event: EconomyEvent) -> List[HandlerFn]:
        return (
            self._subscribers.get(event.event_key, [])
            + self._subscribers.get(domain_key(event.domain), [])
            + self._subscribers.get(WILDCARD, [])
        )

    def emit(self, event: EconomyEvent) -> None:
        for handler in self.handlers_for(event):
            try:
                handler(event)
            except Exception as exc:  # noqa: BLE001
                print(
                    f"[EventBus] Handler error on '{event.event_key}' "
                    f"from {event.source}: {exc}",
                    file=sys.stderr,
                )

    def emit_all(self, events: List[EconomyEvent]) -> None:
        """Emit a committed transition's events in the order they were produced."""
        for event in events:
            self.emit(event)
