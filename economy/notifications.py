"""
Wealth Wars — economy/notifications.py
Notification Center: player-facing notices and an append-only event journal.
============================================================================
Version:     0.4
Stack:       Python 3.11+ | stdlib json/uuid | bespoke EventBus
Status:      Canonical. No gameplay logic here.

Architecture notes
------------------
- NotificationCenter is a PASSIVE wildcard subscriber. It never emits events
  and never touches GameState.
- Every event is scored (int 1-5). Events below NOTIFY_SIGNIFICANCE_MIN are
  discarded silently; the rest become Notification records addressed to
  every account the event concerns (source and, when present, target).
- When a journal path is given, each notification is appended as one JSON
  line. Written lines are never modified.
- Time is never read from the system clock. The controller's clock is
  injected at construction.

Significance Scoring Reference (NOTIFY_SIGNIFICANCE_MIN = 2)
------------------------------------------------------------
  1 : routine (work completed, asset collected, slot changes)
  2 : standard (purchases, maintenance, swaps, shields, tributes)
  3 : notable (condition warnings, milestones, streaks, level ups)
  4 : significant (attacks, counter attacks, sabotage, broken assets)
  5 : legendary (raids, new WAR peaks)
"""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

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
    WILDCARD,
)

# ============================================================
# DESIGN VARIABLE DEFAULTS
# ============================================================

NOTIFY_SIGNIFICANCE_MIN: int = 2
NOTIFY_INBOX_LIMIT: int = 50


# ============================================================
# SIGNIFICANCE SCORING TABLE
# Events not listed default to 1 (below threshold, discarded).
# ============================================================

_SIGNIFICANCE_TABLE: Dict[str, int] = {
    EVT_WORK_COMPLETED:         1,
    EVT_ASSET_COLLECTED:        1,
    EVT_SLOT_CHANGED:           1,
    EVT_WAR_UPDATED:            1,
    EVT_ACCOUNT_SYNCED:         1,

    EVT_ACCOUNT_OPENED:         2,
    EVT_ASSET_PURCHASED:        2,
    EVT_OUTLETS_PURCHASED:      2,
    EVT_ENHANCED_PURCHASED:     2,
    EVT_ABILITY_ACTIVATED:      2,
    EVT_MAINTENANCE_PERFORMED:  2,
    EVT_ASSET_BACK_ONLINE:      2,
    EVT_SWAP_EXECUTED:          2,
    EVT_SHIELD_ACTIVATED:       2,
    EVT_TRIBUTE_PAID:           2,
    EVT_SABOTAGE_REPAIRED:      2,
    EVT_WORK_LOCKOUT:           2,
    EVT_LAND_YIELD_COLLECTED:   2,

    EVT_CONDITION_WARNING:      3,
    EVT_MILESTONE_REACHED:      3,
    EVT_STREAK_ADVANCED:        3,
    EVT_LEVEL_UP:               3,

    EVT_ATTACK_RESOLVED:        4,
    EVT_COUNTER_ATTACK:         4,
    EVT_SABOTAGE_APPLIED:       4,
    EVT_ASSET_BROKEN:           4,

    EVT_RAID_TRIGGERED:         5,
    EVT_WAR_PEAK:               5,
}


def score_significance(event: EconomyEvent) -> int:
    """
    Base score from the table, with two overrides:
      - a critical condition warning is raised to 4
      - a swap with more than 5% price impact is raised to 3
    """
    base = _SIGNIFICANCE_TABLE.get(event.event_key, 1)
    if event.event_key == EVT_CONDITION_WARNING and event.data.get("level") == "critical":
        base = max(base, 4)
    if event.event_key == EVT_SWAP_EXECUTED:
        impact = event.data.get("price_impact", 0.0)
        if isinstance(impact, (int, float)) and impact > 5:
            base = max(base, 3)
    return base


# ============================================================
# MESSAGE BUILDER
# ============================================================

def _attack_message(event: EconomyEvent, data: Dict[str, Any]) -> str:
    kind = str(data.get("attack_type", "attack")).replace("_", " ")
    if data.get("success"):
        return f"{event.source} won a {kind} against {event.target}, stealing {data.get('stolen', 0)} wealth"
    return f"{event.source} lost a {kind} against {event.target}"


_MESSAGES: Dict[str, Callable[[EconomyEvent, Dict[str, Any]], str]] = {
    EVT_ACCOUNT_OPENED: lambda e, d: f"{d.get('name', e.source)} joined the economy",
    EVT_ASSET_PURCHASED: lambda e, d: f"Bought {d.get('asset_id')} for {d.get('cost')} credits",
    EVT_OUTLETS_PURCHASED: lambda e, d: f"{d.get('asset_id')} now has {d.get('outlets')} outlets",
    EVT_MILESTONE_REACHED: lambda e, d: f"{d.get('asset_id')} reached {d.get('outlets')} outlets (x{d.get('multiplier')})",
    EVT_ENHANCED_PURCHASED: lambda e, d: f"Acquired {d.get('asset_id')} for {d.get('cost')} wealth",
    EVT_ABILITY_ACTIVATED: lambda e, d: f"{d.get('ability')} activated on {d.get('asset_id')}",
    EVT_CONDITION_WARNING: lambda e, d: f"{d.get('asset_id')} condition {d.get('level')} ({d.get('condition')}%)",
    EVT_ASSET_BROKEN: lambda e, d: f"{d.get('asset_id')} is broken and needs major maintenance",
    EVT_ASSET_BACK_ONLINE: lambda e, d: f"{d.get('asset_id')} is back online",
    EVT_MAINTENANCE_PERFORMED: lambda e, d: f"{d.get('action')} maintenance on {d.get('asset_id')} cost {d.get('cost')} credits",
    EVT_ATTACK_RESOLVED: _attack_message,
    EVT_COUNTER_ATTACK: lambda e, d: f"{e.source} countered {e.target} for {d.get('penalty')} wealth",
    EVT_SABOTAGE_APPLIED: lambda e, d: (
        f"Sabotage on {e.target} was blocked" if d.get("blocked")
        else f"{e.target} business output reduced by {d.get('damage')}%"
    ),
    EVT_SABOTAGE_REPAIRED: lambda e, d: f"Sabotage repaired for {d.get('cost')} credits",
    EVT_RAID_TRIGGERED: lambda e, d: f"{e.source} is raiding {e.target}'s land for {d.get('days')} days",
    EVT_SHIELD_ACTIVATED: lambda e, d: f"{d.get('tier')} shield raised",
    EVT_TRIBUTE_PAID: lambda e, d: f"{e.source} paid {d.get('cost')} wealth tribute to {e.target}",
    EVT_LAND_YIELD_COLLECTED: lambda e, d: f"Collected {d.get('kept')} wealth from land ({d.get('raided')} raided)",
    EVT_SWAP_EXECUTED: lambda e, d: f"Swapped {d.get('amount_in')} for {d.get('amount_out')}",
    EVT_WORK_LOCKOUT: lambda e, d: f"Work session limit reached, resting for {d.get('hours', 0):g} hours",
    EVT_STREAK_ADVANCED: lambda e, d: f"Work streak: {d.get('streak_days')} days",
    EVT_LEVEL_UP: lambda e, d: f"Reached level {d.get('level')}",
    EVT_WAR_PEAK: lambda e, d: f"New WAR peak: {d.get('peak'):.3f}",
}


def build_message(event: EconomyEvent) -> str:
    builder = _MESSAGES.get(event.event_key)
    if builder is None:
        return f"{event.event_key} ({event.source})"
    return builder(event, event.data)


# ============================================================
# NOTIFICATION RECORD  (immutable after construction)
# ============================================================

@dataclass(frozen=True)
class Notification:
    notification_id: str                # UUID4 string
    timestamp: float                    # epoch seconds from the injected clock
    account_id: str                     # recipient
    event_key: str
    message: str
    significance: int                   # 1-5
    data: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notification_id": self.notification_id,
            "timestamp":       self.timestamp,
            "account_id":      self.account_id,
            "event_key":       self.event_key,
            "message":         self.message,
            "significance":    self.significance,
            "data":            self.data,
        }


# ============================================================
# NOTIFICATION CENTER
# ============================================================

class NotificationCenter:
    """
    Wildcard subscriber that keeps a bounded inbox per account.

    Usage:
        bus = EventBus()
        center = NotificationCenter(bus, clock=time.time,
                                    journal_path=Path("sessions/journal.jsonl"))
        controller = EconomyController(bus=bus)
        ...
        center.inbox("p1")
    """

    def __init__(
        self,
        bus: EventBus,
        clock: Callable[[], float],
        journal_path: Optional[Path] = None,
        significance_min: int = NOTIFY_SIGNIFICANCE_MIN,
        inbox_limit: int = NOTIFY_INBOX_LIMIT,
    ) -> None:
        self.bus = bus
        self.clock = clock
        self.journal_path = journal_path
        self.significance_min = significance_min
        self.inbox_limit = inbox_limit
        self._inboxes: Dict[str, List[Notification]] = {}

        if self.journal_path is not None:
            self.journal_path.parent.mkdir(parents=True, exist_ok=True)

        bus.subscribe(WILDCARD, self._on_event)

    def detach(self) -> None:
        self.bus.unsubscribe(WILDCARD, self._on_event)

    # ----------------------------------------------------------
    # Public API
    # ----------------------------------------------------------

    def inbox(self, account_id: str) -> List[Notification]:
        """Newest last."""
        return list(self._inboxes.get(account_id, []))

    def clear(self, account_id: str) -> None:
        self._inboxes.pop(account_id, None)

    # ----------------------------------------------------------
    # Internal
    # ----------------------------------------------------------

    def _on_event(self, event: EconomyEvent) -> None:
        significance = score_significance(event)
        if significance < self.significance_min:
            return
        recipients = [event.source]
        if event.target and event.target != event.source:
            recipients.append(event.target)
        for account_id in recipients:
            self._deliver(event, account_id, significance)

    def _deliver(self, event: EconomyEvent, account_id: str, significance: int) -> Notification:
        note = Notification(
            notification_id=str(uuid.uuid4()),
            timestamp=self.clock(),
            account_id=account_id,
            event_key=event.event_key,
            message=build_message(event),
            significance=significance,
            data=dict(event.data),
        )
        inbox = self._inboxes.setdefault(account_id, [])
        inbox.append(note)
        if len(inbox) > self.inbox_limit:
            del inbox[: len(inbox) - self.inbox_limit]

        if self.journal_path is not None:
            self._append_jsonl(note)
        return note

    def _append_jsonl(self, note: Notification) -> None:
        with open(self.journal_path, "a", encoding="utf-8") as fh:
            fh.write(json.dumps(note.to_dict(), ensure_ascii=False, default=str) + "\n")


# ============================================================
# JOURNAL READER  (read-only)
# ============================================================

class JournalReader:
    """
    Read-only query interface over a journal.jsonl file.

    Lines are decoded back into Notification records, oldest first.
    """

    def __init__(self, journal_path: Path) -> None:
        self.journal_path = journal_path

    def __iter__(self) -> Iterator[Notification]:
        if not self.journal_path.exists():
            return
        with open(self.journal_path, "r", encoding="utf-8") as fh:
            for line in fh:
                line = line.strip()
                if line:
                    yield Notification(**json.loads(line))

    def query(
        self,
        account_id: Optional[str] = None,
        event_key: Optional[str] = None,
        min_significance: int = 1,
        since: Optional[float] = None,
    ) -> List[Notification]:
        """
        Filters combine. event_key accepts an exact key or a domain
        pattern such as "combat.*".
        """
        domain = None
        if event_key is not None and event_key.endswith("." + WILDCARD):
            domain, event_key = event_key[:-2], None
        return [
            note for note in self
            if (account_id is None or note.account_id == account_id)
            and (event_key is None or note.event_key == event_key)
            and (domain is None or note.event_key.split(".", 1)[0] == domain)
            and note.significance >= min_significance
            and (since is None or note.timestamp >= since)
        ]

    def tally(self, account_id: str) -> Dict[str, int]:
        """Notification count per event key for one account."""
        counts: Dict[str, int] = {}
        for note in self.query(account_id=account_id):
            counts[note.event_key] = counts.get(note.event_key, 0) + 1
        return counts
