"""
Wealth Wars — run.py
Scripted smoke run of the economy engine on a simulated clock.
"""

import random
import sys
import tempfile
from pathlib import Path

# Ensure we can import the economy package
project_root = Path(__file__).parent.resolve()
sys.path.insert(0, str(project_root))

from economy.controller import EconomyController, OpenAccount
from economy.events import EventBus
from economy.notifications import JournalReader, NotificationCenter
from economy.state import DAY, HOUR


class SimClock:
    def __init__(self, start: float) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def main():
    clock = SimClock(start=20_000 * DAY)
    bus = EventBus()

    with tempfile.TemporaryDirectory() as tmpdir:
        journal = Path(tmpdir) / "sessions" / "journal.jsonl"
        center = NotificationCenter(bus, clock=clock, journal_path=journal)
        ctl = EconomyController(bus=bus, clock=clock, rng=random.Random(7))

        ctl.dispatch(OpenAccount("p1", "Alice", land_parcels=1))
        ctl.dispatch(OpenAccount("p2", "Bob"))
        alice = ctl.session("p1")
        bob = ctl.session("p2")

        print("\n--- WEALTH WARS SMOKE RUN ---")
        for _ in range(4):
            print("work     ", alice.work().to_dict())
            clock.advance(2 * HOUR)
        print("work     ", alice.work().to_dict())

        print("buy      ", alice.buy_asset("lemonade_stand").to_dict())
        print("enhanced ", alice.buy_enhanced_asset("consulting_firm").to_dict())
        print("work     ", bob.work().to_dict())
        print("attack   ", bob.attack("p1").to_dict())
        print("shield   ", alice.activate_shield("basic").to_dict())

        reason, quote = ctl.quote("a_to_b", 20, account_id="p2")
        if quote is not None:
            print(f"quote     20 wealth -> {quote.amount_out:.2f} credits ({quote.price_impact:.4f}% impact)")
            print("swap     ", bob.swap("a_to_b", 20, 1.0, quote.amount_out).to_dict())

        clock.advance(10 * DAY)
        print("maint    ", alice.perform_maintenance("consulting_firm", "routine").to_dict())
        print("land     ", alice.collect_land_yield().to_dict())
        print("war      ", alice.refresh_war().to_dict())

        print("\nLeaderboard:")
        for entry in ctl.leaderboard():
            print(f"  #{entry.rank} {entry.name:<8} wealth={entry.wealth} battles_won={entry.battles_won}")

        print("\nAlice's notifications:")
        for note in center.inbox("p1"):
            print(f"  [{note.significance}] {note.message}")

        print(f"\nJournal entries written: {len(JournalReader(journal).query())}")


if __name__ == "__main__":
    main()
