"""
Wealth Wars — economy/leaderboard.py
Leaderboard snapshots and ranking.
==================================
Version:     0.4
Stack:       Python 3.11+ | Pydantic v2 | numpy
Status:      Pure functions. Persistence of the board is someone else's job.

The engine only produces the minimal snapshot that is pushed to the
leaderboard service and consumes the ranked list it gets back: its own
rank and a top-N slice.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, ConfigDict

from economy.balance import calculate_asset_value, prestige_score
from economy.state import Account


class LeaderboardEntry(BaseModel):
    model_config = ConfigDict(frozen=True)
    id: str
    name: str
    wealth: int
    asset_count: int
    battles_won: int
    work_sessions: int
    prestige: float = 0.0
    last_active: Optional[float] = None
    rank: Optional[int] = None


def make_snapshot(account: Account) -> LeaderboardEntry:
    return LeaderboardEntry(
        id=account.account_id,
        name=account.name,
        wealth=account.wealth,
        asset_count=len(account.assets) + len(account.owned_enhanced),
        battles_won=account.battles_won,
        work_sessions=account.total_work_actions,
        prestige=prestige_score(
            account.level, account.wealth, calculate_asset_value(account.assets.values())
        ),
        last_active=account.last_active,
    )


def rank_entries(entries: Sequence[LeaderboardEntry]) -> List[LeaderboardEntry]:
    """Sort by wealth (desc), ties broken by battles won, then input order."""
    if not entries:
        return []
    wealth = np.array([e.wealth for e in entries], dtype=np.int64)
    battles = np.array([e.battles_won for e in entries], dtype=np.int64)
    # lexsort sorts by the last key first
    order = np.lexsort((-battles, -wealth))
    return [
        entries[idx].model_copy(update={"rank": rank + 1})
        for rank, idx in enumerate(order)
    ]


def rank_of(ranked: Sequence[LeaderboardEntry], account_id: str) -> Optional[int]:
    for entry in ranked:
        if entry.id == account_id:
            return entry.rank
    return None


def top_n(ranked: Sequence[LeaderboardEntry], n: int) -> List[LeaderboardEntry]:
    return list(ranked[:max(0, n)])
