from __future__ import annotations
from dataclasses import dataclass

STAKED = "STAKED"
WITHDRAWN = "WITHDRAWN"
REWARD_PAID = "REWARD_PAID"
REWARD_ADDED = "REWARD_ADDED"


@dataclass(frozen=True)
class LedgerEvent:
    """
    Emitted once per committed transfer.
      - STAKED       => caller moved `amount` stake into the pool
      - WITHDRAWN    => caller took `amount` stake back out
      - REWARD_PAID  => caller was paid `amount` reward on settlement
      - REWARD_ADDED => issuer deposited `amount` reward (snapshot_index set)
    """
    type: str
    participant_id: str
    amount: int
    at: int
    snapshot_index: int | None = None
