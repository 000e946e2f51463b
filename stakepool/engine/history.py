from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable

from stakepool.engine.errors import InvariantViolation


@dataclass
class Snapshot:
    timestamp: int
    reward_received: int
    total_shares: int


class SnapshotHistory:
    """
    Append-only pool history.
      - index 0 is the genesis entry (no reward, no shares)
      - a reward deposit appends an entry carrying the latest total forward
      - stake/withdraw only ever touch total_shares of the last entry;
        once an entry is superseded it never changes again
    """

    def __init__(self, genesis_time: int):
        self._entries: list[Snapshot] = [Snapshot(timestamp=genesis_time, reward_received=0, total_shares=0)]

    @classmethod
    def restore(cls, snapshots: Iterable[Snapshot]) -> "SnapshotHistory":
        entries = [Snapshot(s.timestamp, s.reward_received, s.total_shares) for s in snapshots]
        if not entries:
            raise InvariantViolation("history has no genesis snapshot")
        if entries[0].reward_received != 0:
            raise InvariantViolation("genesis snapshot carries a reward")
        for idx, s in enumerate(entries):
            if s.total_shares < 0 or s.reward_received < 0:
                raise InvariantViolation(f"snapshot {idx} has negative fields")
            if idx and s.timestamp < entries[idx - 1].timestamp:
                raise InvariantViolation(f"snapshot {idx} is older than snapshot {idx - 1}")
        history = cls.__new__(cls)
        history._entries = entries
        return history

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> Snapshot:
        return self._entries[index]

    def latest_index(self) -> int:
        return len(self._entries) - 1

    def latest(self) -> Snapshot:
        return self._entries[-1]

    def total_shares(self) -> int:
        return self._entries[-1].total_shares

    def snapshots(self, offset: int = 0, limit: int | None = None) -> list[Snapshot]:
        end = None if limit is None else offset + limit
        return list(self._entries[offset:end])

    def append(self, reward_received: int, now: int) -> int:
        """Append a reward snapshot; shares do not change because a reward arrived."""
        self._entries.append(Snapshot(timestamp=now, reward_received=reward_received, total_shares=self.total_shares()))
        return self.latest_index()

    def check_bump(self, delta: int) -> int:
        """Return the total the tail would hold after `delta`, or raise."""
        new_total = self.total_shares() + delta
        if new_total < 0:
            raise InvariantViolation(f"total shares would become {new_total}")
        return new_total

    def bump_latest_total_shares(self, delta: int) -> int:
        new_total = self.check_bump(delta)
        self._entries[-1].total_shares = new_total
        return new_total
