from __future__ import annotations
from dataclasses import dataclass

from stakepool.engine.errors import InvalidRange, InvalidSnapshot
from stakepool.engine.history import SnapshotHistory
from stakepool.engine.registry import Seat

DEFAULT_MAX_RANGE = 365


@dataclass(frozen=True)
class EarningsQuote:
    amount: int
    end_index: int
    start_index: int
    # unsettled snapshots exist below start_index / at or above end_index
    stranded_before: bool = False
    forfeited_after: bool = False


def check_range(history: SnapshotHistory, end_index: int, start_index: int) -> None:
    if not (0 <= start_index <= end_index <= len(history)):
        raise InvalidRange(f"need 0 <= start ({start_index}) <= end ({end_index}) <= {len(history)}")


def default_range(history_length: int, max_range: int = DEFAULT_MAX_RANGE) -> tuple[int, int]:
    """(end, start) covering at most the last `max_range` snapshots."""
    if max_range < 1:
        raise InvalidRange("max_range must be >= 1")
    end = history_length
    return end, max(0, end - max_range)


def compute_earnings(history: SnapshotHistory, seat: Seat, end_index: int, start_index: int) -> int:
    """
    Reward owed to `seat` from snapshots [start_index, end_index), walked newest first.
    Stops at the first snapshot older than the seat's settlement time: history is
    time ordered, so nothing further back can be owed.
    """
    check_range(history, end_index, start_index)
    if seat.shares == 0:
        return 0

    total = 0
    for i in range(end_index, start_index, -1):
        s = history[i - 1]
        if s.timestamp < seat.settlement_time:
            break
        if s.total_shares == 0:
            if s.reward_received == 0:
                continue
            raise InvalidSnapshot(f"snapshot {i - 1} holds reward {s.reward_received} over zero shares")
        total += s.reward_received * seat.shares // s.total_shares
    return total


def window_report(history: SnapshotHistory, seat: Seat, end_index: int, start_index: int) -> EarningsQuote:
    amount = compute_earnings(history, seat, end_index, start_index)
    stranded = forfeited = False
    if seat.shares > 0:
        # genesis (index 0) never carries a reward, so only start_index >= 2 can strand anything
        stranded = start_index > 1 and history[start_index - 1].timestamp >= seat.settlement_time
        latest = history.latest_index()
        forfeited = end_index <= latest and latest > 0 and history[latest].timestamp >= seat.settlement_time
    return EarningsQuote(
        amount=amount,
        end_index=end_index,
        start_index=start_index,
        stranded_before=stranded,
        forfeited_after=forfeited,
    )
