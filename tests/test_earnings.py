from __future__ import annotations
import pytest

from stakepool.engine.earnings import compute_earnings, default_range, window_report
from stakepool.engine.errors import InvalidRange, InvalidSnapshot
from stakepool.engine.history import Snapshot, SnapshotHistory
from stakepool.engine.registry import Seat


def _history(*entries: tuple[int, int, int]) -> SnapshotHistory:
    """Genesis at t=0 followed by (timestamp, reward, total_shares) entries."""
    return SnapshotHistory.restore([Snapshot(0, 0, 0)] + [Snapshot(*e) for e in entries])


def test_sums_proportional_share_of_each_reward():
    h = _history((10, 100, 400), (20, 60, 300))
    seat = Seat(settlement_time=5, shares=100)
    assert compute_earnings(h, seat, 3, 0) == 100 * 100 // 400 + 60 * 100 // 300


def test_integer_division_truncates():
    h = _history((10, 10, 3))
    assert compute_earnings(h, Seat(settlement_time=1, shares=1), 2, 0) == 3


def test_stops_at_first_snapshot_older_than_settlement():
    # the entry at t=30 is newer than settlement, the one at t=10 is not;
    # the later t=40 entry would count but lies outside the range
    h = _history((10, 1000, 100), (30, 50, 100), (40, 70, 100))
    seat = Seat(settlement_time=20, shares=100)
    assert compute_earnings(h, seat, 3, 0) == 50
    assert compute_earnings(h, seat, 4, 0) == 120


def test_zero_shares_earn_nothing():
    h = _history((10, 100, 100))
    assert compute_earnings(h, Seat(settlement_time=0, shares=0), 2, 0) == 0


def test_empty_range_earns_nothing():
    h = _history((10, 100, 100))
    assert compute_earnings(h, Seat(settlement_time=0, shares=100), 1, 1) == 0


@pytest.mark.parametrize("end,start", [(3, 0), (1, 2), (2, -1)])
def test_out_of_bounds_range(end, start):
    h = _history((10, 100, 100))
    with pytest.raises(InvalidRange):
        compute_earnings(h, Seat(settlement_time=0, shares=1), end, start)


def test_genesis_contributes_nothing_when_visited():
    h = _history((10, 100, 100))
    assert compute_earnings(h, Seat(settlement_time=0, shares=50), 2, 0) == 50


def test_reward_over_zero_shares_fails_closed():
    h = _history((10, 100, 0))
    with pytest.raises(InvalidSnapshot):
        compute_earnings(h, Seat(settlement_time=0, shares=50), 2, 0)


def test_default_range_is_capped():
    assert default_range(10, 365) == (10, 0)
    assert default_range(400, 365) == (400, 35)
    assert default_range(1, 1) == (1, 0)
    with pytest.raises(InvalidRange):
        default_range(10, 0)


def test_window_report_flags_snapshots_outside_the_range():
    h = _history((10, 1, 100), (20, 2, 100), (30, 4, 100))
    seat = Seat(settlement_time=5, shares=100)

    inner = window_report(h, seat, 3, 2)
    assert inner.amount == 2
    assert inner.stranded_before and inner.forfeited_after

    full = window_report(h, seat, 4, 0)
    assert full.amount == 7
    assert not full.stranded_before and not full.forfeited_after


def test_window_report_quiet_for_settled_history():
    h = _history((10, 1, 100), (20, 2, 100), (30, 4, 100))
    # settled after everything in the history: nothing outside the range is owed
    seat = Seat(settlement_time=31, shares=100)
    q = window_report(h, seat, 3, 2)
    assert q.amount == 0
    assert not q.stranded_before and not q.forfeited_after
