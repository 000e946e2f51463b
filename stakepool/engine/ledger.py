from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import structlog

from stakepool.engine.collaborators import AccessControl, AssetTransfer, Clock
from stakepool.engine.earnings import DEFAULT_MAX_RANGE, EarningsQuote, default_range, window_report
from stakepool.engine.errors import (
    FATAL_ERRORS,
    EmptyPool,
    InsufficientShares,
    InvalidAmount,
    InvalidRange,
    InvariantViolation,
    LedgerHalted,
    NoSeat,
    ReentrancyViolation,
    Unauthorized,
)
from stakepool.engine.events import REWARD_ADDED, REWARD_PAID, STAKED, WITHDRAWN, LedgerEvent
from stakepool.engine.history import SnapshotHistory
from stakepool.engine.registry import ParticipantRegistry, Seat

log = structlog.get_logger()


@dataclass(frozen=True)
class LedgerChanges:
    seat_ids: frozenset[str]
    snapshot_indices: tuple[int, ...]
    events: tuple[LedgerEvent, ...]

    def __bool__(self) -> bool:
        return bool(self.seat_ids or self.snapshot_indices or self.events)


class DividendLedger:
    """
    Proportional reward ledger over an append-only snapshot history.

    Every mutating call runs as one operation: validate, compute, move assets
    (pulls before pushes), then commit all fields. Anything raised before the
    commit leaves the ledger untouched. Only one operation may be in progress;
    a collaborator calling back into a mutating method gets ReentrancyViolation.
    """

    def __init__(
        self,
        *,
        stake_asset: AssetTransfer,
        reward_asset: AssetTransfer,
        access: AccessControl,
        clock: Clock,
        max_range: int = DEFAULT_MAX_RANGE,
        history: SnapshotHistory | None = None,
        registry: ParticipantRegistry | None = None,
    ):
        if max_range < 1:
            raise ValueError("max_range must be >= 1")
        self.stake_asset = stake_asset
        self.reward_asset = reward_asset
        self.access = access
        self.clock = clock
        self.max_range = max_range

        self._dirty_seats: set[str] = set()
        self._dirty_snapshots: set[int] = set()
        self._events: list[LedgerEvent] = []

        if history is None:
            history = SnapshotHistory(genesis_time=clock.now())
            self._dirty_snapshots.add(0)
        self.history = history
        self.registry = registry or ParticipantRegistry()

        if self.history.total_shares() != self.registry.total_seated_shares():
            raise InvariantViolation(
                f"pool holds {self.history.total_shares()} shares, seats hold {self.registry.total_seated_shares()}"
            )

        self._last_tick = max(
            [self.history.latest().timestamp] + [s.settlement_time for _pid, s in self.registry.seats()]
        )
        self._active: str | None = None
        self._halted: str | None = None

    # ---------- guard & clock ----------

    @property
    def halted(self) -> str | None:
        return self._halted

    @property
    def last_tick(self) -> int:
        """Latest time recorded anywhere in the ledger: tail snapshot or any settlement."""
        return self._last_tick

    def _next_tick(self) -> int:
        # strictly after everything already recorded, even if the wall clock stalls
        return max(self.clock.now(), self._last_tick + 1)

    @contextmanager
    def _operation(self, name: str, caller: str) -> Iterator[int]:
        if self._active is not None:
            raise ReentrancyViolation(f"{name} by {caller} while {self._active} is in progress")
        if self._halted is not None:
            raise LedgerHalted(self._halted)
        self._active = f"{name}:{caller}"
        try:
            yield self._next_tick()
        except Exception as e:
            self._close_transfers(apply=False)
            if isinstance(e, FATAL_ERRORS):
                self._halted = f"{type(e).__name__}: {e}"
                log.error("ledger_halted", operation=name, participant=caller, reason=self._halted)
            raise
        else:
            self._close_transfers(apply=True)
        finally:
            self._active = None

    def _close_transfers(self, apply: bool) -> None:
        for transfer in (self.stake_asset, self.reward_asset):
            hook = getattr(transfer, "commit" if apply else "discard", None)
            if hook is not None:
                hook()

    @staticmethod
    def _require_positive(amount: int) -> None:
        if amount <= 0:
            raise InvalidAmount(f"amount must be > 0, got {amount}")

    # ---------- settlement helpers ----------

    def _resolve_range(self, end_index: int | None, start_index: int | None) -> tuple[int, int, bool]:
        if end_index is None and start_index is None:
            end, start = default_range(len(self.history), self.max_range)
            return end, start, False
        if end_index is None or start_index is None:
            raise InvalidRange("end_index and start_index must be given together")
        return end_index, start_index, True

    def _quote(self, seat: Seat, end_index: int | None = None, start_index: int | None = None) -> tuple[EarningsQuote, bool]:
        end, start, explicit = self._resolve_range(end_index, start_index)
        return window_report(self.history, seat, end, start), explicit

    def _pay_reward(self, caller: str, quote: EarningsQuote) -> None:
        if quote.amount > 0:
            self.reward_asset.push(caller, quote.amount)

    def _commit_settlement(self, caller: str, now: int, quote: EarningsQuote, explicit: bool) -> None:
        self.registry.set_settlement_time(caller, now)
        self._dirty_seats.add(caller)
        if quote.amount > 0:
            self._emit(REWARD_PAID, caller, quote.amount, now)
        if quote.stranded_before:
            log.warning(
                "settle_forfeits_rewards" if explicit else "earnings_window_truncated",
                participant=caller, start_index=quote.start_index, max_range=self.max_range,
            )
        if quote.forfeited_after:
            log.warning("settle_forfeits_rewards", participant=caller, end_index=quote.end_index)

    def _emit(self, kind: str, caller: str, amount: int, now: int, snapshot_index: int | None = None) -> None:
        self._events.append(LedgerEvent(type=kind, participant_id=caller, amount=amount, at=now, snapshot_index=snapshot_index))

    # ---------- mutating operations ----------

    def stake(self, caller: str, amount: int) -> int:
        """Settle, then add `amount` shares. Returns the reward paid by the settlement."""
        with self._operation("stake", caller) as now:
            self._require_positive(amount)
            seat = self.registry.get_seat(caller)
            quote, _ = self._quote(seat)
            self.history.check_bump(amount)

            self.stake_asset.pull(caller, amount)
            self._pay_reward(caller, quote)

            self._commit_settlement(caller, now, quote, explicit=False)
            self.registry.set_shares(caller, seat.shares + amount)
            self.history.bump_latest_total_shares(amount)
            self._dirty_snapshots.add(self.history.latest_index())
            self._emit(STAKED, caller, amount, now)
            self._last_tick = now
        log.info("staked", participant=caller, amount=amount, total_shares=self.history.total_shares())
        return quote.amount

    def withdraw(self, caller: str, amount: int) -> int:
        """Settle, then return `amount` shares of stake. Returns the reward paid by the settlement."""
        with self._operation("withdraw", caller) as now:
            self._require_positive(amount)
            seat = self.registry.get_seat(caller)
            if seat.shares == 0:
                raise NoSeat(f"{caller} holds no shares")
            if amount > seat.shares:
                raise InsufficientShares(f"{caller} holds {seat.shares} shares, asked for {amount}")
            quote, _ = self._quote(seat)
            self.history.check_bump(-amount)

            self._pay_reward(caller, quote)
            self.stake_asset.push(caller, amount)

            self._commit_settlement(caller, now, quote, explicit=False)
            self.registry.set_shares(caller, seat.shares - amount)
            self.history.bump_latest_total_shares(-amount)
            self._dirty_snapshots.add(self.history.latest_index())
            self._emit(WITHDRAWN, caller, amount, now)
            self._last_tick = now
        log.info("withdrawn", participant=caller, amount=amount, total_shares=self.history.total_shares())
        return quote.amount

    def exit(self, caller: str) -> int:
        shares = self.registry.get_seat(caller).shares
        if shares == 0:
            raise NoSeat(f"{caller} holds no shares")
        return self.withdraw(caller, shares)

    def deposit_reward(self, caller: str, amount: int) -> int:
        """Append a reward snapshot over the current total shares. Returns its index."""
        with self._operation("deposit_reward", caller) as now:
            if not self.access.is_authorized_issuer(caller):
                raise Unauthorized(f"{caller} may not deposit rewards")
            self._require_positive(amount)
            if self.history.total_shares() == 0:
                raise EmptyPool("no shares outstanding to receive the reward")

            self.reward_asset.pull(caller, amount)

            index = self.history.append(amount, now)
            self._dirty_snapshots.add(index)
            self._emit(REWARD_ADDED, caller, amount, now, snapshot_index=index)
            self._last_tick = now
        log.info("reward_added", issuer=caller, amount=amount, snapshot_index=index, total_shares=self.history.total_shares())
        return index

    def settle(self, caller: str, end_index: int | None = None, start_index: int | None = None) -> int:
        """
        Claim rewards over [start_index, end_index) (default: the last `max_range`
        snapshots) and move the settlement time to now, even when nothing is owed.
        Anything outside the range is forfeited.
        """
        return self.settle_quote(caller, end_index, start_index).amount

    claim = settle

    def settle_quote(self, caller: str, end_index: int | None = None, start_index: int | None = None) -> EarningsQuote:
        """Same as settle, returning the full quote that was paid out."""
        with self._operation("settle", caller) as now:
            seat = self.registry.get_seat(caller)
            quote, explicit = self._quote(seat, end_index, start_index)

            self._pay_reward(caller, quote)

            self._commit_settlement(caller, now, quote, explicit)
            self._last_tick = now
        if quote.amount > 0:
            log.info("reward_paid", participant=caller, amount=quote.amount,
                     end_index=quote.end_index, start_index=quote.start_index)
        return quote

    # ---------- reads ----------

    def get_share_of(self, participant_id: str) -> int:
        return self.registry.get_seat(participant_id).shares

    def total_share(self) -> int:
        return self.history.total_shares()

    def get_appointment_time_of(self, participant_id: str) -> int:
        return self.registry.get_seat(participant_id).settlement_time

    def quote(self, participant_id: str, end_index: int | None = None, start_index: int | None = None) -> EarningsQuote:
        quote, _ = self._quote(self.registry.get_seat(participant_id), end_index, start_index)
        return quote

    def get_earnings(self, participant_id: str, end_index: int | None = None, start_index: int | None = None) -> int:
        return self.quote(participant_id, end_index, start_index).amount

    # ---------- persistence hooks ----------

    def drain_changes(self) -> LedgerChanges:
        changes = LedgerChanges(
            seat_ids=frozenset(self._dirty_seats),
            snapshot_indices=tuple(sorted(self._dirty_snapshots)),
            events=tuple(self._events),
        )
        self._dirty_seats.clear()
        self._dirty_snapshots.clear()
        self._events.clear()
        return changes
