from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Iterator, Mapping


@dataclass(frozen=True)
class Seat:
    settlement_time: int = 0
    shares: int = 0


class ParticipantRegistry:
    """Participant id -> Seat. Writers do no validation; the ledger checks first."""

    def __init__(self):
        self._seats: dict[str, Seat] = {}

    @classmethod
    def restore(cls, seats: Mapping[str, Seat]) -> "ParticipantRegistry":
        registry = cls()
        registry._seats = dict(seats)
        return registry

    def __contains__(self, participant_id: str) -> bool:
        return participant_id in self._seats

    def get_seat(self, participant_id: str) -> Seat:
        return self._seats.get(participant_id) or Seat()

    def set_shares(self, participant_id: str, shares: int) -> None:
        self._seats[participant_id] = replace(self.get_seat(participant_id), shares=shares)

    def set_settlement_time(self, participant_id: str, t: int) -> None:
        self._seats[participant_id] = replace(self.get_seat(participant_id), settlement_time=t)

    def seats(self) -> Iterator[tuple[str, Seat]]:
        return iter(list(self._seats.items()))

    def total_seated_shares(self) -> int:
        return sum(s.shares for s in self._seats.values())
