"""
Bed-day ledger: free beds per (room, day).

This is the only place that decides whether a bed-day is free. Every change
goes through take()/give(), which refuse to push a cell below zero or above
the room capacity.
"""

from __future__ import annotations

from typing import Iterable, List, Sequence

from bed_scheduler.models import Instance, RoomId


class CapacityViolation(RuntimeError):
    """Raised when a ledger cell would leave [0, capacity]. Always a bug."""


class BedLedger:

    def __init__(self, capacities: Sequence[int], num_days: int) -> None:
        self._capacity = list(capacities)
        self._free = [[c] * num_days for c in self._capacity]
        self.num_days = num_days

    @classmethod
    def for_instance(cls, instance: Instance) -> "BedLedger":
        return cls([r.capacity for r in instance.rooms], instance.num_days)

    def copy(self) -> "BedLedger":
        other = BedLedger.__new__(BedLedger)
        other._capacity = list(self._capacity)
        other._free = [list(row) for row in self._free]
        other.num_days = self.num_days
        return other

    def capacity(self, room: RoomId) -> int:
        return self._capacity[room]

    def free(self, room: RoomId, day: int) -> int:
        return self._free[room][day]

    def occupancy(self, room: RoomId, day: int) -> int:
        return self._capacity[room] - self._free[room][day]

    def has_bed(self, room: RoomId, days: Iterable[int]) -> bool:
        row = self._free[room]
        return all(row[d] >= 1 for d in days)

    def take(self, room: RoomId, day: int, beds: int = 1) -> None:
        left = self._free[room][day] - beds
        if left < 0 or left > self._capacity[room]:
            raise CapacityViolation(
                f"room {room} day {day}: taking {beds} bed(s) leaves {left} "
                f"(capacity {self._capacity[room]})"
            )
        self._free[room][day] = left

    def give(self, room: RoomId, day: int, beds: int = 1) -> None:
        self.take(room, day, -beds)

    def occupy(self, room: RoomId, days: Iterable[int]) -> None:
        for d in days:
            self.take(room, d)

    def release(self, room: RoomId, days: Iterable[int]) -> None:
        for d in days:
            self.give(room, d)

    def rows(self) -> List[List[int]]:
        return [list(row) for row in self._free]

    def check(self) -> None:
        """Raise CapacityViolation if any cell is out of range."""
        for r, row in enumerate(self._free):
            for d, free in enumerate(row):
                if not 0 <= free <= self._capacity[r]:
                    raise CapacityViolation(f"room {r} day {d}: {free} free bed(s)")
