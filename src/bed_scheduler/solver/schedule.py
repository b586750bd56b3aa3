"""
Working schedule and the per-patient assignment summary derived from it.

A Schedule stores, for every patient, the current admission day and one
room id (or None) per horizon day. The in-horizon stay length of a patient
never changes once loaded: DELAY shifts the stay, SWAP and the partial moves
only relabel rooms inside it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from bed_scheduler.models import Instance, Patient, PatientId, RoomId, Tag


@dataclass(frozen=True)
class Placement:
    """A patient's stay: admission day plus one room per stay day."""
    admission: int
    rooms:     Tuple[RoomId, ...]

    @property
    def discharge(self) -> int:
        return self.admission + len(self.rooms)

    def days(self) -> range:
        return range(self.admission, self.discharge)

    def items(self) -> List[Tuple[int, RoomId]]:
        return list(zip(self.days(), self.rooms))

    def room_on(self, day: int) -> RoomId:
        return self.rooms[day - self.admission]


@dataclass(frozen=True)
class Assignment:
    admission:    int
    transfer_day: Optional[int]
    discharge:    int
    room_before:  Optional[RoomId]
    room_after:   Optional[RoomId]
    transfers:    int
    cost:         int


def tag_after(patient: Patient, admission: int, discharge: int, day: int) -> Tag:
    """Status of a patient once day `day` has been processed.

    Replays the daily transitions: admission wins over registration, which
    wins over discharge, when several fall on the same day.
    """
    tag = Tag.UNREGISTERED
    for d in range(day + 1):
        tag = next_tag(tag, patient, admission, discharge, d)
    return tag


def next_tag(tag: Tag, patient: Patient, admission: int, discharge: int, day: int) -> Tag:
    if day == admission:
        return Tag.ADMITTED
    if day == patient.registration:
        return Tag.REGISTERED
    if day == discharge:
        return Tag.DISCHARGED
    return tag


@dataclass
class Schedule:
    num_days:  int
    admission: List[int]
    length:    List[int]
    rooms:     List[List[Optional[RoomId]]]
    tags:      List[Tag] = field(default_factory=list)

    @classmethod
    def empty(cls, instance: Instance) -> "Schedule":
        pids = instance.patient_ids()
        return cls(
            num_days  = instance.num_days,
            admission = [instance.patient(p).admission for p in pids],
            length    = [instance.stay_length(p) for p in pids],
            rooms     = [[None] * instance.num_days for _ in pids],
            tags      = [Tag.UNREGISTERED for _ in pids],
        )

    def copy(self) -> "Schedule":
        return Schedule(
            num_days  = self.num_days,
            admission = list(self.admission),
            length    = list(self.length),
            rooms     = [list(row) for row in self.rooms],
            tags      = list(self.tags),
        )

    @property
    def num_patients(self) -> int:
        return len(self.admission)

    def stay(self, pid: PatientId) -> range:
        return range(self.admission[pid], self.admission[pid] + self.length[pid])

    def room_on(self, pid: PatientId, day: int) -> Optional[RoomId]:
        return self.rooms[pid][day]

    def is_placed(self, pid: PatientId) -> bool:
        return self.length[pid] > 0 and all(
            self.rooms[pid][d] is not None for d in self.stay(pid)
        )

    def placement(self, pid: PatientId) -> Placement:
        rooms = tuple(self.rooms[pid][d] for d in self.stay(pid))
        if any(r is None for r in rooms):
            raise ValueError(f"patient {pid} is not fully placed")
        return Placement(self.admission[pid], rooms)  # type: ignore[arg-type]

    def place(self, pid: PatientId, room: RoomId, days: Sequence[int]) -> None:
        for d in days:
            self.rooms[pid][d] = room

    def set_placement(self, pid: PatientId, placement: Placement) -> None:
        if len(placement.rooms) != self.length[pid]:
            raise ValueError(f"patient {pid}: placement would change the stay length")
        self.rooms[pid] = [None] * self.num_days
        self.admission[pid] = placement.admission
        for d, r in placement.items():
            self.rooms[pid][d] = r

    def segments(self, pid: PatientId) -> List[Tuple[RoomId, int, int]]:
        """Maximal runs of the same room as (room, start, end)."""
        out: List[Tuple[RoomId, int, int]] = []
        for d in self.stay(pid):
            r = self.rooms[pid][d]
            if r is None:
                continue
            if out and out[-1][0] == r and out[-1][2] == d:
                out[-1] = (r, out[-1][1], d + 1)
            else:
                out.append((r, d, d + 1))
        return out

    def refresh_tag(self, patient: Patient) -> None:
        pid = patient.id
        self.tags[pid] = tag_after(
            patient, self.admission[pid], self.admission[pid] + self.length[pid],
            self.num_days - 1,
        )
