"""
Constraint and cost evaluator.

Builds, once per instance, the (patient, room) availability and penalty
matrices, the patient overlap table and the instance lower bound. After
construction everything here is read-only, so the constructor, the move
generator and the search driver share one Evaluator.

Hard rules (available = False):
  - a NEEDED feature is missing from the room
  - the room's department has no support for the patient's specialism
  - the patient's age is outside the department's age range
Soft rules (added to cost):
  - each missing PREFERRED feature                 weights.preferred_property
  - room larger than the preferred capacity        weights.preference
  - department only partially covers specialism    weights.specialism
  - room gender policy excludes the patient        weights.gender
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from bed_scheduler.log import get_logger
from bed_scheduler.models import (DoctoringLevel, Gender, GenderPolicy,
    Instance, PatientId, Request, RoomId, Weights)
from bed_scheduler.solver.schedule import Assignment, Placement, Schedule

logger = get_logger(__name__)


class Evaluator:

    def __init__(self, instance: Instance, weights: Optional[Weights] = None) -> None:
        self.instance = instance
        self.weights  = weights or Weights()
        P = len(instance.patients)
        R = len(instance.rooms)

        self._available: List[List[bool]] = [[True] * R for _ in range(P)]
        self._cost:      List[List[int]]  = [[0] * R for _ in range(P)]
        self._compute_matrices()

        self._rooms_for: List[List[RoomId]] = [
            [RoomId(r) for r in range(R) if self._available[p][r]] for p in range(P)
        ]
        self._overlap: Dict[int, Dict[int, int]] = {}
        self._compute_overlap()

        self.infeasible_patients: List[PatientId] = []
        self.lower_bound = self._compute_lower_bound()

    # ── construction ─────────────────────────────────────────────────────────

    def _compute_matrices(self) -> None:
        inst = self.instance
        w = self.weights
        for patient in inst.patients:
            p = patient.id
            for room in inst.rooms:
                r = room.id
                dep = inst.department(room.department)
                ok = True
                cost = 0

                for f in range(inst.num_features):
                    req = patient.request(f)  # type: ignore[arg-type]
                    if f in room.features or req is Request.DONT_CARE:
                        continue
                    if req is Request.NEEDED:
                        ok = False
                    else:
                        cost += w.preferred_property

                if patient.preferred_capacity < room.capacity:
                    cost += w.preference

                level = dep.level(patient.specialism)
                if level is DoctoringLevel.PARTIAL:
                    cost += w.specialism
                elif level is DoctoringLevel.NONE:
                    ok = False

                if not dep.admits_age(patient.age):
                    ok = False

                if room.policy is GenderPolicy.MALE_ONLY and patient.gender is Gender.FEMALE:
                    cost += w.gender
                if room.policy is GenderPolicy.FEMALE_ONLY and patient.gender is Gender.MALE:
                    cost += w.gender

                self._available[p][r] = ok
                self._cost[p][r] = cost

    def _compute_overlap(self) -> None:
        inst = self.instance
        spans = [(p.admission, inst.valid_discharge(p.id)) for p in inst.patients]
        for p1, (s1, e1) in enumerate(spans):
            for p2 in range(p1 + 1, len(spans)):
                s2, e2 = spans[p2]
                shared = min(e1, e2) - max(s1, s2)
                if shared > 0:
                    self._overlap.setdefault(p1, {})[p2] = shared
                    self._overlap.setdefault(p2, {})[p1] = shared

    def _compute_lower_bound(self) -> int:
        bound = 0
        for patient in self.instance.patients:
            best = self.min_cost(patient.id)
            if best is None:
                self.infeasible_patients.append(patient.id)
                logger.warning("Infeasible for patient %s: no available room", patient.name)
                continue
            bound += best * self.instance.stay_length(patient.id)
        return bound

    # ── lookups ──────────────────────────────────────────────────────────────

    def available(self, p: PatientId, r: RoomId) -> bool:
        return self._available[p][r]

    def cost(self, p: PatientId, r: RoomId) -> int:
        return self._cost[p][r]

    def available_rooms(self, p: PatientId) -> List[RoomId]:
        return self._rooms_for[p]

    def min_cost(self, p: PatientId) -> Optional[int]:
        rooms = self._rooms_for[p]
        if not rooms:
            return None
        return min(self._cost[p][r] for r in rooms)

    def overlap(self, p1: PatientId, p2: PatientId) -> int:
        return self._overlap.get(p1, {}).get(p2, 0)

    def overlapping(self, p: PatientId) -> List[PatientId]:
        return [PatientId(q) for q in self._overlap.get(p, {})]

    # ── schedule scoring ─────────────────────────────────────────────────────

    def stay_cost(self, p: PatientId, admission: int, rooms: Sequence[Optional[RoomId]]) -> int:
        """Cost of one patient's stay: room penalties, transfers and delay."""
        w = self.weights
        total = 0
        prev: Optional[RoomId] = None
        for r in rooms:
            if r is None:
                prev = None
                continue
            total += self._cost[p][r]
            if prev is not None and r != prev:
                total += w.transfer
            prev = r
        total += w.delay * max(0, admission - self.instance.patient(p).admission)
        return total

    def placement_cost(self, p: PatientId, placement: Placement) -> int:
        return self.stay_cost(p, placement.admission, placement.rooms)

    def patient_cost(self, schedule: Schedule, p: PatientId) -> int:
        rooms = [schedule.rooms[p][d] for d in schedule.stay(p)]
        return self.stay_cost(p, schedule.admission[p], rooms)

    def total_cost(self, schedule: Schedule) -> int:
        return sum(self.patient_cost(schedule, p) for p in self.instance.patient_ids())

    def assignment(self, schedule: Schedule, p: PatientId) -> Assignment:
        segs = schedule.segments(p)
        return Assignment(
            admission    = schedule.admission[p],
            transfer_day = segs[1][1] if len(segs) > 1 else None,
            discharge    = schedule.admission[p] + schedule.length[p],
            room_before  = segs[0][0] if segs else None,
            room_after   = segs[-1][0] if len(segs) > 1 else None,
            transfers    = max(0, len(segs) - 1),
            cost         = self.patient_cost(schedule, p),
        )

    def violations(self, schedule: Schedule) -> List[str]:
        """Hard-constraint problems in a schedule; empty means sound."""
        problems: List[str] = []
        for patient in self.instance.patients:
            p = patient.id
            for d in schedule.stay(p):
                r = schedule.rooms[p][d]
                if r is None:
                    problems.append(f"{patient.name}: no room on day {d}")
                elif not self._available[p][r]:
                    problems.append(f"{patient.name}: room {r} not available on day {d}")
        return problems
