"""
Neighbourhood moves for the tabu search.

Every move kind is its own frozen dataclass. A move only knows how to turn
the current schedule into a *proposal*: the new Placement of each patient it
touches. Legality, delta cost and application are then computed the same
way for all kinds:

  legal  - every proposed (patient, room) is available, and for each
           (room, day) the net number of extra beds needed fits the ledger
           (beds the move itself frees count as free);
  delta  - exact change of the touched patients' stay costs, so transfers
           are charged per room change created inside a stay and delays per
           day of postponed admission;
  risk   - weights.overcrowd_risk when a room receiving patients ends up at
           or above overcrowd_threshold x capacity on some day.

evaluate() never mutates the state; apply_move() re-checks legality against
the state it is given before touching anything.
"""

from __future__ import annotations

import random
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Callable, ClassVar, Dict, List, Optional, Tuple

from bed_scheduler.models import PatientId, RoomId, SolverParams
from bed_scheduler.solver.schedule import Placement
from bed_scheduler.solver.state import SchedulerState

Proposal = Dict[PatientId, Placement]


class MoveIllegal(ValueError):
    """The move cannot be applied to the current state."""


class MoveKind(Enum):
    CHANGE         = "change"
    SWAP           = "swap"
    DELAY          = "delay"
    PARTIAL_CHANGE = "partial_change"
    PARTIAL_SWAP   = "partial_swap"


def _placement(state: SchedulerState, pid: PatientId) -> Placement:
    if state.schedule.length[pid] == 0:
        raise MoveIllegal(f"patient {pid} has no stay in the horizon")
    try:
        return state.schedule.placement(pid)
    except ValueError as e:
        raise MoveIllegal(str(e)) from e


def _shared_days(a: Placement, b: Placement) -> range:
    return range(max(a.admission, b.admission), min(a.discharge, b.discharge))


def _relabel(p: Placement, days: range, room_for: Callable[[int], RoomId]) -> Placement:
    rooms = list(p.rooms)
    for d in days:
        rooms[d - p.admission] = room_for(d)
    return Placement(p.admission, tuple(rooms))


def _check_interval(days: range, within: range, what: str) -> None:
    if not days or days.start < within.start or days.stop > within.stop:
        raise MoveIllegal(f"interval [{days.start},{days.stop}) outside {what}")


def _exchange(a: Placement, b: Placement, days: range) -> Tuple[Placement, Placement]:
    new_a = _relabel(a, days, b.room_on)
    new_b = _relabel(b, days, a.room_on)
    if new_a == a and new_b == b:
        raise MoveIllegal("both patients already share the rooms being exchanged")
    return new_a, new_b


class Move:
    """Base of all move kinds."""

    kind: ClassVar[MoveKind]

    def propose(self, state: SchedulerState) -> Proposal:
        raise NotImplementedError

    def signature(self, state: SchedulerState) -> Tuple:
        raise NotImplementedError

    def reverse_signature(self, state: SchedulerState) -> Tuple:
        """Signature of the move that would undo this one from `state`."""
        raise NotImplementedError


@dataclass(frozen=True)
class Change(Move):
    kind: ClassVar[MoveKind] = MoveKind.CHANGE
    patient: PatientId
    room:    RoomId

    def propose(self, state: SchedulerState) -> Proposal:
        old = _placement(state, self.patient)
        if all(r == self.room for r in old.rooms):
            raise MoveIllegal(f"patient {self.patient} already in room {self.room}")
        return {self.patient: Placement(old.admission, (self.room,) * len(old.rooms))}

    def signature(self, state: SchedulerState) -> Tuple:
        return (self.kind.value, self.patient, self.room)

    def reverse_signature(self, state: SchedulerState) -> Tuple:
        return (self.kind.value, self.patient, _placement(state, self.patient).rooms[0])


@dataclass(frozen=True)
class Swap(Move):
    """Exchange rooms over the days both patients are in hospital."""
    kind: ClassVar[MoveKind] = MoveKind.SWAP
    first:  PatientId
    second: PatientId

    def propose(self, state: SchedulerState) -> Proposal:
        if self.first == self.second:
            raise MoveIllegal("cannot swap a patient with itself")
        a = _placement(state, self.first)
        b = _placement(state, self.second)
        days = _shared_days(a, b)
        if not days:
            raise MoveIllegal(f"patients {self.first} and {self.second} do not overlap")
        new_a, new_b = _exchange(a, b, days)
        return {self.first: new_a, self.second: new_b}

    def signature(self, state: SchedulerState) -> Tuple:
        return (self.kind.value, min(self.first, self.second), max(self.first, self.second))

    def reverse_signature(self, state: SchedulerState) -> Tuple:
        return self.signature(state)


@dataclass(frozen=True)
class Delay(Move):
    """Shift a patient's admission by `shift` days, rooms moving with the stay.

    A negative shift takes back an earlier delay; the admission never moves
    before the originally requested day.
    """
    kind: ClassVar[MoveKind] = MoveKind.DELAY
    patient: PatientId
    shift:   int

    def _target(self, state: SchedulerState) -> int:
        return state.schedule.admission[self.patient] + self.shift

    def propose(self, state: SchedulerState) -> Proposal:
        if self.shift == 0:
            raise MoveIllegal("zero delay")
        old = _placement(state, self.patient)
        patient = state.instance.patient(self.patient)
        target = old.admission + self.shift
        if target < patient.admission:
            raise MoveIllegal(f"admission {target} before requested day {patient.admission}")
        if target - patient.admission > patient.variability:
            raise MoveIllegal(f"delay {target - patient.admission} exceeds variability")
        if target > patient.max_admission:
            raise MoveIllegal(f"admission {target} after max admission day {patient.max_admission}")
        if target + len(old.rooms) > state.instance.num_days:
            raise MoveIllegal("delayed stay would be cut by the end of the horizon")
        return {self.patient: Placement(target, old.rooms)}

    def signature(self, state: SchedulerState) -> Tuple:
        return (self.kind.value, self.patient, self._target(state))

    def reverse_signature(self, state: SchedulerState) -> Tuple:
        return (self.kind.value, self.patient, state.schedule.admission[self.patient])


@dataclass(frozen=True)
class PartialChange(Move):
    """Move a patient to `room` on days [start, end) only."""
    kind: ClassVar[MoveKind] = MoveKind.PARTIAL_CHANGE
    patient: PatientId
    room:    RoomId
    start:   int
    end:     int

    def propose(self, state: SchedulerState) -> Proposal:
        old = _placement(state, self.patient)
        days = range(self.start, self.end)
        _check_interval(days, old.days(), f"stay of patient {self.patient}")
        new = _relabel(old, days, lambda d: self.room)
        if new == old:
            raise MoveIllegal(f"patient {self.patient} already in room {self.room} on those days")
        return {self.patient: new}

    def signature(self, state: SchedulerState) -> Tuple:
        return (self.kind.value, self.patient, self.room, self.start, self.end)

    def reverse_signature(self, state: SchedulerState) -> Tuple:
        old = _placement(state, self.patient)
        return (self.kind.value, self.patient, old.room_on(self.start), self.start, self.end)


@dataclass(frozen=True)
class PartialSwap(Move):
    """Swap restricted to [start, end), which must lie in the shared days."""
    kind: ClassVar[MoveKind] = MoveKind.PARTIAL_SWAP
    first:  PatientId
    second: PatientId
    start:  int
    end:    int

    def propose(self, state: SchedulerState) -> Proposal:
        if self.first == self.second:
            raise MoveIllegal("cannot swap a patient with itself")
        a = _placement(state, self.first)
        b = _placement(state, self.second)
        days = range(self.start, self.end)
        _check_interval(days, _shared_days(a, b), "shared stay")
        new_a, new_b = _exchange(a, b, days)
        return {self.first: new_a, self.second: new_b}

    def signature(self, state: SchedulerState) -> Tuple:
        lo, hi = sorted((self.first, self.second))
        return (self.kind.value, lo, hi, self.start, self.end)

    def reverse_signature(self, state: SchedulerState) -> Tuple:
        return self.signature(state)


@dataclass(frozen=True)
class Candidate:
    move:      Move
    legal:     bool
    delta:     int   = 0
    risk:      int   = 0
    signature: Tuple = ()
    reverse:   Tuple = ()
    reason:    str   = ""
    proposal:  Optional[Proposal] = field(default=None, repr=False, compare=False)

    @property
    def score(self) -> int:
        """Ranking key: cost change plus the overcrowding surcharge."""
        return self.delta + self.risk


def _net_beds(state: SchedulerState, proposal: Proposal) -> Counter:
    net: Counter = Counter()
    for pid, new in proposal.items():
        for d, r in state.schedule.placement(pid).items():
            net[(r, d)] -= 1
        for d, r in new.items():
            net[(r, d)] += 1
    return net


def evaluate(move: Move, state: SchedulerState, overcrowd_threshold: float = 1.0) -> Candidate:
    """Score a move against `state` without changing it."""
    try:
        proposal  = move.propose(state)
        signature = move.signature(state)
        reverse   = move.reverse_signature(state)
    except MoveIllegal as e:
        return Candidate(move, False, reason=str(e))

    ev = state.evaluator
    for pid, new in proposal.items():
        for d, r in new.items():
            if not ev.available(pid, r):
                return Candidate(move, False, reason=f"room {r} not available to patient {pid}")

    ledger = state.ledger
    net = _net_beds(state, proposal)
    for (r, d), extra in net.items():
        if extra > ledger.free(r, d):
            return Candidate(move, False, reason=f"room {r} full on day {d}")

    delta = sum(
        ev.placement_cost(pid, new) - ev.patient_cost(state.schedule, pid)
        for pid, new in proposal.items()
    )

    risk = 0
    if ev.weights.overcrowd_risk:
        for (r, d), extra in net.items():
            if extra > 0 and ledger.occupancy(r, d) + extra >= overcrowd_threshold * ledger.capacity(r):
                risk = ev.weights.overcrowd_risk
                break

    return Candidate(move, True, delta, risk, signature, reverse, proposal=proposal)


def apply_move(move: Move, state: SchedulerState, overcrowd_threshold: float = 1.0) -> Candidate:
    """Re-check and apply a move in place; raises MoveIllegal if it no longer fits."""
    cand = evaluate(move, state, overcrowd_threshold)
    if not cand.legal or cand.proposal is None:
        raise MoveIllegal(f"{move}: {cand.reason}")

    net = _net_beds(state, cand.proposal)
    # free beds first so no cell transiently drops below zero
    for (r, d), extra in net.items():
        if extra < 0:
            state.ledger.give(r, d, -extra)
    for (r, d), extra in net.items():
        if extra > 0:
            state.ledger.take(r, d, extra)

    for pid, new in cand.proposal.items():
        state.schedule.set_placement(pid, new)
        state.schedule.refresh_tag(state.instance.patient(pid))
    state.cost += cand.delta
    return cand


class MoveGenerator:
    """Samples a batch of moves per iteration and scores them read-only.

    With scoring_workers > 1 the batch is scored on a thread pool; the call
    returns only once every candidate is scored, so no result outlives the
    iteration that asked for it.
    """

    def __init__(self, state: SchedulerState, params: SolverParams,
                 rng: Optional[random.Random] = None) -> None:
        self.rng        = rng or random.Random(params.seed)
        self.batch_size = params.batch_size
        self.threshold  = params.overcrowd_threshold

        weighted = [(MoveKind(k), w) for k, w in params.move_weights.items() if w > 0]
        self._kinds   = [k for k, _ in weighted]
        self._weights = [w for _, w in weighted]
        self._samplers: Dict[MoveKind, Callable[[SchedulerState], Optional[Move]]] = {
            MoveKind.CHANGE:         self._sample_change,
            MoveKind.SWAP:           self._sample_swap,
            MoveKind.DELAY:          self._sample_delay,
            MoveKind.PARTIAL_CHANGE: self._sample_partial_change,
            MoveKind.PARTIAL_SWAP:   self._sample_partial_swap,
        }

        sched = state.schedule
        self._staying = [p for p in state.instance.patient_ids() if sched.length[p] > 0]
        self._long    = [p for p in self._staying if sched.length[p] >= 2]
        self._delayable = [
            p for p in self._staying if state.instance.patient(p).variability > 0
        ]
        self._pool: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=params.scoring_workers)
            if params.scoring_workers > 1 else None
        )

    def close(self) -> None:
        if self._pool is not None:
            self._pool.shutdown(wait=True)
            self._pool = None

    def __enter__(self) -> "MoveGenerator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ── sampling ─────────────────────────────────────────────────────────────

    def _sample_change(self, state: SchedulerState) -> Optional[Move]:
        if not self._staying:
            return None
        p = self.rng.choice(self._staying)
        current = state.schedule.segments(p)
        rooms = [
            r for r in state.evaluator.available_rooms(p)
            if not (len(current) == 1 and current[0][0] == r)
        ]
        if not rooms:
            return None
        return Change(p, self.rng.choice(rooms))

    def _pick_pair(self, state: SchedulerState) -> Optional[Tuple[PatientId, PatientId, range]]:
        if not self._staying:
            return None
        p1 = self.rng.choice(self._staying)
        partners = [q for q in state.evaluator.overlapping(p1) if state.schedule.length[q] > 0]
        if not partners:
            return None
        p2 = self.rng.choice(partners)
        s1, s2 = state.schedule.stay(p1), state.schedule.stay(p2)
        shared = range(max(s1.start, s2.start), min(s1.stop, s2.stop))
        if not shared:
            return None
        return p1, p2, shared

    def _sample_swap(self, state: SchedulerState) -> Optional[Move]:
        pair = self._pick_pair(state)
        return Swap(pair[0], pair[1]) if pair else None

    def _sample_delay(self, state: SchedulerState) -> Optional[Move]:
        if not self._delayable:
            return None
        p = self.rng.choice(self._delayable)
        patient = state.instance.patient(p)
        so_far = state.schedule.admission[p] - patient.admission
        shifts = [k for k in range(-so_far, patient.variability - so_far + 1) if k != 0]
        if not shifts:
            return None
        return Delay(p, self.rng.choice(shifts))

    def _sub_interval(self, days: range) -> Tuple[int, int]:
        start = self.rng.randrange(days.start, days.stop)
        end   = self.rng.randrange(start + 1, days.stop + 1)
        return start, end

    def _sample_partial_change(self, state: SchedulerState) -> Optional[Move]:
        if not self._long:
            return None
        p = self.rng.choice(self._long)
        rooms = state.evaluator.available_rooms(p)
        if not rooms:
            return None
        start, end = self._sub_interval(state.schedule.stay(p))
        return PartialChange(p, self.rng.choice(rooms), start, end)

    def _sample_partial_swap(self, state: SchedulerState) -> Optional[Move]:
        pair = self._pick_pair(state)
        if not pair:
            return None
        p1, p2, shared = pair
        start, end = self._sub_interval(shared)
        return PartialSwap(p1, p2, start, end)

    def sample(self, state: SchedulerState) -> List[Move]:
        moves: List[Move] = []
        tries = 0
        while len(moves) < self.batch_size and tries < 5 * self.batch_size:
            tries += 1
            kind = self.rng.choices(self._kinds, self._weights)[0]
            move = self._samplers[kind](state)
            if move is not None:
                moves.append(move)
        return moves

    def candidates(self, state: SchedulerState) -> List[Candidate]:
        """Sample and score one batch; legal and illegal candidates alike."""
        moves = self.sample(state)
        score = partial(evaluate, state=state, overcrowd_threshold=self.threshold)
        if self._pool is None:
            return [score(m) for m in moves]
        return list(self._pool.map(score, moves))
