"""
Randomised constructive heuristic for the first feasible schedule.

Each attempt walks the horizon day by day on a private copy of the ledger:

  - a patient admitted on day d is put, for its whole stay, into the first
    room (in a freshly shuffled order) that is available to it and has a
    free bed on every stay day;
  - a registered patient still waiting for admission is tentatively placed
    the same way and released again at the end of the day, so waiting
    patients compete with today's admissions for future beds.

Any patient that fits nowhere fails the whole attempt; there is no day-local
backtracking. The first attempt that completes every day is committed.

Attempts are independent, so with construction_workers > 1 they run on a
thread pool. Every attempt draws from its own random.Random seeded from
(seed, attempt index), and the first success stops the other workers.
"""

from __future__ import annotations

import random
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Sequence, Tuple

from bed_scheduler.log import get_logger
from bed_scheduler.models import Instance, PatientId, RoomId, SolverParams, Tag
from bed_scheduler.solver.evaluator import Evaluator
from bed_scheduler.solver.ledger import BedLedger
from bed_scheduler.solver.schedule import Schedule, next_tag
from bed_scheduler.solver.state import SchedulerState

logger = get_logger(__name__)

_Outcome = Tuple[int, BedLedger, Schedule]


class InfeasibleInstance(RuntimeError):
    """No feasible initial schedule could be produced."""

    def __init__(self, message: str, attempts: int = 0,
                 patients: Sequence[PatientId] = ()) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.patients = list(patients)


def attempt_rng(seed: Optional[int], attempt: int) -> random.Random:
    if seed is None:
        return random.Random()
    return random.Random(seed * 1_000_003 + attempt)


def _pick_room(evaluator: Evaluator, ledger: BedLedger, pid: PatientId,
               days: range, rooms: List[RoomId], rng: random.Random) -> Optional[RoomId]:
    rng.shuffle(rooms)
    for r in rooms:
        if evaluator.available(pid, r) and ledger.has_bed(r, days):
            return r
    return None


def construct_once(instance: Instance, evaluator: Evaluator, base: BedLedger,
                   rng: random.Random,
                   cancel: Optional[threading.Event] = None) -> Optional[Tuple[BedLedger, Schedule]]:
    """One day-by-day attempt. Returns None on failure or cancellation."""
    ledger   = base.copy()
    schedule = Schedule.empty(instance)
    rooms    = instance.room_ids()

    for day in range(instance.num_days):
        if cancel is not None and cancel.is_set():
            return None
        probes: List[Tuple[RoomId, range]] = []
        for patient in instance.patients:
            pid = patient.id
            stay = schedule.stay(pid)
            schedule.tags[pid] = next_tag(schedule.tags[pid], patient,
                                          stay.start, stay.stop, day)
            if not stay:
                continue
            if day == patient.admission:
                room = _pick_room(evaluator, ledger, pid, stay, rooms, rng)
                if room is None:
                    logger.debug("day %d: no room for %s", day, patient.name)
                    return None
                ledger.occupy(room, stay)
                schedule.place(pid, room, stay)
            elif schedule.tags[pid] is Tag.REGISTERED and day < patient.admission:
                room = _pick_room(evaluator, ledger, pid, stay, rooms, rng)
                if room is None:
                    logger.debug("day %d: no room reserved for waiting %s", day, patient.name)
                    return None
                ledger.occupy(room, stay)
                probes.append((room, stay))
        for room, stay in probes:
            ledger.release(room, stay)

    return ledger, schedule


def _worker(instance: Instance, evaluator: Evaluator, base: BedLedger,
            params: SolverParams, first: int, stride: int,
            cancel: threading.Event) -> Optional[_Outcome]:
    for attempt in range(first, params.max_attempts, stride):
        if cancel.is_set():
            return None
        built = construct_once(instance, evaluator, base,
                               attempt_rng(params.seed, attempt), cancel)
        if built is not None:
            return (attempt, *built)
    return None


def build_initial_solution(instance: Instance, evaluator: Evaluator,
                           params: Optional[SolverParams] = None,
                           ledger: Optional[BedLedger] = None) -> SchedulerState:
    """Produce the first feasible schedule or raise InfeasibleInstance."""
    params = params or SolverParams()
    base = ledger if ledger is not None else BedLedger.for_instance(instance)

    stuck = [p for p in evaluator.infeasible_patients if instance.stay_length(p) > 0]
    if stuck:
        names = ", ".join(instance.patient(p).name for p in stuck)
        raise InfeasibleInstance(f"No available room for patient(s): {names}", patients=stuck)

    outcome: Optional[_Outcome] = None
    workers = min(params.construction_workers, params.max_attempts)
    if workers <= 1:
        for attempt in range(params.max_attempts):
            built = construct_once(instance, evaluator, base, attempt_rng(params.seed, attempt))
            if built is not None:
                outcome = (attempt, *built)
                break
    else:
        cancel = threading.Event()
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(_worker, instance, evaluator, base, params, k, workers, cancel)
                for k in range(workers)
            ]
            for fut in as_completed(futures):
                result = fut.result()
                if result is not None and outcome is None:
                    outcome = result
                    cancel.set()

    if outcome is None:
        raise InfeasibleInstance(
            f"No feasible initial schedule after {params.max_attempts} attempt(s)",
            attempts=params.max_attempts,
        )

    attempt, committed, schedule = outcome
    committed.check()
    state = SchedulerState(
        instance  = instance,
        evaluator = evaluator,
        ledger    = committed,
        schedule  = schedule,
        cost      = evaluator.total_cost(schedule),
    )
    logger.info("initial solution after %d attempt(s): cost %d (lower bound %d)",
                attempt + 1, state.cost, evaluator.lower_bound)
    return state
