"""Tests for the tabu list, acceptance rules and search termination."""
import random

from bed_scheduler.instance_io import parse_instance
from bed_scheduler.models import PatientId, RoomId, SolverParams
from bed_scheduler.solver.evaluator import Evaluator
from bed_scheduler.solver.ledger import BedLedger
from bed_scheduler.solver.moves import Candidate, Change
from bed_scheduler.solver.schedule import Schedule
from bed_scheduler.solver.state import SchedulerState
from bed_scheduler.solver.tabu import (TabuList, TabuSearch, TerminationReason,
    default_tenure)

# R2 only partially supports the specialism (+20/day); optimum is 0.
_WARD = """\
Ward
Departments: 2
Rooms: 3
Features: 0
Patients: 4
Specialisms: 1
Horizon: 6
DEPARTMENTS:
Dep_0 - (0) -
Dep_1 - () (0)
ROOMS:
R0 1 0 All -
R1 1 0 All -
R2 2 1 All -
PATIENTS:
P0 40 Ma ( 0, 0, 3, 2 ) <= 3 : 0 <= 2 -
P1 40 Ma ( 0, 1, 4, 0 ) * : 0 <= 2 -
P2 40 Ma ( 0, 3, 5, 1 ) <= 3 : 0 <= 2 -
P3 40 Ma ( 0, 4, 6, 2 ) <= 5 : 0 <= 2 -
END.
"""

# P1 only fits R1 and R0 is free but misses P0's preferred feature:
# nothing can improve on cost 60 without breaking a hard rule.
_STUCK = """\
Stuck
Departments: 1
Rooms: 2
Features: 1
Patients: 2
Specialisms: 1
Horizon: 3
DEPARTMENTS:
Dep_0 - (0) -
ROOMS:
R0 1 0 All -
R1 1 0 All (0)
PATIENTS:
P0 40 Ma ( 0, 0, 3, 0 ) * : 0 <= 1 (0 p)
P1 40 Ma ( 0, 0, 3, 0 ) * : 0 <= 1 (0 n)
END.
"""


def _state(text: str, rooms) -> SchedulerState:
    inst = parse_instance(text)
    ev = Evaluator(inst)
    sched = Schedule.empty(inst)
    ledger = BedLedger.for_instance(inst)
    for p, r in enumerate(rooms):
        sched.place(PatientId(p), RoomId(r), sched.stay(PatientId(p)))
        ledger.occupy(RoomId(r), sched.stay(PatientId(p)))
        sched.refresh_tag(inst.patient(PatientId(p)))
    return SchedulerState(inst, ev, ledger, sched, ev.total_cost(sched))


def _ward_state() -> SchedulerState:
    return _state(_WARD, [0, 2, 1, 2])


def _cand(patient: int, room: int, delta: int, risk: int = 0) -> Candidate:
    move = Change(PatientId(patient), RoomId(room))
    return Candidate(move, True, delta, risk, ("change", patient, room), ("change", patient, 9))


# ── tabu list ────────────────────────────────────────────────────────────────

def test_default_tenure() -> None:
    assert default_tenure(100) == 10
    assert default_tenure(9, 2.0) == 6
    assert default_tenure(0) == 1


def test_tabu_list_expiry() -> None:
    tabu = TabuList(3)
    tabu.add(("swap", 0, 1), 5)
    assert tabu.is_tabu(("swap", 0, 1), 7)
    assert not tabu.is_tabu(("swap", 0, 1), 8)
    assert not tabu.is_tabu(("swap", 0, 2), 6)
    tabu.purge(7)
    assert ("swap", 0, 1) in tabu
    tabu.purge(8)
    assert len(tabu) == 0


# ── acceptance rules ─────────────────────────────────────────────────────────

def test_tabu_move_taken_by_aspiration() -> None:
    search = TabuSearch(_ward_state(), SolverParams(tabu_tenure=5))
    search.tabu.add(("change", 0, 2), 0)
    search.iteration = 1
    chosen, rule = search.select([_cand(0, 2, -10), _cand(1, 0, -5)])
    assert rule == "aspiration"
    assert chosen.signature == ("change", 0, 2)


def test_tabu_move_rejected_without_aspiration() -> None:
    search = TabuSearch(_ward_state(), SolverParams(tabu_tenure=5))
    search.best_cost = 80
    search.tabu.add(("change", 0, 2), 0)
    search.iteration = 1
    chosen, rule = search.select([_cand(0, 2, -10), _cand(1, 0, 5)])
    assert rule == "diversifying"
    assert chosen.signature == ("change", 1, 0)


def test_all_tabu_gives_no_move() -> None:
    search = TabuSearch(_ward_state(), SolverParams(tabu_tenure=5))
    search.best_cost = 80
    search.tabu.add(("change", 0, 2), 0)
    search.iteration = 1
    assert search.select([_cand(0, 2, -10)]) == (None, "all_tabu")


def test_ranking_includes_overcrowd_risk() -> None:
    search = TabuSearch(_ward_state(), SolverParams())
    search.best_cost = 0
    chosen, rule = search.select([_cand(0, 2, -6, risk=5), _cand(1, 0, -4)])
    assert rule == "improving"
    assert chosen.signature == ("change", 1, 0)


# ── driver ───────────────────────────────────────────────────────────────────

def test_search_reaches_lower_bound() -> None:
    state = _ward_state()
    params = SolverParams(seed=1, max_iterations=5000, max_time_in_seconds=60)
    outcome = TabuSearch(state, params, random.Random(1)).run()
    assert outcome.reason is TerminationReason.LOWER_BOUND_REACHED
    assert outcome.best_cost == outcome.lower_bound == 0
    assert outcome.proven_optimal
    assert state.evaluator.total_cost(outcome.best_schedule) == 0
    assert state.evaluator.violations(outcome.best_schedule) == []


def test_state_stays_consistent() -> None:
    state = _ward_state()
    TabuSearch(state, SolverParams(max_iterations=300), random.Random(7)).run()
    assert state.cost == state.recompute_cost()
    rebuilt = BedLedger.for_instance(state.instance)
    for p in state.instance.patient_ids():
        for d, r in state.schedule.placement(p).items():
            rebuilt.take(r, d)
    assert rebuilt.rows() == state.ledger.rows()


def test_best_never_below_lower_bound() -> None:
    for seed in range(3):
        state = _ward_state()
        initial = state.cost
        outcome = TabuSearch(state, SolverParams(max_iterations=40), random.Random(seed)).run()
        assert outcome.lower_bound <= outcome.best_cost <= initial
        assert outcome.best_cost <= outcome.current_cost
        assert state.evaluator.total_cost(outcome.best_schedule) == outcome.best_cost


def test_iteration_budget() -> None:
    outcome = TabuSearch(_ward_state(), SolverParams(max_iterations=0)).run()
    assert outcome.reason is TerminationReason.ITERATION_BUDGET
    assert outcome.iterations == 0
    assert outcome.best_cost == 100
    assert outcome.gap == 100


def test_time_budget() -> None:
    outcome = TabuSearch(_ward_state(), SolverParams(max_time_in_seconds=0)).run()
    assert outcome.reason is TerminationReason.TIME_BUDGET
    assert outcome.iterations == 0


def test_starts_at_lower_bound() -> None:
    state = _state(_WARD, [1, 0, 1, 0])
    assert state.cost == 0
    outcome = TabuSearch(state, SolverParams()).run()
    assert outcome.reason is TerminationReason.LOWER_BOUND_REACHED
    assert outcome.iterations == 0


def test_no_legal_move() -> None:
    state = _state(_STUCK, [0, 1])
    assert state.cost == 60
    assert state.evaluator.lower_bound == 0
    outcome = TabuSearch(state, SolverParams(max_idle_batches=3), random.Random(0)).run()
    assert outcome.reason is TerminationReason.NO_LEGAL_MOVE
    assert outcome.iterations == 3
    assert outcome.best_cost == 60
