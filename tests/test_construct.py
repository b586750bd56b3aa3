"""Tests for the randomised constructor."""
import random

import pytest

from bed_scheduler.models import (Department, DepartmentId, DoctoringLevel,
    FeatureId, Gender, Instance, Patient, PatientId, Request, Room, RoomId,
    SolverParams, SpecialismId, Tag)
from bed_scheduler.solver.construct import (InfeasibleInstance,
    build_initial_solution, construct_once)
from bed_scheduler.solver.evaluator import Evaluator
from bed_scheduler.solver.ledger import BedLedger

A, B = PatientId(0), PatientId(1)


def _patient(pid, reg, adm, dis, requests=None) -> Patient:
    return Patient(
        id=PatientId(pid), name=f"P{pid}", age=40, gender=Gender.MALE,
        registration=reg, admission=adm, discharge=dis, variability=0,
        max_admission=adm, specialism=SpecialismId(0), preferred_capacity=1,
        requests=requests or {},
    )


def _ward(num_rooms, patients, num_days=3, room_features=None) -> Instance:
    room_features = room_features or {}
    return Instance(
        name="ward", num_days=num_days, num_features=1, num_specialisms=1,
        departments=[Department(DepartmentId(0), "Dep_0",
                                specialisms={SpecialismId(0): DoctoringLevel.COMPLETE})],
        rooms=[Room(RoomId(r), f"Room_{r}", 1, DepartmentId(0),
                    features=frozenset(room_features.get(r, ())))
               for r in range(num_rooms)],
        patients=list(patients),
    )


def _two_overlapping(num_rooms) -> Instance:
    # A in [0,2), B in [1,3): both in hospital on day 1
    return _ward(num_rooms, [_patient(0, 0, 0, 2), _patient(1, 1, 1, 3)])


def test_overlapping_patients_get_different_rooms() -> None:
    inst = _two_overlapping(2)
    ev = Evaluator(inst)
    state = build_initial_solution(inst, ev, SolverParams(seed=1))
    sched = state.schedule
    assert sched.room_on(A, 1) is not None
    assert sched.room_on(A, 1) != sched.room_on(B, 1)
    assert state.cost == 0
    assert ev.lower_bound == 0


def test_ledger_matches_schedule() -> None:
    inst = _two_overlapping(2)
    state = build_initial_solution(inst, Evaluator(inst), SolverParams(seed=5))
    rebuilt = BedLedger.for_instance(inst)
    for p in inst.patient_ids():
        for d, r in state.schedule.placement(p).items():
            rebuilt.take(r, d)
    assert rebuilt.rows() == state.ledger.rows()


def test_status_tags_after_last_day() -> None:
    inst = _two_overlapping(2)
    state = build_initial_solution(inst, Evaluator(inst), SolverParams(seed=2))
    # A leaves on day 2, B's discharge falls after the horizon
    assert state.schedule.tags == [Tag.DISCHARGED, Tag.ADMITTED]


def test_single_room_is_infeasible() -> None:
    inst = _two_overlapping(1)
    with pytest.raises(InfeasibleInstance) as exc:
        build_initial_solution(inst, Evaluator(inst), SolverParams(seed=0, max_attempts=20))
    assert exc.value.attempts == 20


def test_patient_without_room_fails_fast() -> None:
    needs = {FeatureId(0): Request.NEEDED}
    inst = _ward(2, [_patient(0, 0, 0, 2), _patient(1, 0, 1, 2, requests=needs)])
    with pytest.raises(InfeasibleInstance) as exc:
        build_initial_solution(inst, Evaluator(inst), SolverParams(max_attempts=10**9))
    assert exc.value.patients == [B]


def test_patient_outside_horizon_is_ignored() -> None:
    needs = {FeatureId(0): Request.NEEDED}
    inst = _ward(1, [_patient(0, 0, 0, 2), _patient(1, 0, 5, 7, requests=needs)])
    state = build_initial_solution(inst, Evaluator(inst), SolverParams(seed=0))
    assert state.schedule.length[B] == 0
    assert all(r is None for r in state.schedule.rooms[B])


def test_same_seed_same_schedule() -> None:
    inst = _ward(3, [_patient(i, 0, i % 2, 3) for i in range(3)])
    ev = Evaluator(inst)
    first = build_initial_solution(inst, ev, SolverParams(seed=11))
    second = build_initial_solution(inst, ev, SolverParams(seed=11))
    assert first.schedule == second.schedule


def test_parallel_attempts() -> None:
    inst = _ward(3, [_patient(i, 0, i % 2, 3) for i in range(3)])
    ev = Evaluator(inst)
    state = build_initial_solution(
        inst, ev, SolverParams(seed=4, construction_workers=4, max_attempts=50)
    )
    assert ev.violations(state.schedule) == []
    state.ledger.check()


def test_parallel_attempts_infeasible() -> None:
    inst = _two_overlapping(1)
    with pytest.raises(InfeasibleInstance):
        build_initial_solution(
            inst, Evaluator(inst), SolverParams(construction_workers=3, max_attempts=12)
        )


def test_waiting_patient_reserves_bed() -> None:
    # W (listed first) registers on day 0 for admission on day 1 and only fits
    # room 0; X arrives on day 0 and fits anywhere. The day-0 reservation for W
    # must push X into room 1 on every attempt.
    needs = {FeatureId(0): Request.NEEDED}
    inst = _ward(2, [_patient(0, 0, 1, 3, requests=needs), _patient(1, 0, 0, 2)],
                 room_features={0: [0]})
    ev = Evaluator(inst)
    base = BedLedger.for_instance(inst)
    for seed in range(20):
        built = construct_once(inst, ev, base, random.Random(seed))
        assert built is not None
        _, sched = built
        assert sched.room_on(PatientId(1), 0) == RoomId(1)
        assert sched.room_on(PatientId(0), 1) == RoomId(0)
    # the base ledger is never touched
    assert base.rows() == [[1, 1, 1], [1, 1, 1]]
