"""End-to-end tests for the solve() entry point."""
from pathlib import Path

import pytest

from bed_scheduler.instance_io import load_instance, parse_instance
from bed_scheduler.models import Config, SolverParams
from bed_scheduler.solver.api import solve
from bed_scheduler.solver.construct import InfeasibleInstance
from bed_scheduler.solver.precheck import PrecheckError

DATA = Path(__file__).resolve().parents[1] / "data"


def _two_patients(rooms: int) -> str:
    room_lines = "".join(f"Room_{r} 1 0 All -\n" for r in range(rooms))
    return (
        "Two patients\n"
        "Departments: 1\nRooms: {rooms}\nFeatures: 0\nPatients: 2\n"
        "Specialisms: 1\nHorizon: 3\n"
        "DEPARTMENTS:\nDep_0 - (0) -\n"
        "ROOMS:\n{room_lines}"
        "PATIENTS:\n"
        "A 40 Ma ( 0, 0, 2, 0 ) * : 0 <= 1 -\n"
        "B 40 Ma ( 1, 1, 3, 0 ) * : 0 <= 1 -\n"
    ).format(rooms=rooms, room_lines=room_lines)


def _cfg(**solver) -> Config:
    return Config(solver=SolverParams(seed=0, **solver))


def test_trivial_instance_is_optimal() -> None:
    result = solve(parse_instance(_two_patients(2)), _cfg())
    assert result.status == "OPTIMAL"
    assert result.objective_value == 0
    assert result.lower_bound == 0
    assert result.gap == 0
    assert result.stats["termination"] == "lower_bound_reached"
    assert result.stats["iterations"] == 0
    a, b = result.entries
    assert a.rooms[1] is not None and a.rooms[1] != b.rooms[1]
    assert (a.status, b.status) == ("DISCHARGED", "ADMITTED")


def test_infeasible_instance_raises() -> None:
    with pytest.raises(InfeasibleInstance):
        solve(parse_instance(_two_patients(1)), _cfg(max_attempts=20))


def test_precheck_errors_stop_solve() -> None:
    inst = parse_instance(_two_patients(2).replace("( 0, 0, 2, 0 ) *", "( 0, 2, 1, 0 ) *"))
    with pytest.raises(PrecheckError):
        solve(inst, _cfg())


def test_unknown_solver_level() -> None:
    with pytest.raises(ValueError, match="Unknown solver"):
        solve(parse_instance(_two_patients(2)), _cfg(), level="annealing")


def test_bundled_example() -> None:
    inst = load_instance(DATA / "small_example.pasu")
    result = solve(inst, _cfg(max_iterations=300, max_time_in_seconds=20))
    assert result.status in ("OPTIMAL", "FEASIBLE")
    assert result.objective_value >= result.lower_bound
    assert result.objective_value <= result.stats["initial_cost"]
    assert sum(e.cost for e in result.entries) == result.objective_value
    assert [e.name for e in result.entries] == [p.name for p in inst.patients]
    # Pat_4 stays past the 7-day horizon: rooms only up to the last day
    pat4 = result.entries[4]
    assert pat4.discharge == 7
    assert all(r is not None for r in pat4.rooms[pat4.admission:])
