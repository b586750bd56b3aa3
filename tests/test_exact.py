"""Tests for the CP-SAT single-room reference solver."""
import pytest

pytest.importorskip("ortools")

from bed_scheduler.instance_io import parse_instance  # noqa: E402
from bed_scheduler.models import Config, SolverParams  # noqa: E402
from bed_scheduler.solver.api import solve  # noqa: E402
from bed_scheduler.solver.exact import solve_exact  # noqa: E402

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


def _params() -> SolverParams:
    return SolverParams(seed=0, max_time_in_seconds=10, num_workers=1)


def test_exact_finds_zero_cost_schedule() -> None:
    result = solve_exact(parse_instance(_WARD), _params())
    assert result.status == "OPTIMAL"
    assert result.objective_value == 0
    assert result.stats["solver"] == "exact"
    for entry in result.entries:
        rooms = {r for r in entry.rooms if r is not None}
        assert len(rooms) == 1
        assert entry.transfer_day is None


def test_exact_uses_partial_room_when_forced() -> None:
    # a fifth patient occupying R0 and R1 all week forces someone into R2
    text = _WARD.replace("Patients: 4", "Patients: 6").replace(
        "END.", "P4 40 Ma ( 0, 0, 6, 0 ) * : 0 <= 2 -\n"
                "P5 40 Ma ( 0, 0, 6, 0 ) * : 0 <= 2 -\nEND."
    )
    result = solve_exact(parse_instance(text), _params())
    assert result.status == "OPTIMAL"
    # every other patient goes to R2: 3 + 3 + 2 + 2 days at 20
    assert result.objective_value == 200
    assert result.objective_value >= result.lower_bound


def test_exact_infeasible() -> None:
    text = _WARD.replace("R2 2 1 All -", "R2 1 1 All -").replace(
        "P1 40 Ma ( 0, 1, 4, 0 )", "P1 40 Ma ( 0, 0, 4, 0 )"
    ).replace("P3 40 Ma ( 0, 4, 6, 2 )", "P3 40 Ma ( 0, 0, 6, 2 )").replace(
        "P2 40 Ma ( 0, 3, 5, 1 ) <= 3", "P2 40 Ma ( 0, 0, 5, 1 ) <= 3"
    )
    result = solve_exact(parse_instance(text), _params())
    assert result.status == "INFEASIBLE"
    assert result.entries == []
    assert result.objective_value is None


def test_solve_dispatches_to_exact() -> None:
    cfg = Config(solver=_params())
    result = solve(parse_instance(_WARD), cfg, level="cp-sat")
    assert result.stats["solver"] == "exact"
