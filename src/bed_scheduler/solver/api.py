from __future__ import annotations

import random
from typing import Optional

from bed_scheduler.models import Config, Instance
from bed_scheduler.solver.construct import build_initial_solution
from bed_scheduler.solver.evaluator import Evaluator
from bed_scheduler.solver.exact import solve_exact
from bed_scheduler.solver.precheck import ensure_ok
from bed_scheduler.solver.result import SolveResult, entries_from_schedule
from bed_scheduler.solver.tabu import TabuSearch, TerminationReason


def solve_tabu(instance: Instance, cfg: Optional[Config] = None) -> SolveResult:
    """Construct a first schedule, then improve it by tabu search.

    Raises InfeasibleInstance when construction fails; the search never
    starts in that case.
    """
    cfg = cfg or Config()
    cfg.validate()
    ensure_ok(instance)

    evaluator = Evaluator(instance, cfg.weights)
    state     = build_initial_solution(instance, evaluator, cfg.solver)
    initial   = state.cost
    search    = TabuSearch(state, cfg.solver, random.Random(cfg.solver.seed))
    outcome   = search.run()

    optimal = outcome.reason is TerminationReason.LOWER_BOUND_REACHED
    diagnostics = [
        f"Patient '{instance.patient(p).name}' has no available room."
        for p in evaluator.infeasible_patients
    ]
    return SolveResult(
        status          = "OPTIMAL" if optimal else "FEASIBLE",
        objective_value = outcome.best_cost,
        lower_bound     = outcome.lower_bound,
        entries         = entries_from_schedule(instance, evaluator, outcome.best_schedule),
        diagnostics     = diagnostics,
        stats           = {
            "solver":       "tabu",
            "termination":  outcome.reason.value,
            "initial_cost": initial,
            "iterations":   outcome.iterations,
            "gap":          outcome.gap,
            "tenure":       search.tabu.tenure,
            "rules":        outcome.rules,
            "moves":        outcome.moves,
            "wall_time_s":  round(outcome.elapsed_s, 3),
        },
    )


def solve(instance: Instance, cfg: Optional[Config] = None, level: str = "tabu") -> SolveResult:
    cfg = cfg or Config()
    level = (level or "").lower()
    if level in ("tabu", "ts"):
        return solve_tabu(instance, cfg)
    if level in ("exact", "cp-sat", "cpsat"):
        cfg.validate()
        return solve_exact(instance, cfg.solver, cfg.weights)
    raise ValueError(f"Unknown solver level: {level!r}")
