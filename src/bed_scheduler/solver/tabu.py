"""
Tabu search over the move neighbourhood.

Per iteration the driver asks the MoveGenerator for a scored batch, drops
illegal candidates and picks one:

  1. aspiration   - the candidate with the lowest resulting cost, tabu or
                    not, if that beats the best cost so far;
  2. improving    - otherwise the best-ranked non-tabu candidate, when it
                    lowers the current cost;
  3. diversifying - otherwise that same candidate anyway (least bad);
  4. no legal move - every candidate is tabu: stop.

Candidates are ranked by delta + overcrowding risk. Cost comparisons use
the true resulting cost. The applied move's reverse signature becomes tabu
for `tenure` iterations. Budgets are polled at the top of each iteration.
"""

from __future__ import annotations

import math
import random
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from bed_scheduler.log import get_logger
from bed_scheduler.models import SolverParams
from bed_scheduler.solver.moves import Candidate, MoveGenerator, MoveIllegal, apply_move
from bed_scheduler.solver.schedule import Schedule
from bed_scheduler.solver.state import SchedulerState

logger = get_logger(__name__)


class TerminationReason(Enum):
    LOWER_BOUND_REACHED = "lower_bound_reached"
    ITERATION_BUDGET    = "iteration_budget"
    TIME_BUDGET         = "time_budget"
    NO_LEGAL_MOVE       = "no_legal_move"


def default_tenure(num_patients: int, factor: float = 1.0) -> int:
    return max(1, int(round(factor * math.sqrt(num_patients))))


class TabuList:
    """Move signature -> first iteration at which it is allowed again."""

    def __init__(self, tenure: int) -> None:
        self.tenure = tenure
        self._expiry: Dict[Tuple, int] = {}

    def add(self, signature: Tuple, iteration: int) -> None:
        self._expiry[signature] = iteration + self.tenure

    def is_tabu(self, signature: Tuple, iteration: int) -> bool:
        return self._expiry.get(signature, 0) > iteration

    def purge(self, iteration: int) -> None:
        for sig in [s for s, exp in self._expiry.items() if iteration >= exp]:
            del self._expiry[sig]

    def __len__(self) -> int:
        return len(self._expiry)

    def __contains__(self, signature: Tuple) -> bool:
        return signature in self._expiry


@dataclass
class SearchOutcome:
    best_schedule: Schedule
    best_cost:     int
    current_cost:  int
    lower_bound:   int
    reason:        TerminationReason
    iterations:    int
    elapsed_s:     float
    rules:         Dict[str, int] = field(default_factory=dict)
    moves:         Dict[str, int] = field(default_factory=dict)

    @property
    def gap(self) -> int:
        return self.best_cost - self.lower_bound

    @property
    def proven_optimal(self) -> bool:
        return self.best_cost == self.lower_bound


class TabuSearch:

    def __init__(self, state: SchedulerState, params: Optional[SolverParams] = None,
                 rng: Optional[random.Random] = None) -> None:
        self.state  = state
        self.params = params or SolverParams()
        self.rng    = rng or random.Random(self.params.seed)
        tenure = self.params.tabu_tenure or default_tenure(
            len(state.instance.patients), self.params.tenure_factor
        )
        self.tabu = TabuList(tenure)
        self.iteration = 0
        self.best_schedule = state.schedule.copy()
        self.best_cost     = state.cost
        self._rules: Counter = Counter()
        self._moves: Counter = Counter()

    def select(self, candidates: List[Candidate]) -> Tuple[Optional[Candidate], str]:
        """Apply the acceptance rules to a batch of legal candidates."""
        current = self.state.cost
        lowest = min(candidates, key=lambda c: (c.delta, c.score))
        if current + lowest.delta < self.best_cost:
            return lowest, "aspiration"

        allowed = [c for c in candidates if not self.tabu.is_tabu(c.signature, self.iteration)]
        if not allowed:
            return None, "all_tabu"
        pick = min(allowed, key=lambda c: (c.score, c.delta))
        if pick.delta < 0:
            return pick, "improving"
        return pick, "diversifying"

    def run(self) -> SearchOutcome:
        state  = self.state
        params = self.params
        lb     = state.evaluator.lower_bound
        start  = time.monotonic()
        idle   = 0

        with MoveGenerator(state, params, self.rng) as generator:
            while True:
                if state.cost == lb:
                    reason = TerminationReason.LOWER_BOUND_REACHED
                    break
                if self.iteration >= params.max_iterations:
                    reason = TerminationReason.ITERATION_BUDGET
                    break
                if time.monotonic() - start >= params.max_time_in_seconds:
                    reason = TerminationReason.TIME_BUDGET
                    break

                self.iteration += 1
                self.tabu.purge(self.iteration)

                legal = [c for c in generator.candidates(state) if c.legal]
                if not legal:
                    idle += 1
                    if idle >= params.max_idle_batches:
                        reason = TerminationReason.NO_LEGAL_MOVE
                        break
                    continue
                idle = 0

                chosen, rule = self.select(legal)
                if chosen is None:
                    reason = TerminationReason.NO_LEGAL_MOVE
                    break

                try:
                    applied = apply_move(chosen.move, state, params.overcrowd_threshold)
                except MoveIllegal as e:
                    logger.warning("iteration %d: skipping move: %s", self.iteration, e)
                    continue

                self._rules[rule] += 1
                self._moves[applied.move.kind.value] += 1
                self.tabu.add(applied.reverse, self.iteration)

                if state.cost < self.best_cost:
                    self.best_cost = state.cost
                    self.best_schedule = state.schedule.copy()

                if params.log_every and self.iteration % params.log_every == 0:
                    logger.info("iter %d: current %d best %d lb %d tabu %d",
                                self.iteration, state.cost, self.best_cost, lb, len(self.tabu))

        elapsed = time.monotonic() - start
        logger.info("tabu search stopped (%s) after %d iteration(s), %.2fs: best %d, lb %d",
                    reason.value, self.iteration, elapsed, self.best_cost, lb)
        return SearchOutcome(
            best_schedule = self.best_schedule,
            best_cost     = self.best_cost,
            current_cost  = state.cost,
            lower_bound   = lb,
            reason        = reason,
            iterations    = self.iteration,
            elapsed_s     = elapsed,
            rules         = dict(self._rules),
            moves         = dict(self._moves),
        )
