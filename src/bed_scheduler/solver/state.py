from __future__ import annotations

from dataclasses import dataclass

from bed_scheduler.models import Instance
from bed_scheduler.solver.evaluator import Evaluator
from bed_scheduler.solver.ledger import BedLedger
from bed_scheduler.solver.schedule import Schedule


@dataclass
class SchedulerState:
    """The authoritative ledger + schedule, handed from constructor to driver.

    Whoever holds the state is the only writer of `ledger`, `schedule` and
    `cost`; the evaluator is shared read-only.
    """
    instance:  Instance
    evaluator: Evaluator
    ledger:    BedLedger
    schedule:  Schedule
    cost:      int

    def recompute_cost(self) -> int:
        return self.evaluator.total_cost(self.schedule)
