from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from bed_scheduler.models import Instance
from bed_scheduler.solver.evaluator import Evaluator
from bed_scheduler.solver.schedule import Schedule


@dataclass(frozen=True)
class PatientEntry:
    patient_id:   int
    name:         str
    status:       str                     # UNREGISTERED/REGISTERED/ADMITTED/DISCHARGED
    rooms:        List[Optional[int]]     # one per horizon day, None = not in hospital
    admission:    int
    discharge:    int
    transfer_day: Optional[int] = None
    cost:         int           = 0


@dataclass
class SolveResult:
    status:          str                    # OPTIMAL/FEASIBLE/INFEASIBLE/UNKNOWN
    objective_value: Optional[int]  = None
    lower_bound:     Optional[int]  = None
    entries:         List[PatientEntry] = field(default_factory=list)
    diagnostics:     List[str]       = field(default_factory=list)
    stats:           Dict[str, Any]  = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def gap(self) -> Optional[int]:
        if self.objective_value is None or self.lower_bound is None:
            return None
        return self.objective_value - self.lower_bound


def entries_from_schedule(instance: Instance, evaluator: Evaluator,
                          schedule: Schedule) -> List[PatientEntry]:
    entries = []
    for patient in instance.patients:
        p = patient.id
        a = evaluator.assignment(schedule, p)
        entries.append(PatientEntry(
            patient_id   = p,
            name         = patient.name,
            status       = schedule.tags[p].name,
            rooms        = [None if r is None else int(r) for r in schedule.rooms[p]],
            admission    = a.admission,
            discharge    = a.discharge,
            transfer_day = a.transfer_day,
            cost         = a.cost,
        ))
    return entries
