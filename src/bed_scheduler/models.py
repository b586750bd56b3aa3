"""
Data model layer for the patient admission scheduler.

Every domain object is a plain Python dataclass. The @dataclass decorator
generates __init__, __repr__ and __eq__ automatically from field declarations.

Reference: Python Software Foundation. "dataclasses — Data Classes."
https://docs.python.org/3/library/dataclasses.html

Design note — typed ids over flat lists:
  Departments, rooms and patients live in plain lists on Instance and refer
  to each other by position. The positions are wrapped in typing.NewType
  (RoomId, DepartmentId, ...) so a type checker flags a patient id passed
  where a room id is expected. Lookups always go through the Instance
  accessors rather than raw indexing.
  Reference: https://docs.python.org/3/library/typing.html#newtype

Penalty weight defaults are the usual PASU benchmark weights.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, NewType, Optional

DepartmentId = NewType("DepartmentId", int)
RoomId       = NewType("RoomId", int)
PatientId    = NewType("PatientId", int)
FeatureId    = NewType("FeatureId", int)
SpecialismId = NewType("SpecialismId", int)


class Gender(Enum):
    MALE   = "Ma"
    FEMALE = "Fe"


class GenderPolicy(Enum):
    SAME_GENDER = "SG"
    MALE_ONLY   = "Ma"
    FEMALE_ONLY = "Fe"
    TOGETHER    = "All"


class Request(Enum):
    NEEDED    = "n"
    PREFERRED = "p"
    DONT_CARE = "-"


class DoctoringLevel(Enum):
    COMPLETE = "complete"
    PARTIAL  = "partial"
    NONE     = "none"


class Tag(Enum):
    """Patient status as of a given day."""
    UNREGISTERED = 0
    REGISTERED   = 1
    ADMITTED     = 2
    DISCHARGED   = 3


@dataclass(frozen=True)
class Department:
    id:   DepartmentId
    name: str
    # 0 = no bound on that side
    min_age: int = 0
    max_age: int = 0
    specialisms: Dict[SpecialismId, DoctoringLevel] = field(default_factory=dict)

    def level(self, specialism: SpecialismId) -> DoctoringLevel:
        return self.specialisms.get(specialism, DoctoringLevel.NONE)

    def admits_age(self, age: int) -> bool:
        if self.min_age and age < self.min_age:
            return False
        if self.max_age and age > self.max_age:
            return False
        return True


@dataclass(frozen=True)
class Room:
    id:         RoomId
    name:       str
    capacity:   int
    department: DepartmentId
    policy:     GenderPolicy       = GenderPolicy.TOGETHER
    features:   FrozenSet[FeatureId] = frozenset()


@dataclass(frozen=True)
class Patient:
    id:           PatientId
    name:         str
    age:          int
    gender:       Gender
    registration: int
    admission:    int
    discharge:    int          # first day no longer in hospital
    variability:  int
    max_admission: int
    specialism:   SpecialismId
    preferred_capacity: int
    requests: Dict[FeatureId, Request] = field(default_factory=dict)

    def request(self, feature: FeatureId) -> Request:
        return self.requests.get(feature, Request.DONT_CARE)


@dataclass
class Instance:
    name:            str
    num_days:        int
    num_features:    int                = 0
    num_specialisms: int                = 0
    departments:     List[Department]   = field(default_factory=list)
    rooms:           List[Room]         = field(default_factory=list)
    patients:        List[Patient]      = field(default_factory=list)

    def department(self, did: DepartmentId) -> Department:
        return self.departments[did]

    def room(self, rid: RoomId) -> Room:
        return self.rooms[rid]

    def patient(self, pid: PatientId) -> Patient:
        return self.patients[pid]

    def room_department(self, rid: RoomId) -> Department:
        return self.departments[self.rooms[rid].department]

    def room_ids(self) -> List[RoomId]:
        return [RoomId(i) for i in range(len(self.rooms))]

    def patient_ids(self) -> List[PatientId]:
        return [PatientId(i) for i in range(len(self.patients))]

    def valid_discharge(self, pid: PatientId) -> int:
        """Discharge day clipped to the planning horizon."""
        return min(self.patients[pid].discharge, self.num_days)

    def stay_length(self, pid: PatientId) -> int:
        return max(0, self.valid_discharge(pid) - self.patients[pid].admission)

    @property
    def max_capacity(self) -> int:
        return max((r.capacity for r in self.rooms), default=0)

    @property
    def num_beds(self) -> int:
        return sum(r.capacity for r in self.rooms)

    def validate(self) -> None:
        if self.num_days < 1:
            raise ValueError("num_days must be >= 1")
        for room in self.rooms:
            if room.capacity < 1:
                raise ValueError(f"Room '{room.name}' capacity must be >= 1")
        for dep in self.departments:
            if dep.min_age and dep.max_age and dep.min_age > dep.max_age:
                raise ValueError(
                    f"Department '{dep.name}' age range {dep.min_age}..{dep.max_age} is empty"
                )


@dataclass
class Weights:
    """Penalty coefficients. 0 = ignore that term."""
    preferred_property: int = 20
    preference:         int = 10
    specialism:         int = 20
    gender:             int = 50
    transfer:           int = 100
    delay:              int = 2
    overcrowd_risk:     int = 1


DEFAULT_MOVE_WEIGHTS: Dict[str, float] = {
    "change":         0.35,
    "swap":           0.20,
    "delay":          0.10,
    "partial_change": 0.20,
    "partial_swap":   0.15,
}


@dataclass
class SolverParams:
    seed:                Optional[int] = None
    max_attempts:        int           = 10_000
    max_iterations:      int           = 5_000
    max_time_in_seconds: float         = 10.0
    # None = derive from the number of patients (tenure_factor * sqrt(P))
    tabu_tenure:         Optional[int] = None
    tenure_factor:       float         = 1.0
    batch_size:          int           = 20
    move_weights:        Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_MOVE_WEIGHTS)
    )
    # occupancy ratio at which a room counts as at risk of overcrowding
    overcrowd_threshold: float         = 1.0
    max_idle_batches:    int           = 50
    construction_workers: int          = 1
    scoring_workers:     int           = 1
    log_every:           int           = 500
    # CP-SAT workers for the exact reference solver, 0 = auto
    num_workers:         int           = 0


@dataclass
class Config:
    meta:    Dict[str, Any] = field(default_factory=dict)
    weights: Weights        = field(default_factory=Weights)
    solver:  SolverParams   = field(default_factory=SolverParams)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> None:
        w = self.weights
        if min(w.preferred_property, w.preference, w.specialism, w.gender,
               w.transfer, w.delay, w.overcrowd_risk) < 0:
            raise ValueError("All penalty weights must be >= 0")
        s = self.solver
        if s.max_attempts < 1:
            raise ValueError("solver.max_attempts must be >= 1")
        if s.max_iterations < 0:
            raise ValueError("solver.max_iterations must be >= 0")
        if s.max_time_in_seconds < 0:
            raise ValueError("solver.max_time_in_seconds must be >= 0")
        if s.tabu_tenure is not None and s.tabu_tenure < 1:
            raise ValueError("solver.tabu_tenure must be >= 1")
        if s.batch_size < 1:
            raise ValueError("solver.batch_size must be >= 1")
        unknown = set(s.move_weights) - set(DEFAULT_MOVE_WEIGHTS)
        if unknown:
            raise ValueError(f"Unknown move type(s) in move_weights: {sorted(unknown)}")
        if any(v < 0 for v in s.move_weights.values()) or sum(s.move_weights.values()) <= 0:
            raise ValueError("move_weights must be >= 0 with a positive sum")
        if s.overcrowd_threshold <= 0:
            raise ValueError("solver.overcrowd_threshold must be > 0")
        if s.construction_workers < 1 or s.scoring_workers < 1:
            raise ValueError("worker counts must be >= 1")
