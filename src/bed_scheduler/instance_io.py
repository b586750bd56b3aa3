"""
Reading PASU instance files and writing solved schedules.

Instance layout (line oriented, blank lines ignored):

    <title line>
    Departments: 2
    Rooms: 3
    Features: 2
    Patients: 4
    Specialisms: 2
    Horizon: 7
    DEPARTMENTS (name [>= age] [<= age] (complete) [(partial)]):
    Dep_0 >= 18 (0,1) (2)
    Dep_1 - (1) -
    ROOMS (name capacity department policy [(features)]):
    Room_0 2 0 SG (0,1)
    PATIENTS (name age gender (reg, adm, dis, var) max spec pref [(features)]):
    Pat_0 45 Fe ( 0, 1, 4, 2 ) <= 3 : 1 <= 2 (0 n, 1 p)
    Pat_1 30 Ma ( 1, 1, 3, 0 ) * : 0 * -
    END.

Ids are 0-based positions within each block. A `*` max admission day means
"latest day that still fits the whole stay" (never earlier than the
requested admission); a `*` preferred capacity means no preference.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from bed_scheduler.models import (Department, DepartmentId, DoctoringLevel,
    FeatureId, Gender, GenderPolicy, Instance, Patient, PatientId, Request,
    Room, RoomId, SpecialismId)
from bed_scheduler.solver.result import SolveResult


class InputFormatError(ValueError):
    """Raised when an instance file is malformed."""


_HEADER_FIELDS = {
    "departments": "departments",
    "rooms":       "rooms",
    "features":    "features",
    "patients":    "patients",
    "specialisms": "specialisms",
    "horizon":     "days",
    "days":        "days",
}

_HEADER_RE = re.compile(r"^\s*([A-Za-z_ ]+?)\s*:?\s*(-?\d+)\s*$")
_TOKEN_RE  = re.compile(r"<=|>=|[(),:*]|[^\s(),:*]+")

_POLICY_CODES = {
    "Fe": GenderPolicy.FEMALE_ONLY,
    "Ma": GenderPolicy.MALE_ONLY,
    "SG": GenderPolicy.SAME_GENDER,
}


class _Line:
    """Token cursor over one data line."""

    def __init__(self, text: str, lineno: int) -> None:
        self.text   = text
        self.lineno = lineno
        self.tokens = _TOKEN_RE.findall(text)
        self.pos    = 0

    def error(self, msg: str) -> InputFormatError:
        return InputFormatError(f"line {self.lineno}: {msg}: {self.text.strip()!r}")

    def peek(self) -> Optional[str]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def take(self, what: str = "token") -> str:
        tok = self.peek()
        if tok is None:
            raise self.error(f"expected {what}, found end of line")
        self.pos += 1
        return tok

    def expect(self, literal: str) -> None:
        tok = self.take(repr(literal))
        if tok != literal:
            raise self.error(f"expected {literal!r}, found {tok!r}")

    def accept(self, literal: str) -> bool:
        if self.peek() == literal:
            self.pos += 1
            return True
        return False

    def integer(self, what: str) -> int:
        tok = self.take(what)
        try:
            return int(tok)
        except ValueError:
            raise self.error(f"expected integer {what}, found {tok!r}") from None

    def int_list(self, what: str) -> List[int]:
        """Parse `( a, b, ... )`; the opening parenthesis is already consumed."""
        values: List[int] = []
        if self.accept(")"):
            return values
        while True:
            values.append(self.integer(what))
            tok = self.take("',' or ')'")
            if tok == ")":
                return values
            if tok != ",":
                raise self.error(f"unmatched parenthesis, found {tok!r}")

    def bound(self, what: str) -> Optional[int]:
        """`*` (no bound) or `[<=] n`."""
        if self.accept("*"):
            return None
        self.accept("<=")
        return self.integer(what)

    def done(self) -> None:
        if self.peek() is not None:
            raise self.error(f"unexpected trailing token {self.peek()!r}")


def _data_lines(text: str) -> List[Tuple[int, str]]:
    return [
        (i, line.rstrip())
        for i, line in enumerate(text.replace("\r", "").splitlines(), 1)
        if line.strip()
    ]


def _check_range(line: _Line, value: int, limit: int, what: str) -> None:
    if not 0 <= value < limit:
        raise line.error(f"{what} {value} out of range 0..{limit - 1}")


def parse_instance(text: str, name: str = "") -> Instance:
    """Parse instance text into an Instance."""
    lines = _data_lines(text)
    if not lines:
        raise InputFormatError("empty instance")
    title = lines[0][1].strip()
    idx   = 1

    # ── header ───────────────────────────────────────────────────────────────
    header: Dict[str, int] = {}
    while idx < len(lines):
        m = _HEADER_RE.match(lines[idx][1])
        if not m:
            break
        key = _HEADER_FIELDS.get(m.group(1).strip().lower())
        if key is None:
            raise InputFormatError(
                f"line {lines[idx][0]}: unknown header field {m.group(1)!r}"
            )
        header[key] = int(m.group(2))
        idx += 1
    missing = {"departments", "rooms", "features", "patients", "specialisms", "days"} - set(header)
    if missing:
        raise InputFormatError(f"Missing header field(s): {sorted(missing)}")
    if min(header.values()) < 0 or header["days"] < 1:
        raise InputFormatError("Header counts must be non-negative and horizon positive")

    num_days        = header["days"]
    num_features    = header["features"]
    num_specialisms = header["specialisms"]

    def section(label: str, count: int) -> List[_Line]:
        nonlocal idx
        if idx >= len(lines) or not lines[idx][1].strip().upper().startswith(label):
            where = f"line {lines[idx][0]}" if idx < len(lines) else "end of file"
            raise InputFormatError(f"{where}: expected section '{label}'")
        idx += 1
        block = lines[idx: idx + count]
        if len(block) < count:
            raise InputFormatError(f"Section {label}: expected {count} line(s), found {len(block)}")
        idx += count
        return [_Line(t, n) for n, t in block]

    # ── departments ──────────────────────────────────────────────────────────
    departments: List[Department] = []
    for d, line in enumerate(section("DEPARTMENTS", header["departments"])):
        dname = line.take("department name")
        min_age = max_age = 0
        while line.peek() in (">=", "<=", "-"):
            tok = line.take()
            if tok == ">=":
                min_age = line.integer("minimum age")
            elif tok == "<=":
                max_age = line.integer("maximum age")
        levels: Dict[SpecialismId, DoctoringLevel] = {}
        line.expect("(")
        for sp in line.int_list("specialism id"):
            _check_range(line, sp, num_specialisms, "specialism")
            levels[SpecialismId(sp)] = DoctoringLevel.COMPLETE
        if line.accept("("):
            for sp in line.int_list("specialism id"):
                _check_range(line, sp, num_specialisms, "specialism")
                levels[SpecialismId(sp)] = DoctoringLevel.PARTIAL
        else:
            line.accept("-")
        line.done()
        departments.append(Department(
            id=DepartmentId(d), name=dname, min_age=min_age, max_age=max_age,
            specialisms=levels,
        ))

    # ── rooms ────────────────────────────────────────────────────────────────
    rooms: List[Room] = []
    for r, line in enumerate(section("ROOMS", header["rooms"])):
        rname    = line.take("room name")
        capacity = line.integer("capacity")
        dep      = line.integer("department id")
        _check_range(line, dep, header["departments"], "department")
        policy   = _POLICY_CODES.get(line.take("gender policy"), GenderPolicy.TOGETHER)
        features: List[int] = []
        if line.accept("("):
            features = line.int_list("feature id")
        else:
            line.accept("-")
        for f in features:
            _check_range(line, f, num_features, "feature")
        line.done()
        if capacity < 1:
            raise line.error("room capacity must be >= 1")
        rooms.append(Room(
            id=RoomId(r), name=rname, capacity=capacity,
            department=DepartmentId(dep), policy=policy,
            features=frozenset(FeatureId(f) for f in features),
        ))
    max_capacity = max((room.capacity for room in rooms), default=0)

    # ── patients ─────────────────────────────────────────────────────────────
    patients: List[Patient] = []
    for p, line in enumerate(section("PATIENTS", header["patients"])):
        pname  = line.take("patient name")
        age    = line.integer("age")
        gender = Gender.FEMALE if line.take("gender") == "Fe" else Gender.MALE
        line.expect("(")
        registration = line.integer("registration day")
        line.expect(",")
        admission    = line.integer("admission day")
        line.expect(",")
        discharge    = line.integer("discharge day")
        line.expect(",")
        variability  = line.integer("variability")
        line.expect(")")
        max_adm = line.bound("max admission day")
        if max_adm is None:
            # latest admission that keeps the stay inside the horizon
            max_adm = max(admission, num_days - (discharge - admission))
        line.accept(":")
        spec = line.integer("specialism id")
        _check_range(line, spec, num_specialisms, "specialism")
        preferred = line.bound("preferred capacity")
        requests: Dict[FeatureId, Request] = {}
        if line.accept("("):
            if not line.accept(")"):
                while True:
                    f = line.integer("feature id")
                    _check_range(line, f, num_features, "feature")
                    level = line.take("request level")
                    requests[FeatureId(f)] = Request.NEEDED if level == "n" else Request.PREFERRED
                    tok = line.take("',' or ')'")
                    if tok == ")":
                        break
                    if tok != ",":
                        raise line.error(f"unmatched parenthesis, found {tok!r}")
        else:
            line.accept("-")
        line.done()
        patients.append(Patient(
            id=PatientId(p), name=pname, age=age, gender=gender,
            registration=registration, admission=admission, discharge=discharge,
            variability=variability, max_admission=max_adm,
            specialism=SpecialismId(spec),
            preferred_capacity=max_capacity if preferred is None else preferred,
            requests=requests,
        ))

    instance = Instance(
        name            = name or title,
        num_days        = num_days,
        num_features    = num_features,
        num_specialisms = num_specialisms,
        departments     = departments,
        rooms           = rooms,
        patients        = patients,
    )
    try:
        instance.validate()
    except ValueError as e:
        raise InputFormatError(str(e)) from e
    return instance


def load_instance(path: str | Path) -> Instance:
    """Read and parse an instance file."""
    p = Path(path)
    return parse_instance(p.read_text(encoding="utf-8"), name=p.stem)


def format_result(result: SolveResult) -> str:
    """One line per patient (status tag + room per day), then the total."""
    out = []
    for entry in result.entries:
        days = " ".join("-" if r is None else str(r) for r in entry.rooms)
        out.append(f"{entry.name} [{entry.status}]  {days}")
    total = result.objective_value if result.objective_value is not None else "-"
    out.append(f"Total Cost = {total}")
    return "\n".join(out) + "\n"


def write_result(result: SolveResult, path: str | Path) -> None:
    """Write the formatted schedule, creating parent directories if needed."""
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(format_result(result), encoding="utf-8")
