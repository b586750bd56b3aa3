"""
Pre-solve checks on a loaded instance.

Catching broken data here means the user sees plain-English error messages
instead of a constructor that burns its whole attempt budget. Errors mean
the instance makes no sense; warnings flag patients or days that will
probably make construction fail.
"""

from __future__ import annotations

from typing import List, Tuple

from bed_scheduler.models import Instance


class PrecheckError(ValueError):
    """Raised by ensure_ok() when hard errors are present."""


def precheck(instance: Instance) -> Tuple[List[str], List[str]]:
    """Return (errors, warnings)."""
    errors:   List[str] = []
    warnings: List[str] = []

    if not instance.rooms:
        errors.append("Instance has no rooms.")

    for dep in instance.departments:
        if dep.min_age and dep.max_age and dep.min_age > dep.max_age:
            errors.append(
                f"Department '{dep.name}' age range {dep.min_age}..{dep.max_age} is empty."
            )

    for room in instance.rooms:
        if room.capacity < 1:
            errors.append(f"Room '{room.name}' has capacity {room.capacity}.")
        if not 0 <= room.department < len(instance.departments):
            errors.append(f"Room '{room.name}' references unknown department {room.department}.")

    for p in instance.patients:
        if not 0 <= p.specialism < instance.num_specialisms:
            errors.append(f"Patient '{p.name}' requires unknown specialism {p.specialism}.")
        if p.discharge < p.admission:
            errors.append(
                f"Patient '{p.name}' is discharged (day {p.discharge}) "
                f"before admission (day {p.admission})."
            )
        if p.admission > p.max_admission:
            errors.append(
                f"Patient '{p.name}' admission day {p.admission} is after "
                f"max admission day {p.max_admission}."
            )
        if p.registration > p.admission:
            warnings.append(
                f"Patient '{p.name}' registers (day {p.registration}) after admission "
                f"(day {p.admission})."
            )
        if p.admission >= instance.num_days:
            warnings.append(
                f"Patient '{p.name}' is admitted after the horizon and will not be scheduled."
            )
        elif p.discharge > instance.num_days:
            warnings.append(
                f"Patient '{p.name}' stays past the horizon; stay clipped to day {instance.num_days}."
            )

    # beds needed per day against beds in the hospital
    beds = instance.num_beds
    for day in range(instance.num_days):
        staying = sum(
            1 for p in instance.patients
            if p.admission <= day < instance.valid_discharge(p.id)
        )
        if staying > beds:
            warnings.append(
                f"Day {day}: {staying} patient(s) in hospital but only {beds} bed(s)."
            )

    return errors, warnings


def ensure_ok(instance: Instance) -> None:
    errors, _ = precheck(instance)
    if errors:
        raise PrecheckError("\n".join(errors))
