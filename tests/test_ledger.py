"""Tests for the bed-day ledger."""
import pytest

from bed_scheduler.models import RoomId
from bed_scheduler.solver.ledger import BedLedger, CapacityViolation

R0, R1 = RoomId(0), RoomId(1)


def _ledger() -> BedLedger:
    return BedLedger([2, 1], num_days=3)


def test_starts_full() -> None:
    led = _ledger()
    assert led.rows() == [[2, 2, 2], [1, 1, 1]]
    assert led.capacity(R0) == 2
    assert led.occupancy(R0, 0) == 0


def test_occupy_and_release() -> None:
    led = _ledger()
    led.occupy(R0, range(0, 2))
    assert led.rows()[0] == [1, 1, 2]
    assert led.occupancy(R0, 1) == 1
    led.release(R0, range(0, 2))
    assert led.rows()[0] == [2, 2, 2]


def test_has_bed_checks_every_day() -> None:
    led = _ledger()
    led.occupy(R1, [1])
    assert led.has_bed(R1, [0])
    assert not led.has_bed(R1, range(0, 3))


def test_overbooking_raises() -> None:
    led = _ledger()
    led.take(R1, 0)
    with pytest.raises(CapacityViolation):
        led.take(R1, 0)
    # the failed take must not have changed the cell
    assert led.free(R1, 0) == 0


def test_release_above_capacity_raises() -> None:
    led = _ledger()
    with pytest.raises(CapacityViolation):
        led.give(R0, 2)


def test_copy_is_independent() -> None:
    led = _ledger()
    other = led.copy()
    other.occupy(R0, [0])
    assert led.free(R0, 0) == 2
    assert other.free(R0, 0) == 1


def test_check_passes_on_valid_ledger() -> None:
    led = _ledger()
    led.occupy(R0, [0, 1, 2])
    led.check()
