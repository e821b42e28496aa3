"""Tests for availability resolution and the free-slot sweep."""

import datetime as dt

import pytest

from src.errors import NotFoundError
from src.scheduling.availability import AvailabilityResolver
from tests.conftest import (
    BRAKE_CHECK,
    DIAGNOSTIC,
    MECHANIC_INACTIVE,
    MECHANIC_M,
    MECHANIC_P,
    OIL_CHANGE,
    TUESDAY,
    WEDNESDAY,
    book,
    make_slot,
)


@pytest.fixture
def resolver(store):
    return AvailabilityResolver(store, default_duration_minutes=60, slot_step_minutes=30)


class TestIsAvailable:
    def test_inside_slot_without_bookings(self, resolver):
        assert resolver.is_available(MECHANIC_M, TUESDAY, dt.time(10), dt.time(10, 45))

    def test_exactly_the_slot(self, resolver):
        assert resolver.is_available(MECHANIC_M, TUESDAY, dt.time(8), dt.time(17))

    def test_no_slot_on_that_weekday(self, resolver):
        assert not resolver.is_available(MECHANIC_M, WEDNESDAY, dt.time(10), dt.time(11))

    def test_interval_spilling_past_slot_end(self, resolver):
        assert not resolver.is_available(MECHANIC_M, TUESDAY, dt.time(16, 30), dt.time(17, 15))

    def test_interval_starting_before_slot(self, resolver):
        assert not resolver.is_available(MECHANIC_P, TUESDAY, dt.time(8, 30), dt.time(9, 30))

    def test_unknown_mechanic_has_no_slots(self, resolver):
        assert not resolver.is_available(99, TUESDAY, dt.time(10), dt.time(11))

    def test_slots_are_not_unioned(self, store, resolver):
        store.replace_mechanic_availability(
            MECHANIC_P,
            [
                make_slot(MECHANIC_P, 2, dt.time(9), dt.time(12)),
                make_slot(MECHANIC_P, 2, dt.time(12), dt.time(15)),
            ],
        )
        assert not resolver.is_available(MECHANIC_P, TUESDAY, dt.time(11, 30), dt.time(12, 30))
        assert resolver.is_available(MECHANIC_P, TUESDAY, dt.time(12), dt.time(12, 30))

    def test_conflict_with_active_booking(self, scheduler, customer, staff, resolver):
        booking = book(scheduler, customer, dt.time(10))
        scheduler.assign_mechanic(booking.id, MECHANIC_M, staff)
        assert not resolver.is_available(MECHANIC_M, TUESDAY, dt.time(10, 30), dt.time(11))
        assert resolver.is_available(MECHANIC_M, TUESDAY, dt.time(10, 45), dt.time(11, 15))
        assert resolver.is_available(MECHANIC_M, TUESDAY, dt.time(9, 30), dt.time(10))

    def test_excluding_the_booking_itself(self, scheduler, customer, staff, resolver):
        booking = book(scheduler, customer, dt.time(10))
        scheduler.assign_mechanic(booking.id, MECHANIC_M, staff)
        assert resolver.is_available(
            MECHANIC_M, TUESDAY, dt.time(10), dt.time(10, 45), exclude_booking_id=booking.id
        )

    def test_cancelled_bookings_do_not_block(self, scheduler, customer, staff, resolver):
        booking = book(scheduler, customer, dt.time(10))
        scheduler.assign_mechanic(booking.id, MECHANIC_M, staff)
        scheduler.cancel_booking(booking.id, customer)
        assert resolver.is_available(MECHANIC_M, TUESDAY, dt.time(10), dt.time(10, 45))

    def test_no_slot_wins_over_no_conflict(self, store, resolver):
        store.replace_mechanic_availability(MECHANIC_M, [])
        assert not resolver.is_available(MECHANIC_M, TUESDAY, dt.time(10), dt.time(10, 45))


class TestMidnight:
    def test_window_crossing_midnight_is_unavailable(self, store, resolver):
        store.replace_mechanic_availability(
            MECHANIC_M, [make_slot(MECHANIC_M, 2, dt.time(20), dt.time(23, 59))]
        )
        assert resolver.covering_slot(MECHANIC_M, TUESDAY, 23 * 60 + 30, 24 * 60 + 15) is None

    def test_late_booking_window_extends_past_day(self, scheduler, customer, resolver):
        booking = book(scheduler, customer, dt.time(23, 30))
        assert resolver.booking_window(booking) == (23 * 60 + 30, 24 * 60 + 15)


class TestDurations:
    def test_service_estimated_time(self, store, resolver):
        assert resolver.service_duration(store.get_service(OIL_CHANGE)) == 45

    def test_default_when_missing(self, store, resolver):
        assert resolver.service_duration(store.get_service(DIAGNOSTIC)) == 60

    def test_default_when_service_unknown(self, resolver):
        assert resolver.service_duration(None) == 60


class TestFreeSlots:
    def test_sweeps_in_steps_until_slot_end(self, resolver):
        slots = resolver.free_slots(TUESDAY, BRAKE_CHECK, MECHANIC_P)
        starts = [s.start_time for s in slots]
        assert starts == [dt.time(9), dt.time(9, 30), dt.time(10), dt.time(10, 30), dt.time(11), dt.time(11, 30)]
        assert slots[-1].end_time == dt.time(12)

    def test_window_must_fit_before_slot_end(self, resolver):
        slots = resolver.free_slots(TUESDAY, OIL_CHANGE, MECHANIC_P)
        assert slots[-1].start_time == dt.time(11)
        assert slots[-1].end_time == dt.time(11, 45)

    def test_all_active_mechanics_ordered_by_start_then_mechanic(self, resolver):
        slots = resolver.free_slots(TUESDAY, BRAKE_CHECK)
        mechanics = {s.mechanic_id for s in slots}
        assert mechanics == {MECHANIC_M, MECHANIC_P}
        keys = [(s.start_time, s.mechanic_id) for s in slots]
        assert keys == sorted(keys)
        assert [s for s in slots if s.start_time == dt.time(9)][0].mechanic_id == MECHANIC_M

    def test_busy_windows_are_skipped(self, scheduler, customer, staff, resolver):
        booking = book(scheduler, customer, dt.time(10), service_id=BRAKE_CHECK)
        scheduler.assign_mechanic(booking.id, MECHANIC_P, staff)
        starts = [s.start_time for s in resolver.free_slots(TUESDAY, BRAKE_CHECK, MECHANIC_P)]
        assert dt.time(10) not in starts
        assert dt.time(9, 30) in starts
        assert dt.time(10, 30) in starts

    def test_redundant_slots_yield_each_window_once(self, store, resolver):
        store.replace_mechanic_availability(
            MECHANIC_P,
            [
                make_slot(MECHANIC_P, 2, dt.time(9), dt.time(12)),
                make_slot(MECHANIC_P, 2, dt.time(9), dt.time(11)),
            ],
        )
        starts = [s.start_time for s in resolver.free_slots(TUESDAY, BRAKE_CHECK, MECHANIC_P)]
        assert len(starts) == len(set(starts)) == 6

    def test_inactive_mechanic_yields_nothing(self, resolver):
        assert resolver.free_slots(TUESDAY, BRAKE_CHECK, MECHANIC_INACTIVE) == []

    def test_no_slots_on_other_days(self, resolver):
        assert resolver.free_slots(WEDNESDAY, BRAKE_CHECK) == []

    def test_unknown_service(self, resolver):
        with pytest.raises(NotFoundError) as exc:
            resolver.free_slots(TUESDAY, 99)
        assert exc.value.field == "service_id"

    def test_unknown_mechanic(self, resolver):
        with pytest.raises(NotFoundError):
            resolver.free_slots(TUESDAY, BRAKE_CHECK, 99)

    def test_every_free_slot_is_available(self, resolver):
        for slot in resolver.free_slots(TUESDAY, OIL_CHANGE):
            assert resolver.is_available(slot.mechanic_id, TUESDAY, slot.start_time, slot.end_time)
