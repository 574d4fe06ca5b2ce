"""Tests for weekly working hours."""

import pytest

from app.domain.scheduling.exceptions import ValidationError
from app.domain.scheduling.time_utils import Weekday
from app.domain.scheduling.working_hours import WorkingHoursStore, WorkingHoursWindow, default_week
from app.models import BookingSlot

from conftest import MONDAY, SUNDAY


def week(host_id, active=(1, 2, 3, 4, 5), start="09:00", end="17:00"):
    return [WorkingHoursWindow(host_id, day, start, end, int(day) in active) for day in Weekday]


class TestWeekday:
    def test_sunday_is_zero(self):
        assert Weekday.of(SUNDAY) == Weekday.SUNDAY == 0

    def test_monday_is_one(self):
        assert Weekday.of(MONDAY) == Weekday.MONDAY == 1


class TestDefaultWeek:
    def test_default_shape(self, db, host):
        days = [w.to_dict() for w in WorkingHoursStore(db).get_week(host.id)]
        assert [d["dayOfWeek"] for d in days] == list(range(7))
        assert [d["isActive"] for d in days] == [False, True, True, True, True, True, False]
        assert all(d["startTime"] == "09:00" and d["endTime"] == "17:00" for d in days)

    def test_default_is_deterministic(self, db, host):
        store = WorkingHoursStore(db)
        first = store.get_week(host.id)
        assert store.get_week(host.id) == first
        assert first == default_week(host.id)

    def test_reading_does_not_persist(self, db, host):
        WorkingHoursStore(db).get_week(host.id)
        assert db.query(BookingSlot).filter(BookingSlot.user_id == host.id).count() == 0


class TestSetWeek:
    def test_replaces_whole_week(self, db, host):
        store = WorkingHoursStore(db)
        store.set_week(host.id, week(host.id, active=(0, 6), start="10:00", end="14:00"))
        saved = store.set_week(host.id, week(host.id, active=(2,), start="08:00", end="12:00"))

        assert [w.is_active for w in saved] == [False, False, True, False, False, False, False]
        assert saved[2].start_time == "08:00"
        assert db.query(BookingSlot).filter(BookingSlot.user_id == host.id).count() == 7

    def test_missing_day_rejected(self, db, host):
        with pytest.raises(ValidationError):
            WorkingHoursStore(db).set_week(host.id, week(host.id)[:6])

    def test_duplicate_day_rejected(self, db, host):
        windows = week(host.id)
        windows[6] = WorkingHoursWindow(host.id, Weekday.MONDAY, "09:00", "17:00", True)
        with pytest.raises(ValidationError):
            WorkingHoursStore(db).set_week(host.id, windows)

    def test_active_day_needs_start_before_end(self, db, host):
        windows = week(host.id)
        windows[1] = WorkingHoursWindow(host.id, Weekday.MONDAY, "17:00", "09:00", True)
        with pytest.raises(ValidationError) as exc_info:
            WorkingHoursStore(db).set_week(host.id, windows)
        assert exc_info.value.field == "slots[1].endTime"

    def test_inactive_day_may_have_any_order(self, db, host):
        windows = week(host.id)
        windows[0] = WorkingHoursWindow(host.id, Weekday.SUNDAY, "17:00", "09:00", False)
        assert len(WorkingHoursStore(db).set_week(host.id, windows)) == 7

    @pytest.mark.parametrize("bad", ["9am", "24:00", "12:60", ""])
    def test_malformed_time_rejected(self, db, host, bad):
        windows = week(host.id)
        windows[3] = WorkingHoursWindow(host.id, Weekday.WEDNESDAY, bad, "17:00", True)
        with pytest.raises(ValidationError):
            WorkingHoursStore(db).set_week(host.id, windows)

    def test_failed_save_keeps_previous_week(self, db, host):
        store = WorkingHoursStore(db)
        store.set_week(host.id, week(host.id, active=(1,)))
        with pytest.raises(ValidationError):
            store.set_week(host.id, week(host.id)[:3])
        assert [w.is_active for w in store.get_week(host.id)] == [False, True, False, False, False, False, False]
