"""Tests for tag-based cache invalidation."""

from app.cache import (
    Cache,
    availability_tag,
    bookings_tag,
    build_availability_key,
    build_slots_key,
    slots_tag,
)
from app.domain.scheduling.schemas import BookingCreate, BookingUpdate, WorkingHoursWindowSchema
from app.domain.scheduling.service import AvailabilityService, BookingService

from conftest import MONDAY, iso, week_payload


class TestCacheTags:
    def test_set_records_key_under_tags(self, fake_redis):
        cache = Cache(client=fake_redis)
        cache.set("slots:1:2030-07-01:30", [1, 2], ttl=60, tags=["slots:1", "slots:1:2030-07-01"])

        assert cache.get("slots:1:2030-07-01:30") == [1, 2]
        assert fake_redis.smembers("tag:slots:1") == {"slots:1:2030-07-01:30"}

    def test_invalidate_removes_tagged_keys_only(self, fake_redis):
        cache = Cache(client=fake_redis)
        cache.set("a", 1, tags=["t1"])
        cache.set("b", 2, tags=["t2"])

        assert cache.invalidate_tags(["t1"]) == 1
        assert cache.get("a") is None
        assert cache.get("b") == 2

    def test_get_or_set_loads_once(self, fake_redis):
        cache = Cache(client=fake_redis)
        calls = []

        def loader():
            calls.append(1)
            return {"value": 42}

        assert cache.get_or_set("k", loader) == {"value": 42}
        assert cache.get_or_set("k", loader) == {"value": 42}
        assert len(calls) == 1

    def test_unavailable_redis_fails_open(self):
        cache = Cache()
        assert cache.get("anything") is None
        assert cache.set("anything", 1) is False
        assert cache.invalidate_tags(["x"]) == 0
        assert cache.get_or_set("anything", lambda: 7) == 7


class TestDeclaredInvalidations:
    def test_saving_week_drops_availability_and_slots(self, db, host, manager, fake_redis):
        cache = Cache(client=fake_redis)
        service = AvailabilityService(db, cache_backend=cache)

        service.get_week(host.id, manager)
        service.get_slots(host.id, MONDAY.isoformat(), 30)
        assert cache.get(build_availability_key(host.id)) is not None
        assert cache.get(build_slots_key(host.id, MONDAY.isoformat(), 30)) is not None

        service.save_week(host.id, [WorkingHoursWindowSchema(**d) for d in week_payload(active=(2,))], manager)

        assert cache.get(build_availability_key(host.id)) is None
        assert cache.get(build_slots_key(host.id, MONDAY.isoformat(), 30)) is None

    def test_slots_reflect_saved_week(self, db, host, manager, fake_redis):
        service = AvailabilityService(db, cache_backend=Cache(client=fake_redis))
        assert len(service.get_slots(host.id, MONDAY.isoformat(), 30)["slots"]) == 16

        service.save_week(host.id, [WorkingHoursWindowSchema(**d) for d in week_payload(active=(2,))], manager)
        assert service.get_slots(host.id, MONDAY.isoformat(), 30)["slots"] == []

    def test_booking_create_drops_that_days_slots(self, db, host, manager, client_record, fake_redis):
        cache = Cache(client=fake_redis)
        availability = AvailabilityService(db, cache_backend=cache)
        bookings = BookingService(db, cache_backend=cache)

        other_day = MONDAY.replace(day=2)
        availability.get_slots(host.id, MONDAY.isoformat(), 30)
        availability.get_slots(host.id, other_day.isoformat(), 30)
        cache.set(build_availability_key(host.id), ["week"], tags=[availability_tag(host.id)])

        bookings.create_booking(
            BookingCreate(
                title="Walkthrough",
                clientId=client_record.id,
                hostId=host.id,
                startTime=iso(MONDAY, "10:00"),
                endTime=iso(MONDAY, "11:00"),
            ),
            manager,
        )

        assert cache.get(build_slots_key(host.id, MONDAY.isoformat(), 30)) is None
        assert cache.get(build_slots_key(host.id, other_day.isoformat(), 30)) is not None
        # Working hours are unaffected by bookings
        assert cache.get(build_availability_key(host.id)) == ["week"]
        assert len(availability.get_slots(host.id, MONDAY.isoformat(), 30)["slots"]) == 14

    def test_reschedule_drops_old_and_new_day(self, db, host, manager, client_record, fake_redis):
        cache = Cache(client=fake_redis)
        availability = AvailabilityService(db, cache_backend=cache)
        bookings = BookingService(db, cache_backend=cache)
        tuesday = MONDAY.replace(day=2)

        created = bookings.create_booking(
            BookingCreate(
                title="Walkthrough",
                clientId=client_record.id,
                hostId=host.id,
                startTime=iso(MONDAY, "10:00"),
                endTime=iso(MONDAY, "11:00"),
            ),
            manager,
        ).booking
        availability.get_slots(host.id, MONDAY.isoformat(), 30)
        availability.get_slots(host.id, tuesday.isoformat(), 30)

        bookings.update_booking(
            created.id,
            BookingUpdate(startTime=iso(tuesday, "10:00"), endTime=iso(tuesday, "11:00")),
            manager,
        )

        assert cache.get(build_slots_key(host.id, MONDAY.isoformat(), 30)) is None
        assert cache.get(build_slots_key(host.id, tuesday.isoformat(), 30)) is None

    def test_tag_names(self):
        assert availability_tag(3) == "availability:3"
        assert slots_tag(3) == "slots:3"
        assert slots_tag(3, "2030-07-01") == "slots:3:2030-07-01"
        assert bookings_tag(3) == "bookings:3"
