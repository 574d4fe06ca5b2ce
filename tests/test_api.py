"""Tests for the HTTP endpoints."""

from unittest.mock import AsyncMock, patch

from app.models import ActivityLog, Booking
from app.services import google_calendar_service as gcal

from conftest import MONDAY, SUNDAY, at, booking_body, make_booking, week_payload


class TestHealth:
    def test_health(self, api):
        assert api.get("/health").json() == {"status": "healthy"}

    def test_redis_disabled(self, api):
        assert api.get("/health/redis").json()["status"] == "disabled"


class TestAvailabilityEndpoints:
    def test_default_week(self, api, host):
        response = api.get("/availability", params={"hostId": host.id})
        assert response.status_code == 200
        week = response.json()
        assert len(week) == 7
        assert week[0] == {"dayOfWeek": 0, "startTime": "09:00", "endTime": "17:00", "isActive": False}
        assert week[1]["isActive"] is True

    def test_save_and_read_back(self, api, host):
        response = api.post("/availability", json={"userId": host.id, "slots": week_payload(active=(0, 6))})
        assert response.status_code == 200
        week = api.get("/availability", params={"userId": host.id}).json()
        assert [d["isActive"] for d in week] == [True, False, False, False, False, False, True]

    def test_incomplete_week_is_400(self, api, host):
        response = api.post("/availability", json={"userId": host.id, "slots": week_payload()[:5]})
        assert response.status_code == 400
        assert response.json()["field"] == "slots"

    def test_inverted_active_day_is_400(self, api, host):
        slots = week_payload()
        slots[2] = {"dayOfWeek": 2, "startTime": "18:00", "endTime": "08:00", "isActive": True}
        response = api.post("/availability", json={"userId": host.id, "slots": slots})
        assert response.status_code == 400
        assert response.json()["field"] == "slots[2].endTime"

    def test_team_member_cannot_read_other_host(self, api, login, host, manager):
        login(host)
        assert api.get("/availability", params={"hostId": manager.id}).status_code == 403
        assert api.get("/availability").status_code == 200

    def test_unknown_host_is_404(self, api):
        assert api.get("/availability", params={"hostId": 999}).status_code == 404


class TestSlotEndpoint:
    def test_full_day(self, api, host):
        response = api.get("/bookings/slots", params={"hostId": host.id, "date": MONDAY.isoformat()})
        body = response.json()
        assert response.status_code == 200
        assert body["date"] == "2030-07-01"
        assert body["duration"] == 30
        assert body["hostId"] == host.id
        assert len(body["slots"]) == 16
        assert body["slots"][0]["start"].startswith("2030-07-01T09:00:00")

    def test_iso_date_accepted(self, api, host):
        response = api.get(
            "/bookings/slots", params={"hostId": host.id, "date": "2030-07-01T15:00:00Z", "duration": 60}
        )
        assert response.json()["date"] == "2030-07-01"
        assert len(response.json()["slots"]) == 8

    def test_inactive_day_empty(self, api, host):
        response = api.get("/bookings/slots", params={"hostId": host.id, "date": SUNDAY.isoformat()})
        assert response.json()["slots"] == []

    def test_bad_duration_is_400(self, api, host):
        for duration in (0, 481):
            response = api.get(
                "/bookings/slots", params={"hostId": host.id, "date": MONDAY.isoformat(), "duration": duration}
            )
            assert response.status_code == 400
            assert response.json()["field"] == "duration"

    def test_bad_date_is_400(self, api, host):
        response = api.get("/bookings/slots", params={"hostId": host.id, "date": "next tuesday"})
        assert response.status_code == 400
        assert response.json()["field"] == "date"


class TestAvailabilityCheck:
    def test_reports_conflicts(self, api, db, host, client_record):
        existing = make_booking(db, host, client_record, at(MONDAY, "10:00"), at(MONDAY, "11:00"))
        response = api.post(
            "/bookings/availability",
            json={"hostId": host.id, "startTime": "2030-07-01T10:30:00Z", "endTime": "2030-07-01T11:30:00Z"},
        )
        body = response.json()
        assert body["available"] is False
        assert body["conflicts"][0]["id"] == existing.id

    def test_back_to_back_is_available(self, api, db, host, client_record):
        make_booking(db, host, client_record, at(MONDAY, "10:00"), at(MONDAY, "11:00"))
        response = api.post(
            "/bookings/availability",
            json={"hostId": host.id, "startTime": "2030-07-01T11:00:00Z", "endTime": "2030-07-01T12:00:00Z"},
        )
        assert response.json()["available"] is True


class TestBookingEndpoints:
    def test_create_returns_expanded_booking(self, api, host, client_record, service_record):
        response = api.post(
            "/bookings",
            json=booking_body(
                host,
                client_record,
                serviceId=service_record.id,
                attendees=[{"name": "Sam", "email": "Sam@Example.com"}],
                meetingUrl="https://meet.example.com/abc",
            ),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "CONFIRMED"
        assert body["duration"] == 60
        assert body["client"]["name"] == "Acme Offices"
        assert body["host"]["name"] == "Harper Host"
        assert body["service"]["name"] == "Deep clean"
        assert body["attendees"] == [{"name": "Sam", "email": "sam@example.com"}]
        assert body["startTime"].startswith("2030-07-01T10:00:00")
        assert body["warnings"] == []

    def test_conflict_is_409_with_details(self, api, host, client_record):
        first = api.post("/bookings", json=booking_body(host, client_record)).json()
        response = api.post("/bookings", json=booking_body(host, client_record, start="10:30", end="11:30"))
        assert response.status_code == 409
        assert response.json()["conflicts"][0]["id"] == first["id"]

    def test_invalid_meeting_url_is_422(self, api, host, client_record):
        response = api.post("/bookings", json=booking_body(host, client_record, meetingUrl="not a url"))
        assert response.status_code == 422

    def test_team_member_cannot_create(self, api, login, host, client_record):
        login(host)
        assert api.post("/bookings", json=booking_body(host, client_record)).status_code == 403

    def test_list_get_update_cancel(self, api, db, host, client_record):
        created = api.post("/bookings", json=booking_body(host, client_record)).json()
        booking_id = created["id"]

        listed = api.get("/bookings", params={"startDate": "2030-07-01", "endDate": "2030-07-01"}).json()
        assert [b["id"] for b in listed] == [booking_id]

        assert api.get(f"/bookings/{booking_id}").json()["title"] == "Site visit"

        moved = api.put(
            f"/bookings/{booking_id}",
            json={"startTime": "2030-07-01T14:00:00Z", "endTime": "2030-07-01T15:00:00Z"},
        )
        assert moved.status_code == 200
        assert moved.json()["status"] == "RESCHEDULED"

        cancelled = api.request("DELETE", f"/bookings/{booking_id}", json={"reason": "Client away"})
        assert cancelled.status_code == 200
        assert cancelled.json()["status"] == "CANCELLED"
        assert cancelled.json()["cancelReason"] == "Client away"

        again = api.delete(f"/bookings/{booking_id}")
        assert again.status_code == 409
        assert again.json()["currentStatus"] == "CANCELLED"

        actions = [
            a.action
            for a in db.query(ActivityLog).filter(ActivityLog.entity_type == "booking").order_by(ActivityLog.id)
        ]
        assert actions == ["created", "rescheduled", "cancelled"]

    def test_cancel_without_body_uses_default_reason(self, api, host, client_record):
        booking_id = api.post("/bookings", json=booking_body(host, client_record)).json()["id"]
        assert api.delete(f"/bookings/{booking_id}").json()["cancelReason"] == "Cancelled by user"

    def test_cancelled_booking_stays_listed(self, api, host, client_record):
        booking_id = api.post("/bookings", json=booking_body(host, client_record)).json()["id"]
        api.delete(f"/bookings/{booking_id}")
        listed = api.get("/bookings", params={"status": "CANCELLED"}).json()
        assert [b["id"] for b in listed] == [booking_id]

    def test_missing_booking_is_404(self, api):
        assert api.get("/bookings/31337").status_code == 404
        assert api.put("/bookings/31337", json={"title": "x"}).status_code == 404

    def test_reschedule_conflict_leaves_booking(self, api, db, host, client_record):
        first = api.post("/bookings", json=booking_body(host, client_record)).json()
        api.post("/bookings", json=booking_body(host, client_record, start="13:00", end="14:00"))

        response = api.put(
            f"/bookings/{first['id']}",
            json={"startTime": "2030-07-01T12:30:00Z", "endTime": "2030-07-01T13:30:00Z"},
        )
        assert response.status_code == 409

        db.expire_all()
        stored = db.get(Booking, first["id"])
        assert stored.start_time == at(MONDAY, "10:00")
        assert stored.status == "CONFIRMED"

    def test_client_role_cannot_list(self, api, db, login):
        from app.models import User, UserRole

        client_user = User(firebase_uid="uid-client", email="client@example.com", role=UserRole.CLIENT.value)
        db.add(client_user)
        db.commit()
        login(client_user)
        assert api.get("/bookings").status_code == 403


class TestCalendarEndpoints:
    def test_status_not_connected(self, api):
        assert api.get("/calendar/status").json() == {"connected": False}

    def test_connect_unconfigured_is_500(self, api):
        with patch.object(gcal_routes(), "GOOGLE_CLIENT_ID", None):
            assert api.get("/calendar/connect").status_code == 500

    def test_connect_returns_auth_url(self, api):
        with patch.object(gcal_routes(), "GOOGLE_CLIENT_ID", "client-id"), patch.object(
            gcal_routes(), "GOOGLE_CLIENT_SECRET", "secret"
        ), patch.object(gcal, "GOOGLE_CLIENT_ID", "client-id"):
            body = api.get("/calendar/connect").json()
        assert "client_id=client-id" in body["authUrl"]

    def test_callback_then_disconnect(self, api, manager):
        tokens = {
            "access_token": "at",
            "refresh_token": "rt",
            "expires_in": 3600,
            "email": "manager@gmail.example",
            "calendar_id": "primary",
        }
        with patch("app.routes.google_calendar.exchange_code", AsyncMock(return_value=tokens)):
            connected = api.post("/calendar/callback", json={"code": "auth-code"})
        assert connected.status_code == 200
        assert connected.json()["email"] == "manager@gmail.example"
        assert api.get("/calendar/status").json()["connected"] is True

        with patch("app.routes.google_calendar.revoke_tokens", AsyncMock()):
            assert api.post("/calendar/disconnect").json()["connected"] is False
        assert api.post("/calendar/disconnect").json()["connected"] is False
        assert api.get("/calendar/status").json() == {"connected": False}

    def test_booking_succeeds_when_sync_fails(self, api, db, host, client_record):
        from datetime import datetime, timedelta

        from app.models_google_calendar import CalendarConnection

        db.add(
            CalendarConnection(
                user_id=host.id,
                access_token=gcal.encrypt_token("at"),
                refresh_token=gcal.encrypt_token("rt"),
                expires_at=datetime.utcnow() + timedelta(hours=1),
                sync_enabled=True,
            )
        )
        db.commit()

        failing = AsyncMock(side_effect=gcal.CalendarSyncError("Google Calendar returned 503 on create"))
        with patch.object(gcal, "create_calendar_event", failing):
            response = api.post("/bookings", json=booking_body(host, client_record))

        assert response.status_code == 201
        stored = db.get(Booking, response.json()["id"])
        db.refresh(stored)
        assert stored.status == "CONFIRMED"
        assert stored.sync_status == "failed"


def gcal_routes():
    from app.routes import google_calendar

    return google_calendar
