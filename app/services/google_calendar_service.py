"""
Google Calendar Service
Mirrors bookings into the host's Google Calendar (create, update, delete)

Sync runs after the booking mutation has been committed, as a background task
with its own database session. Failures are logged and recorded on the booking
(sync_status / sync_error); they never undo the booking.
"""
import asyncio
import base64
import hashlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, Optional
from urllib.parse import urlencode

import httpx
from cryptography.fernet import Fernet
from sqlalchemy.orm import Session

from ..config import (
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_EVENT_TIMEZONE,
    GOOGLE_REDIRECT_URI,
    SECRET_KEY,
)
from ..database import SessionLocal
from ..models import Booking
from ..models_google_calendar import CalendarConnection
from ..shared.validators import GOOGLE_MEET

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_REVOKE_URL = "https://oauth2.googleapis.com/revoke"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar",
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/userinfo.email",
]

SYNC_SYNCED = "synced"
SYNC_FAILED = "failed"
SYNC_SKIPPED = "skipped"

ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"

HTTP_TIMEOUT = 15.0


class CalendarSyncError(Exception):
    """Raised when Google Calendar rejects or cannot be reached"""


def _cipher() -> Fernet:
    key = base64.urlsafe_b64encode(hashlib.sha256(SECRET_KEY.encode()).digest())
    return Fernet(key)


def encrypt_token(token: str) -> str:
    return _cipher().encrypt(token.encode()).decode()


def decrypt_token(token: str) -> str:
    return _cipher().decrypt(token.encode()).decode()


def get_connection(db: Session, user_id: int) -> Optional[CalendarConnection]:
    return db.query(CalendarConnection).filter(CalendarConnection.user_id == user_id).first()


def connection_status(connection: Optional[CalendarConnection]) -> dict:
    """Status payload consumed by the dashboard"""
    if not connection:
        return {"connected": False}

    return {
        "connected": True,
        "email": connection.email,
        "syncEnabled": bool(connection.sync_enabled),
        "provider": connection.provider,
        "connectedAt": connection.created_at.isoformat() + "Z" if connection.created_at else None,
        "isExpired": connection.expires_at < datetime.utcnow(),
    }


def build_auth_url(user_id: int) -> str:
    """Google OAuth consent URL; state carries the user id for linking"""
    params = {
        "client_id": GOOGLE_CLIENT_ID,
        "redirect_uri": GOOGLE_REDIRECT_URI,
        "response_type": "code",
        "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
        "access_type": "offline",
        "prompt": "consent",  # Force consent to ensure refresh token
        "state": str(user_id),
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_code(code: str) -> dict:
    """Exchange an authorization code for tokens, account email and primary calendar id"""
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        token_response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "redirect_uri": GOOGLE_REDIRECT_URI,
                "grant_type": "authorization_code",
            },
        )
        if token_response.status_code != 200:
            logger.error(f"Token exchange failed: {token_response.text}")
            raise CalendarSyncError("Failed to exchange authorization code")

        tokens = token_response.json()
        access_token = tokens.get("access_token")
        refresh_token = tokens.get("refresh_token")
        if not access_token or not refresh_token:
            raise CalendarSyncError("Invalid token response")

        headers = {"Authorization": f"Bearer {access_token}"}
        user_info_response = await client.get(GOOGLE_USERINFO_URL, headers=headers)
        if user_info_response.status_code != 200:
            logger.error(f"Failed to get user info: {user_info_response.text}")
            raise CalendarSyncError("Failed to get user info")

        calendar_id = "primary"
        calendar_response = await client.get(
            f"{GOOGLE_CALENDAR_API}/users/me/calendarList/primary", headers=headers
        )
        if calendar_response.status_code == 200:
            calendar_id = calendar_response.json().get("id", "primary")

    return {
        "access_token": access_token,
        "refresh_token": refresh_token,
        "expires_in": tokens.get("expires_in", 3600),
        "email": user_info_response.json().get("email"),
        "calendar_id": calendar_id,
    }


def save_connection(db: Session, user_id: int, tokens: dict) -> CalendarConnection:
    """Create or refresh the user's connection with encrypted tokens"""
    connection = get_connection(db, user_id)
    expires_at = datetime.utcnow() + timedelta(seconds=tokens["expires_in"])

    if connection is None:
        connection = CalendarConnection(user_id=user_id, provider="google", sync_enabled=True)
        db.add(connection)

    connection.access_token = encrypt_token(tokens["access_token"])
    connection.refresh_token = encrypt_token(tokens["refresh_token"])
    connection.expires_at = expires_at
    connection.email = tokens.get("email")
    connection.calendar_id = tokens.get("calendar_id") or "primary"
    db.commit()
    db.refresh(connection)
    return connection


async def revoke_tokens(connection: CalendarConnection) -> None:
    """Best-effort revocation; failures are only logged"""
    try:
        access_token = decrypt_token(connection.access_token)
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            await client.post(GOOGLE_REVOKE_URL, params={"token": access_token})
    except Exception as e:
        logger.warning(f"Failed to revoke Google tokens: {str(e)}")


async def get_valid_access_token(connection: CalendarConnection, db: Session) -> str:
    """
    Get a valid access token, refreshing if it expires within 5 minutes
    Raises CalendarSyncError if refresh fails
    """
    if connection.expires_at > datetime.utcnow() + timedelta(minutes=5):
        return decrypt_token(connection.access_token)

    logger.info("🔄 Google Calendar token expired, refreshing...")
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": GOOGLE_CLIENT_ID,
                "client_secret": GOOGLE_CLIENT_SECRET,
                "refresh_token": decrypt_token(connection.refresh_token),
                "grant_type": "refresh_token",
            },
        )

    if response.status_code != 200:
        logger.error(f"❌ Token refresh failed: {response.text}")
        raise CalendarSyncError("Failed to refresh access token")

    tokens = response.json()
    new_access_token = tokens.get("access_token")
    if not new_access_token:
        raise CalendarSyncError("No access token in refresh response")

    connection.access_token = encrypt_token(new_access_token)
    connection.expires_at = datetime.utcnow() + timedelta(seconds=tokens.get("expires_in", 3600))
    db.commit()
    logger.info("✅ Google Calendar token refreshed successfully")
    return new_access_token


def build_event_payload(booking: Booking) -> dict[str, Any]:
    """Google event body; internal notes are never included"""
    attendees = [
        {"email": a.get("email"), "displayName": a.get("name")}
        for a in (booking.attendees or [])
        if a.get("email")
    ]
    client = booking.client
    if client and client.email:
        attendees.append(
            {"email": client.email, "displayName": client.contact_name or client.business_name}
        )

    event: dict[str, Any] = {
        "summary": booking.title,
        "start": {"dateTime": booking.start_time.isoformat() + "Z", "timeZone": GOOGLE_EVENT_TIMEZONE},
        "end": {"dateTime": booking.end_time.isoformat() + "Z", "timeZone": GOOGLE_EVENT_TIMEZONE},
        "reminders": {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 24 * 60},
                {"method": "popup", "minutes": 60},
            ],
        },
    }
    if booking.description:
        event["description"] = booking.description
    if booking.location:
        event["location"] = booking.location
    if attendees:
        event["attendees"] = attendees
    if booking.meeting_url == GOOGLE_MEET:
        event["conferenceData"] = {
            "createRequest": {
                "requestId": f"booking-{booking.id}",
                "conferenceSolutionKey": {"type": "hangoutsMeet"},
            }
        }
    return event


def _events_url(connection: CalendarConnection, event_id: Optional[str] = None) -> str:
    calendar_id = connection.calendar_id or "primary"
    url = f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events"
    return f"{url}/{event_id}" if event_id else url


async def create_calendar_event(connection: CalendarConnection, booking: Booking, db: Session) -> dict:
    """Create the event and return Google's event resource"""
    access_token = await get_valid_access_token(connection, db)
    params = {"sendUpdates": "all"}
    if booking.meeting_url == GOOGLE_MEET:
        params["conferenceDataVersion"] = "1"

    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        response = await client.post(
            _events_url(connection),
            headers={"Authorization": f"Bearer {access_token}"},
            params=params,
            json=build_event_payload(booking),
        )

    if response.status_code not in [200, 201]:
        logger.error(f"❌ Failed to create calendar event: {response.text}")
        raise CalendarSyncError(f"Google Calendar returned {response.status_code} on create")

    event = response.json()
    logger.info(f"✅ Google Calendar event created: {event.get('id')}")
    return event


async def update_calendar_event(
    connection: CalendarConnection, booking: Booking, google_event_id: str, db: Session
) -> None:
    access_token = await get_valid_access_token(connection, db)
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        response = await client.put(
            _events_url(connection, google_event_id),
            headers={"Authorization": f"Bearer {access_token}"},
            params={"sendUpdates": "all"},
            json=build_event_payload(booking),
        )

    if response.status_code != 200:
        logger.error(f"❌ Failed to update calendar event: {response.text}")
        raise CalendarSyncError(f"Google Calendar returned {response.status_code} on update")
    logger.info(f"✅ Google Calendar event updated: {google_event_id}")


async def delete_calendar_event(connection: CalendarConnection, google_event_id: str, db: Session) -> None:
    access_token = await get_valid_access_token(connection, db)
    async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
        response = await client.delete(
            _events_url(connection, google_event_id),
            headers={"Authorization": f"Bearer {access_token}"},
            params={"sendUpdates": "all"},
        )

    # 410: already deleted on Google's side
    if response.status_code not in [200, 204, 410]:
        logger.error(f"❌ Failed to delete calendar event: {response.text}")
        raise CalendarSyncError(f"Google Calendar returned {response.status_code} on delete")
    logger.info(f"✅ Google Calendar event deleted: {google_event_id}")


def _record(db: Session, booking: Booking, status: str, error: Optional[str] = None) -> None:
    booking.sync_status = status
    booking.sync_error = error[:1000] if error else None
    db.commit()


_sync_locks: dict[int, asyncio.Lock] = {}
_sync_users: dict[int, int] = {}


@asynccontextmanager
async def booking_sync_lock(booking_id: int) -> AsyncIterator[None]:
    """One calendar push at a time per booking within this event loop"""
    lock = _sync_locks.setdefault(booking_id, asyncio.Lock())
    _sync_users[booking_id] = _sync_users.get(booking_id, 0) + 1
    try:
        async with lock:
            yield
    finally:
        _sync_users[booking_id] -= 1
        if not _sync_users[booking_id]:
            del _sync_users[booking_id]
            del _sync_locks[booking_id]


async def sync_booking_event(booking_id: int, action: str, google_event_id: Optional[str] = None) -> None:
    """
    Background task: push one booking mutation to Google Calendar.
    Opens its own session since the request session is closed by now.

    The event id stored on the booking is preferred over the one captured at
    request time; it is read after any earlier push for the booking finished.
    """
    async with booking_sync_lock(booking_id):
        db = SessionLocal()
        try:
            booking = db.query(Booking).filter(Booking.id == booking_id).first()
            if not booking:
                logger.warning(f"⚠️ Calendar sync skipped, booking {booking_id} no longer exists")
                return

            connection = get_connection(db, booking.host_id)
            if not connection or not connection.sync_enabled:
                logger.info("ℹ️ Google Calendar not connected or sync disabled")
                _record(db, booking, SYNC_SKIPPED)
                return

            event_id = booking.google_event_id or google_event_id
            try:
                if action == ACTION_DELETE:
                    if event_id:
                        await delete_calendar_event(connection, event_id, db)
                        booking.google_event_id = None
                elif event_id:
                    await update_calendar_event(connection, booking, event_id, db)
                else:
                    event = await create_calendar_event(connection, booking, db)
                    booking.google_event_id = event.get("id")
                    if event.get("hangoutLink"):
                        booking.meeting_url = event["hangoutLink"]
                _record(db, booking, SYNC_SYNCED)
            except CalendarSyncError as e:
                logger.warning(f"⚠️ Calendar sync failed for booking {booking_id}: {e}")
                _record(db, booking, SYNC_FAILED, str(e))
            except httpx.HTTPError as e:
                logger.warning(f"⚠️ Calendar unreachable for booking {booking_id}: {e}")
                _record(db, booking, SYNC_FAILED, f"Google Calendar unreachable: {e}")
        except Exception as e:
            db.rollback()
            logger.error(f"❌ Error syncing booking {booking_id} to Google Calendar: {str(e)}")
        finally:
            db.close()
