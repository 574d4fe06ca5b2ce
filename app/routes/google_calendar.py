"""
Google Calendar Integration Routes
Handles OAuth connection status, connect and disconnect
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_manager_role
from ..config import GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET
from ..database import get_db
from ..domain.scheduling.repository import BookingRepository
from ..models import User
from ..services.google_calendar_service import (
    CalendarSyncError,
    build_auth_url,
    connection_status,
    exchange_code,
    get_connection,
    revoke_tokens,
    save_connection,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])


class CalendarCallback(BaseModel):
    code: str


@router.get("/status")
async def get_calendar_status(
    current_user: User = Depends(get_current_user), db: Session = Depends(get_db)
):
    """Get Google Calendar connection status"""
    return connection_status(get_connection(db, current_user.id))


@router.get("/connect")
async def initiate_calendar_oauth(current_user: User = Depends(require_manager_role)):
    """Initiate Google Calendar OAuth flow"""
    if not GOOGLE_CLIENT_ID or not GOOGLE_CLIENT_SECRET:
        raise HTTPException(status_code=500, detail="Google Calendar not configured")

    logger.info(f"Google Calendar OAuth initiated for user: {current_user.email}")
    return {"authUrl": build_auth_url(current_user.id)}


@router.post("/callback")
async def handle_calendar_callback(
    data: CalendarCallback,
    current_user: User = Depends(require_manager_role),
    db: Session = Depends(get_db),
):
    """Exchange the OAuth code and store the connection"""
    if not data.code:
        raise HTTPException(status_code=400, detail="No authorization code provided")

    try:
        tokens = await exchange_code(data.code)
    except CalendarSyncError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    connection = save_connection(db, current_user.id, tokens)
    BookingRepository.log_activity(
        db,
        current_user.id,
        "calendar_connection",
        connection.id,
        "connected",
        details={"email": connection.email},
    )
    db.commit()

    logger.info(f"✅ Google Calendar connected for user {current_user.id}: {connection.email}")
    return {"success": True, **connection_status(connection)}


@router.post("/disconnect")
async def disconnect_calendar(
    current_user: User = Depends(require_manager_role), db: Session = Depends(get_db)
):
    """Disconnect Google Calendar; disconnecting twice is not an error"""
    connection = get_connection(db, current_user.id)
    if not connection:
        return {"success": True, "connected": False}

    await revoke_tokens(connection)
    BookingRepository.log_activity(
        db, current_user.id, "calendar_connection", connection.id, "disconnected"
    )
    db.delete(connection)
    db.commit()

    logger.info(f"Google Calendar disconnected for user: {current_user.email}")
    return {"success": True, "connected": False}
