"""Shared validation utilities"""

import re
from typing import Optional

# Sentinel asking the calendar provider to attach a Google Meet link
GOOGLE_MEET = "google_meet"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def validate_meeting_url(url: Optional[str]) -> Optional[str]:
    """
    Validate a meeting link.

    Accepts an http(s) URL or the google_meet sentinel.

    Raises:
        ValueError: If the value is neither
    """
    if not url:
        return url

    url = url.strip()
    if url == GOOGLE_MEET:
        return url

    if not re.match(r"^https?://[^\s/$.?#].[^\s]*$", url, re.IGNORECASE):
        raise ValueError("Meeting URL must be an http(s) link")

    return url
