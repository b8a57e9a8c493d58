"""
ProLedger - FastAPI Dependencies

Shared dependencies for database sessions and the acting user.

Authentication happens upstream; the gateway forwards the user id in the
X-User-ID header. It is recorded on manual entries and period closes.
"""

import uuid
from typing import Optional

from fastapi import Header

from app.database import get_async_session, get_session_factory  # noqa: F401
from app.utils.error_handling import ValidationException


async def get_current_user_id(
    x_user_id: Optional[str] = Header(None, alias="X-User-ID"),
) -> Optional[uuid.UUID]:
    """Acting user from the X-User-ID header, or None when absent."""
    if not x_user_id:
        return None
    try:
        return uuid.UUID(x_user_id)
    except ValueError:
        raise ValidationException(
            message="X-User-ID must be a valid UUID",
            field="X-User-ID",
        )
