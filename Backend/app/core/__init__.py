"""
Core module - configuration, database, errors, and response formatting.
"""
from .config import Settings, get_settings
from .db import get_session, Base, engine, AsyncSessionLocal
from .errors import BookingError, BarbershopNotFoundError, SlotTakenError
from .responses import ErrorDetail, ErrorCodes, error_response

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Database
    "get_session",
    "Base",
    "engine",
    "AsyncSessionLocal",
    # Errors
    "BookingError",
    "BarbershopNotFoundError",
    "SlotTakenError",
    # Responses
    "ErrorDetail",
    "ErrorCodes",
    "error_response",
]
