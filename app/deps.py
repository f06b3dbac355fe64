# app/deps.py

from datetime import datetime
from zoneinfo import ZoneInfo

from fastapi import Depends, HTTPException

from .config import Settings, get_settings
from .errors import BookingValidationError, NotFound, SchedulingError, SlotUnavailable


def require_role(user: dict, role: str):
    if user["role"] != role:
        raise HTTPException(status_code=403, detail="Forbidden")


def require_business(user: dict, business_id: int):
    if user["business_id"] != business_id:
        raise HTTPException(status_code=403, detail="Forbidden")


def get_now(settings: Settings = Depends(get_settings)) -> datetime:
    """Current wall-clock time in the shop's timezone (naive)."""
    return datetime.now(ZoneInfo(settings.TIMEZONE)).replace(tzinfo=None)


def to_http(exc: SchedulingError) -> HTTPException:
    """Translate a scheduling error into the HTTP error the API returns."""
    if isinstance(exc, BookingValidationError):
        return HTTPException(status_code=400, detail={"field": exc.field, "message": exc.message})
    if isinstance(exc, SlotUnavailable):
        return HTTPException(status_code=409, detail=exc.message)
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=exc.message)
    return HTTPException(status_code=400, detail=str(exc))
