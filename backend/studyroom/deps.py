from typing import AsyncIterator

from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .database import async_session
from .domain.errors import StoreError
from .domain.services import BookingRules

RETRY_HINT = "Please check your network and try again."


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


def get_booking_rules(settings: Settings = Depends(get_settings)) -> BookingRules:
    return settings.booking_rules()


def store_unavailable(exc: Exception) -> HTTPException:
    """503 carrying the store's own failure text plus a retry hint."""
    if isinstance(exc, StoreError):
        reason = str(exc)
    else:
        reason = f"reservation store failed: {getattr(exc, 'orig', None) or exc}"
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"{reason}. {RETRY_HINT}")
