from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..deps import get_booking_rules, get_session, store_unavailable
from ..domain.errors import StoreError
from ..domain.services import BookingRules
from ..infrastructure.repositories import SqlAlchemyReservationRepository
from ..schemas import CatalogRead, DayStatus, SlotAvailability
from ..usecases import slots as slot_usecase

router = APIRouter(prefix="", tags=["slots"])


@router.get("/catalog", response_model=CatalogRead)
async def get_catalog(settings: Settings = Depends(get_settings)) -> CatalogRead:
    return CatalogRead(
        slots=list(settings.slot_catalog),
        capacity=settings.slot_capacity,
        celebration_date=settings.celebration_date,
    )


@router.get("/days/{day}/slots", response_model=DayStatus)
async def get_day_status(
    day: date,
    session: AsyncSession = Depends(get_session),
    rules: BookingRules = Depends(get_booking_rules),
) -> DayStatus:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        rows = await slot_usecase.list_availability(res_repo, rules=rules, day=day)
    except StoreError as exc:
        raise store_unavailable(exc) from exc
    items = [
        SlotAvailability(
            label=entry["label"],
            position=entry["position"],
            occupant_count=entry["occupancy"].occupant_count,
            has_leader=entry["occupancy"].has_leader,
            remaining=entry["remaining"],
            is_full=entry["is_full"],
        )
        for entry in rows
    ]
    return DayStatus(date=day, all_full=all(item.is_full for item in items), slots=items)


@router.get("/members", response_model=List[str])
async def suggest_members(
    q: str = Query(default="", max_length=255),
    settings: Settings = Depends(get_settings),
) -> list[str]:
    return slot_usecase.suggest_members(settings.member_roster, q)
