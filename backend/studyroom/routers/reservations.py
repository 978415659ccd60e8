from datetime import date, timedelta
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import Settings, get_settings
from ..deps import get_booking_rules, get_session, store_unavailable
from ..domain.errors import BookingRejectedError, StoreError
from ..domain.services import MALFORMED_REASONS, BookingRules, Rejection
from ..infrastructure.repositories import SqlAlchemyReservationRepository
from ..schemas import (
    BookingCheckRead,
    RejectionRead,
    ReservationCreate,
    ReservationCreated,
    ReservationRead,
    SessionRead,
)
from ..usecases import reservations as reservation_usecase
from ..usecases import slots as slot_usecase
from ..utils.audit_log import emit_audit_log
from ..utils.time import local_today, upcoming_days

router = APIRouter(prefix="", tags=["reservations"])

MAX_BOARD_DAYS = 31


def _rejected(rejection: Rejection) -> HTTPException:
    status_code = 422 if rejection.reason in MALFORMED_REASONS else status.HTTP_409_CONFLICT
    return HTTPException(status_code=status_code, detail=RejectionRead.from_domain(rejection).model_dump(mode="json"))


def _audit(**kwargs: Any) -> None:
    try:
        emit_audit_log(**kwargs)
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="audit log failed") from exc


@router.post("/reservations/check", response_model=BookingCheckRead)
async def check_reservation(
    payload: ReservationCreate,
    session: AsyncSession = Depends(get_session),
    rules: BookingRules = Depends(get_booking_rules),
) -> BookingCheckRead:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        decision = await reservation_usecase.check_booking(
            res_repo,
            rules=rules,
            request=payload.to_request(),
            date=payload.date,
        )
    except StoreError as exc:
        raise store_unavailable(exc) from exc
    return BookingCheckRead.from_domain(decision)


@router.post("/reservations", response_model=ReservationCreated, status_code=status.HTTP_201_CREATED)
async def create_reservation(
    payload: ReservationCreate,
    session: AsyncSession = Depends(get_session),
    rules: BookingRules = Depends(get_booking_rules),
    settings: Settings = Depends(get_settings),
) -> ReservationCreated:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        async with session.begin():
            reservation = await reservation_usecase.create_booking(
                res_repo,
                rules=rules,
                request=payload.to_request(),
                date=payload.date,
            )
    except BookingRejectedError as exc:
        _audit(
            action="reservation.rejected",
            date=payload.date,
            slot=exc.rejection.slot or payload.slot or None,
            booker_name=payload.booker_name.strip() or None,
            role=payload.role,
            reason=exc.rejection.reason,
        )
        raise _rejected(exc.rejection) from exc
    except (StoreError, SQLAlchemyError) as exc:
        raise store_unavailable(exc) from exc

    _audit(
        action="reservation.created",
        date=reservation.date,
        slot=reservation.slot,
        booker_name=reservation.booker_name,
        role=reservation.role,
        reservation_id=reservation.id,
    )
    read = ReservationRead.from_db(reservation=reservation, tz_name=settings.timezone)
    celebration = reservation_usecase.celebration_for(
        reservation.date,
        celebration_date=settings.celebration_date,
        message=settings.celebration_message,
    )
    return ReservationCreated(**read.model_dump(), celebration=celebration)


@router.get("/reservations", response_model=List[ReservationRead])
async def list_reservations(
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
) -> list[ReservationRead]:
    res_repo = SqlAlchemyReservationRepository(session)
    try:
        rows = await reservation_usecase.list_reservations(res_repo, start=start, end=end)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except StoreError as exc:
        raise store_unavailable(exc) from exc
    return [ReservationRead.from_db(reservation=row, tz_name=settings.timezone) for row in rows]


@router.get("/sessions", response_model=List[SessionRead])
async def list_sessions(
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
    session: AsyncSession = Depends(get_session),
    rules: BookingRules = Depends(get_booking_rules),
    settings: Settings = Depends(get_settings),
) -> list[SessionRead]:
    if start is None and end is None:
        days = upcoming_days(local_today(settings.timezone))
    elif start is None or end is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start and end must be given together")
    elif start > end or (end - start).days >= MAX_BOARD_DAYS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid date range")
    else:
        days = [start + timedelta(days=offset) for offset in range((end - start).days + 1)]

    res_repo = SqlAlchemyReservationRepository(session)
    try:
        sessions = await slot_usecase.list_sessions(res_repo, rules=rules, days=days)
    except StoreError as exc:
        raise store_unavailable(exc) from exc
    return [SessionRead.from_domain(item) for item in sessions]
