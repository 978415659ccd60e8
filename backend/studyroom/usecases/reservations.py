from datetime import date
from typing import Optional

from ..domain.errors import BookingRejectedError
from ..domain.repositories import ReservationRepository
from ..domain.services import BookingDecision, BookingRequest, BookingRules, BookingValidator, SlotStatusIndex
from ..models import Reservation


async def check_booking(
    res_repo: ReservationRepository,
    *,
    rules: BookingRules,
    request: BookingRequest,
    date: date,
) -> BookingDecision:
    """Optimistic pre-check against the current store contents. Writes nothing."""
    history = await res_repo.list_all()
    index = SlotStatusIndex(rules).compute(history, date)
    return BookingValidator(rules).validate(request, date=date, index=index, history=history)


async def create_booking(
    res_repo: ReservationRepository,
    *,
    rules: BookingRules,
    request: BookingRequest,
    date: date,
) -> Reservation:
    # Re-read and re-validate right before the insert. The store has no
    # conditional write, so a concurrent client can still slip in between.
    decision = await check_booking(res_repo, rules=rules, request=request, date=date)
    if decision.rejection is not None:
        raise BookingRejectedError(decision.rejection)

    return await res_repo.create(
        date=date,
        slot=request.slot.strip(),
        booker_name=request.booker_name.strip(),
        role=request.role,
    )


async def list_reservations(
    res_repo: ReservationRepository,
    *,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[Reservation]:
    if start is None and end is None:
        return await res_repo.list_all()
    if start is None or end is None:
        raise ValueError("start and end must be given together")
    if start > end:
        raise ValueError("start must not be after end")
    return await res_repo.list_between(start, end)


def celebration_for(day: date, *, celebration_date: Optional[date], message: str) -> Optional[str]:
    if celebration_date is not None and day == celebration_date:
        return message
    return None
