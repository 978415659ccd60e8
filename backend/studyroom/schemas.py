from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .domain.services import BookingDecision, BookingRequest, RejectReason, Rejection
from .models import BookingRole, Reservation
from .usecases.slots import StudySession
from .utils.time import utc_naive_to_local


class CatalogRead(BaseModel):
    slots: List[str]
    capacity: int
    celebration_date: Optional[date] = None


class SlotAvailability(BaseModel):
    label: str
    position: int
    occupant_count: int
    has_leader: bool
    remaining: int
    is_full: bool


class DayStatus(BaseModel):
    date: date
    all_full: bool
    slots: List[SlotAvailability]


class ReservationCreate(BaseModel):
    date: date
    slot: str = Field(default="", max_length=50)
    booker_name: str = Field(default="", max_length=255)
    role: BookingRole = BookingRole.MEMBER

    def to_request(self) -> BookingRequest:
        return BookingRequest(booker_name=self.booker_name, role=self.role, slot=self.slot)


class RejectionRead(BaseModel):
    reason: RejectReason
    slot: Optional[str] = None
    message: str

    @classmethod
    def from_domain(cls, rejection: Rejection) -> "RejectionRead":
        return cls(reason=rejection.reason, slot=rejection.slot, message=rejection.message)


class BookingCheckRead(BaseModel):
    admitted: bool
    rejection: Optional[RejectionRead] = None

    @classmethod
    def from_domain(cls, decision: BookingDecision) -> "BookingCheckRead":
        rejection = RejectionRead.from_domain(decision.rejection) if decision.rejection else None
        return cls(admitted=decision.admitted, rejection=rejection)


class ReservationRead(BaseModel):
    reservation_id: int
    date: date
    slot: str
    booker_name: str
    role: BookingRole
    created_at: datetime

    @classmethod
    def from_db(cls, *, reservation: Reservation, tz_name: str) -> "ReservationRead":
        return cls(
            reservation_id=reservation.id,
            date=reservation.date,
            slot=reservation.slot,
            booker_name=reservation.booker_name,
            role=reservation.role,
            created_at=utc_naive_to_local(reservation.created_at, tz_name),
        )


class ReservationCreated(ReservationRead):
    celebration: Optional[str] = None


class SessionRead(BaseModel):
    date: date
    slot: str
    leader: Optional[str]
    members: List[str]

    @classmethod
    def from_domain(cls, session: StudySession) -> "SessionRead":
        return cls(date=session.date, slot=session.slot, leader=session.leader, members=list(session.members))
