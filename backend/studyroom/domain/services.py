from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import StrEnum
from typing import Iterable, Mapping, Optional, Protocol

from ..models import BookingRole


class ReservationLike(Protocol):
    date: date
    slot: str
    booker_name: str
    role: BookingRole


@dataclass(frozen=True)
class BookingRules:
    slot_catalog: tuple[str, ...]
    capacity: int = 3

    def position(self, slot: str) -> Optional[int]:
        try:
            return self.slot_catalog.index(slot)
        except ValueError:
            return None


@dataclass(frozen=True)
class SlotOccupancy:
    occupant_count: int = 0
    has_leader: bool = False

    def remaining(self, capacity: int) -> int:
        return max(capacity - self.occupant_count, 0)


@dataclass(frozen=True)
class BookingRequest:
    booker_name: str
    role: BookingRole
    slot: str


class RejectReason(StrEnum):
    MISSING_SLOT = "missing_slot"
    MISSING_NAME = "missing_name"
    UNKNOWN_SLOT = "unknown_slot"
    SLOT_FULL = "slot_full"
    LEADER_CONFLICT = "leader_conflict"
    CONSECUTIVE_LEADERSHIP = "consecutive_leadership"
    DUPLICATE_BOOKING = "duplicate_booking"


_MESSAGES = {
    RejectReason.MISSING_SLOT: "Please select a time slot.",
    RejectReason.MISSING_NAME: "Please enter your name.",
    RejectReason.UNKNOWN_SLOT: "Time slot {slot} does not exist.",
    RejectReason.SLOT_FULL: "Time slot {slot} has just filled up, please refresh and pick another one.",
    RejectReason.LEADER_CONFLICT: "Time slot {slot} already has a leader, please book as a member instead.",
    RejectReason.CONSECUTIVE_LEADERSHIP: "You cannot lead two consecutive time slots on the same day.",
    RejectReason.DUPLICATE_BOOKING: "You have already booked this time slot, please do not submit twice.",
}

# Reasons the user fixes by completing the form, as opposed to conflicts with existing bookings.
MALFORMED_REASONS = frozenset({RejectReason.MISSING_SLOT, RejectReason.MISSING_NAME, RejectReason.UNKNOWN_SLOT})


@dataclass(frozen=True)
class Rejection:
    reason: RejectReason
    slot: Optional[str] = None

    @property
    def message(self) -> str:
        return _MESSAGES[self.reason].format(slot=self.slot)


@dataclass(frozen=True)
class BookingDecision:
    rejection: Optional[Rejection] = None

    @property
    def admitted(self) -> bool:
        return self.rejection is None


ADMIT = BookingDecision()


class SlotStatusIndex:
    """Derives per-slot occupancy for one day from the full reservation set.

    Recomputed from scratch on every call, O(n) in the number of reservations.
    """

    def __init__(self, rules: BookingRules) -> None:
        self.rules = rules

    def compute(self, reservations: Iterable[ReservationLike], day: date) -> dict[str, SlotOccupancy]:
        index = {label: SlotOccupancy() for label in self.rules.slot_catalog}
        for reservation in reservations:
            if reservation.date != day:
                continue
            current = index.get(reservation.slot)
            # Rows for labels dropped from the catalog do not occupy anything.
            if current is None:
                continue
            index[reservation.slot] = SlotOccupancy(
                occupant_count=current.occupant_count + 1,
                has_leader=current.has_leader or reservation.role == BookingRole.LEADER,
            )
        return index


class BookingValidator:
    """Pure admission decision for a booking request.

    Stages run in order and the first failing one wins:
    well-formedness, capacity, role uniqueness, consecutive leadership, duplicates.
    """

    def __init__(self, rules: BookingRules) -> None:
        self.rules = rules

    def validate(
        self,
        request: BookingRequest,
        *,
        date: date,
        index: Mapping[str, SlotOccupancy],
        history: Iterable[ReservationLike],
    ) -> BookingDecision:
        slot = request.slot.strip() if request.slot else ""
        name = request.booker_name.strip() if request.booker_name else ""
        history = list(history)

        if not slot:
            return BookingDecision(Rejection(RejectReason.MISSING_SLOT))
        if not name:
            return BookingDecision(Rejection(RejectReason.MISSING_NAME))
        if self.rules.position(slot) is None:
            return BookingDecision(Rejection(RejectReason.UNKNOWN_SLOT, slot))

        occupancy = index.get(slot, SlotOccupancy())
        if occupancy.occupant_count >= self.rules.capacity:
            return BookingDecision(Rejection(RejectReason.SLOT_FULL, slot))

        if request.role == BookingRole.LEADER:
            if occupancy.has_leader:
                return BookingDecision(Rejection(RejectReason.LEADER_CONFLICT, slot))
            if self._leads_consecutive(name, slot, date, history):
                return BookingDecision(Rejection(RejectReason.CONSECUTIVE_LEADERSHIP))

        if any(_same_booking(r, name, date, slot) for r in history):
            return BookingDecision(Rejection(RejectReason.DUPLICATE_BOOKING, slot))
        return ADMIT

    def _leads_consecutive(self, name: str, slot: str, day: date, history: list[ReservationLike]) -> bool:
        led = {
            r.slot
            for r in history
            if r.date == day and r.role == BookingRole.LEADER and r.booker_name.strip() == name
        }
        led.add(slot)
        positions = sorted(p for p in (self.rules.position(s) for s in led) if p is not None)
        return any(b - a == 1 for a, b in zip(positions, positions[1:]))


def _same_booking(reservation: ReservationLike, name: str, day: date, slot: str) -> bool:
    return reservation.date == day and reservation.slot == slot and reservation.booker_name.strip() == name
