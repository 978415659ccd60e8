from __future__ import annotations

from datetime import date
from typing import Protocol

from ..models import BookingRole, Reservation


class ReservationRepository(Protocol):
    async def list_all(self) -> list[Reservation]: ...

    async def list_between(self, start: date, end: date) -> list[Reservation]: ...

    async def create(
        self,
        *,
        date: date,
        slot: str,
        booker_name: str,
        role: BookingRole,
    ) -> Reservation: ...
