from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..domain.errors import StoreError
from ..domain.repositories import ReservationRepository
from ..models import BookingRole, Reservation


class SqlAlchemyReservationRepository(ReservationRepository):
    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_all(self) -> List[Reservation]:
        stmt = select(Reservation).order_by(Reservation.date.desc(), Reservation.id)
        try:
            rows = await self.session.scalars(stmt)
        except SQLAlchemyError as exc:
            raise _store_error("failed to load reservations", exc) from exc
        return list(rows.all())

    async def list_between(self, start: date, end: date) -> List[Reservation]:
        stmt = (
            select(Reservation)
            .where(Reservation.date >= start, Reservation.date <= end)
            .order_by(Reservation.date.desc(), Reservation.id)
        )
        try:
            rows = await self.session.scalars(stmt)
        except SQLAlchemyError as exc:
            raise _store_error("failed to load reservations", exc) from exc
        return list(rows.all())

    async def create(
        self,
        *,
        date: date,
        slot: str,
        booker_name: str,
        role: BookingRole,
    ) -> Reservation:
        reservation = Reservation(
            date=date,
            slot=slot,
            booker_name=booker_name,
            role=role,
            created_at=datetime.now(timezone.utc).replace(tzinfo=None),
        )
        self.session.add(reservation)
        try:
            await self.session.flush()
        except SQLAlchemyError as exc:
            raise _store_error("failed to save reservation", exc) from exc
        return reservation


def _store_error(action: str, exc: SQLAlchemyError) -> StoreError:
    # DBAPI errors carry the driver's own message on `orig`.
    cause = getattr(exc, "orig", None) or exc
    return StoreError(f"{action}: {cause}")
