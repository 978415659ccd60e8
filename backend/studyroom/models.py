from __future__ import annotations

import datetime as dt
from enum import StrEnum

from sqlalchemy import Enum, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql.sqltypes import BigInteger, Date, DateTime, String


class Base(DeclarativeBase):
    pass


class BookingRole(StrEnum):
    LEADER = "leader"
    MEMBER = "member"


class Reservation(Base):
    """One booker holding one slot on one date.

    No unique constraints: the booking rules are enforced by the validator
    before the insert, not by the store.
    """

    __tablename__ = "reservations"
    __table_args__ = (
        Index("idx_res_date_slot", "date", "slot"),
        Index("idx_res_booker", "booker_name"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    slot: Mapped[str] = mapped_column(String(50), nullable=False)
    booker_name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[BookingRole] = mapped_column(
        Enum(
            BookingRole,
            values_callable=lambda enum_cls: [e.value for e in enum_cls],
            native_enum=False,
        ),
        nullable=False,
        default=BookingRole.MEMBER,
    )
    created_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=False), nullable=False)
