from datetime import date, datetime, timezone
from typing import Any, cast

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from studyroom.config import Settings
from studyroom.deps import RETRY_HINT
from studyroom.domain.errors import StoreError
from studyroom.domain.services import BookingRules
from studyroom.models import BookingRole, Reservation
from studyroom.routers import reservations as router
from studyroom.schemas import ReservationCreate

S1, S2, S3 = "9:00-13:00", "14:00-18:00", "19:00-22:30"
DAY = date(2026, 1, 12)
SETTINGS = Settings(slot_catalog=(S1, S2, S3), slot_capacity=3, celebration_date=DAY, celebration_message="yay")
RULES: BookingRules = SETTINGS.booking_rules()


class DummySession:
    """Minimal async session stub that supports `async with session.begin()`."""

    async def __aenter__(self) -> "DummySession":
        return self

    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        return False

    def begin(self) -> "DummySession":
        return self


class FakeResRepo:
    def __init__(self, rows: list[Reservation] | None = None, *, fail: bool = False) -> None:
        self.rows = list(rows or [])
        self.fail = fail

    async def list_all(self) -> list[Reservation]:
        if self.fail:
            raise StoreError("failed to load reservations")
        return list(self.rows)

    async def list_between(self, start: date, end: date) -> list[Reservation]:
        return [r for r in self.rows if start <= r.date <= end]

    async def create(self, *, date: date, slot: str, booker_name: str, role: BookingRole) -> Reservation:
        reservation = Reservation(
            id=100 + len(self.rows),
            date=date,
            slot=slot,
            booker_name=booker_name,
            role=role,
            created_at=datetime(2026, 1, 10, 1, 0),
        )
        self.rows.append(reservation)
        return reservation


def _row(name: str, slot: str, role: BookingRole = BookingRole.MEMBER, day: date = DAY) -> Reservation:
    return Reservation(
        id=1,
        date=day,
        slot=slot,
        booker_name=name,
        role=role,
        created_at=datetime.now(timezone.utc).replace(tzinfo=None),
    )


@pytest.fixture
def audit_calls(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    calls: list[dict[str, Any]] = []

    def fake_emit(**kwargs: Any) -> None:
        calls.append(kwargs)

    monkeypatch.setattr(router, "emit_audit_log", fake_emit)
    return calls


def _use_repo(monkeypatch: pytest.MonkeyPatch, repo: FakeResRepo) -> None:
    monkeypatch.setattr(router, "SqlAlchemyReservationRepository", lambda s: repo)  # type: ignore[assignment]


async def _create(payload: ReservationCreate) -> Any:
    return await router.create_reservation(
        payload=payload,
        session=cast(AsyncSession, DummySession()),
        rules=RULES,
        settings=SETTINGS,
    )


@pytest.mark.asyncio
async def test_create_reservation_returns_created_and_audits(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    repo = FakeResRepo()
    _use_repo(monkeypatch, repo)

    result = await _create(ReservationCreate(date=DAY, slot=S1, booker_name=" A ", role=BookingRole.LEADER))

    assert result.booker_name == "A"
    assert result.role == BookingRole.LEADER
    assert result.slot == S1
    assert result.celebration == "yay"
    assert result.created_at.utcoffset() is not None
    assert len(audit_calls) == 1
    assert audit_calls[0]["action"] == "reservation.created"
    assert audit_calls[0]["reservation_id"] == result.reservation_id


@pytest.mark.asyncio
async def test_create_reservation_without_celebration_on_other_dates(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    _use_repo(monkeypatch, FakeResRepo())
    result = await _create(ReservationCreate(date=date(2026, 1, 13), slot=S2, booker_name="B"))
    assert result.celebration is None


@pytest.mark.asyncio
async def test_create_reservation_consecutive_leader_returns_409(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    _use_repo(monkeypatch, FakeResRepo([_row("A", S1, BookingRole.LEADER)]))

    with pytest.raises(HTTPException) as excinfo:
        await _create(ReservationCreate(date=DAY, slot=S2, booker_name="A", role=BookingRole.LEADER))

    assert excinfo.value.status_code == 409
    assert excinfo.value.detail["reason"] == "consecutive_leadership"
    assert excinfo.value.detail["message"]
    assert audit_calls[0]["action"] == "reservation.rejected"
    assert audit_calls[0]["reason"] == "consecutive_leadership"


@pytest.mark.asyncio
async def test_create_reservation_full_slot_returns_409_with_slot(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    _use_repo(monkeypatch, FakeResRepo([_row("a", S1), _row("b", S1), _row("c", S1)]))

    with pytest.raises(HTTPException) as excinfo:
        await _create(ReservationCreate(date=DAY, slot=S1, booker_name="D"))

    assert excinfo.value.status_code == 409
    assert excinfo.value.detail == {
        "reason": "slot_full",
        "slot": S1,
        "message": excinfo.value.detail["message"],
    }


@pytest.mark.asyncio
async def test_create_reservation_missing_name_returns_422(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    _use_repo(monkeypatch, FakeResRepo())

    with pytest.raises(HTTPException) as excinfo:
        await _create(ReservationCreate(date=DAY, slot=S1, booker_name="  "))

    assert excinfo.value.status_code == 422
    assert excinfo.value.detail["reason"] == "missing_name"


@pytest.mark.asyncio
async def test_create_reservation_store_failure_returns_503(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    _use_repo(monkeypatch, FakeResRepo(fail=True))

    with pytest.raises(HTTPException) as excinfo:
        await _create(ReservationCreate(date=DAY, slot=S1, booker_name="A"))

    assert excinfo.value.status_code == 503
    assert "failed to load reservations" in excinfo.value.detail
    assert audit_calls == []


@pytest.mark.asyncio
async def test_create_reservation_log_failure_returns_500(monkeypatch: pytest.MonkeyPatch) -> None:
    _use_repo(monkeypatch, FakeResRepo())

    def fake_emit(**kwargs: Any) -> None:
        raise RuntimeError("fail log")

    monkeypatch.setattr(router, "emit_audit_log", fake_emit)

    with pytest.raises(HTTPException) as excinfo:
        await _create(ReservationCreate(date=DAY, slot=S1, booker_name="A"))
    assert excinfo.value.status_code == 500


@pytest.mark.asyncio
async def test_check_reservation_reports_decision_without_writing(monkeypatch: pytest.MonkeyPatch) -> None:
    repo = FakeResRepo([_row("X", S1, BookingRole.LEADER)])
    _use_repo(monkeypatch, repo)

    result = await router.check_reservation(
        payload=ReservationCreate(date=DAY, slot=S1, booker_name="Y", role=BookingRole.LEADER),
        session=cast(AsyncSession, DummySession()),
        rules=RULES,
    )
    assert result.admitted is False
    assert result.rejection is not None
    assert result.rejection.reason == "leader_conflict"
    assert len(repo.rows) == 1

    result = await router.check_reservation(
        payload=ReservationCreate(date=DAY, slot=S1, booker_name="Y", role=BookingRole.MEMBER),
        session=cast(AsyncSession, DummySession()),
        rules=RULES,
    )
    assert result.admitted is True
    assert result.rejection is None


@pytest.mark.asyncio
async def test_list_reservations_rejects_half_open_range(monkeypatch: pytest.MonkeyPatch) -> None:
    _use_repo(monkeypatch, FakeResRepo())
    with pytest.raises(HTTPException) as excinfo:
        await router.list_reservations(
            start=DAY,
            end=None,
            session=cast(AsyncSession, DummySession()),
            settings=SETTINGS,
        )
    assert excinfo.value.status_code == 400


@pytest.mark.asyncio
async def test_list_sessions_groups_requested_range(monkeypatch: pytest.MonkeyPatch) -> None:
    _use_repo(
        monkeypatch,
        FakeResRepo([_row("m", S3), _row("L", S3, BookingRole.LEADER), _row("far", S1, day=date(2026, 2, 1))]),
    )
    result = await router.list_sessions(
        start=DAY,
        end=date(2026, 1, 14),
        session=cast(AsyncSession, DummySession()),
        rules=RULES,
        settings=SETTINGS,
    )
    assert len(result) == 1
    assert result[0].slot == S3
    assert result[0].leader == "L"
    assert result[0].members == ["m"]


@pytest.mark.asyncio
async def test_list_sessions_rejects_oversized_range() -> None:
    with pytest.raises(HTTPException) as excinfo:
        await router.list_sessions(
            start=date(2026, 1, 1),
            end=date(2026, 3, 1),
            session=cast(AsyncSession, DummySession()),
            rules=RULES,
            settings=SETTINGS,
        )
    assert excinfo.value.status_code == 400


class FailingSession(DummySession):
    """Session whose queries fail the way a dropped MySQL connection does."""

    async def scalars(self, stmt: object) -> object:
        raise OperationalError("SELECT reservations", {}, Exception("Lost connection to MySQL server"))


class FailingCommitSession(DummySession):
    async def __aexit__(self, exc_type: object, exc: object, tb: object) -> bool:
        if exc_type is None:
            raise OperationalError("COMMIT", {}, Exception("Deadlock found when trying to get lock"))
        return False


@pytest.mark.asyncio
async def test_create_reservation_store_failure_shows_backend_message(
    audit_calls: list[dict[str, Any]],
) -> None:
    with pytest.raises(HTTPException) as excinfo:
        await router.create_reservation(
            payload=ReservationCreate(date=DAY, slot=S1, booker_name="A"),
            session=cast(AsyncSession, FailingSession()),
            rules=RULES,
            settings=SETTINGS,
        )
    assert excinfo.value.status_code == 503
    assert "Lost connection to MySQL server" in excinfo.value.detail
    assert excinfo.value.detail.endswith(RETRY_HINT)


@pytest.mark.asyncio
async def test_create_reservation_commit_failure_shows_backend_message(
    monkeypatch: pytest.MonkeyPatch, audit_calls: list[dict[str, Any]]
) -> None:
    _use_repo(monkeypatch, FakeResRepo())
    with pytest.raises(HTTPException) as excinfo:
        await router.create_reservation(
            payload=ReservationCreate(date=DAY, slot=S1, booker_name="A"),
            session=cast(AsyncSession, FailingCommitSession()),
            rules=RULES,
            settings=SETTINGS,
        )
    assert excinfo.value.status_code == 503
    assert "Deadlock found when trying to get lock" in excinfo.value.detail
    assert audit_calls == []
