from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..domain.repositories import ReservationRepository
from ..domain.services import BookingRules, SlotStatusIndex
from ..models import BookingRole, Reservation


async def list_availability(
    res_repo: ReservationRepository,
    *,
    rules: BookingRules,
    day: date,
) -> List[Dict[str, Any]]:
    reservations = await res_repo.list_all()
    index = SlotStatusIndex(rules).compute(reservations, day)
    items: List[Dict[str, Any]] = []
    for position, label in enumerate(rules.slot_catalog):
        occupancy = index[label]
        remaining = occupancy.remaining(rules.capacity)
        items.append(
            {
                "label": label,
                "position": position,
                "occupancy": occupancy,
                "remaining": remaining,
                "is_full": remaining == 0,
            }
        )
    return items


@dataclass
class StudySession:
    """Everyone booked into one slot on one date."""

    date: date
    slot: str
    leader: Optional[str] = None
    members: List[str] = field(default_factory=list)


def group_sessions(
    reservations: Iterable[Reservation],
    *,
    rules: BookingRules,
    days: Sequence[date],
) -> List[StudySession]:
    wanted = set(days)
    sessions: Dict[tuple[date, str], StudySession] = {}
    for reservation in sorted(reservations, key=lambda r: (r.created_at, r.id or 0)):
        if reservation.date not in wanted:
            continue
        key = (reservation.date, reservation.slot)
        current = sessions.setdefault(key, StudySession(date=reservation.date, slot=reservation.slot))
        if reservation.role == BookingRole.LEADER:
            current.leader = reservation.booker_name
        else:
            current.members.append(reservation.booker_name)

    unknown = len(rules.slot_catalog)

    def _order(item: StudySession) -> tuple[date, int, str]:
        position = rules.position(item.slot)
        return (item.date, unknown if position is None else position, item.slot)

    return sorted(sessions.values(), key=_order)


async def list_sessions(
    res_repo: ReservationRepository,
    *,
    rules: BookingRules,
    days: Sequence[date],
) -> List[StudySession]:
    if not days:
        return []
    reservations = await res_repo.list_between(min(days), max(days))
    return group_sessions(reservations, rules=rules, days=days)


def suggest_members(roster: Sequence[str], query: str) -> List[str]:
    query = query.strip()
    return [name for name in roster if query in name and name != query]
