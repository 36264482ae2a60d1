"""
Vehicle and delivery-team availability resolver.

Pure filtering over already-loaded lists: callers pass the resource pool and
the current routes, and get back the subset free for the requested window in
the same order. Nothing is mutated or cached.
"""
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, TypeVar

from ..config import settings
from .errors import InvalidWindow
from .route_conflict import route_conflicts_with

R = TypeVar("R")


def validate_window(start: Optional[datetime], end: Optional[datetime]) -> bool:
    """
    Return True when a full window is given, False when none is given yet.

    Raises:
        InvalidWindow: only one bound given, or start does not precede end
    """
    if start is None and end is None:
        return False
    if start is None or end is None:
        raise InvalidWindow("Both start and end are required to check availability")
    if start >= end:
        raise InvalidWindow(
            "End of the window must be after its start",
            details={"start": start.isoformat(), "end": end.isoformat()},
        )
    return True


def is_vehicle_blocked(vehicle, blocked_statuses: Optional[Iterable[str]] = None) -> bool:
    """Maintenance/inactive vehicles are out regardless of calendar."""
    blocked = set(blocked_statuses if blocked_statuses is not None else settings.blocked_vehicle_statuses)
    return vehicle.status in blocked


def is_team_member_eligible(employee, roles: Optional[Iterable[str]] = None) -> bool:
    allowed = set(roles if roles is not None else settings.delivery_team_roles)
    if not employee.active or employee.availability == "on_leave":
        return False
    return employee.role in allowed


def find_available_vehicles(
    vehicles: Sequence[R],
    routes: Sequence,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    exclude_route_id=None,
    blocked_statuses: Optional[Iterable[str]] = None,
) -> List[R]:
    """
    Filter the fleet to vehicles free for [start, end).

    With no window chosen yet, every non-blocked vehicle is returned so the
    caller can still show a full picklist.
    """
    candidates = [v for v in vehicles if not is_vehicle_blocked(v, blocked_statuses)]
    if not validate_window(start, end):
        return candidates

    busy = {
        str(route.vehicle_id)
        for route in routes
        if route_conflicts_with(route, start, end, exclude_route_id)
    }
    return [v for v in candidates if str(v.id) not in busy]


def find_available_team_members(
    employees: Sequence[R],
    routes: Sequence,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    exclude_route_id=None,
    roles: Optional[Iterable[str]] = None,
) -> List[R]:
    """Same as find_available_vehicles, keyed on route team membership."""
    candidates = [e for e in employees if is_team_member_eligible(e, roles)]
    if not validate_window(start, end):
        return candidates

    busy = set()
    for route in routes:
        if route_conflicts_with(route, start, end, exclude_route_id):
            busy.update(str(member_id) for member_id in (route.team_ids or []))
    return [e for e in candidates if str(e.id) not in busy]


def is_vehicle_available(
    vehicle,
    routes: Sequence,
    start: datetime,
    end: datetime,
    exclude_route_id=None,
) -> bool:
    validate_window(start, end)
    return bool(find_available_vehicles([vehicle], routes, start, end, exclude_route_id))
