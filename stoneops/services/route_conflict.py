"""
Route conflict detection service.
HARD STOP rule: a vehicle or team member never holds two overlapping routes.
"""
from datetime import datetime
from typing import Iterable, List, Optional
import uuid
from sqlalchemy.orm import Session

from ..models.models import DeliveryRoute


# Route statuses that hold a vehicle/team commitment
BLOCKING_ROUTE_STATUSES = ("pending", "scheduled", "in_progress")


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """
    Check if two half-open intervals [start, end) overlap.
    Touching intervals (a_end == b_start) do not overlap.
    """
    return a_start < b_end and b_start < a_end


def is_blocking(route: DeliveryRoute) -> bool:
    return route.status in BLOCKING_ROUTE_STATUSES


def route_conflicts_with(
    route: DeliveryRoute,
    start: datetime,
    end: datetime,
    exclude_route_id: Optional[uuid.UUID] = None,
) -> bool:
    """True if route is a live commitment overlapping [start, end)."""
    if exclude_route_id is not None and str(route.id) == str(exclude_route_id):
        return False
    if not is_blocking(route):
        return False
    return overlaps(start, end, route.start, route.end)


def get_conflicting_routes(
    db: Session,
    vehicle_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_route_id: Optional[uuid.UUID] = None,
) -> List[DeliveryRoute]:
    """
    Get blocking routes of a vehicle overlapping the window.

    Args:
        db: Database session
        vehicle_id: Vehicle ID
        start: Window start (naive UTC)
        end: Window end (naive UTC)
        exclude_route_id: Route to ignore (the one being edited)

    Returns:
        List of conflicting DeliveryRoute objects, ordered by start
    """
    query = db.query(DeliveryRoute).filter(
        DeliveryRoute.vehicle_id == vehicle_id,
        DeliveryRoute.status.in_(BLOCKING_ROUTE_STATUSES),
        DeliveryRoute.start < end,
        DeliveryRoute.end > start,
    )
    if exclude_route_id:
        query = query.filter(DeliveryRoute.id != exclude_route_id)
    candidates = query.order_by(DeliveryRoute.start).all()
    # The SQL filter narrows; overlaps() stays the single source of truth
    return [r for r in candidates if route_conflicts_with(r, start, end, exclude_route_id)]


def has_vehicle_conflict(
    db: Session,
    vehicle_id: uuid.UUID,
    start: datetime,
    end: datetime,
    exclude_route_id: Optional[uuid.UUID] = None,
) -> bool:
    return len(get_conflicting_routes(db, vehicle_id, start, end, exclude_route_id)) > 0


def get_team_conflicts(
    db: Session,
    team_ids: Iterable[str],
    start: datetime,
    end: datetime,
    exclude_route_id: Optional[uuid.UUID] = None,
) -> dict:
    """
    Map each double-booked team member id to its conflicting route ids.
    Team membership lives in a JSON list, so it is matched in Python.
    """
    wanted = {str(t) for t in team_ids}
    query = db.query(DeliveryRoute).filter(
        DeliveryRoute.status.in_(BLOCKING_ROUTE_STATUSES),
        DeliveryRoute.start < end,
        DeliveryRoute.end > start,
    )
    if exclude_route_id:
        query = query.filter(DeliveryRoute.id != exclude_route_id)

    conflicts: dict = {}
    for route in query.all():
        if not route_conflicts_with(route, start, end, exclude_route_id):
            continue
        for member_id in route.team_ids or []:
            if str(member_id) in wanted:
                conflicts.setdefault(str(member_id), []).append(str(route.id))
    return conflicts
