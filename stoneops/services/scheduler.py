"""
Delivery route scheduler.

Books a vehicle, a team and a time window for a service order, and moves
routes through their lifecycle. Each public mutation is one
read-check-write cycle ending in a single commit: the route, the order's
denormalized route fields, the derived logistics status and the audit
entries are saved together or not at all.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import structlog
from sqlalchemy.orm import Session

from ..models.models import DeliveryRoute, ServiceOrder
from .audit import record_audit_log, compute_diff
from .availability import (
    find_available_team_members,
    find_available_vehicles,
    is_team_member_eligible,
    is_vehicle_blocked,
    validate_window,
)
from .errors import (
    GuardViolation,
    InvalidWindow,
    LogisticsError,
    NoTeamAssigned,
    NotFoundError,
    TeamMemberUnavailable,
    VehicleUnavailable,
)
from .finalization import assert_route_transition
from .fleet import get_live_routes, get_team_members, get_team_members_by_ids, get_vehicle, get_vehicles
from .route_conflict import get_conflicting_routes, get_team_conflicts
from .service_orders import as_uuid, get_service_order
from .status_derivation import DELIVERY_FINALIZATION_TYPES, refresh_logistics_status
from .time_rules import parse_instant, utc_now
from .transactions import commit_or_rollback

logger = structlog.get_logger(__name__)

# Routes that can still be rescheduled in place
OPEN_ROUTE_STATUSES = ("pending", "scheduled")


def _route_snapshot(route: DeliveryRoute) -> Dict[str, Any]:
    return {
        "vehicle_id": str(route.vehicle_id) if route.vehicle_id else None,
        "start": route.start.isoformat() if route.start else None,
        "end": route.end.isoformat() if route.end else None,
        "team_ids": list(route.team_ids or []),
        "status": route.status,
    }


def _conflict_info(routes: List[DeliveryRoute]) -> List[Dict[str, Any]]:
    return [
        {
            "id": str(r.id),
            "service_order_id": str(r.service_order_id),
            "start": r.start.isoformat(),
            "end": r.end.isoformat(),
            "status": r.status,
        }
        for r in routes
    ]


def parse_window(start: Any, end: Any) -> Tuple[datetime, datetime]:
    """
    Parse and validate a scheduling window.

    Raises:
        InvalidWindow: unparseable, missing, or start >= end
    """
    try:
        start_dt = parse_instant(start, "start")
        end_dt = parse_instant(end, "end")
    except ValueError as exc:
        raise InvalidWindow(str(exc))
    if start_dt is None or end_dt is None:
        raise InvalidWindow("Both start and end are required")
    validate_window(start_dt, end_dt)
    return start_dt, end_dt


def _routes_of(db: Session, order: ServiceOrder) -> List[DeliveryRoute]:
    return (
        db.query(DeliveryRoute)
        .filter(DeliveryRoute.service_order_id == order.id)
        .order_by(DeliveryRoute.created_at.desc())
        .all()
    )


def sync_order_route_cache(db: Session, order: ServiceOrder) -> Optional[DeliveryRoute]:
    """
    Copy the order's current route onto its display fields.
    The current route is the newest one that was not cancelled.
    """
    db.flush()
    current = next((r for r in _routes_of(db, order) if r.status != "cancelled"), None)
    if current is None:
        order.vehicle_id = None
        order.delivery_start = None
        order.delivery_end = None
        order.delivery_team_ids = None
    else:
        order.vehicle_id = current.vehicle_id
        order.delivery_start = current.start
        order.delivery_end = current.end
        order.delivery_team_ids = list(current.team_ids or [])
    return current


def _check_vehicle(db: Session, vehicle_id: Any, start: datetime, end: datetime, exclude_route_id=None):
    if not vehicle_id:
        raise VehicleUnavailable("A vehicle must be selected")
    vehicle = get_vehicle(db, vehicle_id, for_update=True)
    if is_vehicle_blocked(vehicle):
        raise VehicleUnavailable(
            "Vehicle is not in service",
            details={"vehicle_id": str(vehicle.id), "vehicle_status": vehicle.status},
        )
    conflicts = get_conflicting_routes(db, vehicle.id, start, end, exclude_route_id)
    if conflicts:
        raise VehicleUnavailable(
            "No vehicle availability for this window",
            details={"vehicle_id": str(vehicle.id), "conflicts": _conflict_info(conflicts)},
        )
    return vehicle


def _check_team(db: Session, team_ids: List[Any], start: datetime, end: datetime, exclude_route_id=None) -> List[str]:
    if not team_ids:
        raise NoTeamAssigned("At least one team member must be assigned")
    members = get_team_members_by_ids(db, team_ids, for_update=True)
    not_eligible = [str(m.id) for m in members if not is_team_member_eligible(m)]
    if not_eligible:
        raise TeamMemberUnavailable(
            "Team member cannot be assigned to deliveries",
            details={"team_member_ids": not_eligible},
        )
    member_ids = [str(m.id) for m in members]
    conflicts = get_team_conflicts(db, member_ids, start, end, exclude_route_id)
    if conflicts:
        raise TeamMemberUnavailable(
            "Team member already booked for this window",
            details={"conflicts": conflicts},
        )
    return member_ids


def schedule_delivery(
    db: Session,
    service_order_id: Any,
    vehicle_id: Any,
    start: Any,
    end: Any,
    team_ids: List[Any],
    route_type: str = "delivery",
    notes: Optional[str] = None,
    actor_id: Optional[str] = None,
) -> DeliveryRoute:
    """
    Create or reschedule the route of a service order.

    Before delivery is confirmed any route of the order is considered; after
    it, only installation routes, so the installation trip can be booked once
    the goods have arrived. The open (pending/scheduled) route is updated in
    place and ignores its own previous window. Without one, the newest
    cancelled route is reused; only then is a new route created. HARD STOP on
    any vehicle or team overlap.

    Raises:
        NotFoundError, GuardViolation, InvalidWindow, VehicleUnavailable,
        NoTeamAssigned, TeamMemberUnavailable, PersistenceError
    """
    order = get_service_order(db, service_order_id, for_update=True)
    route_type = route_type or "delivery"
    if order.finalization_type not in DELIVERY_FINALIZATION_TYPES:
        raise GuardViolation(
            "Order must be finalized for delivery before scheduling",
            details={"action": "schedule", "finalization_type": order.finalization_type},
        )
    installing = bool(order.delivery_confirmed)
    if installing:
        if route_type != "installation" or order.finalization_type != "delivery_installation":
            raise GuardViolation(
                "Delivery already confirmed",
                details={"action": "schedule", "route_type": route_type},
            )
        if order.installation_confirmed:
            raise GuardViolation("Installation already confirmed", details={"action": "schedule"})

    start_dt, end_dt = parse_window(start, end)

    routes = _routes_of(db, order)
    if installing:
        routes = [r for r in routes if r.route_type == "installation"]
    if any(r.status == "in_progress" for r in routes):
        raise GuardViolation(
            "A route for this order is already on the way; cancel it before rescheduling",
            details={"action": "schedule"},
        )
    existing = next((r for r in routes if r.status in OPEN_ROUTE_STATUSES), None)
    if existing is None:
        existing = next((r for r in routes if r.status == "cancelled"), None)
    exclude_id = existing.id if existing else None

    vehicle = _check_vehicle(db, vehicle_id, start_dt, end_dt, exclude_id)
    member_ids = _check_team(db, team_ids, start_dt, end_dt, exclude_id)

    try:
        now = utc_now()
        if existing:
            before = _route_snapshot(existing)
            route = existing
            route.vehicle_id = vehicle.id
            route.start = start_dt
            route.end = end_dt
            route.team_ids = member_ids
            route.route_type = route_type
            route.status = "scheduled"
            route.actual_start = None
            route.actual_end = None
            route.cancelled_at = None
            if notes is not None:
                route.notes = notes
            route.updated_at = now
            action = "RESCHEDULE"
        else:
            before = {}
            route = DeliveryRoute(
                service_order_id=order.id,
                vehicle_id=vehicle.id,
                route_type=route_type,
                team_ids=member_ids,
                start=start_dt,
                end=end_dt,
                status="scheduled",
                notes=notes,
                created_at=now,
            )
            db.add(route)
            action = "SCHEDULE"
        db.flush()

        # Re-check inside the transaction; the vehicle and member row locks make this authoritative
        late_conflicts = get_conflicting_routes(db, vehicle.id, start_dt, end_dt, route.id)
        if late_conflicts:
            raise VehicleUnavailable(
                "No vehicle availability for this window",
                details={"vehicle_id": str(vehicle.id), "conflicts": _conflict_info(late_conflicts)},
            )
        late_team_conflicts = get_team_conflicts(db, member_ids, start_dt, end_dt, route.id)
        if late_team_conflicts:
            raise TeamMemberUnavailable(
                "Team member already booked for this window",
                details={"conflicts": late_team_conflicts},
            )

        sync_order_route_cache(db, order)
        order.updated_at = now
        logistics_before = order.logistics_status
        refresh_logistics_status(db, order)

        record_audit_log(
            db,
            entity_type="delivery_route",
            entity_id=str(route.id),
            action=action,
            actor_id=actor_id,
            source="api",
            changes_json=compute_diff(before, _route_snapshot(route)),
            context={"service_order_id": str(order.id), "vehicle_id": str(vehicle.id)},
        )
        if logistics_before != order.logistics_status:
            record_audit_log(
                db,
                entity_type="service_order",
                entity_id=str(order.id),
                action="LOGISTICS_STATUS",
                actor_id=actor_id,
                source="system",
                changes_json={"logistics_status": {"before": logistics_before, "after": order.logistics_status}},
                context={"route_id": str(route.id)},
            )
    except LogisticsError:
        db.rollback()
        raise

    commit_or_rollback(db, "delivery schedule")
    db.refresh(route)
    logger.info(
        "delivery_scheduled",
        route_id=str(route.id),
        service_order_id=str(order.id),
        vehicle_id=str(vehicle.id),
        start=start_dt.isoformat(),
        end=end_dt.isoformat(),
        rescheduled=action == "RESCHEDULE",
    )
    return route


def update_route_status(
    db: Session,
    route_id: Any,
    new_status: str,
    notes: Optional[str] = None,
    actor_id: Optional[str] = None,
) -> DeliveryRoute:
    """
    Move a route one step through its lifecycle and re-derive the owning
    order's logistics status in the same transaction.

    Raises:
        NotFoundError, InvalidRouteTransition, PersistenceError
    """
    route = (
        db.query(DeliveryRoute)
        .filter(DeliveryRoute.id == as_uuid(route_id, "route_id"))
        .with_for_update()
        .first()
    )
    if not route:
        raise NotFoundError("Route not found", details={"route_id": str(route_id)})

    previous = route.status
    assert_route_transition(previous, new_status)

    now = utc_now()
    route.status = new_status
    route.updated_at = now
    if new_status == "in_progress":
        route.actual_start = now
    elif new_status == "completed":
        route.actual_end = now
    elif new_status == "cancelled":
        route.cancelled_at = now
    if notes is not None:
        route.notes = notes

    order = route.service_order
    sync_order_route_cache(db, order)
    order.updated_at = now
    logistics_before = order.logistics_status
    refresh_logistics_status(db, order)

    record_audit_log(
        db,
        entity_type="delivery_route",
        entity_id=str(route.id),
        action="STATUS_CHANGE",
        actor_id=actor_id,
        source="api",
        changes_json={"status": {"before": previous, "after": new_status}},
        context={"service_order_id": str(order.id)},
    )
    if logistics_before != order.logistics_status:
        record_audit_log(
            db,
            entity_type="service_order",
            entity_id=str(order.id),
            action="LOGISTICS_STATUS",
            actor_id=actor_id,
            source="system",
            changes_json={"logistics_status": {"before": logistics_before, "after": order.logistics_status}},
            context={"route_id": str(route.id)},
        )

    commit_or_rollback(db, "route status")
    db.refresh(route)
    logger.info(
        "route_status_changed",
        route_id=str(route.id),
        service_order_id=str(order.id),
        before=previous,
        after=new_status,
        logistics_status=order.logistics_status,
    )
    return route


# ---------- Reads ----------

def get_routes_for_order(db: Session, service_order_id: Any) -> List[DeliveryRoute]:
    order = get_service_order(db, service_order_id)
    return list(reversed(_routes_of(db, order)))


def list_routes(
    db: Session,
    vehicle_id: Any = None,
    start: Any = None,
    end: Any = None,
    status: Optional[str] = None,
) -> List[DeliveryRoute]:
    """Routes ordered by start; a window keeps routes intersecting it."""
    query = db.query(DeliveryRoute)
    if vehicle_id:
        query = query.filter(DeliveryRoute.vehicle_id == as_uuid(vehicle_id, "vehicle_id"))
    if status:
        query = query.filter(DeliveryRoute.status == status)
    try:
        start_dt = parse_instant(start, "start")
        end_dt = parse_instant(end, "end")
    except ValueError as exc:
        raise InvalidWindow(str(exc))
    if start_dt is not None:
        query = query.filter(DeliveryRoute.end > start_dt)
    if end_dt is not None:
        query = query.filter(DeliveryRoute.start < end_dt)
    return query.order_by(DeliveryRoute.start).all()


def _optional_window(start: Any, end: Any) -> Tuple[Optional[datetime], Optional[datetime]]:
    try:
        return parse_instant(start, "start"), parse_instant(end, "end")
    except ValueError as exc:
        raise InvalidWindow(str(exc))


def available_vehicles(db: Session, start: Any = None, end: Any = None, exclude_route_id: Any = None):
    start_dt, end_dt = _optional_window(start, end)
    exclude = as_uuid(exclude_route_id, "route_id") if exclude_route_id else None
    return find_available_vehicles(get_vehicles(db), get_live_routes(db), start_dt, end_dt, exclude)


def available_team_members(db: Session, start: Any = None, end: Any = None, exclude_route_id: Any = None):
    start_dt, end_dt = _optional_window(start, end)
    exclude = as_uuid(exclude_route_id, "route_id") if exclude_route_id else None
    return find_available_team_members(get_team_members(db), get_live_routes(db), start_dt, end_dt, exclude)


def check_vehicle_availability(
    db: Session,
    vehicle_id: Any,
    start: Any,
    end: Any,
    exclude_route_id: Any = None,
) -> Dict[str, Any]:
    """Availability of one vehicle, with the reason when it is not available."""
    start_dt, end_dt = parse_window(start, end)
    vehicle = get_vehicle(db, vehicle_id)
    exclude = as_uuid(exclude_route_id, "route_id") if exclude_route_id else None
    if is_vehicle_blocked(vehicle):
        return {"available": False, "reason": "vehicle_out_of_service", "conflicts": []}
    conflicts = get_conflicting_routes(db, vehicle.id, start_dt, end_dt, exclude)
    if conflicts:
        return {"available": False, "reason": "window_conflict", "conflicts": _conflict_info(conflicts)}
    return {"available": True, "reason": None, "conflicts": []}
