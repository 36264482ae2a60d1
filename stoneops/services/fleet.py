"""
Read-mostly lookups for vehicles and delivery team members.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models.models import DeliveryRoute, ProductionEmployee, Vehicle
from .errors import NotFoundError
from .route_conflict import BLOCKING_ROUTE_STATUSES
from .service_orders import as_uuid
from .transactions import commit_or_rollback


def get_vehicles(db: Session, status: Optional[str] = None) -> List[Vehicle]:
    query = db.query(Vehicle)
    if status:
        query = query.filter(Vehicle.status == status)
    return query.order_by(Vehicle.name).all()


def get_vehicle(db: Session, vehicle_id: Any, for_update: bool = False) -> Vehicle:
    query = db.query(Vehicle).filter(Vehicle.id == as_uuid(vehicle_id, "vehicle_id"))
    if for_update:
        # Serializes scheduling on the same vehicle (no-op on SQLite)
        query = query.with_for_update()
    vehicle = query.first()
    if not vehicle:
        raise NotFoundError("Vehicle not found", details={"vehicle_id": str(vehicle_id)})
    return vehicle


def create_vehicle(db: Session, data: Dict[str, Any]) -> Vehicle:
    vehicle = Vehicle(
        name=data["name"],
        license_plate=data["license_plate"].strip().upper(),
        capacity=data.get("capacity") or 0,
        vehicle_type=data.get("vehicle_type") or "van",
        status=data.get("status") or "disponivel",
        notes=data.get("notes"),
    )
    db.add(vehicle)
    commit_or_rollback(db, "vehicle")
    db.refresh(vehicle)
    return vehicle


def get_team_members(db: Session, role: Optional[str] = None, active_only: bool = False) -> List[ProductionEmployee]:
    query = db.query(ProductionEmployee)
    if role:
        query = query.filter(ProductionEmployee.role == role)
    if active_only:
        query = query.filter(ProductionEmployee.active.is_(True))
    return query.order_by(ProductionEmployee.name).all()


def get_team_members_by_ids(db: Session, member_ids: List[Any], for_update: bool = False) -> List[ProductionEmployee]:
    """Fetch members in the given order; unknown ids raise NotFoundError."""
    wanted = [as_uuid(m, "team_member_id") for m in member_ids]
    query = db.query(ProductionEmployee).filter(ProductionEmployee.id.in_(wanted))
    if for_update:
        # Serializes scheduling of the same member across vehicles
        query = query.order_by(ProductionEmployee.id).with_for_update()
    found = {e.id: e for e in query.all()}
    missing = [str(m) for m in wanted if m not in found]
    if missing:
        raise NotFoundError("Team member not found", details={"team_member_ids": missing})
    return [found[m] for m in wanted]


def create_team_member(db: Session, data: Dict[str, Any]) -> ProductionEmployee:
    employee = ProductionEmployee(
        name=data["name"],
        email=data.get("email"),
        phone=data.get("phone"),
        role=data["role"],
        availability=data.get("availability") or "available",
        active=data.get("active", True),
        skills=data.get("skills") or [],
        notes=data.get("notes"),
    )
    db.add(employee)
    commit_or_rollback(db, "team member")
    db.refresh(employee)
    return employee


def get_live_routes(db: Session) -> List[DeliveryRoute]:
    """Every route still holding a commitment, read fresh."""
    return (
        db.query(DeliveryRoute)
        .filter(DeliveryRoute.status.in_(BLOCKING_ROUTE_STATUSES))
        .order_by(DeliveryRoute.start)
        .all()
    )
