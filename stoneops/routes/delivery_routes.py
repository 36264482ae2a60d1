"""
Delivery route API routes.
Calendar listing, availability checks and the route lifecycle.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.logistics import (
    AvailabilityResponse,
    DeliveryRouteResponse,
    RouteStatus,
    RouteStatusUpdate,
)
from ..services import scheduler
from .deps import get_actor_id

router = APIRouter(prefix="/delivery-routes", tags=["delivery-routes"])


@router.get("", response_model=List[DeliveryRouteResponse])
def list_delivery_routes(
    vehicle_id: Optional[str] = None,
    start: Optional[str] = Query(None, description="Keep routes ending after this instant"),
    end: Optional[str] = Query(None, description="Keep routes starting before this instant"),
    status: Optional[RouteStatus] = None,
    db: Session = Depends(get_db),
):
    return scheduler.list_routes(
        db, vehicle_id=vehicle_id, start=start, end=end,
        status=status.value if status else None,
    )


@router.get("/check-availability", response_model=AvailabilityResponse)
def check_availability(
    vehicle_id: str,
    start: str,
    end: str,
    route_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return scheduler.check_vehicle_availability(db, vehicle_id, start, end, exclude_route_id=route_id)


@router.patch("/{route_id}/status", response_model=DeliveryRouteResponse)
def update_status(
    route_id: str,
    payload: RouteStatusUpdate,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """Start, arrive or cancel a route. Only forward moves are accepted."""
    return scheduler.update_route_status(
        db, route_id, payload.status.value, notes=payload.notes, actor_id=actor_id,
    )

