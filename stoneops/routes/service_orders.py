"""
Service order API routes.
Production progress, finalization, confirmations and delivery scheduling.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.logistics import (
    ChecklistUpdate,
    DeliveryRouteResponse,
    FinalizationTypeUpdate,
    LogisticsStatus,
    ProductionStatus,
    ProductionStatusUpdate,
    ScheduleRequest,
    ServiceOrderCreate,
    ServiceOrderDetailResponse,
    ServiceOrderResponse,
)
from ..services import finalization, scheduler
from ..services.service_orders import (
    create_service_order,
    get_service_order,
    list_service_orders,
    update_departure_checklist,
)
from .deps import get_actor_id

router = APIRouter(prefix="/service-orders", tags=["service-orders"])


def _detail(order) -> ServiceOrderDetailResponse:
    response = ServiceOrderDetailResponse.model_validate(order)
    response.is_finalized = finalization.is_finalized(order)
    return response


@router.get("", response_model=List[ServiceOrderResponse])
def list_orders(
    production_status: Optional[ProductionStatus] = None,
    logistics_status: Optional[LogisticsStatus] = None,
    db: Session = Depends(get_db),
):
    return list_service_orders(
        db,
        production_status=production_status.value if production_status else None,
        logistics_status=logistics_status.value if logistics_status else None,
    )


@router.post("", response_model=ServiceOrderDetailResponse, status_code=201)
def create_order(
    payload: ServiceOrderCreate,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    data = payload.model_dump()
    data["priority"] = payload.priority.value
    order = create_service_order(db, data, actor_id=actor_id)
    return _detail(order)


@router.get("/{order_id}", response_model=ServiceOrderDetailResponse)
def get_order(order_id: str, db: Session = Depends(get_db)):
    return _detail(get_service_order(db, order_id))


@router.get("/{order_id}/routes", response_model=List[DeliveryRouteResponse])
def get_order_routes(order_id: str, db: Session = Depends(get_db)):
    return scheduler.get_routes_for_order(db, order_id)


@router.post("/{order_id}/schedule", response_model=DeliveryRouteResponse)
def schedule_order_delivery(
    order_id: str,
    payload: ScheduleRequest,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    """
    Create or reschedule the delivery route of an order.
    HARD STOP: overlapping vehicle or team bookings are rejected with 409.
    """
    return scheduler.schedule_delivery(
        db,
        order_id,
        vehicle_id=payload.vehicle_id,
        start=payload.start,
        end=payload.end,
        team_ids=payload.team_ids,
        route_type=payload.route_type.value,
        notes=payload.notes,
        actor_id=actor_id,
    )


@router.post("/{order_id}/production-status", response_model=ServiceOrderDetailResponse)
def update_production_status(
    order_id: str,
    payload: ProductionStatusUpdate,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    order = finalization.advance_production_status(
        db, order_id, payload.status.value,
        allocated_slab_id=payload.allocated_slab_id, actor_id=actor_id,
    )
    return _detail(order)


@router.post("/{order_id}/finalization-type", response_model=ServiceOrderDetailResponse)
def set_order_finalization_type(
    order_id: str,
    payload: FinalizationTypeUpdate,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    order = finalization.set_finalization_type(db, order_id, payload.finalization_type.value, actor_id=actor_id)
    return _detail(order)


@router.post("/{order_id}/confirm-delivery", response_model=ServiceOrderDetailResponse)
def confirm_order_delivery(
    order_id: str,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    return _detail(finalization.confirm_delivery(db, order_id, actor_id=actor_id))


@router.post("/{order_id}/confirm-installation", response_model=ServiceOrderDetailResponse)
def confirm_order_installation(
    order_id: str,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    return _detail(finalization.confirm_installation(db, order_id, actor_id=actor_id))


@router.put("/{order_id}/departure-checklist", response_model=ServiceOrderDetailResponse)
def put_departure_checklist(
    order_id: str,
    payload: ChecklistUpdate,
    db: Session = Depends(get_db),
    actor_id: Optional[str] = Depends(get_actor_id),
):
    items = [item.model_dump() for item in payload.items]
    return _detail(update_departure_checklist(db, order_id, items, actor_id=actor_id))
