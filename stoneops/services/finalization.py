"""
Finalization state machine.

production (cutting -> finishing -> awaiting_pickup)
  -> finalization type chosen
  -> logistics (awaiting_scheduling -> scheduled -> in_transit -> delivered/completed)
  -> delivery confirmed      (delivery types only)
  -> installation confirmed  (delivery_installation only, after delivery)

Every guard is checked here, at the mutation boundary. A failed guard raises
GuardViolation before anything is changed.
"""
from typing import Any, Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import ServiceOrder
from .audit import record_audit_log
from .errors import GuardViolation, InvalidRouteTransition
from .service_orders import get_service_order
from .status_derivation import DELIVERY_FINALIZATION_TYPES, refresh_logistics_status
from .time_rules import utc_now
from .transactions import commit_or_rollback

logger = structlog.get_logger(__name__)

PRODUCTION_FLOW = ("cutting", "finishing", "awaiting_pickup")
FINALIZATION_TYPES = ("pickup",) + DELIVERY_FINALIZATION_TYPES
# Production must have reached one of these before finalization type is chosen
FINALIZABLE_PRODUCTION_STATUSES = ("finishing", "awaiting_pickup")
# Logistics statuses meaning the route arrived
DELIVERED_LOGISTICS_STATUSES = ("delivered", "completed")

# Forward-only route lifecycle; cancel is allowed from any non-terminal state
ROUTE_TRANSITIONS = {
    "pending": ("scheduled", "cancelled"),
    "scheduled": ("in_progress", "cancelled"),
    "in_progress": ("completed", "cancelled"),
    "completed": (),
    "cancelled": (),
}


def assert_route_transition(current: str, new: str) -> None:
    if new not in ROUTE_TRANSITIONS:
        raise InvalidRouteTransition(f"Unknown route status '{new}'", details={"status": new})
    if new not in ROUTE_TRANSITIONS.get(current, ()):
        raise InvalidRouteTransition(
            f"Route cannot go from '{current}' to '{new}'",
            details={"from": current, "to": new, "allowed": list(ROUTE_TRANSITIONS.get(current, ()))},
        )


def _violation(order: ServiceOrder, action: str, message: str, **details) -> GuardViolation:
    logger.warning("guard_violation", service_order_id=str(order.id), action=action, reason=message)
    return GuardViolation(message, details={"action": action, **details})


def check_can_set_finalization_type(order: ServiceOrder, finalization_type: str) -> None:
    if finalization_type not in FINALIZATION_TYPES:
        raise _violation(order, "set_finalization_type", f"Unknown finalization type '{finalization_type}'")
    if order.finalization_type:
        raise _violation(
            order, "set_finalization_type", "Finalization type was already chosen",
            finalization_type=order.finalization_type,
        )
    if order.production_status not in FINALIZABLE_PRODUCTION_STATUSES:
        raise _violation(
            order, "set_finalization_type", "Production is not finished yet",
            production_status=order.production_status,
        )


def check_can_confirm_delivery(order: ServiceOrder) -> None:
    if order.finalization_type not in DELIVERY_FINALIZATION_TYPES:
        raise _violation(
            order, "confirm_delivery", "Order is not set for delivery",
            finalization_type=order.finalization_type,
        )
    if order.delivery_confirmed:
        raise _violation(order, "confirm_delivery", "Delivery already confirmed")
    if order.logistics_status not in DELIVERED_LOGISTICS_STATUSES:
        raise _violation(
            order, "confirm_delivery", "Delivery route has not arrived yet",
            logistics_status=order.logistics_status,
        )


def check_can_confirm_installation(order: ServiceOrder) -> None:
    if order.finalization_type != "delivery_installation":
        raise _violation(
            order, "confirm_installation", "Order does not include installation",
            finalization_type=order.finalization_type,
        )
    if not order.delivery_confirmed:
        raise _violation(order, "confirm_installation", "Delivery must be confirmed first")
    if order.installation_confirmed:
        raise _violation(order, "confirm_installation", "Installation already confirmed")


def is_finalized(order: ServiceOrder) -> bool:
    """Production done and every confirmation its finalization type needs is in."""
    if order.production_status != "awaiting_pickup" or not order.finalization_type:
        return False
    if order.finalization_type == "pickup":
        return True
    if not order.delivery_confirmed:
        return False
    if order.finalization_type == "delivery_installation":
        return bool(order.installation_confirmed)
    return True


def advance_production_status(
    db: Session,
    service_order_id: Any,
    status: str,
    allocated_slab_id: Optional[str] = None,
    actor_id: Optional[str] = None,
) -> ServiceOrder:
    """Move production exactly one step forward."""
    order = get_service_order(db, service_order_id)
    current = order.production_status
    if status not in PRODUCTION_FLOW:
        raise _violation(order, "advance_production", f"Unknown production status '{status}'")
    if PRODUCTION_FLOW.index(status) != PRODUCTION_FLOW.index(current) + 1:
        raise _violation(
            order, "advance_production", f"Production cannot go from '{current}' to '{status}'",
            production_status=current,
        )

    order.production_status = status
    if allocated_slab_id is not None:
        order.allocated_slab_id = allocated_slab_id
    order.updated_at = utc_now()
    record_audit_log(
        db,
        entity_type="service_order",
        entity_id=str(order.id),
        action="PRODUCTION_STATUS",
        actor_id=actor_id,
        source="api",
        changes_json={"production_status": {"before": current, "after": status}},
    )
    commit_or_rollback(db, "production status change")
    db.refresh(order)
    logger.info("production_status_changed", service_order_id=str(order.id), before=current, after=status)
    return order


def set_finalization_type(
    db: Session,
    service_order_id: Any,
    finalization_type: str,
    actor_id: Optional[str] = None,
) -> ServiceOrder:
    """The "finish production" action."""
    order = get_service_order(db, service_order_id)
    check_can_set_finalization_type(order, finalization_type)

    before = {"production_status": order.production_status, "logistics_status": order.logistics_status}
    order.finalization_type = finalization_type
    order.production_status = "awaiting_pickup"
    order.updated_at = utc_now()
    refresh_logistics_status(db, order)
    record_audit_log(
        db,
        entity_type="service_order",
        entity_id=str(order.id),
        action="SET_FINALIZATION_TYPE",
        actor_id=actor_id,
        source="api",
        changes_json={
            "before": before,
            "after": {
                "finalization_type": finalization_type,
                "production_status": order.production_status,
                "logistics_status": order.logistics_status,
            },
        },
    )
    commit_or_rollback(db, "finalization type")
    db.refresh(order)
    logger.info("finalization_type_set", service_order_id=str(order.id), finalization_type=finalization_type)
    return order


def confirm_delivery(db: Session, service_order_id: Any, actor_id: Optional[str] = None) -> ServiceOrder:
    order = get_service_order(db, service_order_id)
    check_can_confirm_delivery(order)

    order.delivery_confirmed = True
    order.delivery_confirmed_at = utc_now()
    order.updated_at = order.delivery_confirmed_at
    record_audit_log(
        db,
        entity_type="service_order",
        entity_id=str(order.id),
        action="CONFIRM_DELIVERY",
        actor_id=actor_id,
        source="api",
        changes_json={"delivery_confirmed": {"before": False, "after": True}},
        context={"logistics_status": order.logistics_status},
    )
    commit_or_rollback(db, "delivery confirmation")
    db.refresh(order)
    logger.info("delivery_confirmed", service_order_id=str(order.id))
    return order


def confirm_installation(db: Session, service_order_id: Any, actor_id: Optional[str] = None) -> ServiceOrder:
    order = get_service_order(db, service_order_id)
    check_can_confirm_installation(order)

    order.installation_confirmed = True
    order.installation_confirmed_at = utc_now()
    order.updated_at = order.installation_confirmed_at
    record_audit_log(
        db,
        entity_type="service_order",
        entity_id=str(order.id),
        action="CONFIRM_INSTALLATION",
        actor_id=actor_id,
        source="api",
        changes_json={"installation_confirmed": {"before": False, "after": True}},
    )
    commit_or_rollback(db, "installation confirmation")
    db.refresh(order)
    logger.info("installation_confirmed", service_order_id=str(order.id))
    return order
