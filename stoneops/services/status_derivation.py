"""
Logistics status derivation.

A service order's logistics status is a function of its routes' statuses.
The stored ServiceOrder.logistics_status is a cache of that function and is
refreshed after every route mutation.
"""
from typing import Iterable, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import DeliveryRoute, ServiceOrder
from .errors import IndeterminateDerivedStatus

logger = structlog.get_logger(__name__)

DELIVERY_FINALIZATION_TYPES = ("delivery_only", "delivery_installation")


def _statuses(routes: Iterable) -> List[str]:
    return [r if isinstance(r, str) else r.status for r in routes]


def derive_logistics_status(routes: Iterable) -> Optional[str]:
    """
    Map route statuses (route objects or plain strings) to one logistics status.

    Rules, first match wins:
      1. no routes                 -> None
      2. all completed             -> completed
      3. any in_progress           -> in_transit
      4. any scheduled             -> scheduled
      5. all cancelled             -> awaiting_scheduling
      6. all pending               -> awaiting_scheduling
      7. anything else             -> None (indeterminate)

    Order of the input does not matter.
    """
    statuses = _statuses(routes)
    if not statuses:
        return None
    if all(s == "completed" for s in statuses):
        return "completed"
    if any(s == "in_progress" for s in statuses):
        return "in_transit"
    if any(s == "scheduled" for s in statuses):
        return "scheduled"
    if all(s == "cancelled" for s in statuses):
        return "awaiting_scheduling"
    if all(s == "pending" for s in statuses):
        return "awaiting_scheduling"
    return None


def derive_or_raise(routes: Iterable) -> Optional[str]:
    """
    Like derive_logistics_status, but tells "no routes" (None) apart from an
    ambiguous mix (IndeterminateDerivedStatus).
    """
    statuses = _statuses(routes)
    derived = derive_logistics_status(statuses)
    if derived is None and statuses:
        raise IndeterminateDerivedStatus(statuses)
    return derived


def refresh_logistics_status(db: Session, order: ServiceOrder) -> Optional[str]:
    """
    Recompute and store the order's logistics status from its routes.

    Orders without routes fall back to awaiting_scheduling when they are headed
    for delivery, and to no logistics status otherwise. An indeterminate mix
    keeps the prior value. Flushes, does not commit.

    Returns:
        The status now stored on the order
    """
    db.flush()
    routes = (
        db.query(DeliveryRoute)
        .filter(DeliveryRoute.service_order_id == order.id)
        .all()
    )
    previous = order.logistics_status
    try:
        derived = derive_or_raise(routes)
    except IndeterminateDerivedStatus as exc:
        logger.warning(
            "logistics_status_indeterminate",
            service_order_id=str(order.id),
            statuses=exc.statuses,
            kept=previous,
        )
        return previous

    if derived is None:
        derived = "awaiting_scheduling" if order.finalization_type in DELIVERY_FINALIZATION_TYPES else None

    if derived != previous:
        order.logistics_status = derived
        db.flush()
        logger.info(
            "logistics_status_derived",
            service_order_id=str(order.id),
            before=previous,
            after=derived,
        )
    return derived
