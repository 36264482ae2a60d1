"""
Service order plumbing needed by the logistics core: lookup, creation and
the departure checklist.
"""
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import ServiceOrder
from .audit import record_audit_log, compute_diff
from .errors import NotFoundError
from .time_rules import parse_instant, utc_now
from .transactions import commit_or_rollback

logger = structlog.get_logger(__name__)


def as_uuid(value: Any, label: str = "id") -> uuid.UUID:
    """Coerce an id; malformed ids are reported as not found."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        raise NotFoundError(f"{label} not found", details={label: str(value)})


def get_service_order(db: Session, service_order_id: Any, for_update: bool = False) -> ServiceOrder:
    query = db.query(ServiceOrder).filter(ServiceOrder.id == as_uuid(service_order_id, "service_order_id"))
    if for_update:
        query = query.with_for_update()
    order = query.first()
    if not order:
        raise NotFoundError("Service order not found", details={"service_order_id": str(service_order_id)})
    return order


def list_service_orders(
    db: Session,
    production_status: Optional[str] = None,
    logistics_status: Optional[str] = None,
) -> List[ServiceOrder]:
    query = db.query(ServiceOrder)
    if production_status:
        query = query.filter(ServiceOrder.production_status == production_status)
    if logistics_status:
        query = query.filter(ServiceOrder.logistics_status == logistics_status)
    return query.order_by(ServiceOrder.created_at.desc()).all()


def generate_service_order_code(db: Session) -> str:
    """Generate a unique service order code (OS-<year>-<seq>)"""
    prefix = "OS"
    year = datetime.utcnow().year
    count = db.query(ServiceOrder).filter(
        ServiceOrder.code.like(f"{prefix}-{year}-%")
    ).count()
    return f"{prefix}-{year}-{count + 1:05d}"


def create_service_order(db: Session, data: Dict[str, Any], actor_id: Optional[str] = None) -> ServiceOrder:
    """
    Create a service order in production (cutting).

    Logistics and confirmation fields are never taken from the input; they
    only change through scheduling and finalization.
    """
    order = ServiceOrder(
        code=generate_service_order_code(db),
        order_ref=data.get("order_ref"),
        client_name=data["client_name"],
        delivery_address=data.get("delivery_address"),
        items=data.get("items") or [],
        total=data.get("total") or 0,
        delivery_date=parse_instant(data.get("delivery_date"), "delivery_date"),
        assigned_to_ids=[str(i) for i in (data.get("assigned_to_ids") or [])],
        priority=data.get("priority") or "normal",
        production_status="cutting",
        allocated_slab_id=data.get("allocated_slab_id"),
        attachment=data.get("attachment"),
        departure_checklist=normalize_checklist(data.get("departure_checklist") or []),
        observations=data.get("observations"),
    )
    db.add(order)
    db.flush()
    record_audit_log(
        db,
        entity_type="service_order",
        entity_id=str(order.id),
        action="CREATE",
        actor_id=actor_id,
        source="api",
        changes_json={"after": {"code": order.code, "client_name": order.client_name}},
    )
    commit_or_rollback(db, "service order")
    db.refresh(order)
    logger.info("service_order_created", service_order_id=str(order.id), code=order.code)
    return order


def normalize_checklist(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep item order; blank ids get a generated one."""
    normalized = []
    for item in items:
        item_id = str(item.get("id") or "").strip()
        normalized.append({
            "id": item_id or uuid.uuid4().hex,
            "text": str(item.get("text") or "").strip(),
            "checked": bool(item.get("checked", False)),
        })
    return normalized


def update_departure_checklist(
    db: Session,
    service_order_id: Any,
    items: List[Dict[str, Any]],
    actor_id: Optional[str] = None,
) -> ServiceOrder:
    order = get_service_order(db, service_order_id)
    before = {"departure_checklist": order.departure_checklist or []}
    order.departure_checklist = normalize_checklist(items)
    order.updated_at = utc_now()
    record_audit_log(
        db,
        entity_type="service_order",
        entity_id=str(order.id),
        action="UPDATE_CHECKLIST",
        actor_id=actor_id,
        source="api",
        changes_json=compute_diff(before, {"departure_checklist": order.departure_checklist}),
    )
    commit_or_rollback(db, "departure checklist")
    db.refresh(order)
    return order
