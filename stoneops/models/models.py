import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    Numeric,
    JSON,
    Text,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


# =====================
# Fleet & delivery team
# =====================

class Vehicle(Base):
    """Fleet vehicles used for deliveries and installations"""
    __tablename__ = "vehicles"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    license_plate: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    capacity: Mapped[float] = mapped_column(Float, nullable=False, default=0)  # Payload in kg
    vehicle_type: Mapped[str] = mapped_column(String(20), nullable=False, default="van")  # van|caminhao
    status: Mapped[str] = mapped_column(String(30), default="disponivel", index=True)  # disponivel|em_uso|em_manutencao|inativo
    last_maintenance_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    next_maintenance_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    routes = relationship("DeliveryRoute", back_populates="vehicle")


class ProductionEmployee(Base):
    """Shop floor and field personnel (drivers, installers, helpers)"""
    __tablename__ = "production_employees"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    role: Mapped[str] = mapped_column(String(30), nullable=False, index=True)  # entregador|montador|driver|installer|helper|technician|other
    availability: Mapped[str] = mapped_column(String(20), default="available")  # available|on_task|on_leave
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    skills: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index('idx_employee_role_availability', 'role', 'availability'),
    )


# =====================
# Service orders & routes
# =====================

class ServiceOrder(Base):
    """Production + delivery unit (OS) built from an approved order's items"""
    __tablename__ = "service_orders"

    id: Mapped[uuid.UUID] = uuid_pk()
    code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)  # OS-<year>-<seq>
    order_ref: Mapped[Optional[str]] = mapped_column(String(50), index=True)  # Parent approved order (PED-...)
    client_name: Mapped[str] = mapped_column(String(255), nullable=False)
    delivery_address: Mapped[Optional[dict]] = mapped_column(JSON)  # {cep, uf, city, neighborhood, address, number, complement}
    items: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    total: Mapped[float] = mapped_column(Numeric(12, 2), default=0)
    delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    assigned_to_ids: Mapped[Optional[list]] = mapped_column(JSON, default=list)
    priority: Mapped[str] = mapped_column(String(20), default="normal")  # normal|alta|urgente

    production_status: Mapped[str] = mapped_column(String(30), default="cutting", index=True)  # cutting|finishing|awaiting_pickup
    finalization_type: Mapped[Optional[str]] = mapped_column(String(30))  # pickup|delivery_only|delivery_installation
    # Derived from the order's routes; only the derivation engine writes it
    logistics_status: Mapped[Optional[str]] = mapped_column(String(30), index=True)
    delivery_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    delivery_confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    installation_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    installation_confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    allocated_slab_id: Mapped[Optional[str]] = mapped_column(String(100))
    attachment: Mapped[Optional[dict]] = mapped_column(JSON)  # {name, url}
    departure_checklist: Mapped[Optional[list]] = mapped_column(JSON)  # [{id, text, checked}]
    observations: Mapped[Optional[str]] = mapped_column(Text)

    # Denormalized copy of the active route, for display only
    vehicle_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("vehicles.id", ondelete="SET NULL"))
    delivery_start: Mapped[Optional[datetime]] = mapped_column(DateTime)
    delivery_end: Mapped[Optional[datetime]] = mapped_column(DateTime)
    delivery_team_ids: Mapped[Optional[list]] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    routes = relationship(
        "DeliveryRoute",
        back_populates="service_order",
        cascade="all, delete-orphan",
        order_by="DeliveryRoute.created_at",
    )


class DeliveryRoute(Base):
    """A vehicle + team + time window committed to one service order"""
    __tablename__ = "delivery_routes"

    id: Mapped[uuid.UUID] = uuid_pk()
    service_order_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("service_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    vehicle_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("vehicles.id", ondelete="RESTRICT"), nullable=False, index=True)
    route_type: Mapped[str] = mapped_column(String(20), default="delivery")  # delivery|installation
    team_ids: Mapped[list] = mapped_column(JSON, default=list)  # Ordered ProductionEmployee ids
    start: Mapped[datetime] = mapped_column(DateTime, nullable=False)  # UTC
    end: Mapped[datetime] = mapped_column(DateTime, nullable=False)  # UTC
    actual_start: Mapped[Optional[datetime]] = mapped_column(DateTime)
    actual_end: Mapped[Optional[datetime]] = mapped_column(DateTime)
    status: Mapped[str] = mapped_column(String(20), default="scheduled", index=True)  # pending|scheduled|in_progress|completed|cancelled
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    service_order = relationship("ServiceOrder", back_populates="routes")
    vehicle = relationship("Vehicle", back_populates="routes")

    # Indexes for conflict checking
    __table_args__ = (
        Index('idx_route_vehicle_window', 'vehicle_id', 'start', 'end'),
        Index('idx_route_order_status', 'service_order_id', 'status'),
    )


class AuditLog(Base):
    """Append-only audit log for scheduling and finalization actions"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # service_order|delivery_route
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATE|SCHEDULE|STATUS_CHANGE|CONFIRM_DELIVERY|...
    actor_id: Mapped[Optional[str]] = mapped_column(String(100), index=True)
    source: Mapped[Optional[str]] = mapped_column(String(50))  # api|system|script
    changes_json: Mapped[Optional[dict]] = mapped_column(JSON)  # Before/after diff
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )
