import uuid
from datetime import datetime
from typing import List, Optional, Dict, Any
from enum import Enum

from pydantic import BaseModel, Field, field_validator


# Enums
class ProductionStatus(str, Enum):
    cutting = "cutting"
    finishing = "finishing"
    awaiting_pickup = "awaiting_pickup"


class FinalizationType(str, Enum):
    pickup = "pickup"
    delivery_only = "delivery_only"
    delivery_installation = "delivery_installation"


class LogisticsStatus(str, Enum):
    awaiting_scheduling = "awaiting_scheduling"
    scheduled = "scheduled"
    in_transit = "in_transit"
    delivered = "delivered"
    completed = "completed"


class RouteStatus(str, Enum):
    pending = "pending"
    scheduled = "scheduled"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class RouteType(str, Enum):
    delivery = "delivery"
    installation = "installation"


class VehicleStatus(str, Enum):
    disponivel = "disponivel"
    em_uso = "em_uso"
    em_manutencao = "em_manutencao"
    inativo = "inativo"


class VehicleType(str, Enum):
    van = "van"
    caminhao = "caminhao"


class EmployeeAvailability(str, Enum):
    available = "available"
    on_task = "on_task"
    on_leave = "on_leave"


class Priority(str, Enum):
    normal = "normal"
    alta = "alta"
    urgente = "urgente"


# Vehicle Schemas
class VehicleCreate(BaseModel):
    name: str
    license_plate: str
    capacity: float = 0
    vehicle_type: VehicleType = VehicleType.van
    status: VehicleStatus = VehicleStatus.disponivel
    notes: Optional[str] = None

    @field_validator("license_plate")
    @classmethod
    def plate_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("license_plate is required")
        return v


class VehicleResponse(BaseModel):
    id: uuid.UUID
    name: str
    license_plate: str
    capacity: float
    vehicle_type: str
    status: str
    last_maintenance_date: Optional[datetime] = None
    next_maintenance_date: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Team Member Schemas
class TeamMemberCreate(BaseModel):
    name: str
    role: str
    email: Optional[str] = None
    phone: Optional[str] = None
    availability: EmployeeAvailability = EmployeeAvailability.available
    active: bool = True
    skills: List[str] = []
    notes: Optional[str] = None


class TeamMemberResponse(BaseModel):
    id: uuid.UUID
    name: str
    role: str
    email: Optional[str] = None
    phone: Optional[str] = None
    availability: str
    active: bool
    skills: Optional[List[str]] = None

    class Config:
        from_attributes = True


# Route Schemas
class ScheduleRequest(BaseModel):
    # Windows stay raw here; the scheduler parses them so bad input maps to invalid_window
    vehicle_id: Optional[str] = None
    start: Optional[str] = None
    end: Optional[str] = None
    team_ids: List[str] = []
    route_type: RouteType = RouteType.delivery
    notes: Optional[str] = None


class RouteStatusUpdate(BaseModel):
    status: RouteStatus
    notes: Optional[str] = None


class DeliveryRouteResponse(BaseModel):
    id: uuid.UUID
    service_order_id: uuid.UUID
    vehicle_id: uuid.UUID
    route_type: str
    team_ids: List[str] = []
    start: datetime
    end: datetime
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    status: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    available: bool
    reason: Optional[str] = None
    conflicts: List[Dict[str, Any]] = []


# Service Order Schemas
class ChecklistItem(BaseModel):
    id: Optional[str] = None
    text: str
    checked: bool = False


class ServiceOrderCreate(BaseModel):
    client_name: str
    order_ref: Optional[str] = None
    delivery_address: Optional[Dict[str, Any]] = None
    items: List[Dict[str, Any]] = []
    total: float = 0
    delivery_date: Optional[str] = None
    assigned_to_ids: List[str] = []
    priority: Priority = Priority.normal
    allocated_slab_id: Optional[str] = None
    attachment: Optional[Dict[str, Any]] = None
    departure_checklist: List[ChecklistItem] = []
    observations: Optional[str] = None


class ProductionStatusUpdate(BaseModel):
    status: ProductionStatus
    allocated_slab_id: Optional[str] = None


class FinalizationTypeUpdate(BaseModel):
    finalization_type: FinalizationType


class ChecklistUpdate(BaseModel):
    items: List[ChecklistItem] = Field(default_factory=list)


class ServiceOrderResponse(BaseModel):
    id: uuid.UUID
    code: str
    order_ref: Optional[str] = None
    client_name: str
    delivery_address: Optional[Dict[str, Any]] = None
    items: Optional[List[Dict[str, Any]]] = None
    total: float
    delivery_date: Optional[datetime] = None
    priority: str
    production_status: str
    finalization_type: Optional[str] = None
    logistics_status: Optional[str] = None
    delivery_confirmed: bool
    delivery_confirmed_at: Optional[datetime] = None
    installation_confirmed: bool
    installation_confirmed_at: Optional[datetime] = None
    allocated_slab_id: Optional[str] = None
    attachment: Optional[Dict[str, Any]] = None
    departure_checklist: Optional[List[Dict[str, Any]]] = None
    observations: Optional[str] = None
    vehicle_id: Optional[uuid.UUID] = None
    delivery_start: Optional[datetime] = None
    delivery_end: Optional[datetime] = None
    delivery_team_ids: Optional[List[str]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ServiceOrderDetailResponse(ServiceOrderResponse):
    is_finalized: bool = False


# Audit
class AuditLogResponse(BaseModel):
    id: uuid.UUID
    entity_type: str
    entity_id: uuid.UUID
    action: str
    actor_id: Optional[str] = None
    source: Optional[str] = None
    changes_json: Optional[Dict[str, Any]] = None
    timestamp_utc: datetime
    context: Optional[Dict[str, Any]] = None
    integrity_hash: Optional[str] = None

    class Config:
        from_attributes = True
