from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.logistics import (
    TeamMemberCreate,
    TeamMemberResponse,
    VehicleCreate,
    VehicleResponse,
    VehicleStatus,
)
from ..services import fleet, scheduler

router = APIRouter(prefix="/logistics", tags=["logistics"])


# ---------- Vehicles ----------

@router.get("/vehicles", response_model=List[VehicleResponse])
def list_vehicles(status: Optional[VehicleStatus] = None, db: Session = Depends(get_db)):
    return fleet.get_vehicles(db, status=status.value if status else None)


@router.post("/vehicles", response_model=VehicleResponse, status_code=201)
def create_vehicle(payload: VehicleCreate, db: Session = Depends(get_db)):
    data = payload.model_dump()
    data["vehicle_type"] = payload.vehicle_type.value
    data["status"] = payload.status.value
    return fleet.create_vehicle(db, data)


@router.get("/vehicles/available", response_model=List[VehicleResponse])
def list_available_vehicles(
    start: Optional[str] = Query(None, description="ISO-8601 window start"),
    end: Optional[str] = Query(None, description="ISO-8601 window end"),
    route_id: Optional[str] = Query(None, description="Route being edited; its own window is ignored"),
    db: Session = Depends(get_db),
):
    """Vehicles free for [start, end). Without a window, every vehicle in service."""
    return scheduler.available_vehicles(db, start, end, exclude_route_id=route_id)


# ---------- Team members ----------

@router.get("/team-members", response_model=List[TeamMemberResponse])
def list_team_members(
    role: Optional[str] = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
):
    return fleet.get_team_members(db, role=role, active_only=active_only)


@router.post("/team-members", response_model=TeamMemberResponse, status_code=201)
def create_team_member(payload: TeamMemberCreate, db: Session = Depends(get_db)):
    data = payload.model_dump()
    data["availability"] = payload.availability.value
    return fleet.create_team_member(db, data)


@router.get("/team-members/available", response_model=List[TeamMemberResponse])
def list_available_team_members(
    start: Optional[str] = Query(None),
    end: Optional[str] = Query(None),
    route_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    return scheduler.available_team_members(db, start, end, exclude_route_id=route_id)
