"""
Seed the local database with a small fleet, a delivery team and one service
order ready to be scheduled.

Usage:
  python scripts/seed_logistics.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (license_plate for vehicles, email for team
members, order_ref for service orders).
"""

from stoneops.db import SessionLocal, Base, engine
from stoneops.models.models import Vehicle, ProductionEmployee, ServiceOrder
from stoneops.services.audit import record_audit_log
from stoneops.services.service_orders import generate_service_order_code


def ensure_vehicle(session, name: str, license_plate: str, **kwargs) -> Vehicle:
    plate = license_plate.strip().upper()
    row = session.query(Vehicle).filter(Vehicle.license_plate == plate).first()
    if row:
        row.name = name
        for k, v in kwargs.items():
            setattr(row, k, v)
        return row
    row = Vehicle(name=name, license_plate=plate, **kwargs)
    session.add(row)
    session.flush()
    return row


def ensure_team_member(session, name: str, email: str, role: str, **kwargs) -> ProductionEmployee:
    row = session.query(ProductionEmployee).filter(ProductionEmployee.email == email).first()
    if row:
        row.name = name
        row.role = role
        for k, v in kwargs.items():
            setattr(row, k, v)
        return row
    row = ProductionEmployee(name=name, email=email, role=role, **kwargs)
    session.add(row)
    session.flush()
    return row


def ensure_service_order(session, order_ref: str, client_name: str, **kwargs) -> ServiceOrder:
    row = session.query(ServiceOrder).filter(ServiceOrder.order_ref == order_ref).first()
    if row:
        return row
    row = ServiceOrder(
        code=generate_service_order_code(session),
        order_ref=order_ref,
        client_name=client_name,
        **kwargs,
    )
    session.add(row)
    session.flush()
    record_audit_log(
        session,
        entity_type="service_order",
        entity_id=str(row.id),
        action="CREATE",
        source="script",
        changes_json={"after": {"code": row.code, "client_name": client_name}},
    )
    return row


def main() -> None:
    # Ensure tables exist (safe for SQLite dev)
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        # Fleet
        ensure_vehicle(session, "Fiorino Branca", "abc1d23", capacity=650, vehicle_type="van")
        ensure_vehicle(session, "Caminhão Baú", "xyz9k87", capacity=3500, vehicle_type="caminhao")
        ensure_vehicle(session, "Van Reserva", "qwe4r56", capacity=1200, vehicle_type="van", status="em_manutencao")

        # Delivery team
        ensure_team_member(session, "Carlos Entregador", "carlos@example.com", "entregador", phone="11 90000-0001")
        ensure_team_member(session, "Marina Montadora", "marina@example.com", "montador", phone="11 90000-0002")
        ensure_team_member(session, "Paulo Ajudante", "paulo@example.com", "helper", availability="on_leave")

        # One order already out of production, waiting for a delivery route
        ensure_service_order(
            session,
            order_ref="PED-0001",
            client_name="Residencial Jardim",
            delivery_address={
                "cep": "01310-100",
                "uf": "SP",
                "city": "São Paulo",
                "neighborhood": "Bela Vista",
                "address": "Av. Paulista",
                "number": "1000",
            },
            items=[{"description": "Bancada cozinha granito preto", "quantity": 1}],
            total=4800,
            production_status="awaiting_pickup",
            finalization_type="delivery_installation",
            logistics_status="awaiting_scheduling",
            departure_checklist=[],
        )

        # Commit all changes
        session.commit()
        print("Seed completed: vehicles, team members and service order upserted.")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
