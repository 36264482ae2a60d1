import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stoneops.db import Base, get_db
from stoneops.models.models import ProductionEmployee, ServiceOrder, Vehicle


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def api_client(session_factory) -> TestClient:
    from stoneops.main import app

    def _get_test_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_test_db
    app.state.limiter.enabled = False
    yield TestClient(app)
    app.dependency_overrides.clear()
    app.state.limiter.enabled = True


@pytest.fixture
def make_vehicle(db_session):
    def _make(name: str = "Fiorino", status: str = "disponivel", **kwargs) -> Vehicle:
        vehicle = Vehicle(
            name=name,
            license_plate=kwargs.pop("license_plate", uuid.uuid4().hex[:7].upper()),
            capacity=kwargs.pop("capacity", 650),
            status=status,
            **kwargs,
        )
        db_session.add(vehicle)
        db_session.commit()
        return vehicle

    return _make


@pytest.fixture
def make_member(db_session):
    def _make(name: str = "Carlos", role: str = "entregador", **kwargs) -> ProductionEmployee:
        member = ProductionEmployee(name=name, role=role, **kwargs)
        db_session.add(member)
        db_session.commit()
        return member

    return _make


@pytest.fixture
def make_order(db_session):
    def _make(
        production_status: str = "awaiting_pickup",
        finalization_type=None,
        logistics_status=None,
        **kwargs,
    ) -> ServiceOrder:
        order = ServiceOrder(
            code=f"OS-TEST-{uuid.uuid4().hex[:8]}",
            client_name=kwargs.pop("client_name", "Residencial Jardim"),
            production_status=production_status,
            finalization_type=finalization_type,
            logistics_status=logistics_status,
            **kwargs,
        )
        db_session.add(order)
        db_session.commit()
        return order

    return _make


@pytest.fixture
def delivery_order(make_order):
    """An order out of production, waiting for a delivery route."""
    return make_order(finalization_type="delivery_only", logistics_status="awaiting_scheduling")
