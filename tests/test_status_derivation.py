from datetime import datetime, timedelta
from itertools import permutations

import pytest

from stoneops.models.models import DeliveryRoute
from stoneops.services.errors import IndeterminateDerivedStatus
from stoneops.services.status_derivation import (
    derive_logistics_status,
    derive_or_raise,
    refresh_logistics_status,
)


@pytest.mark.parametrize(
    "statuses, expected",
    [
        ([], None),
        (["completed"], "completed"),
        (["completed", "completed"], "completed"),
        (["completed", "in_progress"], "in_transit"),
        (["scheduled", "in_progress", "cancelled"], "in_transit"),
        (["scheduled", "cancelled"], "scheduled"),
        (["pending", "scheduled"], "scheduled"),
        (["cancelled"], "awaiting_scheduling"),
        (["cancelled", "cancelled"], "awaiting_scheduling"),
        (["pending", "pending"], "awaiting_scheduling"),
        (["completed", "cancelled"], None),
        (["pending", "cancelled"], None),
    ],
)
def test_derive_logistics_status(statuses, expected):
    assert derive_logistics_status(statuses) == expected


def test_derivation_ignores_route_order():
    statuses = ["completed", "cancelled", "scheduled"]
    results = {derive_logistics_status(list(p)) for p in permutations(statuses)}
    assert results == {"scheduled"}


def test_derive_or_raise_tells_mix_from_empty():
    assert derive_or_raise([]) is None
    with pytest.raises(IndeterminateDerivedStatus) as exc:
        derive_or_raise(["completed", "cancelled"])
    assert sorted(exc.value.statuses) == ["cancelled", "completed"]


def _add_route(db, order, vehicle, status: str) -> DeliveryRoute:
    start = datetime(2030, 1, 10, 9, 0)
    route = DeliveryRoute(
        service_order_id=order.id,
        vehicle_id=vehicle.id,
        team_ids=[],
        start=start,
        end=start + timedelta(hours=2),
        status=status,
    )
    db.add(route)
    db.commit()
    return route


def test_refresh_without_routes_falls_back_by_finalization_type(db_session, make_order):
    delivery = make_order(finalization_type="delivery_installation")
    pickup = make_order(finalization_type="pickup")

    assert refresh_logistics_status(db_session, delivery) == "awaiting_scheduling"
    assert refresh_logistics_status(db_session, pickup) is None
    assert delivery.logistics_status == "awaiting_scheduling"


def test_refresh_follows_routes(db_session, make_vehicle, delivery_order):
    vehicle = make_vehicle()
    _add_route(db_session, delivery_order, vehicle, "in_progress")

    assert refresh_logistics_status(db_session, delivery_order) == "in_transit"
    assert delivery_order.logistics_status == "in_transit"


def test_refresh_keeps_prior_status_on_indeterminate_mix(db_session, make_vehicle, make_order):
    order = make_order(finalization_type="delivery_only", logistics_status="completed")
    vehicle = make_vehicle()
    _add_route(db_session, order, vehicle, "completed")
    _add_route(db_session, order, vehicle, "cancelled")

    assert refresh_logistics_status(db_session, order) == "completed"
    assert order.logistics_status == "completed"
