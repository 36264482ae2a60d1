from fastapi.testclient import TestClient

WINDOW = {"start": "2030-03-02T13:00:00Z", "end": "2030-03-02T15:00:00Z"}


def _create_fleet(client: TestClient):
    v1 = client.post("/logistics/vehicles", json={"name": "Fiorino", "license_plate": "abc1d23", "capacity": 650})
    assert v1.status_code == 201
    assert v1.json()["license_plate"] == "ABC1D23"
    v2 = client.post(
        "/logistics/vehicles",
        json={"name": "Van Reserva", "license_plate": "qwe4r56", "status": "em_manutencao"},
    )
    t1 = client.post("/logistics/team-members", json={"name": "Carlos", "role": "entregador"})
    assert t1.status_code == 201
    return v1.json(), v2.json(), t1.json()


def _create_order(client: TestClient, name: str = "Residencial Jardim") -> dict:
    response = client.post(
        "/service-orders",
        json={
            "client_name": name,
            "order_ref": "PED-0001",
            "items": [{"description": "Bancada granito", "quantity": 1}],
            "departure_checklist": [{"text": "Proteger quinas"}, {"id": "c2", "text": "Conferir medidas"}],
        },
        headers={"X-Actor-Id": "user-1"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["production_status"] == "cutting"
    assert body["logistics_status"] is None
    return body


def _finish_production(client: TestClient, order_id: str, finalization_type: str):
    assert client.post(f"/service-orders/{order_id}/production-status", json={"status": "finishing"}).status_code == 200
    response = client.post(f"/service-orders/{order_id}/finalization-type", json={"finalization_type": finalization_type})
    assert response.status_code == 200
    return response.json()


def test_health_and_request_id(api_client: TestClient):
    response = api_client.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.headers["X-Request-ID"] == "req-42"


def test_delivery_installation_end_to_end(api_client: TestClient):
    v1, v2, t1 = _create_fleet(api_client)
    order = _create_order(api_client)
    assert order["code"].startswith("OS-")
    assert [item["id"] for item in order["departure_checklist"]][1] == "c2"

    order = _finish_production(api_client, order["id"], "delivery_installation")
    assert order["production_status"] == "awaiting_pickup"
    assert order["logistics_status"] == "awaiting_scheduling"

    available = api_client.get("/logistics/vehicles/available", params=WINDOW).json()
    assert [v["id"] for v in available] == [v1["id"]]

    scheduled = api_client.post(
        f"/service-orders/{order['id']}/schedule",
        json={"vehicle_id": v1["id"], "team_ids": [t1["id"]], **WINDOW},
    )
    assert scheduled.status_code == 200
    route = scheduled.json()
    assert route["status"] == "scheduled"

    order = api_client.get(f"/service-orders/{order['id']}").json()
    assert order["logistics_status"] == "scheduled"
    assert order["vehicle_id"] == v1["id"]
    assert order["delivery_team_ids"] == [t1["id"]]

    assert api_client.get("/logistics/vehicles/available", params=WINDOW).json() == []
    assert api_client.get("/logistics/team-members/available", params=WINDOW).json() == []
    assert len(api_client.get("/delivery-routes", params={"vehicle_id": v1["id"]}).json()) == 1

    early = api_client.post(f"/service-orders/{order['id']}/confirm-delivery")
    assert early.status_code == 409
    assert early.json()["code"] == "guard_violation"

    assert api_client.patch(f"/delivery-routes/{route['id']}/status", json={"status": "in_progress"}).status_code == 200
    assert api_client.get(f"/service-orders/{order['id']}").json()["logistics_status"] == "in_transit"
    assert api_client.patch(f"/delivery-routes/{route['id']}/status", json={"status": "completed"}).status_code == 200
    assert api_client.get(f"/service-orders/{order['id']}").json()["logistics_status"] == "completed"

    confirmed = api_client.post(f"/service-orders/{order['id']}/confirm-delivery")
    assert confirmed.status_code == 200
    assert confirmed.json()["delivery_confirmed"] is True
    assert confirmed.json()["is_finalized"] is False

    installed = api_client.post(f"/service-orders/{order['id']}/confirm-installation")
    assert installed.status_code == 200
    assert installed.json()["is_finalized"] is True

    audit = api_client.get("/audit", params={"entity_type": "service_order", "entity_id": order["id"]}).json()
    actions = {entry["action"] for entry in audit}
    assert {"CREATE", "SET_FINALIZATION_TYPE", "CONFIRM_DELIVERY", "CONFIRM_INSTALLATION"} <= actions


def test_schedule_conflicts_map_to_http_errors(api_client: TestClient):
    v1, _, t1 = _create_fleet(api_client)
    first = _finish_production(api_client, _create_order(api_client, "Cliente A")["id"], "delivery_only")
    second = _finish_production(api_client, _create_order(api_client, "Cliente B")["id"], "delivery_only")
    booked = api_client.post(
        f"/service-orders/{first['id']}/schedule",
        json={"vehicle_id": v1["id"], "team_ids": [t1["id"]], **WINDOW},
    ).json()

    clash = api_client.post(
        f"/service-orders/{second['id']}/schedule",
        json={"vehicle_id": v1["id"], "team_ids": [t1["id"]], "start": "2030-03-02T14:00:00Z", "end": "2030-03-02T16:00:00Z"},
    )
    assert clash.status_code == 409
    assert clash.json()["code"] == "vehicle_unavailable"
    assert clash.json()["details"]["conflicts"][0]["id"] == booked["id"]

    empty = api_client.post(
        f"/service-orders/{second['id']}/schedule",
        json={"vehicle_id": v1["id"], "team_ids": [t1["id"]], "start": WINDOW["start"], "end": WINDOW["start"]},
    )
    assert empty.status_code == 400
    assert empty.json()["code"] == "invalid_window"

    no_team = api_client.post(
        f"/service-orders/{second['id']}/schedule",
        json={"vehicle_id": v1["id"], "team_ids": [], "start": "2030-03-03T13:00:00Z", "end": "2030-03-03T15:00:00Z"},
    )
    assert no_team.status_code == 400
    assert no_team.json()["code"] == "no_team_assigned"

    check = api_client.get(
        "/delivery-routes/check-availability",
        params={"vehicle_id": v1["id"], "route_id": booked["id"], **WINDOW},
    ).json()
    assert check["available"] is True

    assert api_client.get(f"/service-orders/{second['id']}/routes").json() == []


def test_invalid_route_transition_and_unknown_ids(api_client: TestClient):
    v1, _, t1 = _create_fleet(api_client)
    order = _finish_production(api_client, _create_order(api_client)["id"], "delivery_only")
    route = api_client.post(
        f"/service-orders/{order['id']}/schedule",
        json={"vehicle_id": v1["id"], "team_ids": [t1["id"]], **WINDOW},
    ).json()

    backwards = api_client.patch(f"/delivery-routes/{route['id']}/status", json={"status": "pending"})
    assert backwards.status_code == 409
    assert backwards.json()["code"] == "invalid_route_transition"

    missing = api_client.get("/service-orders/does-not-exist")
    assert missing.status_code == 404
    assert missing.json()["code"] == "not_found"

    bad_window = api_client.get("/logistics/vehicles/available", params={"start": WINDOW["start"]})
    assert bad_window.status_code == 400


def test_departure_checklist_keeps_order(api_client: TestClient):
    order = _create_order(api_client)
    response = api_client.put(
        f"/service-orders/{order['id']}/departure-checklist",
        json={"items": [{"id": "b", "text": "Lona", "checked": True}, {"text": "Cintas"}]},
    )
    assert response.status_code == 200
    checklist = response.json()["departure_checklist"]
    assert [item["text"] for item in checklist] == ["Lona", "Cintas"]
    assert checklist[0] == {"id": "b", "text": "Lona", "checked": True}
    assert checklist[1]["id"]
