from decimal import Decimal

from fournil.app.db.models.core_types import DeliveryStatus
from fournil.app.db.models.models_v1 import Delivery


def test_health(client):
    r = client.get("/v1/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_delivery_flow_over_http(client, bakery):
    z1, z2 = bakery.zone("Z1"), bakery.zone("Z2")
    croissant = bakery.article("Croissant", perishable=True)
    l1 = bakery.lot(croissant, expires_in_days=1)
    l2 = bakery.lot(croissant, expires_in_days=3)
    bakery.receive(croissant, z1, "20", lot=l1)
    bakery.receive(croissant, z2, "20", lot=l2)
    order = bakery.order((croissant, "25"))

    r = client.post(
        "/v1/deliveries",
        json={"order_id": order.id, "lines": [{"order_line_id": order.lines[0].id, "quantity": "25"}]},
    )
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["status"] == "reserved"
    splits = [(s["lot_id"], s["zone_id"], Decimal(s["reserved_quantity"])) for s in body["lines"][0]["reservations"]]
    assert splits == [(l1.id, z1.id, Decimal("20")), (l2.id, z2.id, Decimal("5"))]

    availability = client.get(f"/v1/articles/{croissant.id}/availability").json()
    assert Decimal(availability["summary"]["total_available"]) == Decimal("15")
    assert availability["summary"]["requires_lot_selection"] is True

    r = client.post(f"/v1/deliveries/{body['id']}/validate")
    assert r.status_code == 200, r.text
    assert r.json()["is_validated"] is True

    stock = client.get("/v1/stock", params={"article_id": croissant.id}).json()
    assert sorted(Decimal(s["quantity"]) for s in stock) == [Decimal("0"), Decimal("15")]

    r = client.post(
        f"/v1/deliveries/{body['id']}/cancel-after-validation",
        json={"reason": "retour client", "is_return_to_stock": True},
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "cancelled_after_returned"

    ops = client.get("/v1/inventory-operations", params={"delivery_id": body["id"]}).json()
    assert [op["type"] for op in ops] == ["delivery", "return_delivery"]
    assert ops[1]["parent_operation_id"] == ops[0]["id"]


def test_insufficient_stock_maps_to_409(client, bakery):
    zone = bakery.zone()
    baguette = bakery.article("Baguette")
    bakery.receive(baguette, zone, "8")
    order = bakery.order((baguette, "10"))

    r = client.post(
        "/v1/deliveries",
        json={"order_id": order.id, "lines": [{"order_line_id": order.lines[0].id, "quantity": "10"}]},
    )

    assert r.status_code == 409
    assert r.json()["error"] == "insufficient_stock"
    assert client.get("/v1/deliveries").json() == []


def test_error_kinds_and_status_codes(client, bakery):
    zone = bakery.zone()
    baguette = bakery.article("Baguette")
    bakery.receive(baguette, zone, "8")
    order = bakery.order((baguette, "5"))
    line_id = order.lines[0].id

    r = client.post("/v1/deliveries", json={"order_id": order.id, "lines": [{"order_line_id": line_id, "quantity": "6"}]})
    assert (r.status_code, r.json()["error"]) == (422, "over_delivery")

    r = client.post(
        "/v1/deliveries",
        json={
            "order_id": order.id,
            "lines": [{"order_line_id": line_id, "quantity": "5", "splits": [{"zone_id": zone.id, "quantity": "4"}]}],
        },
    )
    assert (r.status_code, r.json()["error"]) == (422, "invalid_split")

    r = client.get("/v1/deliveries/9999")
    assert (r.status_code, r.json()["error"]) == (404, "not_found")

    delivery_id = client.post(
        "/v1/deliveries", json={"order_id": order.id, "lines": [{"order_line_id": line_id, "quantity": "5"}]}
    ).json()["id"]
    client.post(f"/v1/deliveries/{delivery_id}/cancel-before-validation", json={"reason": "annulé"})

    r = client.post(f"/v1/deliveries/{delivery_id}/validate")
    assert (r.status_code, r.json()["error"]) == (409, "invalid_state_transition")


def test_manual_operations_restricted_to_stock_entries(client, bakery):
    zone = bakery.zone()
    flour = bakery.article("Farine", unit="kg")

    r = client.post(
        "/v1/inventory-operations",
        json={"type": "reception", "lines": [{"article_id": flour.id, "zone_id": zone.id, "quantity": "25"}]},
    )
    assert r.status_code == 201, r.text
    assert r.json()["code"].startswith("REC-")

    r = client.post(
        "/v1/inventory-operations",
        json={"type": "delivery", "lines": [{"article_id": flour.id, "zone_id": zone.id, "quantity": "-1"}]},
    )
    assert r.status_code == 422

    r = client.post(
        "/v1/inventory-operations",
        json={"type": "adjustment", "lines": [{"article_id": flour.id, "zone_id": zone.id, "quantity": "-30"}]},
    )
    assert (r.status_code, r.json()["error"]) == (409, "insufficient_stock")


def test_reservation_batch_endpoint(client, bakery, db_session):
    zone = bakery.zone()
    pain = bakery.article("Pain")
    bakery.receive(pain, zone, "4")
    order = bakery.order((pain, "10"))
    delivery = Delivery(order_id=order.id, status=DeliveryStatus.draft)
    db_session.add(delivery)
    db_session.commit()

    line = {"order_line_id": order.lines[0].id, "article_id": pain.id, "zone_id": zone.id, "quantity": "3"}
    r = client.post("/v1/reservations", json={"delivery_id": delivery.id, "lines": [line]})
    assert r.status_code == 201, r.text
    assert r.json()[0]["status"] == "reserved"

    r = client.post("/v1/reservations", json={"delivery_id": delivery.id, "lines": [line]})
    assert (r.status_code, r.json()["error"]) == (409, "insufficient_stock")

    active = client.get("/v1/reservations", params={"delivery_id": delivery.id, "active_only": True}).json()
    assert len(active) == 1


def test_reservation_endpoint_rejects_closed_delivery_and_unknown_order_line(client, bakery):
    zone = bakery.zone()
    pain = bakery.article("Pain")
    bakery.receive(pain, zone, "10")
    order = bakery.order((pain, "20"))
    line_id = order.lines[0].id

    r = client.post("/v1/deliveries", json={"order_id": order.id, "lines": [{"order_line_id": line_id, "quantity": "10"}]})
    delivery_id = r.json()["id"]
    client.post(f"/v1/deliveries/{delivery_id}/validate")
    r = client.post(
        f"/v1/deliveries/{delivery_id}/cancel-after-validation",
        json={"reason": "client absent", "is_return_to_stock": True},
    )
    assert r.json()["status"] == "cancelled_after_returned"

    line = {"order_line_id": line_id, "article_id": pain.id, "zone_id": zone.id, "quantity": "10"}
    r = client.post("/v1/reservations", json={"delivery_id": delivery_id, "lines": [line]})
    assert (r.status_code, r.json()["error"]) == (409, "invalid_state_transition")
    availability = client.get(f"/v1/articles/{pain.id}/availability").json()
    assert Decimal(availability["summary"]["total_available"]) == Decimal("10")

    r = client.post("/v1/deliveries", json={"order_id": order.id, "lines": [{"order_line_id": line_id, "quantity": "1"}]})
    unknown = {**line, "order_line_id": 999999, "quantity": "1"}
    r = client.post("/v1/reservations", json={"delivery_id": r.json()["id"], "lines": [unknown]})
    assert (r.status_code, r.json()["error"]) == (404, "not_found")


def test_availability_check_and_recipe_endpoints(client, bakery):
    zone = bakery.zone()
    croissant = bakery.article("Croissant")
    flour = bakery.article("Farine", unit="kg")
    bakery.receive(flour, zone, "10")
    recipe = bakery.recipe(croissant, "60", (flour, "10"))

    r = client.get(f"/v1/articles/{flour.id}/availability/check", params={"quantity": "12"})
    assert r.json()["has_enough"] is False
    assert Decimal(r.json()["shortfall"]) == Decimal("2")

    r = client.get(f"/v1/recipes/{recipe.id}/ingredients-availability", params={"planned_quantity": "60"})
    assert r.json()["available"] is True


def test_production_status_endpoint(client, bakery):
    zone = bakery.zone()
    croissant = bakery.article("Croissant")
    bakery.receive(croissant, zone, "10")
    o1 = bakery.order((croissant, "8"))
    o2 = bakery.order((croissant, "8"))

    r = client.get("/v1/orders/production-status-batch", params=[("order_ids", o1.id), ("order_ids", o2.id)])
    assert r.status_code == 200, r.text
    assert [s["status"] for s in r.json()] == ["ready", "partially_ready"]


def test_release_expired_endpoint(client):
    r = client.post("/v1/reservations/release-expired")
    assert r.status_code == 200
    assert r.json() == {"released_delivery_ids": []}
