"""
HTTP API tests for orders, products and inventory.

Verifies:
- Status codes for the error taxonomy (400 / 404 / 409)
- Version token round trip through PATCH
- Money fields serialized as strings
- Admin-only routes work for admins
"""

import pytest

from app.extensions import db
from app.models import Product


ORDER_BODY = {
    "customer_name": "Harbour Gifts",
    "customer_email": "buyer@harbourgifts.example",
    "customer_phone": "0400 000 000",
    "shipping_address": "1 Market St, Sydney NSW 2000",
}


def _create(client, headers, items, **extra):
    body = dict(ORDER_BODY, items=items, **extra)
    return client.post("/api/orders", json=body, headers=headers)


class TestOrdersApi:

    def test_create_and_fetch(self, client, retailer_headers, make_product):
        product = make_product(price="9.99")

        resp = _create(client, retailer_headers, [
            {"product_id": product.id, "quantity": 1},
            {"product_id": product.id, "quantity": 2},
        ])

        assert resp.status_code == 201
        order = resp.json
        assert order["items"][0]["quantity"] == 3
        assert order["product_subtotal"] == "29.97"
        assert order["updated_at"].endswith("Z")

        fetched = client.get(f"/api/orders/{order['id']}", headers=retailer_headers)
        assert fetched.status_code == 200
        assert fetched.json["id"] == order["id"]

    def test_create_requires_customer_fields(self, client, retailer_headers, make_product):
        product = make_product()
        resp = client.post(
            "/api/orders",
            json={"items": [{"product_id": product.id, "quantity": 1}]},
            headers=retailer_headers,
        )
        assert resp.status_code == 400

    def test_create_unknown_product(self, client, retailer_headers):
        resp = _create(client, retailer_headers, [{"product_id": 999999, "quantity": 1}])
        assert resp.status_code == 404

    def test_create_negative_quantity(self, client, retailer_headers, make_product):
        product = make_product()
        resp = _create(client, retailer_headers, [{"product_id": product.id, "quantity": -1}])
        assert resp.status_code == 400

    def test_list_orders(self, client, retailer_headers, make_product):
        product = make_product()
        _create(client, retailer_headers, [{"product_id": product.id, "quantity": 1}])

        resp = client.get("/api/orders", headers=retailer_headers)

        assert resp.status_code == 200
        assert len(resp.json["items"]) == 1

    def test_get_missing_order(self, client, retailer_headers):
        assert client.get("/api/orders/999999", headers=retailer_headers).status_code == 404


class TestPatchOrder:

    def test_version_round_trip_and_conflict(self, client, retailer_headers, make_product):
        product = make_product()
        order = _create(client, retailer_headers, [{"product_id": product.id, "quantity": 1}]).json
        t0 = order["updated_at"]

        first = client.patch(
            f"/api/orders/{order['id']}",
            json={"note": "leave at back door", "expected_updated_at": t0},
            headers=retailer_headers,
        )
        assert first.status_code == 200
        t1 = first.json["updated_at"]
        assert t1 != t0

        stale = client.patch(
            f"/api/orders/{order['id']}",
            json={"note": "overwrite", "expected_updated_at": t0},
            headers=retailer_headers,
        )
        assert stale.status_code == 409
        assert stale.json["current_updated_at"] == t1

        retry = client.patch(
            f"/api/orders/{order['id']}",
            json={"note": "overwrite", "expected_updated_at": t1},
            headers=retailer_headers,
        )
        assert retry.status_code == 200
        assert retry.json["note"] == "overwrite"

    def test_order_status_and_payment(self, client, retailer_headers, make_product):
        product = make_product(stock_on_hand=10)
        order = _create(client, retailer_headers, [{"product_id": product.id, "quantity": 4}]).json

        resp = client.patch(
            f"/api/orders/{order['id']}",
            json={"payment_status": "paid", "order_status": "shipped"},
            headers=retailer_headers,
        )

        assert resp.status_code == 200
        assert resp.json["status"] == "shipped"
        assert resp.json["paid_at"] is not None

        movements = client.get(f"/api/orders/{order['id']}/movements", headers=retailer_headers).json["items"]
        assert sorted(m["type"] for m in movements) == ["ALLOCATE", "SHIP"]

        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_on_hand == 6

    def test_shipping_fields(self, client, retailer_headers, make_product):
        product = make_product(price="9.99")
        order = _create(client, retailer_headers, [{"product_id": product.id, "quantity": 3}]).json

        resp = client.patch(
            f"/api/orders/{order['id']}",
            json={"shipping_cost": "11.00", "shipping_gst_incl": None, "shipping_cartons": -2},
            headers=retailer_headers,
        )

        assert resp.status_code == 200
        assert resp.json["shipping_cartons"] == 0
        assert resp.json["shipping_gst_incl"] is True
        assert resp.json["shipping_ex_gst"] == "10.00"
        assert resp.json["total_with_gst"] == "43.97"

    @pytest.mark.parametrize("body", [
        {},
        {"unknown_field": 1},
        {"order_status": "lost"},
        {"payment_status": "maybe"},
        {"items": [{"product_id": 1, "quantity": -5}]},
        {"note": "x", "expected_updated_at": "not-a-date"},
    ])
    def test_bad_updates_rejected(self, client, retailer_headers, make_product, body):
        product = make_product()
        order = _create(client, retailer_headers, [{"product_id": product.id, "quantity": 1}]).json

        resp = client.patch(f"/api/orders/{order['id']}", json=body, headers=retailer_headers)

        assert resp.status_code == 400

    def test_patch_missing_order(self, client, retailer_headers):
        resp = client.patch("/api/orders/999999", json={"note": "x"}, headers=retailer_headers)
        assert resp.status_code == 404


class TestAdminRoutes:

    def test_create_product(self, client, admin_headers):
        resp = client.post(
            "/api/products",
            json={"title": "Linen Napkin", "price": "4.50", "sku": "LN-01", "stock_on_hand": 12},
            headers=admin_headers,
        )

        assert resp.status_code == 201
        assert resp.json["price"] == "4.50"
        assert resp.json["stock_on_hand"] == 12

        dup = client.post(
            "/api/products",
            json={"title": "Other", "price": "1.00", "sku": "LN-01"},
            headers=admin_headers,
        )
        assert dup.status_code == 409

    def test_product_search_is_literal(self, client, admin_headers, make_product):
        make_product(title="Blue Widget")
        make_product(title="100% Cotton Bag")

        resp = client.get("/api/products?q=%25", headers=admin_headers)

        assert resp.status_code == 200
        assert [p["title"] for p in resp.json["items"]] == ["100% Cotton Bag"]

    def test_product_price_precision(self, client, admin_headers):
        resp = client.post("/api/products", json={"title": "X", "price": "1.005"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_delete_order(self, client, admin_headers, make_product, make_order):
        product = make_product()
        order = make_order([{"product_id": product.id, "quantity": 1}])

        resp = client.delete(f"/api/orders/{order['id']}", headers=admin_headers)

        assert resp.status_code == 200
        assert client.get(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 404
        assert client.delete(f"/api/orders/{order['id']}", headers=admin_headers).status_code == 404

    def test_adjust_and_overview(self, client, admin_headers, make_product):
        product = make_product(title="Beeswax Candle", stock_on_hand=2)

        adjust = client.post(
            "/api/inventory/adjust",
            json={"product_id": product.id, "qty_delta": 8, "reason": "Delivery"},
            headers=admin_headers,
        )
        assert adjust.status_code == 201
        assert adjust.json["movement"]["qty"] == 8

        overview = client.get("/api/inventory/overview?q=beeswax&page_size=5", headers=admin_headers)
        assert overview.status_code == 200
        assert overview.json["page_size"] == 10
        assert overview.json["rows"][0]["on_hand"] == 10

        history = client.get(f"/api/inventory/movements?product_id={product.id}", headers=admin_headers)
        assert [m["type"] for m in history.json["items"]] == ["ADJUST"]

    def test_adjust_below_zero(self, client, admin_headers, make_product):
        product = make_product(stock_on_hand=1)
        resp = client.post(
            "/api/inventory/adjust",
            json={"product_id": product.id, "qty_delta": -2},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_refresh_allocated(self, client, admin_headers, make_product):
        make_product()
        resp = client.post("/api/inventory/refresh-allocated", headers=admin_headers)

        assert resp.status_code == 200
        assert resp.json["changed"] == 0

    def test_movement_type_filter_validated(self, client, admin_headers):
        resp = client.get("/api/inventory/movements?type=TELEPORT", headers=admin_headers)
        assert resp.status_code == 400
