"""
Inventory overview and stock adjustment tests.

Verifies:
- Demand partitions (all / paid / unpaid / open) and allocation
- available and open_unpaid never go below zero
- Page size clamping and title filtering
- Allocation cache refresh
- ADJUST movements
"""

import pytest

from app.extensions import db
from app.models import Product, StockMovement
from app.errors import NotFoundError, ValidationError
from app.services import inventory_service, order_service
from app.services.inventory_service import clamp_page, get_inventory_overview


def _row(overview, product_id):
    return next(r for r in overview["rows"] if r["product_id"] == product_id)


class TestOverviewFigures:

    def test_demand_partitions(self, make_product, make_order):
        product = make_product(title="Candle", stock_on_hand=4)

        unpaid_open = make_order([{"product_id": product.id, "quantity": 2}])
        paid_open = make_order([{"product_id": product.id, "quantity": 3}])
        paid_shipped = make_order([{"product_id": product.id, "quantity": 5}])
        cancelled = make_order([{"product_id": product.id, "quantity": 7}])

        order_service.update_order(paid_open["id"], {"payment_status": "paid"})
        order_service.update_order(paid_shipped["id"], {"payment_status": "paid"})
        order_service.update_order(paid_shipped["id"], {"status": "shipped"})
        order_service.update_order(cancelled["id"], {"status": "cancelled"})

        row = _row(get_inventory_overview(), product.id)

        assert row["demand_all"] == 17
        assert row["demand_paid"] == 8
        assert row["demand_unpaid"] == 9
        assert row["demand_open"] == 5
        assert row["allocated"] == 3
        # 4 on hand minus 5 shipped
        assert row["on_hand"] == -1
        assert row["available"] == 0
        assert row["open_unpaid"] == 2
        assert row["need_to_buy_for_open"] == 6
        assert row["need_to_buy_for_paid"] == 9
        assert row["need_to_buy_for_all"] == 18
        assert unpaid_open["status"] == "pending"

    def test_available_floors_at_zero(self, make_product, make_order):
        product = make_product(stock_on_hand=5)
        order = make_order([{"product_id": product.id, "quantity": 10}])
        order_service.update_order(order["id"], {"payment_status": "paid"})

        row = _row(get_inventory_overview(), product.id)

        assert row["allocated"] == 10
        assert row["available"] == 0

    def test_allocated_never_exceeds_open_demand(self, make_product, make_order):
        product = make_product(stock_on_hand=50)
        for qty, payment, status in [
            (1, "paid", None), (2, "unpaid", None), (3, "paid", "packed"),
            (4, "paid", "completed"), (5, "refunded", "cancelled"),
        ]:
            order = make_order([{"product_id": product.id, "quantity": qty}])
            changes = {"payment_status": payment}
            if status:
                changes["status"] = status
            order_service.update_order(order["id"], changes)

        row = _row(get_inventory_overview(), product.id)

        assert row["allocated"] <= row["demand_open"]
        assert row["allocated"] == 4
        assert row["available"] >= 0

    def test_product_without_orders(self, make_product):
        product = make_product(stock_on_hand=3)
        row = _row(get_inventory_overview(), product.id)

        assert row["demand_all"] == 0
        assert row["allocated"] == 0
        assert row["available"] == 3
        assert row["need_to_buy_for_open"] == 0


class TestOverviewPaging:

    @pytest.mark.parametrize("page_size,expected", [
        (None, 100), (1, 10), (10, 10), (50, 50), (200, 200), (1000, 200),
    ])
    def test_page_size_clamped(self, page_size, expected):
        assert clamp_page(1, page_size) == (1, expected)

    def test_page_floor(self):
        assert clamp_page(0, None) == (1, 100)
        assert clamp_page(-3, 20) == (1, 20)

    def test_title_filter_is_case_insensitive(self, make_product):
        make_product(title="Beeswax Candle")
        make_product(title="Linen Napkin")

        overview = get_inventory_overview(q="candle")

        assert overview["total"] == 1
        assert [r["title"] for r in overview["rows"]] == ["Beeswax Candle"]

    @pytest.mark.parametrize("q,expected", [
        ("%", ["100% Cotton Bag"]),
        ("_", ["Tea_Towel"]),
        ("0% c", ["100% Cotton Bag"]),
    ])
    def test_title_filter_matches_wildcards_literally(self, make_product, q, expected):
        make_product(title="Blue Widget")
        make_product(title="100% Cotton Bag")
        make_product(title="Tea_Towel")

        overview = get_inventory_overview(q=q)

        assert overview["total"] == len(expected)
        assert [r["title"] for r in overview["rows"]] == expected

    def test_pages_ordered_by_title(self, make_product):
        for i in range(12):
            make_product(title=f"Item {i:02d}")

        first = get_inventory_overview(page=1, page_size=10)
        second = get_inventory_overview(page=2, page_size=10)

        assert first["total"] == 12
        assert len(first["rows"]) == 10
        assert [r["title"] for r in second["rows"]] == ["Item 10", "Item 11"]

    def test_page_past_end_is_empty(self, make_product):
        make_product()
        overview = get_inventory_overview(page=5)

        assert overview["rows"] == []
        assert overview["total"] == 1


class TestAllocatedCache:

    def test_refresh_recomputes_from_orders(self, make_product, make_order):
        product = make_product()
        order = make_order([{"product_id": product.id, "quantity": 6}])
        order_service.update_order(order["id"], {"payment_status": "paid"})

        db.session.query(Product).filter_by(id=product.id).update({"stock_allocated": 99})
        db.session.commit()

        changed = inventory_service.refresh_allocated_cache()

        assert changed == 1
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_allocated == 6

    def test_compute_allocated_includes_zero_rows(self, make_product):
        product = make_product()
        assert inventory_service.compute_allocated([product.id]) == {product.id: 0}


class TestAdjustStock:

    def test_adjust_records_movement(self, make_product, admin_user):
        product = make_product(stock_on_hand=3)

        updated, movement = inventory_service.adjust_stock(
            product_id=product.id, qty_delta=7, reason="Inbound container",
            actor_user_id=admin_user.id,
        )

        assert updated.stock_on_hand == 10
        assert movement.type == "ADJUST"
        assert movement.qty == 7
        assert movement.actor_user_id == admin_user.id
        assert movement.order_id is None

    def test_adjust_below_zero_rejected(self, make_product):
        product = make_product(stock_on_hand=2)

        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(product_id=product.id, qty_delta=-3)

        assert db.session.query(StockMovement).count() == 0
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_on_hand == 2

    def test_adjust_zero_rejected(self, make_product):
        product = make_product()
        with pytest.raises(ValidationError):
            inventory_service.adjust_stock(product_id=product.id, qty_delta=0)

    def test_adjust_missing_product(self, db_session):
        with pytest.raises(NotFoundError):
            inventory_service.adjust_stock(product_id=999999, qty_delta=1)
