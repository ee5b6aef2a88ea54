"""
Order transition planner tests (no database).

Verifies:
- Each rule fires only on the transition into its state
- Several rules may fire in one update
- Duplicate item inputs merge by product
- Item replacement splits into delete / upsert sets
"""

from types import SimpleNamespace

import pytest

from app.services.order_transitions import (
    FoldedLine,
    ItemInput,
    OrderState,
    fold_items,
    merge_item_inputs,
    plan_stock_movements,
    reconcile_items,
)
from app.validation import ValidationError


LINES = {7: FoldedLine(quantity=10, backorder=0), 3: FoldedLine(quantity=4, backorder=1)}


def _types(planned):
    return [(m.type, m.product_id, m.qty) for m in planned]


class TestPlanStockMovements:

    def test_becoming_paid_allocates_every_line(self):
        planned = plan_stock_movements(
            OrderState("pending", "unpaid"), OrderState("pending", "paid"), LINES,
        )
        assert _types(planned) == [("ALLOCATE", 3, 4), ("ALLOCATE", 7, 10)]
        assert all(m.on_hand_delta == 0 for m in planned)

    def test_already_paid_is_idempotent(self):
        state = OrderState("confirmed", "paid")
        assert plan_stock_movements(state, state, LINES) == []

    @pytest.mark.parametrize("payment", ["unpaid", "refunded"])
    def test_leaving_paid_deallocates(self, payment):
        planned = plan_stock_movements(
            OrderState("confirmed", "paid"), OrderState("confirmed", payment), LINES,
        )
        assert _types(planned) == [("DEALLOCATE", 3, -4), ("DEALLOCATE", 7, -10)]

    def test_cancel_while_paid_deallocates_once(self):
        planned = plan_stock_movements(
            OrderState("confirmed", "paid"), OrderState("cancelled", "refunded"), LINES,
        )
        assert [m.type for m in planned] == ["DEALLOCATE", "DEALLOCATE"]
        assert planned[0].reason.startswith("Order cancelled")

    def test_cancel_while_unpaid_does_nothing(self):
        planned = plan_stock_movements(
            OrderState("pending", "unpaid"), OrderState("cancelled", "unpaid"), LINES,
        )
        assert planned == []

    def test_shipping_deducts_quantity_minus_backorder(self):
        planned = plan_stock_movements(
            OrderState("packed", "paid"), OrderState("shipped", "paid"), LINES,
        )
        assert _types(planned) == [("SHIP", 3, -3), ("SHIP", 7, -10)]
        assert [m.on_hand_delta for m in planned] == [3, 10]

    def test_fully_backordered_line_is_not_shipped(self):
        lines = {5: FoldedLine(quantity=2, backorder=2)}
        planned = plan_stock_movements(
            OrderState("packed", "paid"), OrderState("shipped", "paid"), lines,
        )
        assert planned == []

    def test_paid_and_shipped_in_one_update(self):
        planned = plan_stock_movements(
            OrderState("pending", "unpaid"), OrderState("shipped", "paid"), {1: FoldedLine(5)},
        )
        assert _types(planned) == [("ALLOCATE", 1, 5), ("SHIP", 1, -5)]

    def test_completed_does_nothing(self):
        planned = plan_stock_movements(
            OrderState("shipped", "paid"), OrderState("completed", "paid"), LINES,
        )
        assert planned == []

    def test_shipping_again_does_nothing(self):
        state = OrderState("shipped", "paid")
        assert plan_stock_movements(state, state, LINES) == []

    def test_zero_quantity_lines_are_skipped(self):
        planned = plan_stock_movements(
            OrderState("pending", "unpaid"), OrderState("pending", "paid"), {9: FoldedLine(0)},
        )
        assert planned == []


class TestItemInputs:

    def test_duplicate_products_are_summed(self):
        merged = merge_item_inputs([
            {"product_id": 7, "quantity": 3},
            {"product_id": 7, "quantity": 4},
            {"product_id": 2, "quantity": 1, "backorder": 1},
        ])
        assert merged == {7: ItemInput(7, None), 2: ItemInput(1, 1)}

    def test_backorder_summed_when_given(self):
        merged = merge_item_inputs([
            {"product_id": 7, "quantity": 3, "backorder": 1},
            {"product_id": 7, "quantity": 4, "backorder": 2},
        ])
        assert merged[7] == ItemInput(7, 3)

    @pytest.mark.parametrize("raw", [
        {"product_id": 1, "quantity": -1},
        {"product_id": 1, "quantity": 1, "backorder": -2},
    ])
    def test_negative_values_rejected(self, raw):
        with pytest.raises(ValidationError):
            merge_item_inputs([raw])

    def test_fold_items_sums_rows(self):
        rows = [
            SimpleNamespace(product_id=1, quantity=2, backorder=0),
            SimpleNamespace(product_id=1, quantity=3, backorder=1),
            SimpleNamespace(product_id=4, quantity=1, backorder=None),
        ]
        assert fold_items(rows) == {1: FoldedLine(5, 1), 4: FoldedLine(1, 0)}

    def test_reconcile_deletes_absentees_and_upserts_rest(self):
        incoming = {1: ItemInput(5), 3: ItemInput(1)}
        plan = reconcile_items([1, 2], incoming)

        assert plan.to_delete == frozenset({2})
        assert plan.to_upsert == incoming

    def test_reconcile_empty_incoming_deletes_everything(self):
        plan = reconcile_items([1, 2], {})
        assert plan.to_delete == frozenset({1, 2})
        assert plan.to_upsert == {}
