"""
Order transition decisions (pure, no database access).

The order service snapshots an order's status/payment before applying a
change and again afterwards, then asks this module which stock movements the
change implies. Keeping the decision here means it can be tested without a
session and does not depend on the order in which fields were applied.

Rules (evaluated independently, several may fire in one update):
- payment becomes paid              -> ALLOCATE +qty per product
- payment leaves paid (unpaid/refunded),
  or status becomes cancelled while
  previously paid                   -> DEALLOCATE -qty per product (one set)
- status becomes shipped            -> SHIP -(qty - backorder) per product,
                                       and on-hand is decremented by the same
- status becomes completed          -> nothing (stock left at shipment)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from ..validation import ValidationError


@dataclass(frozen=True)
class OrderState:
    status: str
    payment_status: str


@dataclass(frozen=True)
class FoldedLine:
    quantity: int
    backorder: int = 0

    @property
    def shippable(self) -> int:
        return max(0, self.quantity - self.backorder)


@dataclass(frozen=True)
class ItemInput:
    """Merged item input. backorder=None means "leave the stored value"."""
    quantity: int
    backorder: int | None = None


@dataclass(frozen=True)
class PlannedMovement:
    product_id: int
    type: str
    qty: int
    reason: str
    # > 0 only for SHIP: how much to take off stock_on_hand
    on_hand_delta: int = 0


@dataclass(frozen=True)
class ItemReconciliation:
    to_delete: frozenset[int]
    to_upsert: dict[int, ItemInput]


def fold_items(items: Iterable) -> dict[int, FoldedLine]:
    """Collapse stored item rows into {product_id: FoldedLine}."""
    folded: dict[int, FoldedLine] = {}
    for item in items:
        prev = folded.get(item.product_id, FoldedLine(0, 0))
        folded[item.product_id] = FoldedLine(
            quantity=prev.quantity + (item.quantity or 0),
            backorder=prev.backorder + (item.backorder or 0),
        )
    return folded


def merge_item_inputs(items: Iterable[Mapping]) -> dict[int, ItemInput]:
    """
    Merge input lines by product, summing quantity (and backorder when given).

    Raises ValidationError for negative quantity or backorder.
    """
    merged: dict[int, ItemInput] = {}
    for raw in items:
        product_id = raw["product_id"]
        quantity = raw["quantity"]
        backorder = raw.get("backorder")

        if quantity < 0:
            raise ValidationError(f"quantity must be >= 0 for product {product_id}")
        if backorder is not None and backorder < 0:
            raise ValidationError(f"backorder must be >= 0 for product {product_id}")

        prev = merged.get(product_id, ItemInput(0, None))
        if backorder is None:
            merged_backorder = prev.backorder
        else:
            merged_backorder = (prev.backorder or 0) + backorder
        merged[product_id] = ItemInput(prev.quantity + quantity, merged_backorder)
    return merged


def reconcile_items(existing_product_ids: Iterable[int], incoming: Mapping[int, ItemInput]) -> ItemReconciliation:
    """Whole-set replacement: delete what is gone, upsert everything supplied."""
    existing = set(existing_product_ids)
    return ItemReconciliation(
        to_delete=frozenset(existing - set(incoming)),
        to_upsert=dict(incoming),
    )


def became_paid(prev: OrderState, new: OrderState) -> bool:
    return prev.payment_status != "paid" and new.payment_status == "paid"


def left_paid(prev: OrderState, new: OrderState) -> bool:
    return prev.payment_status == "paid" and new.payment_status in ("unpaid", "refunded")


def cancelled_while_paid(prev: OrderState, new: OrderState) -> bool:
    return prev.status != "cancelled" and new.status == "cancelled" and prev.payment_status == "paid"


def became_shipped(prev: OrderState, new: OrderState) -> bool:
    return prev.status != "shipped" and new.status == "shipped"


def plan_stock_movements(
    prev: OrderState,
    new: OrderState,
    lines: Mapping[int, FoldedLine],
) -> list[PlannedMovement]:
    """Movements implied by going from `prev` to `new` with the current item set."""
    planned: list[PlannedMovement] = []
    ordered = sorted(lines.items())

    if became_paid(prev, new):
        for product_id, line in ordered:
            if line.quantity > 0:
                planned.append(PlannedMovement(
                    product_id=product_id,
                    type="ALLOCATE",
                    qty=line.quantity,
                    reason="Order paid -> allocate",
                ))

    cancelled = cancelled_while_paid(prev, new)
    if cancelled or left_paid(prev, new):
        reason = "Order cancelled -> deallocate" if cancelled else "Payment reversed -> deallocate"
        for product_id, line in ordered:
            if line.quantity > 0:
                planned.append(PlannedMovement(
                    product_id=product_id,
                    type="DEALLOCATE",
                    qty=-line.quantity,
                    reason=reason,
                ))

    if became_shipped(prev, new):
        for product_id, line in ordered:
            ship_qty = line.shippable
            if ship_qty > 0:
                planned.append(PlannedMovement(
                    product_id=product_id,
                    type="SHIP",
                    qty=-ship_qty,
                    reason="Order shipped -> deduct on-hand",
                    on_hand_delta=ship_qty,
                ))

    return planned
