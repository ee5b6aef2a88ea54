"""
Order Service - order store and the order update transaction

WHY one transaction per update: the header, the item set, the stock
movements and any on-hand decrement commit together or not at all.

Update flow (update_order):
1. Load the order and its items (NotFoundError if absent).
2. Compare the caller's expected_updated_at with the stored version
   (VersionConflictError on mismatch).
3. Write the supplied header fields with a compare-and-set on the loaded
   version; updated_at always advances.
4. payment_status supplied -> paid_at = now when "paid", else null.
5. items supplied -> merge duplicates, delete absentees, upsert the rest.
6. Diff the status/payment snapshot taken in step 1 against the new one and
   apply the planned movements (order_transitions.plan_stock_movements).
7. Return the order view with money totals.
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping

from flask import current_app

from ..extensions import db
from ..models import Order, OrderItem, Product
from ..money import calc_money_for_order
from ..errors import NotFoundError, ValidationError, VersionConflictError
from app.time_utils import utcnow, next_version_stamp, to_utc_ms_z
from .concurrency import lock_for_update, transaction, versions_match
from .inventory_service import decrement_on_hand, sync_allocated_cache
from .ledger_service import record_planned_movements
from .order_transitions import (
    OrderState,
    fold_items,
    merge_item_inputs,
    plan_stock_movements,
    reconcile_items,
)


# Header fields update_order may write (status/payment included)
UPDATABLE_FIELDS = frozenset({
    "customer_name",
    "customer_email",
    "customer_phone",
    "shipping_address",
    "position",
    "note",
    "barcode_all",
    "package_type",
    "status",
    "payment_status",
    "shipping_cartons",
    "shipping_cost",
    "shipping_gst_incl",
    "shipping_note",
})


def order_view(order: Order) -> dict:
    view = order.to_dict()
    view["items"] = [item.to_dict() for item in order.items]
    view.update(calc_money_for_order(order))
    return view


def _require_products(product_ids: Iterable[int]) -> None:
    ids = set(product_ids)
    if not ids:
        return
    found = {pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(ids)).all()}
    missing = sorted(ids - found)
    if missing:
        raise NotFoundError(f"Product(s) not found: {', '.join(str(m) for m in missing)}")


def create_order(
    *,
    items: Iterable[Mapping[str, Any]],
    customer_name: str,
    customer_email: str,
    customer_phone: str,
    shipping_address: str,
    position: str | None = None,
    note: str | None = None,
    barcode_all: bool = False,
    package_type: str = "boxes",
    user_id: int | None = None,
) -> dict:
    """Create a pending/unpaid order with its items. Duplicate products are merged."""
    merged = merge_item_inputs(items)
    if not merged:
        raise ValidationError("Order requires at least one item")

    with transaction():
        _require_products(merged)

        order = Order(
            user_id=user_id,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            shipping_address=shipping_address,
            position=position,
            note=note,
            barcode_all=bool(barcode_all),
            package_type=package_type or "boxes",
            status="pending",
            payment_status="unpaid",
            items=[
                OrderItem(product_id=pid, quantity=line.quantity, backorder=line.backorder or 0)
                for pid, line in merged.items()
            ],
        )
        db.session.add(order)
        db.session.flush()
        view = order_view(order)

    current_app.logger.info("Order %s created with %d item(s)", view["id"], len(view["items"]))
    return view


def get_order(order_id: int) -> dict:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order_view(order)


def list_orders() -> list[dict]:
    orders = db.session.query(Order).order_by(Order.created_at.desc(), Order.id.desc()).all()
    return [order_view(o) for o in orders]


def _replace_items(order_id: int, existing: list[OrderItem], merged: Mapping) -> None:
    by_product = {item.product_id: item for item in existing}
    plan = reconcile_items(by_product, merged)

    for product_id in plan.to_delete:
        db.session.delete(by_product[product_id])

    for product_id, line in plan.to_upsert.items():
        row = by_product.get(product_id)
        if row is None:
            db.session.add(OrderItem(
                order_id=order_id,
                product_id=product_id,
                quantity=line.quantity,
                backorder=line.backorder or 0,
            ))
            continue
        row.quantity = line.quantity
        if line.backorder is not None:
            row.backorder = line.backorder

    db.session.flush()


def update_order(order_id: int, changes: Mapping[str, Any], *, actor_user_id: int | None = None) -> dict:
    """
    Apply a partial update to an order as one transaction.

    changes: output of validation.validate_order_update (or an equivalent
    dict). Keys outside UPDATABLE_FIELDS, "items" and "expected_updated_at"
    are ignored. actor_user_id is recorded on movements for audit only.
    """
    changes = dict(changes)
    expected = changes.pop("expected_updated_at", None)
    item_inputs = changes.pop("items", None)
    header = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}

    if not header and item_inputs is None:
        raise ValidationError("Nothing to update")

    merged = merge_item_inputs(item_inputs) if item_inputs is not None else None

    with transaction():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")

        loaded_version = order.updated_at
        if expected is not None and not versions_match(expected, loaded_version):
            current_app.logger.warning(
                "Order %s version conflict: expected %s, stored %s",
                order_id, to_utc_ms_z(expected), to_utc_ms_z(loaded_version),
            )
            raise VersionConflictError(
                "Order was modified by someone else; reload and retry",
                current_version=to_utc_ms_z(loaded_version),
            )

        prev = OrderState(status=order.status, payment_status=order.payment_status)
        existing_items = list(order.items)
        prev_product_ids = {item.product_id for item in existing_items}

        if merged is not None:
            _require_products(merged)

        values = dict(header)
        if "payment_status" in header and header["payment_status"] != prev.payment_status:
            values["paid_at"] = utcnow() if header["payment_status"] == "paid" else None
        values["updated_at"] = next_version_stamp(loaded_version)

        # Compare-and-set: a writer that committed after our read wins, we fail.
        written = (
            db.session.query(Order)
            .filter(Order.id == order_id, Order.updated_at == loaded_version)
            .update(values, synchronize_session=False)
        )
        if written != 1:
            raise VersionConflictError("Order was modified concurrently; reload and retry")

        if merged is not None:
            _replace_items(order_id, existing_items, merged)

        db.session.expire(order)
        new = OrderState(status=order.status, payment_status=order.payment_status)
        lines = fold_items(order.items)

        planned = plan_stock_movements(prev, new, lines)
        for movement in planned:
            if movement.on_hand_delta:
                decrement_on_hand(movement.product_id, movement.on_hand_delta)
        record_planned_movements(planned, order_id=order_id, actor_user_id=actor_user_id)

        if prev != new or merged is not None:
            sync_allocated_cache(prev_product_ids | set(lines))

        view = order_view(order)

    if planned:
        current_app.logger.info(
            "Order %s %s/%s -> %s/%s: %s",
            order_id, prev.status, prev.payment_status, new.status, new.payment_status,
            ", ".join(f"{m.type}({m.product_id}:{m.qty})" for m in planned),
        )
    return view


def delete_order(order_id: int) -> None:
    """
    Delete an order and its items.

    NOTE: no compensating stock movements are written. A paid order's
    ALLOCATE rows and a shipped order's SHIP rows stay in the ledger.
    """
    with transaction():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")

        product_ids = {item.product_id for item in order.items}
        # items first (delete-orphan cascade), then the header
        for item in list(order.items):
            db.session.delete(item)
        db.session.flush()
        db.session.delete(order)
        db.session.flush()

        sync_allocated_cache(product_ids)

    current_app.logger.info("Order %s deleted", order_id)
