# Overview: Inventory aggregation and physical stock changes.

# backend/app/services/inventory_service.py

from __future__ import annotations

from typing import Iterable

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Product, Order, OrderItem
from ..models.orders import OPEN_STATUSES
from ..errors import NotFoundError, ValidationError
from .ledger_service import append_movement
from .concurrency import lock_for_update, transaction
"""
Inventory Invariants (authoritative)

Physical stock:
- Product.stock_on_hand is the physical count. It changes only on shipment
  (order_service, SHIP movement) and manual adjustment (ADJUST movement).
- Shipment is not clamped: on-hand may go negative when shipping more than
  is recorded on hand. Adjustments may not take it below zero.

Allocation:
- allocated = SUM(quantity) over items whose order is paid AND open
  (pending/confirmed/packed). Paid orders that already shipped have
  consumed physical stock and must not be counted again.
- Product.stock_allocated is a cache of that figure, refreshed
  opportunistically. The overview never reads it.

Overview figures (per product, all SUM(quantity), backorder ignored):
- demand_all / demand_paid / demand_unpaid / demand_open
- available = max(0, on_hand - allocated)
- open_unpaid = max(0, demand_open - allocated)
- need_to_buy_for_{open,paid,all} = max(0, demand_x - on_hand)
"""

DEFAULT_PAGE_SIZE = 100
MIN_PAGE_SIZE = 10
MAX_PAGE_SIZE = 200


def clamp_page(page: int | None, page_size: int | None) -> tuple[int, int]:
    page = max(1, page or 1)
    if page_size is None:
        page_size = DEFAULT_PAGE_SIZE
    page_size = min(MAX_PAGE_SIZE, max(MIN_PAGE_SIZE, page_size))
    return page, page_size


def _sum_quantity_by_product(product_ids: list[int], *criteria) -> dict[int, int]:
    """One grouped SUM over order items for the given order predicate."""
    q = (
        db.session.query(
            OrderItem.product_id,
            func.coalesce(func.sum(OrderItem.quantity), 0),
        )
        .join(Order, Order.id == OrderItem.order_id)
        .filter(OrderItem.product_id.in_(product_ids), *criteria)
        .group_by(OrderItem.product_id)
    )
    return {product_id: int(total or 0) for product_id, total in q.all()}


def compute_allocated(product_ids: Iterable[int]) -> dict[int, int]:
    """Authoritative allocation (paid AND open) for each product id given."""
    ids = list(product_ids)
    if not ids:
        return {}
    grouped = _sum_quantity_by_product(
        ids,
        Order.payment_status == "paid",
        Order.status.in_(OPEN_STATUSES),
    )
    return {pid: grouped.get(pid, 0) for pid in ids}


def build_inventory_row(product: Product, *, demand_all: int, demand_paid: int,
                        demand_unpaid: int, demand_open: int, allocated: int) -> dict:
    on_hand = product.stock_on_hand
    return {
        "product_id": product.id,
        "title": product.title,
        "on_hand": on_hand,
        "allocated": allocated,
        "available": max(0, on_hand - allocated),
        "demand_all": demand_all,
        "demand_paid": demand_paid,
        "demand_unpaid": demand_unpaid,
        "demand_open": demand_open,
        "open_unpaid": max(0, demand_open - allocated),
        "need_to_buy_for_open": max(0, demand_open - on_hand),
        "need_to_buy_for_paid": max(0, demand_paid - on_hand),
        "need_to_buy_for_all": max(0, demand_all - on_hand),
    }


def get_inventory_overview(
    *,
    q: str | None = None,
    page: int | None = None,
    page_size: int | None = None,
) -> dict:
    """
    Paginated per-product demand/allocation overview. Read-only.

    Products are filtered by case-insensitive title substring and ordered by
    title. Demand partitions are computed for the page's products only.
    """
    page, page_size = clamp_page(page, page_size)

    query = db.session.query(Product)
    if q:
        query = query.filter(Product.title.icontains(q.strip(), autoescape=True))

    total = query.count()
    products = (
        query.order_by(Product.title.asc(), Product.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
        .all()
    )

    ids = [p.id for p in products]
    if not ids:
        return {"page": page, "page_size": page_size, "total": total, "rows": []}

    all_map = _sum_quantity_by_product(ids)
    paid_map = _sum_quantity_by_product(ids, Order.payment_status == "paid")
    unpaid_map = _sum_quantity_by_product(ids, Order.payment_status == "unpaid")
    open_map = _sum_quantity_by_product(ids, Order.status.in_(OPEN_STATUSES))
    allocated_map = _sum_quantity_by_product(
        ids,
        Order.payment_status == "paid",
        Order.status.in_(OPEN_STATUSES),
    )

    rows = [
        build_inventory_row(
            p,
            demand_all=all_map.get(p.id, 0),
            demand_paid=paid_map.get(p.id, 0),
            demand_unpaid=unpaid_map.get(p.id, 0),
            demand_open=open_map.get(p.id, 0),
            allocated=allocated_map.get(p.id, 0),
        )
        for p in products
    ]

    return {"page": page, "page_size": page_size, "total": total, "rows": rows}


def sync_allocated_cache(product_ids: Iterable[int]) -> int:
    """
    Write compute_allocated() into Product.stock_allocated.

    Runs inside the caller's transaction (flush only). Returns the number of
    products whose cached value changed.
    """
    allocated = compute_allocated(product_ids)
    if not allocated:
        return 0

    changed = 0
    products = db.session.query(Product).filter(Product.id.in_(list(allocated))).all()
    for product in products:
        value = allocated[product.id]
        if product.stock_allocated != value:
            product.stock_allocated = value
            changed += 1
    db.session.flush()
    return changed


def refresh_allocated_cache(product_ids: Iterable[int] | None = None) -> int:
    """Recompute the advisory allocation cache (all products when ids is None)."""
    with transaction():
        if product_ids is None:
            product_ids = [pid for (pid,) in db.session.query(Product.id).all()]
        changed = sync_allocated_cache(product_ids)

    current_app.logger.info("Refreshed stock_allocated cache: %d product(s) changed", changed)
    return changed


def decrement_on_hand(product_id: int, qty: int) -> None:
    """
    Take `qty` off stock_on_hand as a single SQL expression.

    Unclamped: shipments may drive on-hand negative. The caller records the SHIP movement.
    """
    updated = (
        db.session.query(Product)
        .filter(Product.id == product_id)
        .update({Product.stock_on_hand: Product.stock_on_hand - qty}, synchronize_session="fetch")
    )
    if not updated:
        raise NotFoundError(f"Product {product_id} not found")


def adjust_stock(
    *,
    product_id: int,
    qty_delta: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
) -> tuple[Product, object]:
    """
    Manual stock correction (count variance, damage, inbound stock).

    Records an ADJUST movement with the signed delta. Rejects a change that
    would take on-hand below zero.
    """
    if qty_delta == 0:
        raise ValidationError("qty_delta must be non-zero for ADJUST")

    with transaction():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise NotFoundError(f"Product {product_id} not found")

        if product.stock_on_hand + qty_delta < 0:
            raise ValidationError("adjustment would make on-hand negative")

        product.stock_on_hand = product.stock_on_hand + qty_delta
        movement = append_movement(
            product_id=product.id,
            movement_type="ADJUST",
            qty=qty_delta,
            reason=reason or "Manual adjustment",
            actor_user_id=actor_user_id,
        )

    current_app.logger.info(
        "Stock adjusted: product=%s delta=%s on_hand=%s actor=%s",
        product.id, qty_delta, product.stock_on_hand, actor_user_id,
    )
    return product, movement
