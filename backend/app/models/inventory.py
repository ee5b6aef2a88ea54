from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z


MOVEMENT_TYPES = ("ALLOCATE", "DEALLOCATE", "SHIP", "ADJUST")


class Product(db.Model):
    """
    Product master data.

    STOCK FIELDS:
    - stock_on_hand is the physical count. Only shipment and manual
      adjustments write it, and both record a StockMovement in the same
      transaction.
    - stock_allocated is an advisory cache of paid+open demand. The
      authoritative figure is always re-derived from order items
      (see inventory_service.compute_allocated). Never read it for decisions.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_title", "title"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=True)
    title = db.Column(db.String(255), nullable=False)

    # Exact decimal, ex-GST unit price
    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    stock_on_hand = db.Column(db.Integer, nullable=False, default=0)
    stock_allocated = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} title={self.title!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "title": self.title,
            "price": self.price,
            "stock_on_hand": self.stock_on_hand,
            "stock_allocated": self.stock_allocated,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock movement log.

    - ALLOCATE (+qty) / DEALLOCATE (-qty): audit only, never touch stock_on_hand.
    - SHIP (-qty) / ADJUST (+/-qty): mirror a change already applied to stock_on_hand.

    order_id is a plain reference (no FK) so movements outlive deleted orders.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, nullable=True, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    qty = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    actor_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "order_id": self.order_id,
            "type": self.type,
            "qty": self.qty,
            "reason": self.reason,
            "actor_user_id": self.actor_user_id,
            "created_at": to_utc_z(self.created_at),
        }
