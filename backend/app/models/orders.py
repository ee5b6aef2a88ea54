from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, to_utc_ms_z, next_version_stamp


ORDER_STATUSES = ("pending", "confirmed", "packed", "shipped", "completed", "cancelled")
OPEN_STATUSES = ("pending", "confirmed", "packed")
PAYMENT_STATUSES = ("unpaid", "paid", "refunded")
PACKAGE_TYPES = ("boxes", "opp")


def _initial_version():
    return next_version_stamp(None)


class Order(db.Model):
    """
    Wholesale order header.

    WHY customer snapshot columns: the order keeps the name/contact/address
    as they were when the order was placed, independent of later edits
    anywhere else.

    VERSIONING: updated_at is the optimistic concurrency token. It is
    written by the service layer (millisecond precision, strictly
    increasing), never by a DB onupdate hook.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_payment", "status", "payment_status"),
        db.Index("ix_orders_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Placing user (nullable: orders may be keyed in for walk-in retailers)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Customer snapshot
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(64), nullable=False)
    shipping_address = db.Column(db.String(500), nullable=False)
    position = db.Column(db.String(255), nullable=True)
    note = db.Column(db.Text, nullable=True)
    barcode_all = db.Column(db.Boolean, nullable=False, default=False)
    package_type = db.Column(db.String(16), nullable=False, default="boxes")

    # Fulfillment and payment lifecycles (orthogonal)
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(16), nullable=False, default="unpaid", index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Shipping charges
    shipping_cartons = db.Column(db.Integer, nullable=False, default=0)
    shipping_cost = db.Column(db.Numeric(12, 2), nullable=True)
    shipping_gst_incl = db.Column(db.Boolean, nullable=False, default=True)
    shipping_note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_initial_version)

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    items = db.relationship(
        "OrderItem",
        backref="order",
        lazy=True,
        order_by="OrderItem.id",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "shipping_address": self.shipping_address,
            "position": self.position,
            "note": self.note,
            "barcode_all": self.barcode_all,
            "package_type": self.package_type,
            "status": self.status,
            "payment_status": self.payment_status,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "shipping_cartons": self.shipping_cartons,
            "shipping_cost": self.shipping_cost,
            "shipping_gst_incl": self.shipping_gst_incl,
            "shipping_note": self.shipping_note,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_ms_z(self.updated_at),
        }


class OrderItem(db.Model):
    """One line per (order, product). Duplicate input lines are merged before insert."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "product_id", name="uq_order_items_order_product"),
        db.Index("ix_order_items_product", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    backorder = db.Column(db.Integer, nullable=False, default=0)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "backorder": self.backorder,
            "product": self.product.to_dict() if self.product else None,
        }
