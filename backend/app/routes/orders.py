# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/app/routes/orders.py
"""
Order routes.

SECURITY: All routes require authentication. Deleting an order requires an
admin level.

Versioning:
- Every order view carries updated_at (millisecond precision, trailing Z).
- PATCH accepts the same value back as expected_updated_at. A stale value
  gets 409 with current_updated_at so the client can re-fetch and retry.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..services import order_service
from ..services.ledger_service import list_movements
from ..validation import validate_order_create, validate_order_update
from ..errors import (
    ValidationError,
    ConflictError,
    NotFoundError,
    VersionConflictError,
    StoreFailure,
)
from ..decorators import require_auth, require_admin_level


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create an order.

    Body: customer snapshot fields plus items: [{product_id, quantity, backorder?}]
    Duplicate products in items are merged by summing quantities.
    """
    payload = request.get_json(silent=True)

    try:
        patch = validate_order_create(payload)
        items = patch.pop("items")
        order = order_service.create_order(items=items, user_id=g.current_user.id, **patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StoreFailure:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(order), 201


@orders_bp.get("")
@require_auth
def list_orders_route():
    try:
        orders = order_service.list_orders()
    except StoreFailure:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500
    return jsonify({"items": orders}), 200


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
    except NotFoundError:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(order), 200


@orders_bp.patch("/<int:order_id>")
@require_auth
def update_order_route(order_id: int):
    """
    Partial update: customer snapshot, order_status, payment_status,
    shipping fields and/or a full replacement items array.

    Stock effects (allocation, deallocation, shipment) are applied in the
    same transaction as the field changes.
    """
    payload = request.get_json(silent=True)

    try:
        changes = validate_order_update(payload)
        order = order_service.update_order(order_id, changes, actor_user_id=g.current_user.id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except VersionConflictError as e:
        return jsonify({"error": str(e), "current_updated_at": e.current_version}), 409
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except StoreFailure:
        current_app.logger.exception("Failed to update order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify(order), 200


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_admin_level("ADMIN")
def delete_order_route(order_id: int):
    """Delete an order and its items. Stock movements are kept."""
    try:
        order_service.delete_order(order_id)
    except NotFoundError:
        return jsonify({"error": "Order not found"}), 404
    except StoreFailure:
        current_app.logger.exception("Failed to delete order %s", order_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({"ok": True}), 200


@orders_bp.get("/<int:order_id>/movements")
@require_auth
def list_order_movements_route(order_id: int):
    """Stock movements recorded for this order, newest first."""
    movements = list_movements(order_id=order_id, limit=1000)
    return jsonify({"items": [m.to_dict() for m in movements]}), 200
