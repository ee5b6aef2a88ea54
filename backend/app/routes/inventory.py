# backend/app/routes/inventory.py
"""
Inventory routes.

SECURITY: All routes require authentication.
- Overview and movement history are open to any signed-in user
- Adjusting stock and refreshing the allocation cache require an admin level

Overview query params:
- q: case-insensitive title filter
- page: 1-based, default 1
- page_size: clamped to [10, 200], default 100
"""
from flask import Blueprint, request, g, current_app

from ..services import inventory_service
from ..services.ledger_service import list_movements
from ..validation import validate_stock_adjust, ValidationError
from ..errors import NotFoundError, StoreFailure
from ..decorators import require_auth, require_admin_level


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/overview")
@require_auth
def inventory_overview_route():
    q = request.args.get("q")
    page = request.args.get("page", type=int)
    page_size = request.args.get("page_size", type=int)

    try:
        result = inventory_service.get_inventory_overview(q=q, page=page, page_size=page_size)
    except StoreFailure:
        current_app.logger.exception("Failed to build inventory overview")
        return {"error": "Internal server error"}, 500

    return result, 200


@inventory_bp.post("/adjust")
@require_auth
@require_admin_level("ADMIN")
def adjust_inventory_route():
    """
    Manual stock correction.

    Body: {product_id, qty_delta (non-zero, signed), reason?}
    Writes an ADJUST movement and changes stock_on_hand by qty_delta.
    """
    payload = request.get_json(silent=True)

    try:
        patch = validate_stock_adjust(payload)
        product, movement = inventory_service.adjust_stock(
            product_id=patch["product_id"],
            qty_delta=patch["qty_delta"],
            reason=patch["reason"],
            actor_user_id=g.current_user.id,
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except NotFoundError:
        return {"error": "Product not found"}, 404
    except StoreFailure:
        current_app.logger.exception("Failed to adjust stock")
        return {"error": "Internal server error"}, 500

    return {"product": product.to_dict(), "movement": movement.to_dict()}, 201


@inventory_bp.post("/refresh-allocated")
@require_auth
@require_admin_level("ADMIN")
def refresh_allocated_route():
    """Recompute Product.stock_allocated for every product."""
    try:
        changed = inventory_service.refresh_allocated_cache()
    except StoreFailure:
        current_app.logger.exception("Failed to refresh allocated cache")
        return {"error": "Internal server error"}, 500

    return {"changed": changed}, 200


@inventory_bp.get("/movements")
@require_auth
def list_movements_route():
    """
    Stock movement history, newest first.

    Query params: product_id, order_id, type, limit (default 200, max 1000)
    """
    try:
        movements = list_movements(
            product_id=request.args.get("product_id", type=int),
            order_id=request.args.get("order_id", type=int),
            movement_type=request.args.get("type"),
            limit=request.args.get("limit", default=200, type=int),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400

    return {"items": [m.to_dict() for m in movements]}, 200
