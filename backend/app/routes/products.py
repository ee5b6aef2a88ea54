# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/app/routes/products.py
"""
Product catalogue routes.

SECURITY: All routes require authentication.
- Read operations are open to any signed-in user
- Creating products requires an admin level
"""
from flask import Blueprint, request, current_app

from ..services import products_service
from ..models import Product
from ..validation import (
    PRODUCT_CREATE_POLICY,
    validate_payload,
    enforce_rules_product,
    ValidationError,
    ConflictError,
)
from ..errors import NotFoundError, StoreFailure
from ..decorators import require_auth, require_admin_level

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products, newest first.

    Query params:
    - q: str (optional) - case-insensitive title filter
    """
    q = request.args.get("q")
    products = products_service.list_products(q=q)
    return {"items": [p.to_dict() for p in products]}, 200


@products_bp.post("")
@require_auth
@require_admin_level("ADMIN")
def create_product_route():
    """Create a new product. Requires an admin level."""
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = products_service.create_product(
            title=patch["title"],
            price=patch["price"],
            stock_on_hand=patch.get("stock_on_hand") or 0,
            sku=patch.get("sku"),
        )
    except ValidationError as e:
        return {"error": str(e)}, 400
    except ConflictError as e:
        return {"error": str(e)}, 409
    except StoreFailure:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return created.to_dict(), 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
    except NotFoundError:
        return {"error": "Product not found"}, 404
    return product.to_dict(), 200
