# backend/app/services/products_service.py
"""
Products Service

Products carry the physical stock counter. Creation is the only place
stock_on_hand is set directly; afterwards it moves through shipments and
ADJUST movements only.
"""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Product
from ..errors import NotFoundError, ConflictError, StoreFailure
from ..validation import ValidationError
from .concurrency import transaction


def create_product(
    *,
    title: str,
    price: Decimal | int | str = 0,
    stock_on_hand: int = 0,
    sku: str | None = None,
) -> Product:
    if not title or not str(title).strip():
        raise ValidationError("title cannot be blank")
    price = Decimal(str(price))
    if price < 0:
        raise ValidationError("price must be >= 0")
    if stock_on_hand < 0:
        raise ValidationError("stock_on_hand must be >= 0")

    if sku:
        existing = db.session.query(Product).filter_by(sku=sku).first()
        if existing:
            raise ConflictError(f"SKU {sku!r} already exists")

    product = Product(
        title=str(title).strip(),
        price=price,
        stock_on_hand=stock_on_hand,
        stock_allocated=0,
        sku=sku or None,
    )
    try:
        with transaction():
            db.session.add(product)
    except StoreFailure as exc:
        # Concurrent insert of the same SKU
        if isinstance(exc.__cause__, IntegrityError):
            raise ConflictError(f"SKU {sku!r} already exists") from exc
        raise
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(q: str | None = None) -> list[Product]:
    query = db.session.query(Product)
    if q:
        query = query.filter(Product.title.icontains(q.strip(), autoescape=True))
    return query.order_by(Product.created_at.desc(), Product.id.desc()).all()
