# Overview: Stock ledger; append-only movement log shared by order transitions and stock adjustments.

from __future__ import annotations

from typing import Iterable, Optional

from ..extensions import db
from ..models import StockMovement
from ..models.inventory import MOVEMENT_TYPES
from ..validation import ValidationError
from app.time_utils import utcnow
"""
Stock Ledger Invariants (authoritative)

- Append-only: movements are never updated or deleted.
- Written inside the same DB transaction as the change they describe
  (these helpers flush, they never commit).
- ALLOCATE / DEALLOCATE are audit records only; they do not move stock.
- SHIP / ADJUST mirror a stock_on_hand change applied by the caller.
"""


def append_movement(
    *,
    product_id: int,
    movement_type: str,
    qty: int,
    reason: Optional[str] = None,
    order_id: int | None = None,
    actor_user_id: int | None = None,
) -> StockMovement:
    """Append one movement. No domain logic here."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}")

    mv = StockMovement(
        product_id=product_id,
        order_id=order_id,
        type=movement_type,
        qty=qty,
        reason=reason,
        actor_user_id=actor_user_id,
        created_at=utcnow(),
    )
    db.session.add(mv)
    db.session.flush()  # ensures mv.id is assigned without committing
    return mv


def record_planned_movements(
    planned: Iterable,
    *,
    order_id: int,
    actor_user_id: int | None = None,
) -> list[StockMovement]:
    """Persist PlannedMovement records produced by order_transitions."""
    now = utcnow()
    rows = [
        StockMovement(
            product_id=p.product_id,
            order_id=order_id,
            type=p.type,
            qty=p.qty,
            reason=p.reason,
            actor_user_id=actor_user_id,
            created_at=now,
        )
        for p in planned
    ]
    if rows:
        db.session.add_all(rows)
        db.session.flush()
    return rows


def list_movements(
    *,
    product_id: int | None = None,
    order_id: int | None = None,
    movement_type: str | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    if movement_type is not None and movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}")

    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if order_id is not None:
        q = q.filter(StockMovement.order_id == order_id)
    if movement_type is not None:
        q = q.filter(StockMovement.type == movement_type)

    limit = max(1, min(int(limit), 1000))
    return q.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).limit(limit).all()
