from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from app.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: $9,999,999.99
# This prevents database overflow issues and nonsensical prices
MAX_PRICE = Decimal("9999999.99")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - ignore_unknown: drop non-writable keys instead of rejecting them
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    ignore_unknown: bool = False


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            # str() first so 9.99 stays 9.99 rather than its binary expansion
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    return result


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        return _coerce_int(col.key, value)

    # Exact decimals (money)
    if isinstance(coltype, Numeric):
        return _coerce_decimal(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except Exception:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")


    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject (or drop) unknown / non-writable fields
    accepted = {}
    for k, raw in payload.items():
        if k not in policy.writable_fields or k not in cols:
            if policy.ignore_unknown:
                continue
            if k not in policy.writable_fields:
                raise ValidationError(f"Field not allowed: {k}")
            raise ValidationError(f"Unknown field: {k}")
        accepted[k] = raw

    patch: dict = {}

    for k, raw in accepted.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

ORDER_SNAPSHOT_FIELDS = {
    "customer_name",
    "customer_email",
    "customer_phone",
    "shipping_address",
    "position",
    "note",
    "barcode_all",
    "package_type",
}

ORDER_CREATE_POLICY = ModelValidationPolicy(
    writable_fields=ORDER_SNAPSHOT_FIELDS,
    required_on_create={"customer_name", "customer_email", "customer_phone", "shipping_address"},
    ignore_unknown=True,
)

ORDER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=ORDER_SNAPSHOT_FIELDS | {
        "payment_status",
        "shipping_cartons",
        "shipping_cost",
        "shipping_gst_incl",
        "shipping_note",
    },
    ignore_unknown=True,
)


def validate_item_inputs(raw_items: Any, *, allow_empty: bool = True) -> list[dict]:
    """
    Shape/type check for an items array. Negative values are left for the
    order service to reject so direct service callers get the same rule.
    """
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")
    if not raw_items and not allow_empty:
        raise ValidationError("items must not be empty")

    items = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        if "product_id" not in raw or "quantity" not in raw:
            raise ValidationError(f"items[{idx}] requires product_id and quantity")
        product_id = _coerce_int(f"items[{idx}].product_id", raw["product_id"])
        if product_id <= 0:
            raise ValidationError(f"items[{idx}].product_id must be positive")
        item = {
            "product_id": product_id,
            "quantity": _coerce_int(f"items[{idx}].quantity", raw["quantity"]),
            "backorder": None,
        }
        if raw.get("backorder") is not None:
            item["backorder"] = _coerce_int(f"items[{idx}].backorder", raw["backorder"])
        items.append(item)
    return items


def enforce_rules_order_snapshot(patch: dict) -> None:
    from .models.orders import PACKAGE_TYPES

    if "package_type" in patch and patch["package_type"] not in PACKAGE_TYPES:
        raise ValidationError(f"package_type must be one of: {', '.join(PACKAGE_TYPES)}")
    if "customer_email" in patch and "@" not in patch["customer_email"]:
        raise ValidationError("customer_email must be an email address")


def validate_order_create(payload: Any) -> dict:
    from .models import Order

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    patch = validate_payload(
        model=Order,
        payload={k: v for k, v in payload.items() if k != "items"},
        policy=ORDER_CREATE_POLICY,
        partial=False,
    )
    enforce_rules_order_snapshot(patch)
    patch["items"] = validate_item_inputs(payload.get("items"), allow_empty=False)
    return patch


def validate_order_update(payload: Any) -> dict:
    """
    Normalize a partial order update document.

    Returns a dict with only the keys the caller supplied. Special keys:
    - "status" (from order_status), validated against ORDER_STATUSES
    - "items" (list of item dicts), when an items array was supplied
    - "expected_updated_at" (datetime), when a version token was supplied

    Unknown keys are ignored. Raises ValidationError("Nothing to update")
    when no recognised field remains.
    """
    from .models import Order
    from .models.orders import ORDER_STATUSES, PAYMENT_STATUSES

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    body = dict(payload)
    expected_raw = body.pop("expected_updated_at", None)
    order_status = body.pop("order_status", None)
    raw_items = body.pop("items", None)

    # null means "use the default" for these two (not "store null")
    if "shipping_cartons" in body and body["shipping_cartons"] is None:
        body["shipping_cartons"] = 0
    if "shipping_gst_incl" in body and body["shipping_gst_incl"] is None:
        body["shipping_gst_incl"] = True
    if body.get("payment_status") is None:
        body.pop("payment_status", None)

    patch = validate_payload(model=Order, payload=body, policy=ORDER_UPDATE_POLICY, partial=True)
    enforce_rules_order_snapshot(patch)

    if "shipping_cartons" in patch:
        patch["shipping_cartons"] = max(0, patch["shipping_cartons"])

    if "payment_status" in patch and patch["payment_status"] not in PAYMENT_STATUSES:
        raise ValidationError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")

    if order_status is not None:
        if order_status not in ORDER_STATUSES:
            raise ValidationError(f"order_status must be one of: {', '.join(ORDER_STATUSES)}")
        patch["status"] = order_status

    if raw_items is not None:
        patch["items"] = validate_item_inputs(raw_items)

    if not patch:
        raise ValidationError("Nothing to update")

    if expected_raw is not None:
        if not isinstance(expected_raw, str):
            raise ValidationError("expected_updated_at must be an ISO-8601 datetime")
        try:
            expected = parse_iso_datetime(expected_raw)
        except ValueError:
            raise ValidationError("expected_updated_at must be an ISO-8601 datetime")
        if expected is not None:
            patch["expected_updated_at"] = expected

    return patch


# ---------------------------------------------------------------------------
# Products / stock
# ---------------------------------------------------------------------------

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "title", "price", "stock_on_hand"},
    required_on_create={"title", "price"},
)


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "price" in patch and patch["price"] is not None:
        price = patch["price"]
        if price < 0:
            raise ValidationError("price must be >= 0")
        if price > MAX_PRICE:
            raise ValidationError(f"price cannot exceed {MAX_PRICE}")
        if price != price.quantize(Decimal("0.01")):
            raise ValidationError("price must have at most 2 decimal places")

    if "stock_on_hand" in patch and patch["stock_on_hand"] is not None:
        if patch["stock_on_hand"] < 0:
            raise ValidationError("stock_on_hand must be >= 0")

    if "sku" in patch and patch["sku"] == "":
        patch["sku"] = None


def validate_stock_adjust(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [k for k in ("product_id", "qty_delta") if payload.get(k) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    qty_delta = _coerce_int("qty_delta", payload["qty_delta"])
    # ADJUST requires qty != 0
    if qty_delta == 0:
        raise ValidationError("qty_delta must be non-zero for ADJUST")

    reason = payload.get("reason")
    if reason is not None:
        reason = str(reason).strip()[:255] or None

    return {
        "product_id": _coerce_int("product_id", payload["product_id"]),
        "qty_delta": qty_delta,
        "reason": reason,
    }
