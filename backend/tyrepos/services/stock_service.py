# Overview: Service-layer stock adjustments; guarded increments / decrements, purchases and audit rows.

"""
Stock invariants (authoritative)

- quantity_in_stock never goes negative. Every decrement is a single
  UPDATE ... WHERE quantity_in_stock >= :qty; a zero rowcount means the
  request is rejected and nothing else in the unit of work is kept.
- Every positive addition records a StockPurchase with
  total_purchase_value = quantity * purchase_price.
- Each adjustment appends one StockEditLog row in the same transaction.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func, update

from ..extensions import db
from ..models import Item, StockPurchase, User
from ..validation import (
    NotFoundError,
    ValidationError,
    enforce_rules_item,
    to_decimal,
    to_int,
)
from . import audit_service
from .concurrency import run_with_retry
from .item_service import get_item_by_code

OPERATION_ADD = "add"
OPERATION_SUBTRACT = "subtract"
OPERATIONS = (OPERATION_ADD, OPERATION_SUBTRACT)

OPTIONAL_FIELDS = ("location", "lower_limit", "purchase_price", "retail_price", "discount")


class StockError(Exception):
    """Raised when a stock change cannot be applied."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def low_stock_items() -> list[dict]:
    """
    Active items at or below their lower_limit, or LOW_STOCK_DEFAULT_LIMIT
    when the item has none. Lowest stock first.
    """
    default_limit = current_app.config.get("LOW_STOCK_DEFAULT_LIMIT", 10)
    items = (
        db.session.query(Item)
        .filter(
            Item.is_active.is_(True),
            Item.quantity_in_stock <= func.coalesce(Item.lower_limit, default_limit),
        )
        .order_by(Item.quantity_in_stock.asc(), Item.name.asc())
        .all()
    )
    return [
        {
            "id": i.id,
            "item_code": i.item_code,
            "name": i.name,
            "quantity_in_stock": i.quantity_in_stock,
            "lower_limit": i.lower_limit if i.lower_limit is not None else default_limit,
        }
        for i in items
    ]


def current_quantity(item_id: int) -> int | None:
    return (
        db.session.query(Item.quantity_in_stock)
        .filter(Item.id == item_id)
        .scalar()
    )


def increment_stock(item_id: int, quantity: int) -> int:
    """Atomic quantity_in_stock += quantity. Returns the new quantity."""
    stmt = (
        update(Item)
        .where(Item.id == item_id)
        .values(quantity_in_stock=Item.quantity_in_stock + quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise NotFoundError("Item not found")
    return current_quantity(item_id)


def decrement_stock(item_id: int, quantity: int) -> int | None:
    """
    Guarded atomic quantity_in_stock -= quantity.

    Returns the new quantity, or None when stock is insufficient (no change made).
    """
    stmt = (
        update(Item)
        .where(Item.id == item_id, Item.quantity_in_stock >= quantity)
        .values(quantity_in_stock=Item.quantity_in_stock - quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    return current_quantity(item_id)


def _parse_adjustment(payload: dict) -> tuple[str, int, dict, str | None]:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    if payload.get("quantity") in (None, ""):
        raise ValidationError("quantity is required")

    quantity = to_int(payload["quantity"], "quantity")
    operation = str(payload.get("operation") or OPERATION_ADD).strip().lower()
    if operation not in OPERATIONS:
        raise ValidationError(f"operation must be one of: {', '.join(OPERATIONS)}")
    if quantity < 0:
        raise ValidationError("quantity must be >= 0 (use operation=subtract to remove stock)")
    if operation == OPERATION_SUBTRACT and quantity == 0:
        raise ValidationError("quantity must be > 0 for subtract")

    extras: dict = {}
    for field in OPTIONAL_FIELDS:
        if payload.get(field) in (None, ""):
            continue
        value = payload[field]
        if field == "location":
            extras[field] = str(value).strip()[:100]
        elif field == "lower_limit":
            extras[field] = to_int(value, field)
        else:
            extras[field] = to_decimal(value, field)
    enforce_rules_item(extras)

    notes = payload.get("notes") or payload.get("reason")
    return operation, quantity, extras, (str(notes).strip()[:500] if notes else None)


def adjust_stock(*, item_code: str, payload: dict, user: User | None = None) -> dict:
    """
    Add or subtract stock for one item (by code), optionally updating
    location, lower_limit, prices and discount in the same unit of work.

    Returns:
        {"item": ..., "purchase": ... | None, "old_quantity", "new_quantity"}

    Raises:
        ValidationError: malformed payload
        NotFoundError: unknown item code
        StockError: subtraction below zero
    """
    operation, quantity, extras, notes = _parse_adjustment(payload)

    def _op() -> dict:
        item = get_item_by_code(item_code)

        if operation == OPERATION_ADD:
            new_qty = increment_stock(item.id, quantity)
        else:
            new_qty = decrement_stock(item.id, quantity)
            if new_qty is None:
                available = current_quantity(item.id)
                db.session.rollback()
                raise StockError(
                    "Insufficient stock",
                    details={
                        "item_code": item_code,
                        "available": available,
                        "requested": quantity,
                    },
                )
        old_qty = new_qty - quantity if operation == OPERATION_ADD else new_qty + quantity

        db.session.refresh(item)
        before = {
            "purchase_price": item.purchase_price,
            "retail_price": item.retail_price,
            "discount": item.discount,
        }
        for k, v in extras.items():
            setattr(item, k, v)

        purchase = None
        if operation == OPERATION_ADD and quantity > 0:
            unit_cost = Decimal(extras.get("purchase_price", item.purchase_price) or 0)
            purchase = StockPurchase(
                item_id=item.id,
                item_code=item.item_code,
                item_name=item.name,
                quantity=quantity,
                purchase_price=unit_cost,
                retail_price=extras.get("retail_price", item.retail_price),
                total_purchase_value=unit_cost * quantity,
                added_by_id=user.id if user else None,
                added_by_name=user.name if user else None,
                notes=notes,
            )
            db.session.add(purchase)

        db.session.flush()
        audit_service.append_stock_edit_safely(
            item=item,
            operation="stock_update",
            user=user,
            old_stock=old_qty,
            new_stock=new_qty,
            purchase_quantity=quantity if purchase is not None else None,
            old_purchase_price=before["purchase_price"],
            new_purchase_price=item.purchase_price,
            old_retail_price=before["retail_price"],
            new_retail_price=item.retail_price,
            old_discount=before["discount"],
            new_discount=item.discount,
            reason=notes or f"Stock {operation} {quantity}",
        )
        db.session.commit()
        return {
            "item": item.to_dict(),
            "purchase": purchase.to_dict() if purchase is not None else None,
            "old_quantity": old_qty,
            "new_quantity": new_qty,
        }

    try:
        result = run_with_retry(_op)
    except (StockError, NotFoundError, ValidationError):
        db.session.rollback()
        raise

    audit_service.log_activity_safely(
        activity="stock_updated",
        description=(
            f"Stock {operation} {quantity} for {result['item']['item_code']} "
            f"({result['old_quantity']} -> {result['new_quantity']})"
        ),
        user=user,
        entity_type="item",
        entity_id=result["item"]["id"],
        metadata={"operation": operation, "quantity": quantity},
    )
    return result


def bulk_adjust_stock(*, updates: list, user: User | None = None) -> dict:
    """
    Apply adjust_stock per row (one commit each).

    A bad row never aborts the batch; it is reported in "failed".
    """
    if not isinstance(updates, list) or not updates:
        raise ValidationError("updates must be a non-empty list")

    successful: list[dict] = []
    failed: list[dict] = []

    for index, row in enumerate(updates, start=1):
        code = row.get("item_code") if isinstance(row, dict) else None
        try:
            if not code:
                raise ValidationError("item_code is required")
            payload = {k: v for k, v in row.items() if k != "item_code"}
            result = adjust_stock(item_code=str(code), payload=payload, user=user)
            successful.append({
                "row": index,
                "item_code": result["item"]["item_code"],
                "old_quantity": result["old_quantity"],
                "new_quantity": result["new_quantity"],
            })
        except StockError as e:
            failed.append({"row": index, "item_code": code, "error": str(e), "details": e.details})
        except (ValidationError, NotFoundError) as e:
            failed.append({"row": index, "item_code": code, "error": str(e)})
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Bulk stock update failed on row %s", index)
            failed.append({"row": index, "item_code": code, "error": "Internal error"})

    return {
        "total_processed": len(updates),
        "successful": successful,
        "failed": failed,
    }


def list_purchases(item_id: int) -> list[StockPurchase]:
    return (
        db.session.query(StockPurchase)
        .filter(StockPurchase.item_id == item_id)
        .order_by(StockPurchase.created_at.desc(), StockPurchase.id.desc())
        .all()
    )
