# backend/tyrepos/services/item_service.py
"""
Item Service

Item master data: creation with system-assigned codes, lookups by id /
code / barcode, partial updates with audit rows, and bulk creation with
per-row results.

CODE ASSIGNMENT: item_code comes from the atomic "item_code" counter
(RT0001, RT0002, ...). Codes of deleted items are never reissued.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Item, SaleLine, StockEditLog, StockPurchase, User
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_item,
    validate_payload,
)
from . import audit_service, category_service, sequence_service

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "barcode", "category_id", "description", "quantity_in_stock",
        "location", "lower_limit", "purchase_price", "retail_price", "discount",
        "is_active",
    },
    required_on_create={"name", "category_id", "purchase_price", "retail_price"},
)

ITEM_MUTABLE_FIELDS = ITEM_POLICY.writable_fields

SEARCH_LIMIT = 20


def apply_item_patch(item: Item, patch: dict) -> None:
    for k, v in patch.items():
        if k not in ITEM_MUTABLE_FIELDS:
            continue
        setattr(item, k, v)


def _resolve_category_alias(payload: dict) -> dict:
    """Spreadsheet rows name the category; map "category" -> category_id."""
    payload = dict(payload)
    category = payload.pop("category", None)
    if payload.get("category_id") in (None, "") and category not in (None, ""):
        if isinstance(category, int) and not isinstance(category, bool):
            payload["category_id"] = category
        else:
            found = category_service.find_by_name(str(category))
            if not found:
                raise ValidationError(f"Category not found: {category}")
            payload["category_id"] = found.id
    return payload


def _require_category(category_id: int) -> None:
    try:
        category_service.get_category(category_id)
    except NotFoundError:
        raise ValidationError("Category not found")


def _ensure_unique(patch: dict, exclude_id: int | None = None) -> None:
    if patch.get("name"):
        query = db.session.query(Item.id).filter(func.lower(Item.name) == patch["name"].lower())
        if exclude_id is not None:
            query = query.filter(Item.id != exclude_id)
        if query.first():
            raise ConflictError("Item with this name already exists")
    if patch.get("barcode"):
        query = db.session.query(Item.id).filter(Item.barcode == patch["barcode"])
        if exclude_id is not None:
            query = query.filter(Item.id != exclude_id)
        if query.first():
            raise ConflictError("Item with this barcode already exists")


def list_items(
    *,
    search: str | None = None,
    category_id: int | None = None,
    include_inactive: bool = False,
    low_stock: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Item listing with optional text search and pagination.

    Args:
        search: matched (case-insensitive) against name, code, barcode, description
        category_id: restrict to one category
        include_inactive: include deactivated items
        low_stock: only items at or under their lower limit
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)
    """
    base_query = db.session.query(Item)
    if not include_inactive:
        base_query = base_query.filter(Item.is_active.is_(True))
    if category_id is not None:
        base_query = base_query.filter(Item.category_id == category_id)
    if search:
        like = f"%{search.strip()}%"
        base_query = base_query.filter(or_(
            Item.name.ilike(like),
            Item.item_code.ilike(like),
            Item.barcode.ilike(like),
            Item.description.ilike(like),
        ))
    if low_stock:
        base_query = base_query.filter(
            Item.lower_limit.isnot(None),
            Item.quantity_in_stock <= Item.lower_limit,
        )
    base_query = base_query.order_by(Item.name.asc(), Item.id.asc())

    if page is None:
        items = base_query.all()
        return {
            "items": [i.to_dict() for i in items],
            "count": len(items),
        }

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    items = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [i.to_dict() for i in items],
        "count": len(items),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def items_for_export(*, include_inactive: bool = False) -> list[Item]:
    query = db.session.query(Item)
    if not include_inactive:
        query = query.filter(Item.is_active.is_(True))
    return query.order_by(Item.item_code.asc()).all()


def get_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if not item:
        raise NotFoundError("Item not found")
    return item


def get_item_by_code(item_code: str) -> Item:
    item = db.session.query(Item).filter_by(item_code=str(item_code).strip().upper()).first()
    if not item:
        raise NotFoundError("Item not found")
    return item


def get_item_by_barcode(barcode: str) -> Item:
    item = db.session.query(Item).filter_by(barcode=str(barcode).strip()).first()
    if not item:
        raise NotFoundError("Item not found")
    return item


def search_items(q: str) -> list[Item]:
    q = (q or "").strip()
    if not q:
        raise ValidationError("Search query is required")
    like = f"%{q}%"
    return (
        db.session.query(Item)
        .filter(Item.is_active.is_(True))
        .filter(or_(
            Item.name.ilike(like),
            Item.item_code.ilike(like),
            Item.barcode.ilike(like),
        ))
        .order_by(Item.name.asc())
        .limit(SEARCH_LIMIT)
        .all()
    )


def create_item(*, payload: dict, user: User | None = None) -> Item:
    """
    Create an item from a client payload.

    Returns:
        The created Item (committed), with its new item_code.

    Raises:
        ValidationError: bad / missing fields, unknown category
        ConflictError: name or barcode already in use
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    patch = validate_payload(
        model=Item,
        payload=_resolve_category_alias(payload),
        policy=ITEM_POLICY,
        partial=False,
    )
    enforce_rules_item(patch)
    _require_category(patch["category_id"])
    _ensure_unique(patch)

    item = Item(quantity_in_stock=0, discount=0, is_active=True)
    apply_item_patch(item, patch)
    item.item_code = sequence_service.next_item_code()

    db.session.add(item)
    try:
        db.session.flush()  # ensure item.id exists before the audit row
        audit_service.log_activity(
            activity="item_created",
            description=f"Created item {item.item_code} - {item.name}",
            user=user,
            entity_type="item",
            entity_id=item.id,
            metadata={"item_code": item.item_code},
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Item with this name, code or barcode already exists")
    return item


def _stock_operation_for(changes: set[str]) -> str:
    if len(changes) != 1:
        return "general_update"
    change = next(iter(changes))
    return {
        "quantity_in_stock": "stock_update",
        "retail_price": "price_update",
        "purchase_price": "purchase_update",
        "discount": "discount_update",
    }[change]


def update_item(*, item_id: int, payload: dict, user: User | None = None, reason: str | None = None) -> Item:
    """
    Partial update. Changes to stock, prices or discount append one
    StockEditLog row carrying every old/new value pair.
    """
    item = get_item(item_id)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    reason = payload.pop("reason", None) or reason
    patch = validate_payload(
        model=Item,
        payload=_resolve_category_alias(payload),
        policy=ITEM_POLICY,
        partial=True,
    )
    enforce_rules_item(patch)
    if patch.get("category_id") is not None:
        _require_category(patch["category_id"])
    _ensure_unique(patch, exclude_id=item.id)

    before = {
        "quantity_in_stock": item.quantity_in_stock,
        "purchase_price": item.purchase_price,
        "retail_price": item.retail_price,
        "discount": item.discount,
    }
    tracked = {
        k for k in before
        if k in patch and patch[k] is not None and patch[k] != before[k]
    }

    apply_item_patch(item, patch)
    try:
        db.session.flush()
        if tracked:
            audit_service.append_stock_edit_safely(
                item=item,
                operation=_stock_operation_for(tracked),
                user=user,
                old_stock=before["quantity_in_stock"],
                new_stock=item.quantity_in_stock,
                old_purchase_price=before["purchase_price"],
                new_purchase_price=item.purchase_price,
                old_retail_price=before["retail_price"],
                new_retail_price=item.retail_price,
                old_discount=before["discount"],
                new_discount=item.discount,
                reason=reason or "Item updated",
            )
        audit_service.log_activity(
            activity="item_updated",
            description=f"Updated item {item.item_code} - {item.name}",
            user=user,
            entity_type="item",
            entity_id=item.id,
            metadata={"fields": sorted(patch.keys())},
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Item with this name or barcode already exists")
    return item


def _has_history(item: Item) -> bool:
    for model in (SaleLine, StockPurchase, StockEditLog):
        if db.session.query(model.id).filter(model.item_id == item.id).first():
            return True
    return False


def delete_item(*, item: Item, user: User | None = None) -> dict:
    """
    Remove an item.

    Items referenced by sales, purchases or stock logs are deactivated
    instead of deleted so that history stays resolvable.
    """
    code, name, item_id = item.item_code, item.name, item.id
    if _has_history(item):
        item.is_active = False
        outcome = {"deleted": False, "deactivated": True}
    else:
        db.session.delete(item)
        outcome = {"deleted": True, "deactivated": False}

    audit_service.log_activity(
        activity="item_deleted" if outcome["deleted"] else "item_deactivated",
        description=f"{'Deleted' if outcome['deleted'] else 'Deactivated'} item {code} - {name}",
        user=user,
        entity_type="item",
        entity_id=item_id,
    )
    db.session.commit()
    return {"item_code": code, **outcome}


def bulk_create_items(*, rows: list, user: User | None = None) -> dict:
    """
    Create many items, one commit per row.

    A bad row never aborts the batch; it is reported in failed_items.
    """
    if not isinstance(rows, list) or not rows:
        raise ValidationError("items must be a non-empty list")

    successful_items: list[dict] = []
    failed_items: list[dict] = []

    for index, row in enumerate(rows, start=1):
        name = row.get("name") if isinstance(row, dict) else None
        try:
            item = create_item(payload=row, user=user)
            successful_items.append(item.to_dict())
        except (ValidationError, ConflictError, NotFoundError) as e:
            db.session.rollback()
            failed_items.append({"row": index, "name": name, "error": str(e)})
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Bulk item create failed on row %s", index)
            failed_items.append({"row": index, "name": name, "error": "Internal error"})

    return {
        "total_processed": len(rows),
        "successful": len(successful_items),
        "failed": len(failed_items),
        "successful_items": successful_items,
        "failed_items": failed_items,
    }
