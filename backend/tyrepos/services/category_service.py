# Overview: Service-layer operations for item categories.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Category, Item
from ..validation import ConflictError, NotFoundError, ValidationError


def _clean(data: dict, *, partial: bool) -> dict:
    patch = {}
    if "name" in data or not partial:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("Please add a category name")
        if len(name) > 50:
            raise ValidationError("Name can not be more than 50 characters")
        patch["name"] = name
    if "description" in data:
        description = str(data.get("description") or "").strip() or None
        if description and len(description) > 200:
            raise ValidationError("Description can not be more than 200 characters")
        patch["description"] = description
    return patch


def _ensure_unique_name(name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(Category).filter(func.lower(Category.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError("Category with this name already exists")


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError("Category not found")
    return category


def find_by_name(name: str) -> Category | None:
    return (
        db.session.query(Category)
        .filter(func.lower(Category.name) == str(name).strip().lower())
        .first()
    )


def create_category(data: dict) -> Category:
    patch = _clean(data or {}, partial=False)
    _ensure_unique_name(patch["name"])
    category = Category(**patch)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id: int, data: dict) -> Category:
    category = get_category(category_id)
    patch = _clean(data or {}, partial=True)
    if "name" in patch:
        _ensure_unique_name(patch["name"], exclude_id=category.id)
    for k, v in patch.items():
        setattr(category, k, v)
    db.session.commit()
    return category


def delete_category(category_id: int) -> None:
    category = get_category(category_id)
    in_use = db.session.query(Item.id).filter(Item.category_id == category.id).first()
    if in_use:
        raise ConflictError("Category is used by existing items")
    db.session.delete(category)
    db.session.commit()
