# Overview: Service-layer operations for customers; CRUD, lookups and purchase statistics.

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, User
from ..models.customers import (
    ACTIVE_WINDOW_DAYS,
    CUSTOMER_TYPES,
    GENDERS,
    INACTIVE_WINDOW_DAYS,
)
from ..models.sales import PAYMENT_METHODS
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_customer,
    to_decimal,
    validate_payload,
)
from tyrepos.time_utils import utcnow

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={
        "nic", "name", "email", "phone", "street", "city", "district",
        "postal_code", "date_of_birth", "gender", "customer_type",
        "credit_limit", "outstanding_balance", "preferred_payment_method",
        "notes", "is_active",
    },
    required_on_create={"nic", "name"},
)

SORTABLE_FIELDS = {
    "name", "created_at", "total_spent", "purchase_count",
    "last_purchase_at", "loyalty_points",
}
SEARCH_LIMIT = 10


def _flatten_address(payload: dict) -> dict:
    payload = dict(payload)
    address = payload.pop("address", None)
    if isinstance(address, dict):
        for key in ("street", "city", "district", "postal_code"):
            if key in address and key not in payload:
                payload[key] = address[key]
    return payload


def _enforce_enums(patch: dict) -> None:
    if patch.get("customer_type") and patch["customer_type"] not in CUSTOMER_TYPES:
        raise ValidationError(f"customer_type must be one of: {', '.join(CUSTOMER_TYPES)}")
    if patch.get("gender") and patch["gender"] not in GENDERS:
        raise ValidationError(f"gender must be one of: {', '.join(GENDERS)}")
    if patch.get("preferred_payment_method") and patch["preferred_payment_method"] not in PAYMENT_METHODS:
        raise ValidationError(f"preferred_payment_method must be one of: {', '.join(PAYMENT_METHODS)}")


def _clean(payload: dict, *, partial: bool) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    patch = validate_payload(
        model=Customer,
        payload=_flatten_address(payload),
        policy=CUSTOMER_POLICY,
        partial=partial,
    )
    enforce_rules_customer(patch)
    _enforce_enums(patch)
    return patch


def _status_filter(query, status: str):
    now = utcnow()
    active_since = now - timedelta(days=ACTIVE_WINDOW_DAYS + 1)
    inactive_since = now - timedelta(days=INACTIVE_WINDOW_DAYS + 1)
    if status == "new":
        return query.filter(Customer.last_purchase_at.is_(None))
    if status == "active":
        return query.filter(Customer.last_purchase_at > active_since)
    if status == "inactive":
        return query.filter(
            Customer.last_purchase_at <= active_since,
            Customer.last_purchase_at > inactive_since,
        )
    if status == "dormant":
        return query.filter(Customer.last_purchase_at <= inactive_since)
    raise ValidationError("status must be one of: new, active, inactive, dormant")


def list_customers(
    *,
    search: str | None = None,
    customer_type: str | None = None,
    status: str | None = None,
    is_active: bool | None = True,
    sort_by: str | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    query = db.session.query(Customer)
    if is_active is not None:
        query = query.filter(Customer.is_active.is_(is_active))
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(like),
            Customer.nic.ilike(like),
            Customer.email.ilike(like),
            Customer.phone.ilike(like),
        ))
    if customer_type:
        query = query.filter(Customer.customer_type == customer_type)
    if status:
        query = _status_filter(query, status)

    field, _, direction = (sort_by or "created_at:desc").partition(":")
    if field not in SORTABLE_FIELDS:
        raise ValidationError(f"sort_by must be one of: {', '.join(sorted(SORTABLE_FIELDS))}")
    column = getattr(Customer, field)
    query = query.order_by(column.asc() if direction == "asc" else column.desc(), Customer.id.asc())

    per_page = min(max(per_page or 10, 1), 100)
    page = max(page or 1, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    customers = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "customers": [c.to_dict() for c in customers],
        "count": len(customers),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def find_by_nic(nic: str) -> Customer | None:
    if not nic:
        return None
    return db.session.query(Customer).filter_by(nic=str(nic).strip().upper()).first()


def get_by_nic(nic: str) -> Customer:
    customer = find_by_nic(nic)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def search_customers(q: str) -> list[Customer]:
    q = (q or "").strip()
    if not q:
        raise ValidationError("Search query is required")
    like = f"%{q}%"
    return (
        db.session.query(Customer)
        .filter(Customer.is_active.is_(True))
        .filter(or_(
            Customer.name.ilike(like),
            Customer.nic.ilike(like),
            Customer.phone.ilike(like),
        ))
        .order_by(Customer.name.asc())
        .limit(SEARCH_LIMIT)
        .all()
    )


def create_customer(*, payload: dict, user: User | None = None) -> Customer:
    patch = _clean(payload, partial=False)
    if find_by_nic(patch["nic"]):
        raise ConflictError("Customer with this NIC already exists")

    customer = Customer(**patch)
    customer.created_by_id = user.id if user else None
    customer.updated_by_id = customer.created_by_id
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(*, customer_id: int, payload: dict, user: User | None = None) -> Customer:
    customer = get_customer(customer_id)
    patch = _clean(payload, partial=True)
    if patch.get("nic") and patch["nic"] != customer.nic and find_by_nic(patch["nic"]):
        raise ConflictError("Customer with this NIC already exists")

    for k, v in patch.items():
        setattr(customer, k, v)
    customer.updated_by_id = user.id if user else customer.updated_by_id
    db.session.commit()
    return customer


def deactivate_customer(*, customer_id: int, user: User | None = None) -> Customer:
    customer = get_customer(customer_id)
    customer.is_active = False
    customer.updated_by_id = user.id if user else customer.updated_by_id
    db.session.commit()
    return customer


def find_or_create(*, payload: dict, user: User | None = None) -> tuple[Customer, bool]:
    """Returns (customer, created)."""
    nic = str((payload or {}).get("nic") or "").strip().upper()
    if not nic:
        raise ValidationError("nic is required")
    existing = find_by_nic(nic)
    if existing:
        return existing, False
    return create_customer(payload={**payload, "nic": nic}, user=user), True


def apply_purchase(customer: Customer, amount: Decimal, *, when=None, payment_method: str | None = None) -> None:
    """
    Add one purchase to the customer's running statistics (caller commits).

    Loyalty: one point per LOYALTY_POINT_UNIT currency units of the purchase.
    """
    when = when or utcnow()
    unit = Decimal(current_app.config.get("LOYALTY_POINT_UNIT", 100))

    customer.purchase_count = (customer.purchase_count or 0) + 1
    customer.total_spent = Decimal(customer.total_spent or 0) + amount
    customer.loyalty_points = (customer.loyalty_points or 0) + int(amount // unit)
    if customer.first_purchase_at is None:
        customer.first_purchase_at = when
    customer.last_purchase_at = when
    if payment_method:
        customer.preferred_payment_method = payment_method


def revert_purchase(customer: Customer, amount: Decimal) -> None:
    """Undo apply_purchase for a deleted sale (caller commits); never below zero."""
    unit = Decimal(current_app.config.get("LOYALTY_POINT_UNIT", 100))
    customer.purchase_count = max((customer.purchase_count or 0) - 1, 0)
    customer.total_spent = max(Decimal(customer.total_spent or 0) - amount, Decimal("0"))
    customer.loyalty_points = max((customer.loyalty_points or 0) - int(amount // unit), 0)


def record_purchase(*, customer_id: int, amount) -> Customer:
    customer = get_customer(customer_id)
    amount = to_decimal(amount, "sale_amount")
    if amount <= 0:
        raise ValidationError("Valid sale amount is required")
    apply_purchase(customer, amount)
    db.session.commit()
    return customer


def overview() -> dict:
    """Customer counts by type / activity plus top spenders."""
    customers = db.session.query(Customer).filter(Customer.is_active.is_(True)).all()

    by_type = {t: 0 for t in CUSTOMER_TYPES}
    by_status = {"new": 0, "active": 0, "inactive": 0, "dormant": 0}
    total_spent = Decimal("0")
    total_points = 0
    for c in customers:
        by_type[c.customer_type] = by_type.get(c.customer_type, 0) + 1
        by_status[c.activity_status] += 1
        total_spent += Decimal(c.total_spent or 0)
        total_points += c.loyalty_points or 0

    top = sorted(customers, key=lambda c: Decimal(c.total_spent or 0), reverse=True)[:10]
    new_this_month = (
        db.session.query(func.count(Customer.id))
        .filter(Customer.created_at >= utcnow() - timedelta(days=30))
        .scalar()
    )

    return {
        "total_customers": len(customers),
        "new_last_30_days": new_this_month or 0,
        "by_type": by_type,
        "by_status": by_status,
        "total_spent": round(float(total_spent), 2),
        "average_spent": round(float(total_spent) / len(customers), 2) if customers else 0.0,
        "total_loyalty_points": total_points,
        "top_customers": [
            {
                "id": c.id,
                "name": c.name,
                "nic": c.nic,
                "total_spent": round(float(c.total_spent or 0), 2),
                "purchase_count": c.purchase_count,
            }
            for c in top
        ],
    }
