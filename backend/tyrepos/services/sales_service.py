# Overview: Service-layer operations for sales; one transaction for the bill and its stock decrements.

"""
Sale invariants (authoritative)

- A sale and the stock decrements for all of its lines commit together or
  not at all. Each decrement is guarded (quantity_in_stock >= qty), so a
  sale can never drive stock negative, even under concurrent tills.
- Bill numbers come from the atomic "bill_number" counter.
- Stock edit rows are written in savepoints of the sale transaction:
  a failed audit row is logged and dropped, the sale stands.
- Customer statistics and the activity log are updated after commit,
  best-effort. Their failures are logged and never reach the client.
- total is stored exactly as submitted.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Customer, Item, Sale, SaleLine, User
from ..models.sales import PAYMENT_METHODS, PAYMENT_STATUSES, WALK_IN_CUSTOMER
from ..validation import NotFoundError, ValidationError, to_decimal, to_int
from tyrepos.time_utils import utcnow
from . import audit_service, customer_service, sequence_service
from .concurrency import lock_for_update, run_with_retry
from .stock_service import current_quantity, decrement_stock, increment_stock


class SaleError(Exception):
    """Raised when a sale cannot be recorded."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _money(payload: dict, field: str, errors: dict, *, required: bool, default=None, signed: bool = False):
    raw = payload.get(field)
    if raw in (None, ""):
        if required:
            errors[field] = "is required"
        return default
    try:
        value = to_decimal(raw, field)
    except ValidationError as e:
        errors[field] = str(e)
        return default
    if value < 0 and not signed:
        errors[field] = "must be >= 0"
    return value


def validate_sale_payload(payload: dict) -> dict:
    """
    Check and normalize a sale request.

    Raises SaleError (400) listing every problem; nothing is written.
    """
    if not isinstance(payload, dict):
        raise SaleError("Invalid JSON payload")

    lines_in = payload.get("items")
    if not isinstance(lines_in, list) or not lines_in:
        raise SaleError("Sale must contain at least one item")

    errors: dict = {}
    subtotal = _money(payload, "subtotal", errors, required=True)
    total = _money(payload, "total", errors, required=True)
    tax = _money(payload, "tax", errors, required=False, default=Decimal("0"))
    amount_paid = _money(payload, "amount_paid", errors, required=False)
    # Credit sales carry a negative balance
    balance = _money(payload, "balance", errors, required=False, signed=True)

    payment_method = payload.get("payment_method")
    if not payment_method:
        errors["payment_method"] = "is required"
    elif payment_method not in PAYMENT_METHODS:
        errors["payment_method"] = f"must be one of: {', '.join(PAYMENT_METHODS)}"

    payment_status = payload.get("payment_status") or "completed"
    if payment_status not in PAYMENT_STATUSES:
        errors["payment_status"] = f"must be one of: {', '.join(PAYMENT_STATUSES)}"

    lines: list[dict] = []
    line_errors: list[dict] = []
    for index, line in enumerate(lines_in):
        problems: dict = {}
        if not isinstance(line, dict):
            line_errors.append({"line": index, "errors": {"line": "must be an object"}})
            continue
        item_id = None
        if line.get("item") in (None, ""):
            problems["item"] = "is required"
        else:
            try:
                item_id = to_int(line["item"], "item")
            except ValidationError as e:
                problems["item"] = str(e)

        quantity = None
        if line.get("quantity") in (None, ""):
            problems["quantity"] = "is required"
        else:
            try:
                quantity = to_int(line["quantity"], "quantity")
                if quantity < 1:
                    problems["quantity"] = "must be > 0"
            except ValidationError as e:
                problems["quantity"] = str(e)

        price = _money(line, "price", problems, required=True)
        line_total = _money(line, "total", problems, required=True)
        discount = _money(line, "discount", problems, required=False, default=Decimal("0"))

        if problems:
            line_errors.append({"line": index, "errors": problems})
            continue
        lines.append({
            "item_id": item_id,
            "quantity": quantity,
            "price": price,
            "discount": discount,
            "line_total": line_total,
        })

    if line_errors:
        errors["items"] = line_errors
    if errors:
        raise SaleError("Invalid sale data", details=errors)

    customer_id = payload.get("customer")
    if customer_id not in (None, ""):
        try:
            customer_id = to_int(customer_id, "customer")
        except ValidationError as e:
            raise SaleError(str(e))
    else:
        customer_id = None

    return {
        "lines": lines,
        "subtotal": subtotal,
        "tax": tax,
        "total": total,
        "payment_method": payment_method,
        "payment_status": payment_status,
        "amount_paid": amount_paid,
        "balance": balance,
        "customer_id": customer_id,
        "customer_name": (payload.get("customer_name") or "").strip() or None,
        "customer_nic": (payload.get("customer_nic") or "").strip().upper() or None,
        "customer_phone": (payload.get("customer_phone") or "").strip() or None,
    }


def _resolve_customer(data: dict) -> Customer | None:
    if data["customer_id"] is not None:
        customer = db.session.get(Customer, data["customer_id"])
        if not customer:
            raise SaleError("Customer not found", details={"customer": data["customer_id"]})
        return customer
    if data["customer_nic"]:
        return customer_service.find_by_nic(data["customer_nic"])
    return None


def record_sale(*, payload: dict, cashier: User | None = None) -> Sale:
    """
    Record a sale: bill + lines + guarded stock decrements in one
    transaction, then best-effort customer stats and activity log.

    Raises:
        SaleError: invalid payload, unknown item/customer, insufficient stock
    """
    data = validate_sale_payload(payload)

    if data["subtotal"] + data["tax"] != data["total"]:
        current_app.logger.warning(
            "Sale total %s does not equal subtotal %s + tax %s; storing submitted total",
            data["total"], data["subtotal"], data["tax"],
        )

    def _op() -> Sale:
        customer = _resolve_customer(data)

        item_ids = sorted({line["item_id"] for line in data["lines"]})
        items = {
            item.id: item
            for item in lock_for_update(
                db.session.query(Item).filter(Item.id.in_(item_ids))
            ).all()
        }
        missing = [i for i in item_ids if i not in items]
        if missing:
            raise SaleError("Item not found", details={"items": missing})

        sale = Sale(
            bill_number=sequence_service.next_bill_number(),
            subtotal=data["subtotal"],
            tax=data["tax"],
            total=data["total"],
            payment_method=data["payment_method"],
            payment_status=data["payment_status"],
            customer_id=customer.id if customer else None,
            customer_name=data["customer_name"] or (customer.name if customer else WALK_IN_CUSTOMER),
            customer_nic=data["customer_nic"] or (customer.nic if customer else None),
            customer_phone=data["customer_phone"] or (customer.phone if customer else None),
            amount_paid=data["amount_paid"],
            balance=data["balance"],
            cashier_id=cashier.id if cashier else None,
            created_at=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        shortages: list[dict] = []
        movements: list[tuple[Item, int, int]] = []
        for line in data["lines"]:
            item = items[line["item_id"]]
            new_qty = decrement_stock(item.id, line["quantity"])
            if new_qty is None:
                shortages.append({
                    "item": item.id,
                    "item_code": item.item_code,
                    "name": item.name,
                    "requested": line["quantity"],
                    "available": current_quantity(item.id),
                })
                continue
            movements.append((item, line["quantity"], new_qty))
            sale.lines.append(SaleLine(
                item_id=item.id,
                item_name=item.name,
                item_code=item.item_code,
                purchase_price=item.purchase_price,
                quantity=line["quantity"],
                price=line["price"],
                discount=line["discount"],
                line_total=line["line_total"],
            ))

        if shortages:
            raise SaleError("Insufficient stock", details={"items": shortages})

        db.session.flush()
        for item, quantity, new_qty in movements:
            audit_service.append_stock_edit_safely(
                item=item,
                operation="sale",
                user=cashier,
                old_stock=new_qty + quantity,
                new_stock=new_qty,
                reason=f"Sale {sale.bill_number}",
                related_sale_id=sale.id,
            )

        db.session.commit()
        return sale

    try:
        sale = run_with_retry(_op)
    except SaleError:
        db.session.rollback()
        raise

    _update_customer_stats_safely(sale)
    audit_service.log_activity_safely(
        activity="sale_created",
        description=(
            f"Sale {sale.bill_number}: {len(sale.lines)} item(s), "
            f"total {sale.total}, {sale.payment_method}"
        ),
        user=cashier,
        entity_type="sale",
        entity_id=sale.id,
        metadata={
            "bill_number": sale.bill_number,
            "total": float(sale.total),
            "customer_name": sale.customer_name,
        },
    )
    return sale


def _update_customer_stats_safely(sale: Sale) -> None:
    if sale.customer_id is None:
        return
    try:
        customer = db.session.get(Customer, sale.customer_id)
        if customer is None:
            return
        customer_service.apply_purchase(
            customer,
            Decimal(sale.total),
            when=sale.created_at,
            payment_method=sale.payment_method,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to update purchase stats for customer %s (sale %s)",
            sale.customer_id, sale.bill_number,
        )


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFoundError("Sale not found")
    return sale


def list_sales(
    *,
    from_dt=None,
    to_dt=None,
    payment_status: str | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """
    Newest-first sale listing.

    from_dt / to_dt are UTC-naive datetimes forming [from_dt, to_dt).
    """
    query = db.session.query(Sale)
    if from_dt is not None:
        query = query.filter(Sale.created_at >= from_dt)
    if to_dt is not None:
        query = query.filter(Sale.created_at < to_dt)
    if payment_status:
        query = query.filter(Sale.payment_status == payment_status)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Sale.bill_number.ilike(like),
            Sale.customer_name.ilike(like),
            Sale.customer_nic.ilike(like),
        ))
    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())

    per_page = min(max(per_page or 20, 1), 100)
    page = max(page or 1, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    sales = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "sales": [s.to_dict() for s in sales],
        "count": len(sales),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def delete_sale(*, sale_id: int, user: User | None = None) -> dict:
    """
    Admin delete-and-restore.

    Restores stock for every line, reverses customer statistics and removes
    the sale, all in one transaction.
    """
    def _op() -> dict:
        sale = get_sale(sale_id)
        bill, total = sale.bill_number, Decimal(sale.total)
        restored = []

        for line in sale.lines:
            item = db.session.get(Item, line.item_id)
            if item is None:
                continue
            new_qty = increment_stock(item.id, line.quantity)
            audit_service.append_stock_edit_safely(
                item=item,
                operation="sale_reversal",
                user=user,
                old_stock=new_qty - line.quantity,
                new_stock=new_qty,
                reason=f"Sale {bill} deleted",
                related_sale_id=sale.id,
            )
            restored.append({"item_code": item.item_code, "quantity": line.quantity, "new_quantity": new_qty})

        if sale.customer_id is not None:
            customer = db.session.get(Customer, sale.customer_id)
            if customer is not None:
                customer_service.revert_purchase(customer, total)

        audit_service.log_activity(
            activity="sale_deleted",
            description=f"Deleted sale {bill} and restored stock for {len(restored)} line(s)",
            user=user,
            entity_type="sale",
            entity_id=sale.id,
            metadata={"bill_number": bill, "restored": restored},
        )
        db.session.delete(sale)
        db.session.commit()
        return {"bill_number": bill, "restored": restored}

    try:
        return run_with_retry(_op)
    except NotFoundError:
        db.session.rollback()
        raise
