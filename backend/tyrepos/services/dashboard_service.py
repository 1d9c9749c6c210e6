# Overview: Home dashboard figures and the 30-day per-item purchase / sale balance.

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Customer, Item, Sale, SaleLine, StockPurchase
from tyrepos.time_utils import business_tz, local_day_bounds, local_today, to_utc_z, utcnow
from .item_service import get_item
from .reporting_service import COMPLETED
from .stock_service import low_stock_items

BALANCE_WINDOW_DAYS = 30
RECENT_SALES = 5
TREND_DAYS = 7


def _f(value) -> float:
    return round(float(value or 0), 2)


def _sales_total(start: datetime | None = None, end: datetime | None = None) -> Decimal:
    query = db.session.query(func.coalesce(func.sum(Sale.total), 0)).filter(Sale.payment_status == COMPLETED)
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at < end)
    return Decimal(query.scalar() or 0)


def dashboard_stats(now: datetime | None = None) -> dict:
    """
    Figures for the landing page.

    Low stock uses each item's lower_limit, falling back to
    LOW_STOCK_DEFAULT_LIMIT when the item has none.
    """
    tz = business_tz()
    now = now or utcnow()
    today = local_today(tz, now)
    day_start, day_end = local_day_bounds(today, tz)

    inventory_value = (
        db.session.query(func.coalesce(func.sum(Item.quantity_in_stock * Item.retail_price), 0))
        .filter(Item.is_active.is_(True))
        .scalar()
    )
    recent = (
        db.session.query(Sale)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(RECENT_SALES)
        .all()
    )

    trend = []
    for offset in range(TREND_DAYS - 1, -1, -1):
        day = today - timedelta(days=offset)
        start, end = local_day_bounds(day, tz)
        trend.append({"date": day.isoformat(), "total": _f(_sales_total(start, end))})

    return {
        "stats": {
            "today_sales": _f(_sales_total(day_start, day_end)),
            "total_sales": _f(_sales_total()),
            "total_customers": db.session.query(func.count(Customer.id)).filter(Customer.is_active.is_(True)).scalar(),
            "inventory_value": _f(inventory_value),
        },
        "low_stock_items": low_stock_items(),
        "recent_sales": [
            {
                "id": s.id,
                "bill_number": s.bill_number,
                "customer_name": s.customer_name,
                "total": _f(s.total),
                "cashier_name": s.cashier.name if s.cashier else None,
                "created_at": to_utc_z(s.created_at),
            }
            for s in recent
        ],
        "sales_trend": trend,
    }


def _balance_window(now: datetime | None) -> tuple[datetime, datetime]:
    # whole business days: 30 days back from today's midnight through the end of today
    tz = business_tz()
    today = local_today(tz, now or utcnow())
    start, _ = local_day_bounds(today - timedelta(days=BALANCE_WINDOW_DAYS), tz)
    _, end = local_day_bounds(today, tz)
    return start, end


def _balance_row(item: Item, purchased: tuple, sold: tuple) -> dict:
    p_qty, p_value = purchased
    s_qty, s_value = sold
    return {
        "id": item.id,
        "item_code": item.item_code,
        "name": item.name,
        "category": item.category.name if item.category else "Uncategorized",
        "current_stock": item.quantity_in_stock,
        "last_month_purchases": {"quantity": int(p_qty or 0), "value": _f(p_value)},
        "last_month_sales": {"quantity": int(s_qty or 0), "value": _f(s_value)},
        "remaining_balance": int(p_qty or 0) - int(s_qty or 0),
    }


def item_balance(*, item_id: int | None = None, now: datetime | None = None) -> dict:
    """
    Per-item purchases vs sales over the trailing 30 business days.
    remaining_balance = purchased quantity - sold quantity in the window.
    """
    start, end = _balance_window(now)

    purchases_q = (
        db.session.query(
            StockPurchase.item_id,
            func.sum(StockPurchase.quantity),
            func.sum(StockPurchase.total_purchase_value),
        )
        .filter(StockPurchase.created_at >= start, StockPurchase.created_at < end)
        .group_by(StockPurchase.item_id)
    )
    sales_q = (
        db.session.query(
            SaleLine.item_id,
            func.sum(SaleLine.quantity),
            func.sum(SaleLine.line_total),
        )
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .group_by(SaleLine.item_id)
    )

    if item_id is not None:
        item = get_item(item_id)
        items = [item]
        purchases_q = purchases_q.filter(StockPurchase.item_id == item_id)
        sales_q = sales_q.filter(SaleLine.item_id == item_id)
    else:
        items = db.session.query(Item).order_by(Item.item_code.asc()).all()

    purchased = {row[0]: (row[1], row[2]) for row in purchases_q.all()}
    sold = {row[0]: (row[1], row[2]) for row in sales_q.all()}

    rows: "OrderedDict[int, dict]" = OrderedDict()
    for item in items:
        rows[item.id] = _balance_row(item, purchased.get(item.id, (0, 0)), sold.get(item.id, (0, 0)))

    period = {"start": to_utc_z(start), "end": to_utc_z(end)}
    if item_id is not None:
        return {"item": rows[item_id], "period": period}
    return {"items": list(rows.values()), "count": len(rows), "period": period}
