# Overview: Service-layer analytics; period windows, bucket keys and sales rollups for dashboards.

"""
Analytics rules

- Only completed sales (payment_status == "completed") are counted.
- Windows are [start, end) and computed in the business timezone:
    today   local midnight .. next local midnight
    week    trailing 7 days ending now (the only "week" used anywhere)
    month   calendar month containing now
    quarter calendar quarter containing now
    year    calendar year containing now
- Top-N lists sort descending by the named metric; ties keep first-seen
  order (sales are scanned oldest first).
- No caching: every call recomputes from source rows.
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from zoneinfo import ZoneInfo

from sqlalchemy.orm import selectinload

from tyrepos.extensions import db
from tyrepos.models import Item, Sale, User
from tyrepos.time_utils import (
    business_tz,
    local_day_bounds,
    local_midnight,
    local_to_utc_naive,
    to_local,
    to_utc_z,
    utcnow,
)
from . import stock_service

COMPLETED = "completed"
DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

# Spend-bucket boundaries for customer segments (last bucket is open-ended)
SEGMENT_BOUNDARIES = (0, 10_000, 50_000, 100_000, 500_000)


class ReportError(Exception):
    """Raised when report parameters are invalid."""
    pass


def _add_months(day: date, months: int) -> date:
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


class Period(Enum):
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"

    @classmethod
    def parse(cls, value: str | None, default: "Period") -> "Period":
        if value in (None, ""):
            return default
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ReportError(f"period must be one of: {', '.join(p.value for p in cls)}")

    def window(self, now: datetime, tz: ZoneInfo) -> tuple[datetime, datetime]:
        """[start, end) as UTC-naive datetimes for the period containing now."""
        local_now = to_local(now, tz)
        today = local_now.date()

        if self is Period.TODAY:
            return local_day_bounds(today, tz)
        if self is Period.WEEK:
            end = local_to_utc_naive(local_now)
            return end - timedelta(days=7), end
        if self is Period.MONTH:
            first = today.replace(day=1)
            last = _add_months(first, 1)
        elif self is Period.QUARTER:
            first = date(today.year, 3 * ((today.month - 1) // 3) + 1, 1)
            last = _add_months(first, 3)
        else:
            first = date(today.year, 1, 1)
            last = date(today.year + 1, 1, 1)
        return (
            local_to_utc_naive(local_midnight(first, tz)),
            local_to_utc_naive(local_midnight(last, tz)),
        )


class Granularity(Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @classmethod
    def parse(cls, value: str | None, default: "Granularity") -> "Granularity":
        if value in (None, ""):
            return default
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ReportError(f"group_by must be one of: {', '.join(g.value for g in cls)}")

    def bucket(self, local_dt: datetime) -> str:
        if self is Granularity.HOUR:
            return local_dt.strftime("%Y-%m-%d %H:00")
        if self is Granularity.DAY:
            return local_dt.strftime("%Y-%m-%d")
        if self is Granularity.WEEK:
            year, week, _ = local_dt.isocalendar()
            return f"{year}-W{week:02d}"
        return local_dt.strftime("%Y-%m")


def _f(value) -> float:
    return round(float(value or 0), 2)


def completed_sales(start: datetime, end: datetime) -> list[Sale]:
    return (
        db.session.query(Sale)
        .options(selectinload(Sale.lines))
        .filter(
            Sale.payment_status == COMPLETED,
            Sale.created_at >= start,
            Sale.created_at < end,
        )
        .order_by(Sale.created_at.asc(), Sale.id.asc())
        .all()
    )


def items_by_id(sales: list[Sale]) -> dict[int, Item]:
    ids = {line.item_id for sale in sales for line in sale.lines}
    if not ids:
        return {}
    items = (
        db.session.query(Item)
        .options(selectinload(Item.category))
        .filter(Item.id.in_(ids))
        .all()
    )
    return {item.id: item for item in items}


def line_cost(line, items: dict[int, Item]) -> Decimal:
    """Cost of a sale line: the purchase-price snapshot, else the item's current price."""
    unit_cost = line.purchase_price
    if unit_cost is None:
        item = items.get(line.item_id)
        unit_cost = item.purchase_price if item else 0
    return Decimal(unit_cost or 0) * line.quantity


def _top(rows, key, n: int) -> list:
    return sorted(rows, key=key, reverse=True)[:n]


def _window_meta(period: Period, start: datetime, end: datetime) -> dict:
    return {"period": period.value, "start": to_utc_z(start), "end": to_utc_z(end)}


def _customer_key(sale: Sale) -> str | None:
    if sale.customer_id is not None:
        return f"id:{sale.customer_id}"
    if sale.customer_nic:
        return f"nic:{sale.customer_nic}"
    if sale.customer_name and sale.customer_name != "Walk-in Customer":
        return f"name:{sale.customer_name.lower()}"
    return None


# =============================================================================
# Real-time sales
# =============================================================================

def real_time_sales(*, period: Period = Period.TODAY, now: datetime | None = None) -> dict:
    tz = business_tz()
    now = now or utcnow()
    start, end = period.window(now, tz)
    sales = completed_sales(start, end)

    total = sum((Decimal(s.total) for s in sales), Decimal("0"))
    items_sold = sum(line.quantity for s in sales for line in s.lines)

    hourly = [{"hour": h, "sales": Decimal("0"), "transactions": 0} for h in range(24)]
    for s in sales:
        bucket = hourly[to_local(s.created_at, tz).hour]
        bucket["sales"] += Decimal(s.total)
        bucket["transactions"] += 1

    recent = sorted(sales, key=lambda s: (s.created_at, s.id), reverse=True)[:10]

    return {
        **_window_meta(period, start, end),
        "summary": {
            "total_sales": _f(total),
            "total_transactions": len(sales),
            "average_transaction": _f(total / len(sales)) if sales else 0.0,
            "total_items_sold": items_sold,
        },
        "hourly_sales": [
            {"hour": b["hour"], "sales": _f(b["sales"]), "transactions": b["transactions"]}
            for b in hourly
        ],
        "recent_transactions": [s.to_dict(include_lines=False) for s in recent],
    }


# =============================================================================
# Profit / loss
# =============================================================================

def _pl_row() -> dict:
    return {"revenue": Decimal("0"), "cost": Decimal("0"), "quantity": 0, "sale_ids": set()}


def _pl_out(row: dict) -> dict:
    revenue, cost = row["revenue"], row["cost"]
    profit = revenue - cost
    return {
        "revenue": _f(revenue),
        "cost": _f(cost),
        "profit": _f(profit),
        "quantity": row["quantity"],
        "transactions": len(row["sale_ids"]),
        "margin": _f(profit / revenue * 100) if revenue else 0.0,
    }


def profit_loss(
    *,
    period: Period = Period.MONTH,
    granularity: Granularity = Granularity.DAY,
    now: datetime | None = None,
) -> dict:
    """
    Line-level profit: quantity * price - quantity * purchase price
    (purchase price snapshotted on the sale line).
    """
    tz = business_tz()
    now = now or utcnow()
    start, end = period.window(now, tz)
    sales = completed_sales(start, end)
    items = items_by_id(sales)

    timeline: "OrderedDict[str, dict]" = OrderedDict()
    categories: "OrderedDict[str, dict]" = OrderedDict()
    products: "OrderedDict[int, dict]" = OrderedDict()
    totals = _pl_row()

    for sale in sales:
        key = granularity.bucket(to_local(sale.created_at, tz))
        for line in sale.lines:
            revenue = Decimal(line.price) * line.quantity
            cost = line_cost(line, items)
            item = items.get(line.item_id)
            category = item.category.name if item and item.category else "Uncategorized"

            targets = (
                timeline.setdefault(key, _pl_row()),
                categories.setdefault(category, _pl_row()),
                products.setdefault(line.item_id, {**_pl_row(), "item_code": line.item_code, "name": line.item_name}),
                totals,
            )
            for row in targets:
                row["revenue"] += revenue
                row["cost"] += cost
                row["quantity"] += line.quantity
                row["sale_ids"].add(sale.id)

    category_rows = [{"category": name, **_pl_out(row)} for name, row in categories.items()]
    product_rows = [
        {"item_id": item_id, "item_code": row["item_code"], "name": row["name"], **_pl_out(row)}
        for item_id, row in products.items()
    ]

    return {
        **_window_meta(period, start, end),
        "group_by": granularity.value,
        "summary": _pl_out(totals),
        "timeline": [{"bucket": key, **_pl_out(row)} for key, row in timeline.items()],
        "profit_by_category": _top(category_rows, lambda r: r["profit"], len(category_rows)),
        "top_products": _top(product_rows, lambda r: r["profit"], 10),
    }


# =============================================================================
# Customer behaviour
# =============================================================================

def _segment_label(index: int) -> str:
    low = SEGMENT_BOUNDARIES[index]
    if index + 1 < len(SEGMENT_BOUNDARIES):
        return f"{low}-{SEGMENT_BOUNDARIES[index + 1]}"
    return f"{low}+"


def _segment_index(amount: Decimal) -> int:
    index = 0
    for i, low in enumerate(SEGMENT_BOUNDARIES):
        if amount >= low:
            index = i
    return index


def customer_behavior(*, period: Period = Period.MONTH, now: datetime | None = None) -> dict:
    tz = business_tz()
    now = now or utcnow()
    start, end = period.window(now, tz)
    sales = completed_sales(start, end)

    customers: "OrderedDict[str, dict]" = OrderedDict()
    by_day = [{"day": name, "transactions": 0, "sales": Decimal("0")} for name in DAY_NAMES]
    methods: "OrderedDict[str, dict]" = OrderedDict()
    total = Decimal("0")

    for sale in sales:
        amount = Decimal(sale.total)
        total += amount

        day = by_day[to_local(sale.created_at, tz).weekday()]
        day["transactions"] += 1
        day["sales"] += amount

        method = methods.setdefault(sale.payment_method, {"count": 0, "total": Decimal("0")})
        method["count"] += 1
        method["total"] += amount

        key = _customer_key(sale)
        if key is None:
            continue
        row = customers.setdefault(key, {
            "customer_id": sale.customer_id,
            "name": sale.customer_name,
            "nic": sale.customer_nic,
            "purchases": 0,
            "total_spent": Decimal("0"),
            "last_purchase_at": sale.created_at,
        })
        row["purchases"] += 1
        row["total_spent"] += amount
        row["last_purchase_at"] = sale.created_at

    frequency = [
        {
            "customer_id": row["customer_id"],
            "name": row["name"],
            "nic": row["nic"],
            "purchases": row["purchases"],
            "total_spent": _f(row["total_spent"]),
            "average_purchase": _f(row["total_spent"] / row["purchases"]),
            "last_purchase_at": to_utc_z(row["last_purchase_at"]),
        }
        for row in customers.values()
    ]

    segments = [
        {"segment": _segment_label(i), "customers": 0, "total_spent": Decimal("0")}
        for i in range(len(SEGMENT_BOUNDARIES))
    ]
    for row in customers.values():
        seg = segments[_segment_index(row["total_spent"])]
        seg["customers"] += 1
        seg["total_spent"] += row["total_spent"]

    repeat = sum(1 for row in customers.values() if row["purchases"] > 1)

    return {
        **_window_meta(period, start, end),
        "customer_frequency": _top(frequency, lambda r: r["total_spent"], 20),
        "purchase_patterns_by_day": [
            {"day": d["day"], "transactions": d["transactions"], "sales": _f(d["sales"])}
            for d in by_day
        ],
        "payment_method_stats": [
            {
                "payment_method": name,
                "count": m["count"],
                "total": _f(m["total"]),
                "percentage": _f(Decimal(m["count"]) / len(sales) * 100) if sales else 0.0,
            }
            for name, m in methods.items()
        ],
        "customer_segments": [
            {"segment": s["segment"], "customers": s["customers"], "total_spent": _f(s["total_spent"])}
            for s in segments
        ],
        "repeat_customer_stats": {
            "total_customers": len(customers),
            "repeat_customers": repeat,
            "one_time_customers": len(customers) - repeat,
            "repeat_rate": _f(Decimal(repeat) / len(customers) * 100) if customers else 0.0,
        },
        "total_sales": _f(total),
    }


# =============================================================================
# Peak hours
# =============================================================================

def _recommendations(peak_hours: list[dict], peak_days: list[dict], hourly: list[dict]) -> list[str]:
    tips: list[str] = []
    if peak_hours:
        hours = ", ".join(f"{h['hour']:02d}:00" for h in peak_hours)
        tips.append(f"Schedule more staff around {hours}, the busiest hours by sales.")
    if peak_days:
        tips.append(f"{peak_days[0]['day']} is the strongest day; keep fast-moving tyres fully stocked before it.")
    quiet = [h for h in hourly if h["transactions"] == 0 and 8 <= h["hour"] <= 18]
    if peak_hours and quiet:
        tips.append(
            "No sales between business hours "
            + ", ".join(f"{h['hour']:02d}:00" for h in quiet[:3])
            + "; consider promotions or stock work in these slots."
        )
    if not tips:
        tips.append("Not enough sales in this period to suggest staffing changes.")
    return tips


def peak_hours(*, period: Period = Period.WEEK, now: datetime | None = None) -> dict:
    tz = business_tz()
    now = now or utcnow()
    start, end = period.window(now, tz)
    sales = completed_sales(start, end)

    hourly = [{"hour": h, "transactions": 0, "sales": Decimal("0")} for h in range(24)]
    daily = [{"day": name, "transactions": 0, "sales": Decimal("0")} for name in DAY_NAMES]
    staff: "OrderedDict[int | None, dict]" = OrderedDict()

    for sale in sales:
        amount = Decimal(sale.total)
        local = to_local(sale.created_at, tz)
        for row in (hourly[local.hour], daily[local.weekday()]):
            row["transactions"] += 1
            row["sales"] += amount
        row = staff.setdefault(sale.cashier_id, {"transactions": 0, "sales": Decimal("0")})
        row["transactions"] += 1
        row["sales"] += amount

    names = {}
    cashier_ids = [cid for cid in staff if cid is not None]
    if cashier_ids:
        names = {
            u.id: u.name
            for u in db.session.query(User).filter(User.id.in_(cashier_ids)).all()
        }

    def _out(row: dict) -> dict:
        return {
            "transactions": row["transactions"],
            "sales": _f(row["sales"]),
            "average": _f(row["sales"] / row["transactions"]) if row["transactions"] else 0.0,
        }

    hourly_out = [{"hour": h["hour"], **_out(h)} for h in hourly]
    daily_out = [{"day": d["day"], **_out(d)} for d in daily]
    staff_out = [
        {"cashier_id": cid, "name": names.get(cid, "Unknown"), **_out(row)}
        for cid, row in staff.items()
    ]

    busy_hours = _top([h for h in hourly_out if h["transactions"]], lambda r: r["sales"], 3)
    busy_days = _top([d for d in daily_out if d["transactions"]], lambda r: r["sales"], 3)

    return {
        **_window_meta(period, start, end),
        "hourly_analysis": hourly_out,
        "day_of_week_analysis": daily_out,
        "staff_performance": _top(staff_out, lambda r: r["sales"], len(staff_out)),
        "peak_hours": busy_hours,
        "peak_days": busy_days,
        "recommendations": _recommendations(busy_hours, busy_days, hourly_out),
    }


# =============================================================================
# Dashboard summary
# =============================================================================

def _totals(sales: list[Sale]) -> dict:
    total = sum((Decimal(s.total) for s in sales), Decimal("0"))
    return {
        "sales": _f(total),
        "transactions": len(sales),
        "average": _f(total / len(sales)) if sales else 0.0,
    }


def dashboard_summary(*, day: date | None = None, now: datetime | None = None) -> dict:
    """
    Totals for one business day, the trailing week and the month to date
    (relative to that day), plus the day's top items.

    Low stock is current data: it is only listed when no historical day is
    requested.
    """
    tz = business_tz()
    now = now or utcnow()
    historical = day is not None
    day = day or to_local(now, tz).date()

    day_start, day_end = local_day_bounds(day, tz)
    week_start = day_end - timedelta(days=7)
    month_start = local_to_utc_naive(local_midnight(day.replace(day=1), tz))

    today_sales = completed_sales(day_start, day_end)

    top: "OrderedDict[int, dict]" = OrderedDict()
    for sale in today_sales:
        for line in sale.lines:
            row = top.setdefault(line.item_id, {
                "item_id": line.item_id,
                "item_code": line.item_code,
                "name": line.item_name,
                "quantity": 0,
                "revenue": Decimal("0"),
            })
            row["quantity"] += line.quantity
            row["revenue"] += Decimal(line.line_total)

    return {
        "date": day.isoformat(),
        "today": _totals(today_sales),
        "week": _totals(completed_sales(week_start, day_end)),
        "month": _totals(completed_sales(month_start, day_end)),
        "low_stock_items": [] if historical else stock_service.low_stock_items(),
        "top_items_today": [
            {**row, "revenue": _f(row["revenue"])}
            for row in _top(list(top.values()), lambda r: r["revenue"], 5)
        ],
    }
