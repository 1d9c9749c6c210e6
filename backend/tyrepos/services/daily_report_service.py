# Overview: Sales report building (line-item rollup) and the HTML rendering sent by email.

from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime
from decimal import Decimal
from html import escape

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.orm import selectinload

from tyrepos.extensions import db
from tyrepos.models import Sale
from tyrepos.models.sales import WALK_IN_CUSTOMER
from tyrepos.time_utils import business_tz, local_day_bounds, local_today, to_local, to_utc_z

from .reporting_service import COMPLETED, ReportError, items_by_id, line_cost

TOP_CUSTOMERS = 5


def _f(value) -> float:
    return round(float(value or 0), 2)


def build_sales_report(
    *,
    from_day: date,
    to_day: date,
    customer_search: str | None = None,
) -> dict:
    """
    Line-item rollup of completed sales between two business days (inclusive).

    Returns detailed rows, a per-item summary sorted by revenue (descending,
    first-seen order on ties), overall metrics and the top customers.
    """
    if to_day < from_day:
        raise ReportError("to_date must not be before from_date")

    tz = business_tz()
    start, _ = local_day_bounds(from_day, tz)
    _, end = local_day_bounds(to_day, tz)

    query = (
        db.session.query(Sale)
        .options(selectinload(Sale.lines))
        .filter(
            Sale.payment_status == COMPLETED,
            Sale.created_at >= start,
            Sale.created_at < end,
        )
    )
    if customer_search:
        like = f"%{customer_search.strip()}%"
        query = query.filter(or_(
            Sale.customer_name.ilike(like),
            Sale.customer_nic.ilike(like),
            Sale.customer_phone.ilike(like),
        ))
    sales = query.order_by(Sale.created_at.asc(), Sale.id.asc()).all()
    items = items_by_id(sales)

    detailed: list[dict] = []
    summary: "OrderedDict[str, dict]" = OrderedDict()
    customers: "OrderedDict[str, dict]" = OrderedDict()
    total_sales = Decimal("0")
    total_profit = Decimal("0")
    total_discount = Decimal("0")
    total_quantity = 0

    for sale in sales:
        total_sales += Decimal(sale.total)
        name = sale.customer_name or WALK_IN_CUSTOMER
        if name != WALK_IN_CUSTOMER:
            key = sale.customer_nic or name.lower()
            c = customers.setdefault(key, {"name": name, "nic": sale.customer_nic, "purchases": 0, "total": Decimal("0")})
            c["purchases"] += 1
            c["total"] += Decimal(sale.total)

        for line in sale.lines:
            line_total = Decimal(line.line_total)
            gross = Decimal(line.price) * line.quantity
            profit = line_total - line_cost(line, items)

            detailed.append({
                "sale_date": to_utc_z(sale.created_at),
                "bill_number": sale.bill_number,
                "item_name": line.item_name,
                "item_code": line.item_code,
                "customer_name": name,
                "quantity": line.quantity,
                "price": _f(line.price),
                "discount": _f(line.discount),
                "total": _f(line_total),
                "profit": _f(profit),
            })

            total_quantity += line.quantity
            total_profit += profit
            total_discount += max(gross - line_total, Decimal("0"))

            row = summary.setdefault(line.item_code, {
                "item_code": line.item_code,
                "item_name": line.item_name,
                "total_quantity": 0,
                "total_revenue": Decimal("0"),
                "total_profit": Decimal("0"),
            })
            row["total_quantity"] += line.quantity
            row["total_revenue"] += line_total
            row["total_profit"] += profit

    summary_rows = sorted(summary.values(), key=lambda r: r["total_revenue"], reverse=True)
    top_customers = sorted(customers.values(), key=lambda c: c["total"], reverse=True)[:TOP_CUSTOMERS]
    unique_customers = len(customers)

    return {
        "date_range": {"from_date": from_day.isoformat(), "to_date": to_day.isoformat()},
        "customer_search": customer_search or None,
        "detailed": detailed,
        "summary": [
            {
                **r,
                "total_revenue": _f(r["total_revenue"]),
                "total_profit": _f(r["total_profit"]),
            }
            for r in summary_rows
        ],
        "metrics": {
            "total_sales": _f(total_sales),
            "total_profit": _f(total_profit),
            "total_quantity": total_quantity,
            "total_items": len(summary),
            "total_transactions": len(sales),
            "unique_customers": unique_customers,
            "average_transaction": _f(total_sales / len(sales)) if sales else 0.0,
            "profit_margin": _f(total_profit / total_sales * 100) if total_sales else 0.0,
            "total_discount": _f(total_discount),
        },
        "top_customers": [
            {"name": c["name"], "nic": c["nic"], "purchases": c["purchases"], "total": _f(c["total"])}
            for c in top_customers
        ],
    }


def build_daily_report(now: datetime | None = None) -> dict:
    """Report for the current business day."""
    today = local_today(business_tz(), now)
    return build_sales_report(from_day=today, to_day=today)


def report_subject(report: dict) -> str:
    return f"Daily Sales Report - {report['date_range']['from_date']}"


def _money(value: float) -> str:
    return f"{current_app.config.get('CURRENCY_LABEL', 'Rs.')} {value:,.2f}"


def render_report_html(report: dict, generated_at: datetime | None = None) -> str:
    """Static HTML document for the emailed report."""
    business = escape(current_app.config.get("BUSINESS_NAME", "Ruhunu Tyre House"))
    rng = report["date_range"]
    date_text = rng["from_date"] if rng["from_date"] == rng["to_date"] else f"{rng['from_date']} to {rng['to_date']}"
    metrics = report["metrics"]
    generated = ""
    if generated_at is not None:
        generated = to_local(generated_at, business_tz()).strftime("%Y-%m-%d %H:%M")

    metric_cells = "".join(
        f'<td class="metric"><span class="metric-value">{value}</span>'
        f'<span class="metric-label">{label}</span></td>'
        for label, value in (
            ("Total Sales", _money(metrics["total_sales"])),
            ("Total Profit", _money(metrics["total_profit"])),
            ("Items Sold", metrics["total_quantity"]),
            ("Transactions", metrics["total_transactions"]),
            ("Profit Margin", f"{metrics['profit_margin']:.1f}%"),
        )
    )

    summary_rows = "".join(
        f"<tr><td>{escape(r['item_code'])}</td><td>{escape(r['item_name'])}</td>"
        f"<td>{r['total_quantity']}</td><td class=\"amount\">{_money(r['total_revenue'])}</td>"
        f"<td class=\"amount\">{_money(r['total_profit'])}</td></tr>"
        for r in report["summary"]
    ) or '<tr><td colspan="5">No sales recorded.</td></tr>'

    customer_rows = "".join(
        f"<tr><td>{escape(c['name'])}</td><td>{c['purchases']}</td>"
        f"<td class=\"amount\">{_money(c['total'])}</td></tr>"
        for c in report["top_customers"]
    ) or '<tr><td colspan="3">No named customers.</td></tr>'

    detail_rows = "".join(
        f"<tr><td>{escape(d['bill_number'])}</td><td>{escape(d['item_name'])}</td>"
        f"<td>{escape(d['customer_name'])}</td><td>{d['quantity']}</td>"
        f"<td class=\"amount\">{_money(d['price'])}</td><td>{d['discount']}%</td>"
        f"<td class=\"amount\">{_money(d['total'])}</td></tr>"
        for d in report["detailed"]
    ) or '<tr><td colspan="7">No transactions.</td></tr>'

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{business} - Sales Report</title>
  <style>
    body {{ font-family: Arial, sans-serif; color: #333; }}
    h1 {{ color: #1a365d; margin-bottom: 0; }}
    table {{ border-collapse: collapse; width: 100%; margin-bottom: 24px; }}
    th, td {{ border: 1px solid #ddd; padding: 6px 8px; text-align: left; }}
    th {{ background: #f0f4f8; }}
    .amount {{ text-align: right; }}
    .metric {{ text-align: center; }}
    .metric-value {{ display: block; font-size: 18px; font-weight: bold; }}
    .metric-label {{ display: block; font-size: 12px; color: #666; }}
  </style>
</head>
<body>
  <h1>{business}</h1>
  <p>Sales Report: {escape(date_text)}{f" (generated {generated})" if generated else ""}</p>
  <table><tr>{metric_cells}</tr></table>
  <h2>Item Summary</h2>
  <table>
    <tr><th>Code</th><th>Item</th><th>Quantity</th><th>Revenue</th><th>Profit</th></tr>
    {summary_rows}
  </table>
  <h2>Top Customers</h2>
  <table>
    <tr><th>Customer</th><th>Purchases</th><th>Total</th></tr>
    {customer_rows}
  </table>
  <h2>Transactions</h2>
  <table>
    <tr><th>Bill</th><th>Item</th><th>Customer</th><th>Qty</th><th>Price</th><th>Discount</th><th>Total</th></tr>
    {detail_rows}
  </table>
</body>
</html>
"""
