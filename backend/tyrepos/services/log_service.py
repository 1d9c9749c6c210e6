# Overview: Read side of the audit trail; filtered, paginated activity and stock-edit listings.

from __future__ import annotations

from datetime import date, datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import ActivityLog, StockEditLog
from ..validation import ValidationError
from tyrepos.time_utils import business_tz, local_day_bounds, local_today

ACTIVITY_DEFAULT_DAYS = 7
STOCK_EDIT_DEFAULT_DAYS = 30
TOP_USERS = 10


def resolve_range(from_day: date | None, to_day: date | None, default_days: int, now: datetime | None = None) -> tuple[datetime, datetime]:
    """
    UTC-naive [start, end) covering from_day..to_day inclusive in the
    business timezone. Missing bounds default to the trailing default_days
    ending today.
    """
    tz = business_tz()
    to_day = to_day or local_today(tz, now)
    from_day = from_day or (to_day - timedelta(days=default_days - 1))
    if to_day < from_day:
        raise ValidationError("to_date must not be before from_date")
    start, _ = local_day_bounds(from_day, tz)
    _, end = local_day_bounds(to_day, tz)
    return start, end


def _paginate(query, page: int, limit: int) -> tuple[list, dict]:
    limit = min(max(limit or 50, 1), 200)
    page = max(page or 1, 1)
    total = query.count()
    total_pages = (total + limit - 1) // limit if total > 0 else 1
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, {
        "page": page,
        "per_page": limit,
        "total": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }


def list_activity(
    *,
    from_day: date | None = None,
    to_day: date | None = None,
    activity: str | None = None,
    user_id: int | None = None,
    page: int = 1,
    limit: int = 50,
    now: datetime | None = None,
) -> dict:
    start, end = resolve_range(from_day, to_day, ACTIVITY_DEFAULT_DAYS, now)
    query = db.session.query(ActivityLog).filter(
        ActivityLog.created_at >= start,
        ActivityLog.created_at < end,
    )
    if activity:
        query = query.filter(ActivityLog.activity == activity)
    if user_id is not None:
        query = query.filter(ActivityLog.user_id == user_id)
    query = query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())

    rows, pagination = _paginate(query, page, limit)
    return {
        "logs": [r.to_dict() for r in rows],
        "count": len(rows),
        "pagination": pagination,
    }


def list_stock_edits(
    *,
    from_day: date | None = None,
    to_day: date | None = None,
    operation: str | None = None,
    item_code: str | None = None,
    page: int = 1,
    limit: int = 50,
    now: datetime | None = None,
) -> dict:
    start, end = resolve_range(from_day, to_day, STOCK_EDIT_DEFAULT_DAYS, now)
    query = db.session.query(StockEditLog).filter(
        StockEditLog.created_at >= start,
        StockEditLog.created_at < end,
    )
    if operation:
        query = query.filter(StockEditLog.operation == operation)
    if item_code:
        query = query.filter(StockEditLog.item_code == item_code.strip().upper())
    query = query.order_by(StockEditLog.created_at.desc(), StockEditLog.id.desc())

    rows, pagination = _paginate(query, page, limit)
    return {
        "logs": [r.to_dict() for r in rows],
        "count": len(rows),
        "pagination": pagination,
    }


def summary(*, from_day: date | None = None, to_day: date | None = None, now: datetime | None = None) -> dict:
    """Counts per activity and per stock operation, plus the most active users."""
    start, end = resolve_range(from_day, to_day, ACTIVITY_DEFAULT_DAYS, now)

    by_activity = (
        db.session.query(ActivityLog.activity, func.count(ActivityLog.id))
        .filter(ActivityLog.created_at >= start, ActivityLog.created_at < end)
        .group_by(ActivityLog.activity)
        .order_by(func.count(ActivityLog.id).desc(), ActivityLog.activity.asc())
        .all()
    )
    by_operation = (
        db.session.query(StockEditLog.operation, func.count(StockEditLog.id))
        .filter(StockEditLog.created_at >= start, StockEditLog.created_at < end)
        .group_by(StockEditLog.operation)
        .order_by(func.count(StockEditLog.id).desc(), StockEditLog.operation.asc())
        .all()
    )
    top_users = (
        db.session.query(ActivityLog.user_id, ActivityLog.user_name, func.count(ActivityLog.id))
        .filter(
            ActivityLog.created_at >= start,
            ActivityLog.created_at < end,
            ActivityLog.user_id.isnot(None),
        )
        .group_by(ActivityLog.user_id, ActivityLog.user_name)
        .order_by(func.count(ActivityLog.id).desc(), ActivityLog.user_id.asc())
        .limit(TOP_USERS)
        .all()
    )

    return {
        "activity_counts": [{"activity": a, "count": c} for a, c in by_activity],
        "stock_operation_counts": [{"operation": o, "count": c} for o, c in by_operation],
        "top_users": [{"user_id": uid, "user_name": name, "count": c} for uid, name, c in top_users],
        "total_activities": sum(c for _, c in by_activity),
        "total_stock_edits": sum(c for _, c in by_operation),
    }
