# Overview: Append-only activity and stock-edit audit records.

from __future__ import annotations

from typing import Optional

from flask import current_app, has_request_context, request

from ..extensions import db
from ..models import ActivityLog, Item, StockEditLog, User
from . import sequence_service

"""
Audit invariants

- Append-only: no updates or deletes of existing rows.
- Stock edit rows are written inside the same DB transaction as the stock change.
- *_safely variants never raise: a failed audit write is logged, the
  business operation stands.
"""


def _request_meta() -> dict:
    if not has_request_context():
        return {"ip_address": None, "user_agent": None}
    agent = request.headers.get("User-Agent")
    return {
        "ip_address": request.remote_addr,
        "user_agent": agent[:255] if agent else None,
    }


def log_activity(
    *,
    activity: str,
    description: str,
    user: Optional[User] = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    metadata: dict | None = None,
) -> ActivityLog:
    """Append an ActivityLog row to the current session (caller commits)."""
    meta = _request_meta()
    entry = ActivityLog(
        log_id=sequence_service.next_log_id(),
        user_id=user.id if user else None,
        user_name=user.name if user else None,
        activity=activity,
        description=description[:500],
        ip_address=meta["ip_address"],
        user_agent=meta["user_agent"],
        entity_type=entity_type,
        entity_id=entity_id,
        details=metadata or {},
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def log_activity_safely(**kwargs) -> Optional[ActivityLog]:
    """
    Best-effort activity log in its own commit.

    Used after the business transaction has committed.
    """
    try:
        entry = log_activity(**kwargs)
        db.session.commit()
        return entry
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to write activity log %s for %s %s",
            kwargs.get("activity"),
            kwargs.get("entity_type"),
            kwargs.get("entity_id"),
        )
        return None


def append_stock_edit(
    *,
    item: Item,
    operation: str,
    user: Optional[User] = None,
    old_stock: int | None = None,
    new_stock: int | None = None,
    purchase_quantity: int | None = None,
    old_purchase_price=None,
    new_purchase_price=None,
    old_retail_price=None,
    new_retail_price=None,
    old_discount=None,
    new_discount=None,
    reason: str | None = None,
    related_sale_id: int | None = None,
) -> StockEditLog:
    """Append a StockEditLog row to the current session (caller commits)."""
    entry = StockEditLog(
        sequence_number=sequence_service.next_stock_edit_sequence(),
        user_id=user.id if user else None,
        user_name=user.name if user else None,
        item_id=item.id,
        item_code=item.item_code,
        item_name=item.name,
        operation=operation,
        old_stock=old_stock,
        new_stock=new_stock,
        purchase_quantity=purchase_quantity,
        old_purchase_price=old_purchase_price,
        new_purchase_price=new_purchase_price,
        old_retail_price=old_retail_price,
        new_retail_price=new_retail_price,
        old_discount=old_discount,
        new_discount=new_discount,
        reason=reason[:500] if reason else None,
        related_sale_id=related_sale_id,
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def append_stock_edit_safely(**kwargs) -> Optional[StockEditLog]:
    """
    Stock edit row inside a SAVEPOINT of the caller's transaction.

    A failure rolls back only the savepoint and is logged; the enclosing
    stock change is unaffected.
    """
    try:
        with db.session.begin_nested():
            return append_stock_edit(**kwargs)
    except Exception:
        item = kwargs.get("item")
        current_app.logger.exception(
            "Failed to write stock edit log (%s) for item %s",
            kwargs.get("operation"),
            item.item_code if item is not None else None,
        )
        return None
