# Overview: Atomic allocation of item codes, bill numbers, log ids and stock-log sequence numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import SequenceCounter

ITEM_CODE = "item_code"
BILL_NUMBER = "bill_number"
ACTIVITY_LOG = "activity_log"
STOCK_EDIT_LOG = "stock_edit_log"


class SequenceError(Exception):
    """Raised when sequence operations fail."""
    pass


def _bump(name: str) -> int | None:
    stmt = (
        update(SequenceCounter)
        .where(SequenceCounter.name == name)
        .values(next_value=SequenceCounter.next_value + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(SequenceCounter.next_value)
        .filter_by(name=name)
        .scalar()
    )
    return current - 1


def next_value(name: str) -> int:
    """
    Atomically allocate the next value of the named counter (1, 2, 3, ...).

    Runs inside the caller's transaction: the number is only consumed when
    the caller commits. Two concurrent callers can never receive the same
    value because the UPDATE takes the row's write lock.
    """
    if not name:
        raise SequenceError("sequence name is required")

    allocated = _bump(name)
    if allocated is not None:
        return allocated

    # First use of this counter: create it inside a savepoint so a
    # concurrent creator does not abort the caller's transaction.
    try:
        with db.session.begin_nested():
            db.session.add(SequenceCounter(name=name, next_value=2))
        return 1
    except IntegrityError:
        allocated = _bump(name)
        if allocated is None:
            raise
        return allocated


def next_item_code() -> str:
    return f"RT{next_value(ITEM_CODE):04d}"


def next_bill_number() -> str:
    return f"INV-{next_value(BILL_NUMBER):05d}"


def next_log_id() -> str:
    return f"LOG-{next_value(ACTIVITY_LOG):06d}"


def next_stock_edit_sequence() -> int:
    return next_value(STOCK_EDIT_LOG)
