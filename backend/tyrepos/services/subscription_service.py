# Overview: Service-layer operations for report email subscriptions; keeps the scheduler in sync.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import EmailSubscription, User
from ..models.documents import REPORT_TYPES
from ..validation import ConflictError, NotFoundError, ValidationError, normalize_email, normalize_schedule_time
from . import audit_service, email_service
from .report_scheduler import get_scheduler

SALES_REPORTS = "sales-reports"


class SubscriptionError(Exception):
    """Raised when a report send cannot start."""
    pass


def _report_type(value: str | None) -> str:
    report_type = value or SALES_REPORTS
    if report_type not in REPORT_TYPES:
        raise ValidationError(f"report_type must be one of: {', '.join(REPORT_TYPES)}")
    return report_type


def list_subscriptions(report_type: str = SALES_REPORTS) -> list[EmailSubscription]:
    return (
        db.session.query(EmailSubscription)
        .filter(EmailSubscription.report_type == _report_type(report_type))
        .order_by(EmailSubscription.created_at.desc(), EmailSubscription.id.desc())
        .all()
    )


def get_subscription(subscription_id: int) -> EmailSubscription:
    sub = db.session.get(EmailSubscription, subscription_id)
    if not sub:
        raise NotFoundError("Subscription not found")
    return sub


def _ensure_unique(email: str, report_type: str, exclude_id: int | None = None) -> None:
    query = db.session.query(EmailSubscription.id).filter(
        EmailSubscription.email == email,
        EmailSubscription.report_type == report_type,
    )
    if exclude_id is not None:
        query = query.filter(EmailSubscription.id != exclude_id)
    if query.first():
        raise ConflictError("Email is already subscribed to this report")


def create_subscription(*, payload: dict, user: User | None = None, report_type: str = SALES_REPORTS) -> EmailSubscription:
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    email = normalize_email(payload.get("email"))
    schedule_time = normalize_schedule_time(payload.get("schedule_time") or "18:00")
    report_type = _report_type(report_type)
    _ensure_unique(email, report_type)

    sub = EmailSubscription(
        email=email,
        report_type=report_type,
        schedule_time=schedule_time,
        is_active=bool(payload.get("is_active", True)),
        created_by_id=user.id if user else None,
    )
    db.session.add(sub)
    try:
        db.session.flush()
        audit_service.log_activity(
            activity="subscription_created",
            description=f"Subscribed {email} to {report_type} at {schedule_time}",
            user=user,
            entity_type="email_subscription",
            entity_id=sub.id,
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email is already subscribed to this report")

    get_scheduler().schedule(sub)
    return sub


def update_subscription(*, subscription_id: int, payload: dict, user: User | None = None) -> EmailSubscription:
    """Apply changes, then re-register: the old timer is always cancelled first."""
    sub = get_subscription(subscription_id)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if "email" in payload:
        email = normalize_email(payload["email"])
        _ensure_unique(email, sub.report_type, exclude_id=sub.id)
        sub.email = email
    if "schedule_time" in payload:
        sub.schedule_time = normalize_schedule_time(payload["schedule_time"])
    if "is_active" in payload:
        sub.is_active = bool(payload["is_active"])

    audit_service.log_activity(
        activity="subscription_updated",
        description=f"Updated report subscription for {sub.email} ({sub.schedule_time}, active={sub.is_active})",
        user=user,
        entity_type="email_subscription",
        entity_id=sub.id,
    )
    db.session.commit()

    get_scheduler().schedule(sub)
    return sub


def delete_subscription(*, subscription_id: int, user: User | None = None) -> None:
    sub = get_subscription(subscription_id)
    email = sub.email
    db.session.delete(sub)
    audit_service.log_activity(
        activity="subscription_deleted",
        description=f"Removed report subscription for {email}",
        user=user,
        entity_type="email_subscription",
        entity_id=subscription_id,
    )
    db.session.commit()
    get_scheduler().unschedule(subscription_id)


def send_report_now(*, user: User | None = None, report_type: str = SALES_REPORTS) -> dict:
    """Send today's report to every active subscription immediately."""
    subs = (
        db.session.query(EmailSubscription)
        .filter(
            EmailSubscription.report_type == _report_type(report_type),
            EmailSubscription.is_active.is_(True),
        )
        .order_by(EmailSubscription.id.asc())
        .all()
    )
    if not subs:
        raise SubscriptionError("No active email subscriptions found")

    result = email_service.deliver_report(subs)
    audit_service.log_activity_safely(
        activity="report_sent",
        description=(
            f"Daily report sent to {result['successful_emails']} of {result['total_emails']} subscriber(s)"
        ),
        user=user,
        entity_type="email_subscription",
        metadata={"failed_emails": result["failed_emails"]},
    )
    return result
