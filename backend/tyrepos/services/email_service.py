"""
Email service for scheduled and on-demand sales reports.
Uses Flask-Mail for SMTP delivery.
"""
from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app
from flask_mail import Message

from ..extensions import db, mail
from ..models import EmailSubscription
from tyrepos.time_utils import utcnow
from . import daily_report_service

logger = logging.getLogger(__name__)


def init_mail(app):
    """Initialize Flask-Mail with app."""
    mail.init_app(app)


def _mail_enabled() -> bool:
    """
    Mail can go out when SMTP is configured, or when sending is suppressed
    (tests / dry runs record the message instead of delivering it).
    """
    cfg = current_app.config
    return bool(cfg.get("MAIL_SUPPRESS_SEND") or cfg.get("MAIL_SERVER"))


def _sender() -> str:
    cfg = current_app.config
    return cfg.get("MAIL_DEFAULT_SENDER") or cfg.get("MAIL_USERNAME") or "reports@localhost"


def send_html_email(to_email: str, subject: str, html: str) -> bool:
    """
    Send one HTML email.

    Returns:
        True if handed to the transport, False otherwise (failure is logged).
    """
    if not _mail_enabled():
        logger.warning(f"[MAIL DISABLED] '{subject}' not sent to {to_email}: MAIL_SERVER is not configured")
        return False
    try:
        msg = Message(subject=subject, recipients=[to_email], html=html, sender=_sender())
        mail.send(msg)
        logger.info(f"[EMAIL] '{subject}' sent to {to_email}")
        return True
    except Exception:
        logger.exception(f"[EMAIL] Failed to send '{subject}' to {to_email}")
        return False


def deliver_report(subscriptions: list[EmailSubscription], now: datetime | None = None) -> dict:
    """
    Build today's report once and send it to every subscription.

    Per-recipient failures are collected, never raised. last_sent_at is set
    for each successful recipient.
    """
    now = now or utcnow()
    report = daily_report_service.build_daily_report(now)
    subject = daily_report_service.report_subject(report)
    html = daily_report_service.render_report_html(report, generated_at=now)

    successful = 0
    failed: list[str] = []
    for sub in subscriptions:
        if send_html_email(sub.email, subject, html):
            sub.last_sent_at = now
            successful += 1
        else:
            failed.append(sub.email)
    db.session.commit()

    return {
        "total_emails": len(subscriptions),
        "successful_emails": successful,
        "failed_emails": failed,
        "report_date": report["date_range"]["from_date"],
        "transactions_included": len(report["detailed"]),
        "total_sales": report["metrics"]["total_sales"],
    }
