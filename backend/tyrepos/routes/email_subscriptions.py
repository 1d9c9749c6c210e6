# Overview: Flask API routes for report email subscriptions and the report scheduler.

"""
Email Subscription Routes

Create / update / delete keep the in-process report scheduler in sync.

SECURITY: admin and manager only.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import subscription_service
from ..services.report_scheduler import get_scheduler
from ..services.subscription_service import SubscriptionError
from ..validation import ConflictError, NotFoundError, ValidationError


email_subscriptions_bp = Blueprint("email_subscriptions", __name__, url_prefix="/api/email-subscriptions")


@email_subscriptions_bp.get("/sales-reports")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def list_sales_report_subscriptions_route():
    subs = subscription_service.list_subscriptions()
    return jsonify({"subscriptions": [s.to_dict() for s in subs], "count": len(subs)}), 200


@email_subscriptions_bp.post("/sales-reports")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_sales_report_subscription_route():
    """
    Subscribe an address to the daily sales report.

    Request body:
    {
        "email": "owner@example.com",   // required
        "schedule_time": "18:00",       // HH:MM, 24-hour, business timezone
        "is_active": true
    }
    """
    data = request.get_json(silent=True)
    try:
        sub = subscription_service.create_subscription(payload=data, user=g.current_user)
        return jsonify(sub.to_dict()), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create email subscription")
        return jsonify({"error": "Internal server error"}), 500


@email_subscriptions_bp.put("/sales-reports/<int:subscription_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_sales_report_subscription_route(subscription_id: int):
    data = request.get_json(silent=True)
    try:
        sub = subscription_service.update_subscription(
            subscription_id=subscription_id, payload=data, user=g.current_user
        )
        return jsonify(sub.to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update email subscription")
        return jsonify({"error": "Internal server error"}), 500


@email_subscriptions_bp.delete("/sales-reports/<int:subscription_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def delete_sales_report_subscription_route(subscription_id: int):
    try:
        subscription_service.delete_subscription(subscription_id=subscription_id, user=g.current_user)
        return jsonify({"message": "Subscription deleted"}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@email_subscriptions_bp.post("/send-report-now")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def send_report_now_route():
    """Send today's report to every active subscriber immediately."""
    try:
        result = subscription_service.send_report_now(user=g.current_user)
        return jsonify({"message": "Report sent", **result}), 200
    except SubscriptionError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to send report")
        return jsonify({"error": "Internal server error"}), 500


@email_subscriptions_bp.get("/scheduler-status")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def scheduler_status_route():
    return jsonify(get_scheduler().status()), 200
