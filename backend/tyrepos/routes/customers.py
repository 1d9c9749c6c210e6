# Overview: Flask API routes for customers; parses input and returns JSON responses.

"""
Customer Routes

SECURITY: All routes require authentication.
Overview analytics: admin, manager.
DELETE is a soft delete (is_active = false).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import audit_service, customer_service
from ..validation import ConflictError, NotFoundError, ValidationError


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _is_active_arg():
    raw = request.args.get("is_active")
    if raw is None or raw == "":
        return True
    if raw.lower() == "all":
        return None
    return raw.lower() == "true"


@customers_bp.get("")
@require_auth
def list_customers_route():
    """
    List customers.

    Query parameters:
    - search: name, NIC, email or phone
    - customer_type: regular | wholesale | vip | banned
    - status: new | active | inactive | dormant
    - is_active: true (default) | false | all
    - sort_by: field:asc|desc (default created_at:desc)
    - page / per_page (default 1 / 10)
    """
    try:
        result = customer_service.list_customers(
            search=request.args.get("search"),
            customer_type=request.args.get("customer_type"),
            status=request.args.get("status"),
            is_active=_is_active_arg(),
            sort_by=request.args.get("sort_by"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 10, type=int),
        )
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@customers_bp.get("/analytics/overview")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def customer_overview_route():
    return jsonify(customer_service.overview()), 200


@customers_bp.get("/search/<string:q>")
@require_auth
def search_customers_route(q: str):
    try:
        customers = customer_service.search_customers(q)
        return jsonify({"customers": [c.to_dict() for c in customers], "count": len(customers)}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@customers_bp.get("/nic/<string:nic>")
@require_auth
def get_customer_by_nic_route(nic: str):
    try:
        return jsonify(customer_service.get_by_nic(nic).to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        return jsonify(customer_service.get_customer(customer_id).to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@customers_bp.post("")
@require_auth
def create_customer_route():
    """
    Create a customer.

    Request body:
    {
        "nic": "901234567V",        // required, unique (old or new format)
        "name": "Kamal Silva",      // required
        "phone": "0771234567",
        "email": "kamal@example.com",
        "address": {"street": "...", "city": "Galle", "district": "Galle", "postal_code": "80000"},
        "customer_type": "regular",
        "credit_limit": 0,
        "notes": "..."
    }
    """
    data = request.get_json(silent=True)
    try:
        customer = customer_service.create_customer(payload=data, user=g.current_user)
        audit_service.log_activity_safely(
            activity="customer_created",
            description=f"Created customer {customer.name} ({customer.nic})",
            user=g.current_user,
            entity_type="customer",
            entity_id=customer.id,
        )
        return jsonify(customer.to_dict()), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/find-or-create")
@require_auth
def find_or_create_customer_route():
    data = request.get_json(silent=True) or {}
    try:
        customer, created = customer_service.find_or_create(payload=data, user=g.current_user)
        return jsonify({"customer": customer.to_dict(), "created": created}), 201 if created else 200
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    data = request.get_json(silent=True)
    try:
        customer = customer_service.update_customer(customer_id=customer_id, payload=data, user=g.current_user)
        return jsonify(customer.to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>/purchase")
@require_auth
def record_customer_purchase_route(customer_id: int):
    data = request.get_json(silent=True) or {}
    try:
        customer = customer_service.record_purchase(customer_id=customer_id, amount=data.get("sale_amount"))
        return jsonify(customer.to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def delete_customer_route(customer_id: int):
    try:
        customer = customer_service.deactivate_customer(customer_id=customer_id, user=g.current_user)
        audit_service.log_activity_safely(
            activity="customer_deactivated",
            description=f"Deactivated customer {customer.name} ({customer.nic})",
            user=g.current_user,
            entity_type="customer",
            entity_id=customer.id,
        )
        return jsonify({"message": "Customer deactivated", "customer": customer.to_dict()}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
