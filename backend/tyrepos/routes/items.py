# Overview: Flask API routes for items and stock; parses input and returns JSON responses.

"""
Item Routes

SECURITY: All routes require authentication.
- Any signed-in user can look items up
- Create / stock changes: admin, cashier
- Update / export: admin, manager
- Delete / bulk create: admin

Stock is only changed through stock_service (guarded atomic updates).
"""

from flask import Blueprint, request, jsonify, current_app, g, send_file

from ..decorators import require_auth, require_role
from ..extensions import db
from ..models.auth import ROLE_ADMIN, ROLE_CASHIER, ROLE_MANAGER
from ..services import item_service, spreadsheet_service, stock_service
from ..services.stock_service import StockError
from ..validation import ConflictError, NotFoundError, ValidationError
from tyrepos.time_utils import utcnow


items_bp = Blueprint("items", __name__, url_prefix="/api/items")


def _flag(name: str) -> bool:
    return request.args.get(name, "false").lower() == "true"


@items_bp.get("")
@require_auth
def list_items_route():
    """
    List items.

    Query parameters:
    - search: matched against name, code, barcode, description
    - category_id: restrict to one category
    - include_inactive: include deactivated items (default: false)
    - low_stock: only items at or below their lower limit
    - page / per_page: optional pagination (all items when page is absent)
    """
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", 20, type=int)

    result = item_service.list_items(
        search=request.args.get("search"),
        category_id=request.args.get("category_id", type=int),
        include_inactive=_flag("include_inactive"),
        low_stock=_flag("low_stock"),
        page=page,
        per_page=per_page,
    )
    return jsonify(result), 200


@items_bp.get("/search")
@require_auth
def search_items_route():
    try:
        items = item_service.search_items(request.args.get("q", ""))
        return jsonify({"items": [i.to_dict() for i in items], "count": len(items)}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@items_bp.get("/<int:item_id>")
@require_auth
def get_item_route(item_id: int):
    try:
        return jsonify(item_service.get_item(item_id).to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@items_bp.get("/code/<string:item_code>")
@require_auth
def get_item_by_code_route(item_code: str):
    try:
        return jsonify(item_service.get_item_by_code(item_code).to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@items_bp.get("/barcode/<string:barcode>")
@require_auth
def get_item_by_barcode_route(barcode: str):
    try:
        return jsonify(item_service.get_item_by_barcode(barcode).to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@items_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def create_item_route():
    """
    Create an item. item_code is assigned by the system.

    Request body:
    {
        "name": "Bridgestone 185/65 R15",   // required, unique
        "category_id": 1,                   // required (or "category": name / id)
        "purchase_price": 18500,            // required
        "retail_price": 22500,              // required
        "barcode": "BS1856515",             // optional, unique
        "quantity_in_stock": 0,
        "lower_limit": 4,
        "location": "Rack A",
        "discount": 0,
        "description": "..."
    }
    """
    data = request.get_json(silent=True)
    try:
        item = item_service.create_item(payload=data, user=g.current_user)
        return jsonify(item.to_dict()), 201
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create item")
        return jsonify({"error": "Internal server error"}), 500


@items_bp.put("/<int:item_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_item_route(item_id: int):
    data = request.get_json(silent=True)
    try:
        item = item_service.update_item(item_id=item_id, payload=data, user=g.current_user)
        return jsonify(item.to_dict()), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        db.session.rollback()
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to update item")
        return jsonify({"error": "Internal server error"}), 500


@items_bp.delete("/<int:item_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_item_route(item_id: int):
    try:
        item = item_service.get_item(item_id)
        return jsonify(item_service.delete_item(item=item, user=g.current_user)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@items_bp.delete("/code/<string:item_code>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_item_by_code_route(item_code: str):
    try:
        item = item_service.get_item_by_code(item_code)
        return jsonify(item_service.delete_item(item=item, user=g.current_user)), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@items_bp.post("/bulk")
@require_auth
@require_role(ROLE_ADMIN)
def bulk_create_items_route():
    data = request.get_json(silent=True) or {}
    try:
        result = item_service.bulk_create_items(rows=data.get("items"), user=g.current_user)
        return jsonify(result), 201 if result["successful"] else 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@items_bp.post("/bulk/upload")
@require_auth
@require_role(ROLE_ADMIN)
def bulk_upload_items_route():
    """Create items from an uploaded .xlsx / .csv file (multipart field "file")."""
    try:
        rows = spreadsheet_service.read_rows(request.files.get("file"))
        if not rows:
            return jsonify({"error": "No rows found in file"}), 400
        result = item_service.bulk_create_items(rows=rows, user=g.current_user)
        return jsonify(result), 201 if result["successful"] else 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to parse item upload")
        return jsonify({"error": "Failed to parse upload"}), 400


@items_bp.get("/export")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def export_items_route():
    items = item_service.items_for_export(include_inactive=_flag("include_inactive"))
    buffer = spreadsheet_service.export_items(items)
    filename = f"inventory_{utcnow().strftime('%Y%m%d_%H%M%S')}.xlsx"
    return send_file(
        buffer,
        mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        as_attachment=True,
        download_name=filename,
    )


# =============================================================================
# Stock
# =============================================================================

@items_bp.patch("/code/<string:item_code>/stock")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def adjust_stock_route(item_code: str):
    """
    Add or subtract stock.

    Request body:
    {
        "quantity": 4,              // required
        "operation": "add",         // add (default) | subtract
        "purchase_price": 18500,    // optional, also sets the item's cost
        "retail_price": 22500,      // optional
        "discount": 0,              // optional
        "location": "Rack A",       // optional
        "lower_limit": 4,           // optional
        "notes": "Supplier invoice 551"
    }

    Positive additions record a stock purchase.
    """
    data = request.get_json(silent=True)
    try:
        result = stock_service.adjust_stock(item_code=item_code, payload=data, user=g.current_user)
        return jsonify(result), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except StockError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@items_bp.post("/stock/bulk")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def bulk_adjust_stock_route():
    data = request.get_json(silent=True) or {}
    try:
        result = stock_service.bulk_adjust_stock(updates=data.get("updates"), user=g.current_user)
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@items_bp.post("/stock/bulk/upload")
@require_auth
@require_role(ROLE_ADMIN, ROLE_CASHIER)
def bulk_upload_stock_route():
    """Stock adjustments from an uploaded .xlsx / .csv file (item_code, quantity, ...)."""
    try:
        rows = spreadsheet_service.read_rows(request.files.get("file"))
        if not rows:
            return jsonify({"error": "No rows found in file"}), 400
        result = stock_service.bulk_adjust_stock(updates=rows, user=g.current_user)
        return jsonify(result), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to parse stock upload")
        return jsonify({"error": "Failed to parse upload"}), 400


@items_bp.get("/<int:item_id>/purchases")
@require_auth
def list_purchases_route(item_id: int):
    try:
        item_service.get_item(item_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    purchases = stock_service.list_purchases(item_id)
    return jsonify({"items": [p.to_dict() for p in purchases], "count": len(purchases)}), 200
