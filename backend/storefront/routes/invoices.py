# Overview: Flask API routes for invoices.

import math

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import OrderEngineError
from ..models.auth import STAFF_ROLES
from ..validation import ValidationError
from ..services import invoice_service
from ..decorators import require_auth, require_role


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.get("")
@require_auth
@require_role(*STAFF_ROLES)
def list_invoices_route():
    """Query: page, limit, status, search (invoice number / customer name / email)."""
    try:
        page = int(request.args.get("page") or 1)
        limit = int(request.args.get("limit") or 20)
    except ValueError:
        return jsonify({"error": "page and limit must be integers"}), 400

    try:
        invoices, total = invoice_service.list_invoices(
            status=request.args.get("status") or None,
            search=request.args.get("search") or None,
            page=page,
            per_page=limit,
        )
        return jsonify({
            "invoices": [inv.to_dict() for inv in invoices],
            "total": total,
            "pages": math.ceil(total / limit) if limit > 0 else 0,
            "current_page": page,
        }), 200

    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("")
@require_auth
@require_role(*STAFF_ROLES)
def create_invoice_route():
    """
    Issue the invoice of an order manually.

    Body: {order_id, notes?}. 409 if the order already has an invoice.
    """
    try:
        data = request.get_json(silent=True) or {}
        order_id = data.get("order_id")
        if isinstance(order_id, bool) or not isinstance(order_id, int):
            return jsonify({"error": "order_id required"}), 400

        invoice = invoice_service.issue_invoice(
            order_id,
            notes=data.get("notes"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"invoice": invoice.to_dict(), "message": "Invoice created"}), 201

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<int:invoice_id>")
@require_auth
@require_role(*STAFF_ROLES)
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.patch("/<int:invoice_id>")
@require_auth
@require_role(*STAFF_ROLES)
def update_invoice_route(invoice_id: int):
    """Body: {status?, notes?}. Amounts and snapshots are immutable."""
    try:
        data = request.get_json(silent=True) or {}
        immutable = sorted(set(data) - {"status", "notes"})
        if immutable:
            return jsonify({"error": f"Field not allowed: {', '.join(immutable)}"}), 400

        invoice = invoice_service.update_invoice_status(
            invoice_id,
            data.get("status"),
            notes=data.get("notes"),
        )
        return jsonify({"invoice": invoice.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Internal server error"}), 500
