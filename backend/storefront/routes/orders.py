# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""Order API routes with role enforcement"""

import math

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import OrderEngineError
from ..validation import ValidationError
from ..models.auth import STAFF_ROLES, ADMIN_ROLES
from ..services import order_service, order_state_service, timeline_service
from ..decorators import require_auth, require_role, load_optional_user


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _error_response(e: OrderEngineError):
    return jsonify(e.to_dict()), e.status_code


@orders_bp.post("")
def create_order_route():
    """
    Checkout: create an order from a cart.

    Open to guests, who cannot attach the order to an account. A logged-in
    customer always orders as themselves.
    Response: 201 {order, invoice|null, warnings, message}
    """
    try:
        load_optional_user()
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400

        user = g.current_user
        if user is None:
            data.pop("user_id", None)
        elif not user.is_staff:
            data["user_id"] = user.id

        result = order_service.create_order(data, actor_user_id=user.id if user else None)

        message = "Order created"
        if result.invoice is not None:
            message += " with invoice generated"
        return jsonify({
            "order": result.order.to_dict(),
            "invoice": result.invoice.to_dict() if result.invoice is not None else None,
            "warnings": result.warnings,
            "message": message,
        }), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderEngineError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
@require_role(*STAFF_ROLES)
def list_orders_route():
    """
    List orders (newest first) with quick stats.

    Query: page, limit, search (order number / customer name / email), status
    """
    try:
        page = _int_arg("page", 1)
        limit = _int_arg("limit", 10)
        orders, total = order_service.list_orders(
            search=request.args.get("search") or None,
            status=request.args.get("status") or None,
            page=page,
            per_page=limit,
        )
        return jsonify({
            "orders": [o.to_dict() for o in orders],
            "total": total,
            "pages": math.ceil(total / limit) if limit > 0 else 0,
            "current_page": page,
            "stats": order_service.order_stats(),
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    """Staff see any order; customers only their own."""
    try:
        order = order_service.get_order(order_id)
        user = g.current_user
        if not user.is_staff and order.user_id != user.id:
            return jsonify({"error": "Order not found"}), 404

        return jsonify({"order": order.to_dict()}), 200

    except OrderEngineError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/status")
@require_auth
@require_role(*STAFF_ROLES)
def get_order_status_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({
            "order_id": order.id,
            "order_number": order.order_number,
            "status": order.status,
            "allowed_transitions": order_state_service.allowed_transitions(order.status),
        }), 200

    except OrderEngineError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/status")
@require_auth
@require_role(*STAFF_ROLES)
def update_order_status_route(order_id: int):
    """
    Change order status along the transition table.

    Body: {status, notes?, tracking_number?}. 400 on an illegal transition.
    """
    try:
        data = request.get_json(silent=True) or {}
        new_status = data.get("status")
        if not new_status:
            return jsonify({"error": "status required"}), 400

        order = order_state_service.transition_order_status(
            order_id,
            new_status,
            actor_user_id=g.current_user.id,
            notes=data.get("notes"),
            tracking_number=data.get("tracking_number"),
        )
        return jsonify({
            "order": order.to_dict(),
            "allowed_transitions": order_state_service.allowed_transitions(order.status),
            "message": f"Order status updated to {order.status}",
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderEngineError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def delete_order_route(order_id: int):
    """Only PENDING or CANCELLED orders can be deleted."""
    try:
        order_number = order_service.delete_order(order_id, actor_user_id=g.current_user.id)
        return jsonify({"message": f"Order {order_number} deleted"}), 200

    except OrderEngineError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/items/<int:item_id>")
@require_auth
@require_role(*STAFF_ROLES)
def update_order_item_route(order_id: int, item_id: int):
    """
    Update production status and/or notes of one item.

    Body: {production_status?, production_notes?}. The order may be
    promoted automatically from its items' progress.
    """
    try:
        data = request.get_json(silent=True) or {}
        production_status = data.get("production_status")
        notes = data.get("production_notes")
        if production_status is None and notes is None:
            return jsonify({"error": "production_status or production_notes required"}), 400

        item, order, promoted = order_state_service.update_item_production_status(
            order_id,
            item_id,
            production_status,
            notes=notes,
            actor_user_id=g.current_user.id,
        )
        return jsonify({
            "item": item.to_dict(),
            "order_status": order.status,
            "auto_promoted_to": promoted,
            "message": "Item updated",
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderEngineError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/timeline")
@require_auth
@require_role(*STAFF_ROLES)
def order_timeline_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        events = timeline_service.list_order_events(order.id)
        return jsonify({
            "order_id": order.id,
            "order_number": order.order_number,
            "events": [ev.to_dict() for ev in events],
        }), 200

    except OrderEngineError as e:
        return _error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order timeline")
        return jsonify({"error": "Internal server error"}), 500
