# Overview: Flask API routes for stock movements and adjustments.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import OrderEngineError
from ..models import StockMovement
from ..models.auth import STAFF_ROLES, ADMIN_ROLES
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_stock_movement,
)
from ..services import stock_ledger_service
from ..decorators import require_auth, require_role
from storefront.time_utils import parse_iso_datetime


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


MOVEMENT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"variant_id", "type", "quantity", "reason"},
    required_on_create={"variant_id", "type", "quantity"},
)


def _int_arg(name: str, default=None):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


def _date_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


@inventory_bp.get("/movements")
@require_auth
@require_role(*STAFF_ROLES)
def list_movements_route():
    """
    List stock movements (newest first) with a per-type summary.

    Query: variant_id, type, actor_user_id, order_id, date_from, date_to, page, limit
    """
    try:
        filters = {
            "variant_id": _int_arg("variant_id"),
            "movement_type": request.args.get("type") or None,
            "actor_user_id": _int_arg("actor_user_id"),
            "order_id": _int_arg("order_id"),
            "date_from": _date_arg("date_from"),
            "date_to": _date_arg("date_to"),
        }
        page = _int_arg("page", 1)
        limit = _int_arg("limit", 50)

        movements, total = stock_ledger_service.list_movements(page=page, per_page=limit, **filters)
        return jsonify({
            "movements": [m.to_dict() for m in movements],
            "total": total,
            "current_page": page,
            "summary": stock_ledger_service.movement_summary(**filters),
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/movements")
@require_auth
@require_role(*STAFF_ROLES)
def create_movement_route():
    """
    Record a manual movement.

    Body: {variant_id, type: IN|OUT|RETURN|ADJUSTMENT, quantity, reason?}
    For ADJUSTMENT, quantity is the counted (new absolute) stock.
    """
    try:
        patch = validate_payload(
            model=StockMovement,
            payload=request.get_json(silent=True),
            policy=MOVEMENT_CREATE_POLICY,
        )
        enforce_rules_stock_movement(patch)

        variant, movement = stock_ledger_service.record_movement(
            patch["variant_id"],
            patch["type"],
            patch["quantity"],
            patch.get("reason"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({
            "variant": variant.to_dict(),
            "movement": movement.to_dict() if movement is not None else None,
        }), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/variants/<int:variant_id>/adjust")
@require_auth
@require_role(*ADMIN_ROLES)
def adjust_stock_route(variant_id: int):
    """
    Set a variant's stock to an absolute value.

    Body: {new_stock, reason?}. Response: {variant, movement|null}; movement
    is null when stock already equals new_stock.
    """
    try:
        data = request.get_json(silent=True) or {}
        if "new_stock" not in data:
            return jsonify({"error": "new_stock required"}), 400

        variant, movement = stock_ledger_service.adjust_stock(
            variant_id,
            data.get("new_stock"),
            data.get("reason") or "Manual adjustment",
            actor_user_id=g.current_user.id,
        )
        return jsonify({
            "variant": variant.to_dict(),
            "movement": movement.to_dict() if movement is not None else None,
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/variants/<int:variant_id>/reconcile")
@require_auth
@require_role(*STAFF_ROLES)
def reconcile_variant_route(variant_id: int):
    try:
        return jsonify(stock_ledger_service.reconcile_variant(variant_id)), 200

    except OrderEngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile variant")
        return jsonify({"error": "Internal server error"}), 500
