# Overview: Flask API routes for stock pools; parses input and returns JSON responses.

# backend/agrostock/routes/stock.py
"""
Stock API Routes

READ ACCESS:
- Everyone sees the global pool and their own pool
- System-wide totals (every owner summed) are for privileged roles
  (PRIVILEGED_ROLES config)

WRITE ACCESS:
- Direct stock-in / reserve / release are admin corrections; the normal
  paths are settlement (stock-in) and deliveries (reserve/release)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Owner
from ..models.users import ROLE_ADMIN
from ..services import stock_service
from ..services.errors import LedgerError
from ..validation import decimal_str
from ..decorators import require_actor, require_role
from . import json_body, ledger_error_response


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _parse_owner(raw) -> Owner:
    if raw is None or raw == "global":
        return Owner.global_pool()
    return Owner.from_key(str(raw))


@stock_bp.get("")
@require_actor
def list_stock_route():
    """
    List stock entries.

    Query params:
    - material_type: optional filter

    Admins get every entry; other users get the global and their own.
    """
    material_type = request.args.get("material_type")

    try:
        if material_type:
            stock_service.validate_material_type(material_type)

        entries = stock_service.list_entries(material_type=material_type)
        if g.current_user.role != ROLE_ADMIN:
            visible = {Owner.global_pool().key, Owner.user(g.current_user.id).key}
            entries = [e for e in entries if e.owner_key in visible]

        return jsonify({"entries": [e.to_dict() for e in entries]}), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@stock_bp.get("/available")
@require_actor
def available_route():
    """Quantity usable by the caller: global available + own available."""
    material_type = request.args.get("material_type")
    if not material_type:
        return jsonify({"error": "material_type required"}), 400

    try:
        available = stock_service.available_for(material_type, g.current_user.id)
        return jsonify({
            "material_type": material_type,
            "user_id": g.current_user.id,
            "available": decimal_str(available),
        }), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@stock_bp.get("/system-total")
@require_actor
def system_total_route():
    if g.current_user.role not in current_app.config["PRIVILEGED_ROLES"]:
        return jsonify({"error": "Permission denied"}), 403

    material_type = request.args.get("material_type")
    if not material_type:
        return jsonify({"error": "material_type required"}), 400

    try:
        total = stock_service.system_total(material_type)
        return jsonify({
            "material_type": total["material_type"],
            "total_in": decimal_str(total["total_in"]),
            "available": decimal_str(total["available"]),
        }), 200
    except ValueError as e:
        return jsonify({"error": str(e)}), 400


def _mutate(operation, action: str):
    try:
        data = json_body()
        entry = operation(
            data["material_type"],
            _parse_owner(data.get("owner")),
            data["quantity"],
        )
        return jsonify({"entry": entry.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to %s", action)
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/stock-in")
@require_actor
@require_role(ROLE_ADMIN)
def stock_in_route():
    """
    Request body:
    {
        "material_type": "FG",
        "owner": "global" | "user:3",
        "quantity": "50.000"
    }
    """
    return _mutate(stock_service.stock_in, "stock in")


@stock_bp.post("/reserve")
@require_actor
@require_role(ROLE_ADMIN)
def reserve_route():
    return _mutate(stock_service.reserve, "reserve stock")


@stock_bp.post("/release")
@require_actor
@require_role(ROLE_ADMIN)
def release_route():
    return _mutate(stock_service.release, "release stock")
