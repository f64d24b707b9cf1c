# Overview: Flask API routes for user balances; read-only views of the balance ledger.

from flask import Blueprint, jsonify, g, current_app

from ..models.users import ROLE_ADMIN
from ..services import balance_service
from ..validation import decimal_str
from ..decorators import require_actor


balances_bp = Blueprint("balances", __name__, url_prefix="/api/balances")


@balances_bp.get("/me")
@require_actor
def my_balance_route():
    """Balance of the acting user (0 when never credited)."""
    amount = balance_service.get_balance(g.current_user.id)
    return jsonify({"user_id": g.current_user.id, "amount": decimal_str(amount)}), 200


@balances_bp.get("/<int:user_id>")
@require_actor
def get_balance_route(user_id: int):
    """
    Balance of any user.

    Admins may read everyone; other roles only themselves.
    """
    if g.current_user.role != ROLE_ADMIN and g.current_user.id != user_id:
        return jsonify({"error": "Permission denied"}), 403

    try:
        amount = balance_service.get_balance(user_id)
        return jsonify({"user_id": user_id, "amount": decimal_str(amount)}), 200
    except Exception:
        current_app.logger.exception("Failed to read balance")
        return jsonify({"error": "Internal server error"}), 500
