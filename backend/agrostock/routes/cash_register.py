# Overview: Flask API routes for the aggregate cash register (admin only).

# backend/agrostock/routes/cash_register.py
"""
Cash Register API Routes

WHY: The register is the admin-level pool every admin transfer draws from.
All endpoints are admin-only.

DESIGN:
- Appends are strictly ordered under the register head lock
- Corrections (PATCH/DELETE of a historical row) rebuild every running
  balance in the same transaction
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models.users import ROLE_ADMIN
from ..services import cash_register_service
from ..services.errors import LedgerError
from ..validation import decimal_str
from ..decorators import require_actor, require_role
from . import json_body, ledger_error_response


cash_register_bp = Blueprint("cash_register", __name__, url_prefix="/api/cash-register")


def _failure(e: Exception, action: str):
    if isinstance(e, LedgerError):
        return ledger_error_response(e)
    if isinstance(e, KeyError):
        return jsonify({"error": f"Missing required field: {e}"}), 400
    if isinstance(e, ValueError):
        return jsonify({"error": str(e)}), 400
    db.session.rollback()
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500


@cash_register_bp.get("")
@require_actor
@require_role(ROLE_ADMIN)
def register_balance_route():
    return jsonify({"current_balance": decimal_str(cash_register_service.current_balance())}), 200


@cash_register_bp.get("/entries")
@require_actor
@require_role(ROLE_ADMIN)
def list_entries_route():
    limit = request.args.get("limit", type=int)
    offset = request.args.get("offset", default=0, type=int)
    entries = cash_register_service.list_entries(limit=limit, offset=offset)
    return jsonify({"entries": [e.to_dict() for e in entries]}), 200


@cash_register_bp.post("/entries")
@require_actor
@require_role(ROLE_ADMIN)
def append_entry_route():
    """
    Request body:
    {
        "entry_type": "income" | "expense",
        "amount": "100.00",
        "method": "cash" (optional),
        "reason": str (optional),
        "reference": str (optional)
    }
    """
    try:
        data = json_body()
        entry = cash_register_service.append_entry(
            data["entry_type"],
            data["amount"],
            method=data.get("method"),
            reason=data.get("reason"),
            reference=data.get("reference"),
            user_id=g.current_user.id,
        )
        return jsonify({"entry": entry.to_dict()}), 201
    except Exception as e:
        return _failure(e, "append cash register entry")


@cash_register_bp.post("/adjust")
@require_actor
@require_role(ROLE_ADMIN)
def adjust_route():
    """Set the register to a counted amount: {"target": "1200.00", "reason": "..."}"""
    try:
        data = json_body()
        entry = cash_register_service.adjust_balance(data["target"], data.get("reason"), user_id=g.current_user.id)
        return jsonify({
            "entry": entry.to_dict() if entry else None,
            "current_balance": decimal_str(cash_register_service.current_balance()),
        }), 200
    except Exception as e:
        return _failure(e, "adjust cash register")


@cash_register_bp.post("/withdraw")
@require_actor
@require_role(ROLE_ADMIN)
def withdraw_route():
    try:
        data = json_body()
        entry = cash_register_service.withdraw(
            data["amount"],
            method=data.get("method", "cash"),
            reason=data.get("reason"),
            user_id=g.current_user.id,
        )
        return jsonify({"entry": entry.to_dict()}), 201
    except Exception as e:
        return _failure(e, "withdraw from cash register")


@cash_register_bp.patch("/entries/<int:entry_id>")
@require_actor
@require_role(ROLE_ADMIN)
def update_entry_route(entry_id: int):
    try:
        data = json_body()
        entry = cash_register_service.update_entry(entry_id, **data)
        return jsonify({
            "entry": entry.to_dict(),
            "current_balance": decimal_str(cash_register_service.current_balance()),
        }), 200
    except Exception as e:
        return _failure(e, "update cash register entry")


@cash_register_bp.delete("/entries/<int:entry_id>")
@require_actor
@require_role(ROLE_ADMIN)
def delete_entry_route(entry_id: int):
    try:
        cash_register_service.delete_entry(entry_id)
        return jsonify({
            "deleted": entry_id,
            "current_balance": decimal_str(cash_register_service.current_balance()),
        }), 200
    except Exception as e:
        return _failure(e, "delete cash register entry")


@cash_register_bp.post("/rebuild")
@require_actor
@require_role(ROLE_ADMIN)
def rebuild_route():
    try:
        head = cash_register_service.rebuild()
        return jsonify(head.to_dict()), 200
    except Exception as e:
        return _failure(e, "rebuild cash register")
