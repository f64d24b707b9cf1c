# Overview: Flask API routes for supplier advance payments (escrow).

# backend/agrostock/routes/advances.py
"""
Advance Payment API Routes

LIFECYCLE:
- POST /api/advances                 create (caller's balance is debited)
- POST /api/advances/<id>/confirm    pending -> arrived
- POST /api/advances/<id>/consume    draw down against one document
- POST /api/advances/<id>/cancel     refund remaining to the payer
- POST /api/advances/expire          admin sweep of overdue advances
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models.users import ROLE_ADMIN
from ..services import advance_service
from ..services.errors import LedgerError
from ..decorators import require_actor, require_role
from . import json_body, ledger_error_response


advances_bp = Blueprint("advances", __name__, url_prefix="/api/advances")


@advances_bp.post("")
@require_actor
def create_advance_route():
    """
    Request body:
    {
        "supplier_id": 1,
        "amount": "500.00",
        "method": "cash",
        "deadline_hours": 48 (optional),
        "advance_type": str (optional),
        "description": str (optional),
        "reference": str (optional)
    }
    """
    try:
        data = json_body()
        advance = advance_service.create_advance(
            supplier_id=data["supplier_id"],
            payer_id=g.current_user.id,
            amount=data["amount"],
            method=data.get("method", "cash"),
            deadline_hours=data.get("deadline_hours"),
            advance_type=data.get("advance_type", "advance"),
            description=data.get("description"),
            reference=data.get("reference"),
        )
        return jsonify(advance.to_dict()), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create advance")
        return jsonify({"error": "Internal server error"}), 500


@advances_bp.get("")
@require_actor
def list_advances_route():
    supplier_id = request.args.get("supplier_id", type=int)
    status = request.args.get("status")
    advances = advance_service.list_advances(supplier_id=supplier_id, status=status)
    return jsonify({"advances": [a.to_dict() for a in advances]}), 200


@advances_bp.get("/overdue")
@require_actor
def list_overdue_route():
    advances = advance_service.list_overdue()
    return jsonify({"advances": [a.to_dict() for a in advances]}), 200


@advances_bp.get("/<int:advance_id>")
@require_actor
def get_advance_route(advance_id: int):
    try:
        return jsonify(advance_service.get_advance(advance_id).to_dict()), 200
    except LedgerError as e:
        return ledger_error_response(e)


@advances_bp.post("/<int:advance_id>/confirm")
@require_actor
def confirm_advance_route(advance_id: int):
    try:
        advance = advance_service.confirm_arrival(advance_id, actor_id=g.current_user.id)
        return jsonify(advance.to_dict()), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to confirm advance")
        return jsonify({"error": "Internal server error"}), 500


@advances_bp.post("/<int:advance_id>/cancel")
@require_actor
def cancel_advance_route(advance_id: int):
    try:
        data = json_body()
        advance = advance_service.cancel_advance(advance_id, reason=data.get("reason"))
        return jsonify(advance.to_dict()), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to cancel advance")
        return jsonify({"error": "Internal server error"}), 500


@advances_bp.post("/<int:advance_id>/consume")
@require_actor
def consume_advance_route(advance_id: int):
    """Request body: {"amount": "300.00", "document_id": 12}"""
    try:
        data = json_body()
        advance = advance_service.consume_advance(advance_id, data["amount"], data["document_id"])
        return jsonify(advance.to_dict()), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to consume advance")
        return jsonify({"error": "Internal server error"}), 500


@advances_bp.post("/expire")
@require_actor
@require_role(ROLE_ADMIN)
def expire_advances_route():
    try:
        expired = advance_service.expire_overdue()
        return jsonify({"expired": [a.to_dict() for a in expired]}), 200
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to expire advances")
        return jsonify({"error": "Internal server error"}), 500
