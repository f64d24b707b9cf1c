# Overview: Flask API routes for balance transfers; parses input and returns JSON responses.

# backend/agrostock/routes/transfers.py
"""
Balance transfer API routes.

The acting user is always the initiator; the ledger decides from their
role whether the cash register or their own balance is debited.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_actor
from ..models.users import ROLE_ADMIN
from ..services import transfer_service
from ..services.errors import LedgerError
from . import json_body, ledger_error_response


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.route("", methods=["POST"])
@require_actor
def create_transfer():
    """
    Send money to another user.

    Request body:
    {
        "recipient_id": int,
        "amount": "150.00",
        "method": "cash" | "mobile" | "bank_transfer",
        "reason": str (optional),
        "reference": str (optional)
    }

    Returns:
        201: Transfer created
        400: Invalid request / insufficient funds / self-transfer
        403: Recipient not allowed for this role
        404: Recipient not found
    """
    try:
        data = json_body()
        record = transfer_service.transfer(
            initiator_id=g.current_user.id,
            recipient_id=data["recipient_id"],
            amount=data["amount"],
            method=data.get("method", "cash"),
            reason=data.get("reason"),
            reference=data.get("reference"),
        )
        return jsonify(record.to_dict()), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create transfer")
        return jsonify({"error": "Internal server error"}), 500


@transfers_bp.route("", methods=["GET"])
@require_actor
def list_transfers():
    """Admins see every transfer; other users see the ones they are part of."""
    limit = request.args.get("limit", type=int)
    user_id = None if g.current_user.role == ROLE_ADMIN else g.current_user.id
    transfers = transfer_service.list_transfers(user_id=user_id, limit=limit)
    return jsonify({"transfers": [t.to_dict() for t in transfers]}), 200
