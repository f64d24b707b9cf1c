# Overview: Flask API routes for balance requests (users asking an admin for funds).

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..decorators import require_actor, require_role
from ..models.users import ROLE_ADMIN
from ..services import transfer_service
from ..services.errors import LedgerError
from . import json_body, ledger_error_response


balance_requests_bp = Blueprint("balance_requests", __name__, url_prefix="/api/balance-requests")


@balance_requests_bp.post("")
@require_actor
def create_request_route():
    """
    Request body:
    {
        "amount": "500.00",
        "reason": "Purchase of raw material"
    }
    """
    try:
        data = json_body()
        req = transfer_service.create_request(
            user_id=g.current_user.id,
            amount=data["amount"],
            reason=data["reason"],
        )
        return jsonify(req.to_dict()), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create balance request")
        return jsonify({"error": "Internal server error"}), 500


@balance_requests_bp.get("")
@require_actor
def list_requests_route():
    status = request.args.get("status")
    user_id = None if g.current_user.role == ROLE_ADMIN else g.current_user.id
    requests = transfer_service.list_requests(user_id=user_id, status=status)
    return jsonify({"requests": [r.to_dict() for r in requests]}), 200


@balance_requests_bp.post("/<int:request_id>/approve")
@require_actor
@require_role(ROLE_ADMIN)
def approve_request_route(request_id: int):
    """Approve: the admin transfers the amount from the cash register."""
    try:
        data = json_body()
        req = transfer_service.approve_request(
            request_id,
            admin_id=g.current_user.id,
            comment=data.get("comment"),
            method=data.get("method", "cash"),
        )
        return jsonify(req.to_dict()), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to approve balance request")
        return jsonify({"error": "Internal server error"}), 500


@balance_requests_bp.post("/<int:request_id>/reject")
@require_actor
@require_role(ROLE_ADMIN)
def reject_request_route(request_id: int):
    try:
        data = json_body()
        req = transfer_service.reject_request(request_id, admin_id=g.current_user.id, comment=data.get("comment"))
        return jsonify(req.to_dict()), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to reject balance request")
        return jsonify({"error": "Internal server error"}), 500


@balance_requests_bp.delete("/<int:request_id>")
@require_actor
def delete_request_route(request_id: int):
    """Owners withdraw their own pending request; admins any pending one."""
    try:
        target = transfer_service.get_request(request_id)
        if g.current_user.role != ROLE_ADMIN and target.user_id != g.current_user.id:
            return jsonify({"error": "Permission denied"}), 403

        transfer_service.delete_request(request_id)
        return jsonify({"deleted": request_id}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to delete balance request")
        return jsonify({"error": "Internal server error"}), 500
