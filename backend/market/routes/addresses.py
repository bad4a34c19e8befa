# backend/market/routes/addresses.py
from flask import Blueprint, request, jsonify, current_app, g

from ..services import address_service
from ..decorators import require_auth
from market.errors import MarketError


addresses_bp = Blueprint("addresses", __name__, url_prefix="/api/addresses")


@addresses_bp.get("")
@require_auth
def list_addresses_route():
    addresses = address_service.list_addresses(g.current_user.id)
    return jsonify({"addresses": [a.to_dict() for a in addresses]}), 200


@addresses_bp.post("")
@require_auth
def create_address_route():
    try:
        address = address_service.create_address(g.current_user.id, request.get_json(silent=True))
        return jsonify({"address": address.to_dict()}), 201
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create address")
        return jsonify({"error": "Internal server error"}), 500


@addresses_bp.get("/<int:address_id>")
@require_auth
def get_address_route(address_id: int):
    try:
        address = address_service.get_address(g.current_user.id, address_id)
        return jsonify({"address": address.to_dict()}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@addresses_bp.put("/<int:address_id>")
@require_auth
def update_address_route(address_id: int):
    try:
        address = address_service.update_address(
            g.current_user.id, address_id, request.get_json(silent=True)
        )
        return jsonify({"address": address.to_dict()}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update address")
        return jsonify({"error": "Internal server error"}), 500


@addresses_bp.delete("/<int:address_id>")
@require_auth
def delete_address_route(address_id: int):
    try:
        address_service.delete_address(g.current_user.id, address_id)
        return jsonify({"message": "Address deleted successfully"}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete address")
        return jsonify({"error": "Internal server error"}), 500
