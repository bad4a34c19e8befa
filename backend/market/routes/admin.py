# Overview: Flask API routes for admin operations (users, roles, platform settings).

# backend/market/routes/admin.py
from flask import Blueprint, request, jsonify, current_app

from ..services import auth_service, settings_service
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_ADMIN
from market.errors import MarketError
from market.money import format_cents


admin_bp = Blueprint("admin", __name__, url_prefix="/api")


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


@admin_bp.get("/admin/users")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    """
    Query params: limit, offset, searchValue, searchField (name|email),
    searchOperator (contains|starts_with|ends_with), sortBy, sortDirection.
    """
    try:
        result = auth_service.list_users(
            limit=_int_arg("limit", 10),
            offset=_int_arg("offset", 0),
            search_value=(request.args.get("searchValue") or "").strip(),
            search_field=request.args.get("searchField", "name"),
            search_operator=request.args.get("searchOperator", "contains"),
            sort_by=request.args.get("sortBy", "createdAt"),
            sort_direction=request.args.get("sortDirection", "desc"),
        )
        return jsonify(result), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.patch("/admin/users/<int:user_id>/role")
@require_auth
@require_role(ROLE_ADMIN)
def set_user_role_route(user_id: int):
    """Body: {"role": "tourism-manager"}"""
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.set_role(user_id, data.get("role"))
        current_app.logger.info("User %s role set to %s", user.id, user.role)
        return jsonify({"user": user.to_dict()}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set user role")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/admin/settings")
@require_auth
@require_role(ROLE_ADMIN)
def list_settings_route():
    key = request.args.get("key") or None
    settings = settings_service.list_settings(key)
    return jsonify({"settings": [s.to_dict() for s in settings]}), 200


@admin_bp.put("/admin/settings")
@require_auth
@require_role(ROLE_ADMIN)
def upsert_setting_route():
    """Body: {"key": "buyer_service_fee", "value": "2500", "description": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        setting = settings_service.upsert_setting(
            data.get("key"), data.get("value"), data.get("description")
        )
        current_app.logger.info("Setting %s updated to %s", setting.key, setting.value)
        return jsonify({"setting": setting.to_dict()}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update setting")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/buyer-service-fee")
def buyer_service_fee_route():
    """Public: the flat fee the storefront shows at checkout."""
    fee_cents = settings_service.get_buyer_service_fee_cents()
    return jsonify({"buyerServiceFee": format_cents(fee_cents)}), 200
