# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/market/routes/auth.py
"""
Authentication API routes

Self-registration is open; new accounts get the "user" role.
Tokens are returned once and must be sent as `Authorization: Bearer <token>`.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services.auth_service import PasswordValidationError
from ..decorators import require_auth
from market.errors import MarketError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_response(user, status_code: int):
    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify({
        "user": user.to_dict(),
        "token": token,
        "session": session.to_dict(),
    }), status_code


@auth_bp.post("/register")
def register_route():
    """Create a buyer account and log it in."""
    try:
        data = request.get_json(silent=True) or {}
        name = data.get("name")
        email = data.get("email")
        password = data.get("password")

        if not all(isinstance(v, str) and v for v in (name, email, password)):
            return jsonify({"error": "name, email and password required"}), 400

        user = auth_service.create_user(name=name, email=email, password=password)
        return _session_response(user, 201)

    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Banned accounts and wrong credentials both answer 401.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not isinstance(email, str) or not isinstance(password, str) or not email or not password:
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        return _session_response(user, 200)

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers.get("Authorization", "").split(" ", 1)[1]
    session_service.revoke_session(token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    store = user.store
    return jsonify({
        "user": user.to_dict(),
        "store": store.to_dict() if store else None,
    }), 200
