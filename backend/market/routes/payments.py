# Overview: Flask API routes for payment operations; parses input and returns JSON responses.

# backend/market/routes/payments.py
from flask import Blueprint, request, jsonify, current_app, g

from ..services import payment_service
from ..decorators import require_auth
from market.errors import MarketError


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.post("")
@require_auth
def create_payment_route():
    """
    Start hosted checkout for a pending order.

    Body: {"orderId": 1, "paymentType": "bank_transfer"}
    Returns 201 with a new transaction, or 200 when a recent pending
    payment is reused.
    """
    try:
        body, created = payment_service.create_payment(g.current_user, request.get_json(silent=True))
        return jsonify(body), 201 if created else 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.get("")
@require_auth
def list_payments_route():
    return jsonify({"payments": payment_service.list_payments(g.current_user.id)}), 200


@payments_bp.get("/<int:payment_id>")
@require_auth
def get_payment_route(payment_id: int):
    try:
        return jsonify({"payment": payment_service.get_payment(g.current_user.id, payment_id)}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@payments_bp.post("/webhook")
def webhook_route():
    """Gateway notification. No session; the sha512 signature authenticates it."""
    try:
        result = payment_service.handle_notification(request.get_json(silent=True))
        return jsonify(result), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process payment notification")
        return jsonify({"error": "Internal server error"}), 500
