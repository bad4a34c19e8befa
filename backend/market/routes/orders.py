# Overview: Flask API routes for order operations; parses input and returns JSON responses.

# backend/market/routes/orders.py
from flask import Blueprint, request, jsonify, current_app, g

from ..services import order_service, qr_service
from ..decorators import require_auth
from market.errors import MarketError
from market.validation import parse_pagination, pagination_meta


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create an order from explicit lines.

    Body:
    {
        "addressId": 1,
        "items": [{"productId": 1, "quantity": 2}]
    }

    Fees are read once, every line is validated against locked product
    rows, then header, lines, stock decrement and cart clearing commit
    together.
    """
    try:
        order, items = order_service.create_order(g.current_user.id, request.get_json(silent=True))
        return jsonify({
            "order": order.to_dict(),
            "items": [item.to_dict() for item in items],
        }), 201
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_auth
def list_orders_route():
    try:
        page, limit = parse_pagination(request.args)
        orders, total = order_service.list_buyer_orders(g.current_user.id, page=page, limit=limit)
        return jsonify({
            "orders": orders,
            "pagination": pagination_meta(total, page, limit),
        }), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/seller")
@require_auth
def list_seller_orders_route():
    """Orders containing the caller's products, with per-store totals."""
    try:
        page, limit = parse_pagination(request.args)
        orders, total = order_service.list_seller_orders(g.current_user.id, page=page, limit=limit)
        return jsonify({
            "orders": orders,
            "pagination": pagination_meta(total, page, limit),
        }), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        return jsonify({"order": order_service.get_order_for_user(g.current_user.id, order_id)}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@orders_bp.put("/<int:order_id>")
@require_auth
def update_order_status_route(order_id: int):
    """
    Body: {"status": "paid"}

    Moving to "paid" issues ticket QR codes; the response reports how many
    were issued and how many failed.
    """
    try:
        data = request.get_json(silent=True) or {}
        change = order_service.update_order_status(g.current_user.id, order_id, data.get("status"))
        return jsonify(change.to_dict()), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/generate-qr")
@require_auth
def generate_qr_route(order_id: int):
    try:
        result = qr_service.generate_missing_qrs(g.current_user.id, order_id)
        return jsonify({
            "message": "QR codes generated",
            "ticketQrs": result.to_dict(),
            "qrCodes": [qr.to_dict() for qr in qr_service.list_order_qrs(order_id)],
        }), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to generate QR codes")
        return jsonify({"error": "Internal server error"}), 500
