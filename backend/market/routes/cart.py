# Overview: Flask API routes for cart operations; parses input and returns JSON responses.

# backend/market/routes/cart.py
from flask import Blueprint, request, jsonify, current_app, g

from ..services import cart_service
from ..decorators import require_auth
from market.errors import MarketError


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_auth
def get_cart_route():
    """Cart with live product prices; created lazily on first access."""
    try:
        return jsonify({"cart": cart_service.get_cart_summary(g.current_user.id)}), 200
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.post("")
@require_auth
def add_to_cart_route():
    """
    Add a product to the cart.

    Body: {"productId": 1, "quantity": 2}
    Returns 201 for a new line, 200 when merged into an existing one.
    """
    try:
        data = request.get_json(silent=True) or {}
        item, created = cart_service.add_item(
            g.current_user.id, data.get("productId"), data.get("quantity", 1)
        )
        return jsonify({
            "message": "Item added to cart" if created else "Cart item updated",
            "item": item.to_dict(),
        }), 201 if created else 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add item to cart")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("")
@require_auth
def clear_cart_route():
    try:
        cart_service.clear_cart(g.current_user.id)
        return jsonify({"message": "Cart cleared"}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@cart_bp.put("/<int:item_id>")
@require_auth
def update_cart_item_route(item_id: int):
    try:
        data = request.get_json(silent=True) or {}
        item = cart_service.update_item(g.current_user.id, item_id, data.get("quantity"))
        return jsonify({"item": item.to_dict()}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update cart item")
        return jsonify({"error": "Internal server error"}), 500


@cart_bp.delete("/<int:item_id>")
@require_auth
def remove_cart_item_route(item_id: int):
    try:
        cart_service.remove_item(g.current_user.id, item_id)
        return jsonify({"message": "Item removed from cart"}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
