# Overview: Flask API routes for the tourism-manager area (tickets, ticket orders, stats).

# backend/market/routes/tourism.py
"""
Tourism manager API routes

Every route requires the tourism-manager role. Other callers get 401 so
the client sends them back to login.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import tourism_service
from ..decorators import require_auth, require_role
from ..models.auth import ROLE_TOURISM_MANAGER
from market.errors import MarketError


tourism_bp = Blueprint("tourism", __name__, url_prefix="/api/tourism-manager")


@tourism_bp.get("/tickets")
@require_auth
@require_role(ROLE_TOURISM_MANAGER, status_code=401)
def list_tickets_route():
    tickets = tourism_service.list_tickets(g.current_user.id)
    return jsonify({"tickets": [t.to_dict() for t in tickets]}), 200


@tourism_bp.post("/tickets")
@require_auth
@require_role(ROLE_TOURISM_MANAGER, status_code=401)
def create_ticket_route():
    """
    Create a ticket product. The manager's store is created on first use.

    Body: {"name": "Entry Pass", "price": "50000", "stock": 100, "description": "..."}
    """
    try:
        ticket = tourism_service.create_ticket(g.current_user, request.get_json(silent=True))
        return jsonify({"ticket": ticket.to_dict()}), 201
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create ticket")
        return jsonify({"error": "Internal server error"}), 500


@tourism_bp.get("/tickets/<int:ticket_id>")
@require_auth
@require_role(ROLE_TOURISM_MANAGER, status_code=401)
def get_ticket_route(ticket_id: int):
    try:
        ticket = tourism_service.get_ticket(g.current_user.id, ticket_id)
        return jsonify({"ticket": ticket.to_dict()}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@tourism_bp.put("/tickets/<int:ticket_id>")
@require_auth
@require_role(ROLE_TOURISM_MANAGER, status_code=401)
def update_ticket_route(ticket_id: int):
    try:
        ticket = tourism_service.update_ticket(g.current_user.id, ticket_id, request.get_json(silent=True))
        return jsonify({"ticket": ticket.to_dict()}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update ticket")
        return jsonify({"error": "Internal server error"}), 500


@tourism_bp.delete("/tickets/<int:ticket_id>")
@require_auth
@require_role(ROLE_TOURISM_MANAGER, status_code=401)
def delete_ticket_route(ticket_id: int):
    try:
        tourism_service.delete_ticket(g.current_user.id, ticket_id)
        return jsonify({"message": "Ticket deleted successfully"}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete ticket")
        return jsonify({"error": "Internal server error"}), 500


@tourism_bp.get("/orders")
@require_auth
@require_role(ROLE_TOURISM_MANAGER, status_code=401)
def list_orders_route():
    return jsonify({"orders": tourism_service.list_orders(g.current_user.id)}), 200


@tourism_bp.get("/orders/<int:order_id>")
@require_auth
@require_role(ROLE_TOURISM_MANAGER, status_code=401)
def get_order_route(order_id: int):
    try:
        return jsonify({"order": tourism_service.get_order(g.current_user.id, order_id)}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@tourism_bp.put("/orders/<int:order_id>")
@require_auth
@require_role(ROLE_TOURISM_MANAGER, status_code=401)
def update_order_status_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        change = tourism_service.update_order_status(g.current_user.id, order_id, data.get("status"))
        return jsonify(change.to_dict()), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update ticket order status")
        return jsonify({"error": "Internal server error"}), 500


@tourism_bp.get("/stats")
@require_auth
@require_role(ROLE_TOURISM_MANAGER, status_code=401)
def stats_route():
    try:
        return jsonify({"stats": tourism_service.get_stats(g.current_user.id)}), 200
    except Exception:
        current_app.logger.exception("Failed to load tourism stats")
        return jsonify({"error": "Internal server error"}), 500
