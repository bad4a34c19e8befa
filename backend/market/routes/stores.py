# Overview: Flask API routes for store operations; parses input and returns JSON responses.

# backend/market/routes/stores.py
from flask import Blueprint, request, jsonify, current_app, g

from ..services import store_service
from ..services.store_service import StoreQuery, STORE_AREAS
from ..decorators import require_auth
from market.errors import MarketError
from market.validation import parse_pagination, pagination_meta


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
def list_stores_route():
    """
    Public store directory.

    Query params: q, sortBy (name|createdAt), sortOrder (asc|desc), page, limit.
    """
    try:
        page, limit = parse_pagination(request.args)
        params = StoreQuery(
            q=(request.args.get("q") or "").strip() or None,
            sort_by=request.args.get("sortBy", "createdAt"),
            sort_order=request.args.get("sortOrder", "desc"),
            page=page,
            limit=limit,
        )
        stores, total = store_service.list_stores(params)
        return jsonify({
            "stores": [s.to_dict() for s in stores],
            "pagination": pagination_meta(total, page, limit),
        }), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@stores_bp.post("")
@require_auth
def create_store_route():
    try:
        store = store_service.create_store(g.current_user.id, request.get_json(silent=True))
        return jsonify({"store": store.to_dict()}), 201
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create store")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.get("/me")
@require_auth
def my_store_route():
    store = store_service.get_user_store(g.current_user.id)
    return jsonify({
        "store": store.to_dict() if store else None,
        "hasStore": store is not None,
    }), 200


@stores_bp.get("/areas")
def list_areas_route():
    return jsonify({"areas": STORE_AREAS}), 200


@stores_bp.get("/dashboard/stats")
@require_auth
def dashboard_stats_route():
    try:
        return jsonify({"stats": store_service.get_dashboard_stats(g.current_user.id)}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load dashboard stats")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.get("/slug/<slug>")
def store_by_slug_route(slug: str):
    try:
        page, limit = parse_pagination(request.args, default_limit=12)
        store = store_service.get_store_by_slug(slug)
        products, total = store_service.list_store_products(store, page=page, limit=limit)
        return jsonify({
            "store": store.to_dict(),
            "products": [p.to_dict() for p in products],
            "pagination": pagination_meta(total, page, limit),
        }), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@stores_bp.get("/<int:store_id>")
def get_store_route(store_id: int):
    try:
        store = store_service.get_store(store_id)
        return jsonify({"store": store.to_dict()}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@stores_bp.put("/<int:store_id>")
@require_auth
def update_store_route(store_id: int):
    try:
        store = store_service.update_store(g.current_user.id, store_id, request.get_json(silent=True))
        return jsonify({"store": store.to_dict()}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update store")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.delete("/<int:store_id>")
@require_auth
def delete_store_route(store_id: int):
    try:
        store_service.delete_store(g.current_user.id, store_id)
        return jsonify({"message": "Store deleted successfully"}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete store")
        return jsonify({"error": "Internal server error"}), 500
