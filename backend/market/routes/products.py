# Overview: Flask API routes for product operations; parses input and returns JSON responses.

# backend/market/routes/products.py
from flask import Blueprint, request, jsonify, current_app, g

from ..services import products_service
from ..services.products_service import ProductQuery
from ..decorators import require_auth
from market.errors import MarketError
from market.money import parse_price
from market.validation import parse_pagination, pagination_meta


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _price_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return parse_price(raw, name)


@products_bp.get("")
def search_products_route():
    """
    Public catalog search (active products only).

    Query params: q, minPrice, maxPrice, sortBy (name|price|createdAt),
    sortOrder (asc|desc), page, limit.
    """
    try:
        page, limit = parse_pagination(request.args, default_limit=20)
        params = ProductQuery(
            q=(request.args.get("q") or "").strip() or None,
            min_price_cents=_price_arg("minPrice"),
            max_price_cents=_price_arg("maxPrice"),
            sort_by=request.args.get("sortBy", "createdAt"),
            sort_order=request.args.get("sortOrder", "desc"),
            page=page,
            limit=limit,
        )
        products, total = products_service.search_products(params)
        return jsonify({
            "products": [p.to_dict(include_store=True) for p in products],
            "pagination": pagination_meta(total, page, limit),
        }), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.post("")
@require_auth
def create_product_route():
    try:
        product = products_service.create_product(g.current_user.id, request.get_json(silent=True))
        return jsonify({"product": product.to_dict(include_store=True)}), 201
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/me")
@require_auth
def my_products_route():
    products = products_service.list_user_products(g.current_user.id)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@products_bp.get("/slug/<slug>")
def product_by_slug_route(slug: str):
    try:
        product = products_service.get_active_product_by_slug(slug)
        return jsonify({"product": product.to_dict(include_store=True)}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": product.to_dict(include_store=True)}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    try:
        product = products_service.update_product(
            g.current_user.id, product_id, request.get_json(silent=True)
        )
        return jsonify({"product": product.to_dict(include_store=True)}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(g.current_user.id, product_id)
        return jsonify({"message": "Product deleted successfully"}), 200
    except MarketError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
