# Overview: Flask API routes for products operations; parses input and returns JSON responses.

# backend/kasir/routes/products.py
"""
Product catalog routes.

SECURITY: All routes require authentication.
- Read operations: any signed-in user (the POS screen lists products)
- Write operations: admin role
"""
from flask import Blueprint, request, current_app

from ..services import catalog_service
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
)
from ..decorators import require_auth, require_role

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "price", "category", "stock", "image"},
    required_on_create={"name", "price"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    List all products.

    Query params:
    - category: str (optional) - exact category match
    """
    category = request.args.get("category")
    return catalog_service.list_products(category=category or None), 200


@products_bp.get("/categories")
@require_auth
def list_categories():
    return catalog_service.list_categories(), 200


@products_bp.get("/<product_id>")
@require_auth
def get_product(product_id: str):
    product = catalog_service.find_product(product_id)
    if not product:
        return {"error": "Product not found"}, 404
    return product.to_dict(), 200


@products_bp.post("")
@require_auth
@require_role("admin")
def create_product_route():
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    try:
        created = catalog_service.create_product(patch=patch)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500

    return created, 201


@products_bp.put("/<product_id>")
@require_auth
@require_role("admin")
def update_product_route(product_id: str):
    payload = request.get_json(silent=True) or {}

    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
    except ValidationError as e:
        return {"error": str(e)}, 400

    updated = catalog_service.update_product(product_id=product_id, patch=patch)
    if not updated:
        return {"error": "Product not found"}, 404

    return updated, 200


@products_bp.delete("/<product_id>")
@require_auth
@require_role("admin")
def delete_product_route(product_id: str):
    if not catalog_service.delete_product(product_id=product_id):
        return {"error": "Product not found"}, 404

    return {"ok": True}, 200
