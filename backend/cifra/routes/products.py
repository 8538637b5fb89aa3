# Overview: Flask API routes for seller catalog operations; parses input and returns JSON responses.

# backend/cifra/routes/products.py
"""
Seller product management routes.

All routes require authentication and are scoped to g.current_seller.
Products are created as drafts; publishing goes through /status so the
"has at least one file" rule is checked in one place.
"""
from flask import Blueprint, request, g, current_app
from ..services import products_service
from ..services.products_service import ProductError
from ..models import Product
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
)
from ..decorators import require_auth

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "title", "description", "category", "price",
        "file_keys", "legacy_files", "cover_image_key",
    },
    required_on_create={"title", "description", "price"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _validated_patch(partial: bool) -> dict:
    payload = request.get_json(silent=True)
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch, min_price=current_app.config["MIN_PRODUCT_PRICE"])
    return patch


@products_bp.get("")
@require_auth
def list_products():
    """
    List the caller's products.

    Query params:
    - status: draft | published (optional)
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    return products_service.list_products(
        g.current_seller.id,
        status=request.args.get("status"),
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    p = products_service.get_product(g.current_seller.id, product_id)
    if not p:
        return {"error": "Product not found"}, 404
    return p.to_dict(), 200


@products_bp.post("")
@require_auth
def create_product_route():
    try:
        patch = _validated_patch(partial=False)
    except ValidationError as e:
        return {"error": str(e)}, 400

    return products_service.create_product(g.current_seller.id, patch), 201


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    try:
        patch = _validated_patch(partial=True)
    except ValidationError as e:
        return {"error": str(e)}, 400

    updated = products_service.update_product(g.current_seller.id, product_id, patch)
    if not updated:
        return {"error": "Product not found"}, 404

    return updated, 200


@products_bp.post("/<int:product_id>/status")
@require_auth
def set_status_route(product_id: int):
    """Request body: {"status": "draft" | "published"}"""
    payload = request.get_json(silent=True) or {}
    try:
        updated = products_service.set_status(g.current_seller.id, product_id, payload.get("status"))
    except ProductError as e:
        return {"error": str(e)}, 400

    if not updated:
        return {"error": "Product not found"}, 404
    return updated, 200


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    try:
        deleted = products_service.delete_product(g.current_seller.id, product_id)
    except ProductError as e:
        return {"error": str(e)}, 409

    if not deleted:
        return {"error": "Product not found"}, 404

    return {"ok": True}, 200
