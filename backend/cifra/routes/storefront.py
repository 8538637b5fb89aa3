# Overview: Public storefront routes; published products and promo previews for buyers.

from flask import Blueprint, request, jsonify

from ..extensions import db
from ..models import Seller
from ..services import products_service, promotions_service
from ..services.promotions_service import PromoError


storefront_bp = Blueprint("storefront", __name__, url_prefix="/api/store")


@storefront_bp.get("/products/<int:product_id>")
def public_product_route(product_id: int):
    """Published product plus the seller's public profile."""
    product = products_service.get_published_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404

    seller = db.session.get(Seller, product.seller_id)
    body = product.to_public_dict()
    body["seller"] = {
        "display_name": seller.display_name if seller else None,
        "bio": seller.bio if seller else None,
        "accent_color": seller.accent_color if seller else None,
    }
    return jsonify(body), 200


@storefront_bp.post("/promos/validate")
def validate_promo_route():
    """
    Preview a promo code for a product before checkout.

    Request body: {"code": "SPRING-10", "productId": 12}
    """
    data = request.get_json(silent=True) or {}
    code = data.get("code")
    product_id = data.get("productId", data.get("product_id"))
    if not code or not isinstance(product_id, int) or isinstance(product_id, bool):
        return jsonify({"error": "code and productId are required"}), 400

    product = products_service.get_published_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404

    try:
        promo = promotions_service.validate_for_product(code, product)
    except PromoError as e:
        return jsonify({"valid": False, "error": str(e)}), 404

    return jsonify({
        "valid": True,
        "code": promo.code,
        "discount_percent": promo.discount_percent,
        "price": product.price,
        "final_price": promotions_service.apply_discount(product.price, promo.discount_percent),
    }), 200
