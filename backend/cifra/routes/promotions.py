from __future__ import annotations

from flask import Blueprint, jsonify, request, g

from ..decorators import require_auth
from ..models import PromoCode
from ..services import promotions_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_promo,
    ValidationError,
    ConflictError,
)

PROMO_POLICY = ModelValidationPolicy(
    writable_fields={"code", "discount_percent", "is_active"},
    required_on_create={"code", "discount_percent"},
)

promotions_bp = Blueprint("promotions", __name__, url_prefix="/api/promos")


def _validated_patch(partial: bool) -> dict:
    patch = validate_payload(model=PromoCode, payload=request.get_json(silent=True), policy=PROMO_POLICY, partial=partial)
    enforce_rules_promo(patch)
    return patch


@promotions_bp.route("", methods=["GET"])
@require_auth
def list_promos():
    active_only = request.args.get("active_only", "false").lower() == "true"
    return jsonify(promotions_service.list_promos(g.current_seller.id, active_only))


@promotions_bp.route("", methods=["POST"])
@require_auth
def create_promo():
    try:
        patch = _validated_patch(partial=False)
        result = promotions_service.create_promo(g.current_seller.id, patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify(result), 201


@promotions_bp.route("/<int:promo_id>", methods=["PATCH"])
@require_auth
def update_promo(promo_id: int):
    try:
        patch = _validated_patch(partial=True)
        result = promotions_service.update_promo(g.current_seller.id, promo_id, patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    if not result:
        return jsonify({"error": "Not found"}), 404
    return jsonify(result)


@promotions_bp.route("/<int:promo_id>", methods=["DELETE"])
@require_auth
def delete_promo(promo_id: int):
    if not promotions_service.delete_promo(g.current_seller.id, promo_id):
        return jsonify({"error": "Not found"}), 404
    return jsonify({"ok": True})
