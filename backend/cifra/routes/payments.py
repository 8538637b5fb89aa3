# Overview: Flask API routes for checkout and gateway webhooks; parses input and returns JSON responses.

# backend/cifra/routes/payments.py
"""
Payment API Routes

WHY: The only way money enters the system. Checkout opens a gateway
payment; the gateway webhook closes it.

DESIGN:
- POST /api/payment/create: public checkout, amount computed server-side
- POST /api/yookassa/webhook: gateway notifications; 200 acknowledges the
  delivery (including duplicates and unknown payments), 500 asks the gateway
  to redeliver because the payment could not be verified
- POST /api/test-webhook: manual fulfillment without verification, answers
  404 unless TEST_WEBHOOK_ENABLED is set
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import checkout_service, fulfillment_service
from ..services.checkout_service import CheckoutError
from ..services.fulfillment_service import VerificationFailure, FulfillmentError
from ..services.webhook_events import InvalidWebhookPayload


payments_bp = Blueprint("payments", __name__, url_prefix="/api")


# =============================================================================
# CHECKOUT
# =============================================================================

@payments_bp.post("/payment/create")
def create_payment_route():
    """
    Start a purchase.

    Request body:
    {
        "productId": 12,
        "customerEmail": "buyer@example.com",
        "promoCode": "SPRING-10"   (optional)
    }

    Any "amount" sent by the client is ignored.

    Returns:
        {"confirmationUrl", "orderId", "paymentId", "amount"}
    """
    data = request.get_json(silent=True) or {}
    product_id = data.get("productId", data.get("product_id"))
    email = data.get("customerEmail", data.get("email"))
    promo_code = data.get("promoCode", data.get("promo_code"))

    if isinstance(product_id, str) and product_id.isdigit():
        product_id = int(product_id)
    if not isinstance(product_id, int) or isinstance(product_id, bool) or not email:
        return jsonify({"error": "Missing required fields: productId, customerEmail"}), 400

    try:
        result = checkout_service.start_checkout(product_id, email, promo_code or None)
    except CheckoutError as e:
        return jsonify({"error": str(e)}), e.status_code
    except Exception:
        current_app.logger.exception("Payment creation failed for product %s", product_id)
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "confirmationUrl": result.confirmation_url,
        "orderId": result.order_id,
        "paymentId": result.payment_id,
        "amount": result.amount,
        "promoCode": result.promo_code,
    }), 200


# =============================================================================
# GATEWAY WEBHOOK
# =============================================================================

@payments_bp.post("/yookassa/webhook")
def yookassa_webhook_route():
    """
    Gateway notification endpoint.

    Responses:
        200 {"received": true}: processed, duplicate, unknown order,
            unsupported event or malformed payload (no retry wanted)
        200 {"received": true}: fulfillment failed after verification; the
            order stays pending and can be replayed
        500 {"error"}: payment could not be verified; the gateway will
            redeliver
    """
    payload = request.get_json(silent=True)

    try:
        result = fulfillment_service.handle_webhook(payload)
    except InvalidWebhookPayload as e:
        current_app.logger.warning("Malformed webhook payload: %s", e)
        return jsonify({"received": True}), 200
    except VerificationFailure as e:
        return jsonify({"error": str(e)}), 500
    except FulfillmentError:
        current_app.logger.exception("Webhook fulfillment failed; order left pending")
        return jsonify({"received": True}), 200
    except Exception:
        current_app.logger.exception("Webhook processing crashed")
        return jsonify({"received": True}), 200

    current_app.logger.info("Webhook processed: %s (order %s)", result.outcome, result.order_id)
    return jsonify({"received": True}), 200


@payments_bp.post("/test-webhook")
def test_webhook_route():
    """
    Fulfill an order without asking the gateway.

    Request body: {"orderId": 42}
    """
    if not current_app.config.get("TEST_WEBHOOK_ENABLED"):
        return jsonify({"error": "Not found"}), 404

    data = request.get_json(silent=True) or {}
    order_id = data.get("orderId", data.get("order_id"))
    if isinstance(order_id, str) and order_id.isdigit():
        order_id = int(order_id)
    if not isinstance(order_id, int) or isinstance(order_id, bool):
        return jsonify({"error": "orderId is required"}), 400

    try:
        result = fulfillment_service.fulfill_order_without_verification(order_id)
    except FulfillmentError as e:
        return jsonify({"error": str(e)}), 500

    if result.outcome == fulfillment_service.OUTCOME_ORDER_NOT_FOUND:
        return jsonify({"error": "Order not found"}), 404

    return jsonify({
        "success": True,
        "outcome": result.outcome,
        "orderId": result.order_id,
        "downloadToken": result.download_token,
        "notifications": result.notifications,
    }), 200
