# Overview: Fulfillment engine; turns a verified gateway payment into a paid order, a sale and a download token.

"""
Fulfillment Engine

WHY: The gateway delivers webhooks at least once, sometimes concurrently.
Every delivery for the same payment must leave exactly one Sale, one
DownloadToken and one counter increment behind.

DESIGN PRINCIPLES:
- Never trust the webhook body: the payment is re-fetched from the gateway
  and only the fetched status drives a transition
- Idempotency gate is a conditional UPDATE (pending -> paid); zero rows
  affected means another delivery already handled the order
- Gate, Sale, counters, promo use, token and outbox rows commit together in
  one transaction; a crash anywhere rolls the order back to pending, so the
  next delivery redoes the whole thing
- Emails are sent after commit from the outbox and can only fail on their own

FEES (whole currency units):
    platform_fee = round_half_up(amount * PLATFORM_FEE_BPS / 10000) + PLATFORM_FLAT_FEE
    capped at amount; net_amount = amount - platform_fee
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Sale, Product, DownloadToken, Seller
from ..models.orders import (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PAID,
    ORDER_STATUS_CANCELED,
    ORDER_STATUS_FAILED,
)
from cifra.time_utils import utcnow
from . import notification_service, order_service, payment_gateway, promotions_service
from .concurrency import run_with_retry
from .payment_gateway import PaymentGatewayError, GatewayPayment
from .webhook_events import (
    PaymentSucceededEvent,
    PaymentCanceledEvent,
    parse_webhook_event,
)


# =============================================================================
# OUTCOMES
# =============================================================================

OUTCOME_FULFILLED = "fulfilled"
OUTCOME_ALREADY_HANDLED = "already_handled"
OUTCOME_ORDER_NOT_FOUND = "order_not_found"
OUTCOME_CANCELED = "canceled"
OUTCOME_FAILED = "failed"
OUTCOME_IGNORED = "ignored"

# Gateway cancellation reasons that mean the payment itself failed, as
# opposed to being abandoned or canceled by a party
PAYMENT_FAILURE_REASONS = {
    "3d_secure_failed",
    "call_issuer",
    "card_expired",
    "country_forbidden",
    "fraud_suspected",
    "general_decline",
    "identification_required",
    "insufficient_funds",
    "invalid_card_number",
    "invalid_csc",
    "issuer_unavailable",
    "payment_method_limit_exceeded",
    "payment_method_restricted",
}

TOKEN_BYTES = 32


class VerificationFailure(Exception):
    """The gateway could not confirm what the webhook claims. Nothing was changed."""
    pass


class FulfillmentError(Exception):
    """Fulfillment could not be written; the order stays pending and is retryable."""
    pass


@dataclass(frozen=True)
class FulfillmentResult:
    outcome: str
    order_id: int | None = None
    sale_id: int | None = None
    download_token: str | None = None
    notifications: dict | None = None


@dataclass(frozen=True)
class FeeBreakdown:
    amount: int
    platform_fee: int
    net_amount: int


# =============================================================================
# FEES
# =============================================================================

def compute_fees(amount: int, fee_bps: int | None = None, flat_fee: int | None = None) -> FeeBreakdown:
    """
    Split a gross amount into platform fee and seller net.

    Invariant: platform_fee + net_amount == amount, net_amount >= 0.
    """
    if amount < 0:
        raise ValueError("amount cannot be negative")
    cfg = current_app.config
    if fee_bps is None:
        fee_bps = cfg.get("PLATFORM_FEE_BPS", 500)
    if flat_fee is None:
        flat_fee = cfg.get("PLATFORM_FLAT_FEE", 30)

    percent_part = (Decimal(amount) * Decimal(fee_bps) / Decimal(10000)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    platform_fee = min(int(percent_part) + flat_fee, amount)
    return FeeBreakdown(amount=amount, platform_fee=platform_fee, net_amount=amount - platform_fee)


def generate_download_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


# =============================================================================
# WEBHOOK ENTRY POINT
# =============================================================================

def handle_webhook(payload) -> FulfillmentResult:
    """
    Validate a gateway webhook payload and dispatch it.

    Raises:
        InvalidWebhookPayload: payload shape is wrong
        VerificationFailure: gateway did not confirm the event
    """
    event = parse_webhook_event(payload)

    if isinstance(event, PaymentSucceededEvent):
        return handle_payment_succeeded(event.payment_id)
    if isinstance(event, PaymentCanceledEvent):
        return handle_payment_canceled(event.payment_id)

    current_app.logger.info("Ignoring unsupported webhook event %s (payment %s)", event.event, event.payment_id)
    return FulfillmentResult(outcome=OUTCOME_IGNORED)


def _verify(external_payment_id: str, expected_status: str) -> GatewayPayment:
    try:
        payment = payment_gateway.get_payment(external_payment_id)
    except PaymentGatewayError as exc:
        current_app.logger.error("Could not verify payment %s with gateway: %s", external_payment_id, exc)
        raise VerificationFailure(f"Payment {external_payment_id} could not be verified: {exc}")

    if payment.status != expected_status:
        current_app.logger.warning(
            "Gateway reports payment %s as %s, webhook claimed %s",
            external_payment_id, payment.status, expected_status,
        )
        raise VerificationFailure(
            f"Payment {external_payment_id} is {payment.status}, expected {expected_status}"
        )
    return payment


# =============================================================================
# PAYMENT SUCCEEDED
# =============================================================================

def handle_payment_succeeded(external_payment_id: str) -> FulfillmentResult:
    """
    Fulfill the order of a payment the gateway confirms as succeeded.

    Returns:
        FulfillmentResult with outcome fulfilled, already_handled or
        order_not_found

    Raises:
        VerificationFailure: gateway unreachable, status not succeeded, or
            amount differs from the order (no state changed)
        FulfillmentError: the fulfillment transaction failed (order left
            pending, safe to redeliver)
    """
    payment = _verify(external_payment_id, payment_gateway.PAYMENT_STATUS_SUCCEEDED)

    order = order_service.find_by_external_payment_id(external_payment_id)
    if order is None:
        current_app.logger.warning("No order for succeeded payment %s; acknowledging", external_payment_id)
        return FulfillmentResult(outcome=OUTCOME_ORDER_NOT_FOUND)

    if order.status != ORDER_STATUS_PENDING:
        current_app.logger.info("Order %s already %s; skipping fulfillment", order.id, order.status)
        return FulfillmentResult(outcome=OUTCOME_ALREADY_HANDLED, order_id=order.id)

    if payment.amount != order.amount:
        current_app.logger.error(
            "Amount mismatch for order %s: order %s, gateway %s",
            order.id, order.amount, payment.amount,
        )
        raise VerificationFailure(
            f"Payment {external_payment_id} amount {payment.amount} does not match order amount {order.amount}"
        )

    return fulfill_order(order.id, provider_payload=payment.raw)


def fulfill_order(order_id: int, provider_payload: dict | None = None) -> FulfillmentResult:
    """
    Primary step: write the paid order and all its ledger effects in one
    transaction, then dispatch queued notifications best-effort.

    Callers are responsible for having verified the payment.
    """
    def _op():
        try:
            return _fulfill_locked(order_id, provider_payload)
        except IntegrityError:
            # A concurrent delivery committed the same order first
            db.session.rollback()
            current_app.logger.info("Order %s fulfilled concurrently; skipping", order_id)
            return FulfillmentResult(outcome=OUTCOME_ALREADY_HANDLED, order_id=order_id)

    try:
        result = run_with_retry(_op)
    except FulfillmentError:
        db.session.rollback()
        raise
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Fulfillment failed for order %s; left pending", order_id)
        raise FulfillmentError(f"Fulfillment failed for order {order_id}: {exc}")

    if result.outcome != OUTCOME_FULFILLED:
        return result

    try:
        notifications = notification_service.dispatch_for_order(order_id)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Notification dispatch crashed for order %s; left in outbox", order_id)
        notifications = None

    return FulfillmentResult(
        outcome=result.outcome,
        order_id=result.order_id,
        sale_id=result.sale_id,
        download_token=result.download_token,
        notifications=notifications,
    )


def _fulfill_locked(order_id: int, provider_payload: dict | None) -> FulfillmentResult:
    paid_at = utcnow()
    fields = {"paid_at": paid_at}
    if provider_payload is not None:
        fields["provider_metadata"] = provider_payload

    # Idempotency gate
    if not order_service.transition(order_id, ORDER_STATUS_PENDING, ORDER_STATUS_PAID, fields):
        db.session.rollback()
        order = order_service.get_order(order_id)
        if order is None:
            current_app.logger.warning("Order %s disappeared before fulfillment", order_id)
            return FulfillmentResult(outcome=OUTCOME_ORDER_NOT_FOUND)
        current_app.logger.info("Order %s already %s; skipping fulfillment", order_id, order.status)
        return FulfillmentResult(outcome=OUTCOME_ALREADY_HANDLED, order_id=order_id)

    order = order_service.get_order(order_id)
    product = db.session.get(Product, order.product_id)
    if product is None:
        raise FulfillmentError(f"Product {order.product_id} for order {order_id} not found")

    fees = compute_fees(order.amount)

    sale = Sale(
        order_id=order.id,
        product_id=order.product_id,
        seller_id=order.seller_id,
        buyer_email=order.buyer_email,
        amount=fees.amount,
        platform_fee=fees.platform_fee,
        net_amount=fees.net_amount,
    )
    db.session.add(sale)

    db.session.query(Product).filter(Product.id == product.id).update(
        {
            Product.sales_count: Product.sales_count + 1,
            Product.revenue: Product.revenue + fees.net_amount,
            Product.version_id: Product.version_id + 1,
        },
        synchronize_session=False,
    )

    if order.promo_id is not None:
        if not promotions_service.increment_uses(order.promo_id):
            current_app.logger.warning(
                "Promo %s for order %s no longer exists; use not counted", order.promo_id, order.id
            )

    token = DownloadToken(
        token=generate_download_token(),
        order_id=order.id,
        product_id=order.product_id,
        buyer_email=order.buyer_email,
        expires_at=paid_at + timedelta(days=current_app.config.get("DOWNLOAD_TOKEN_TTL_DAYS", 30)),
        used=False,
        download_count=0,
    )
    db.session.add(token)
    db.session.flush()

    seller = db.session.get(Seller, order.seller_id)
    notification_service.enqueue_purchase_notifications(
        order=order, sale=sale, token=token, product=product, seller=seller,
    )

    db.session.commit()

    current_app.logger.info(
        "Fulfilled order %s: sale %s, amount %s, fee %s, net %s",
        order.id, sale.id, fees.amount, fees.platform_fee, fees.net_amount,
    )
    return FulfillmentResult(
        outcome=OUTCOME_FULFILLED,
        order_id=order.id,
        sale_id=sale.id,
        download_token=token.token,
    )


def fulfill_order_without_verification(order_id: int) -> FulfillmentResult:
    """
    Manual fulfillment for a known order, skipping the gateway.

    Only reachable through the test webhook route, which is off unless
    TEST_WEBHOOK_ENABLED is set.
    """
    order = order_service.get_order(order_id)
    if order is None:
        return FulfillmentResult(outcome=OUTCOME_ORDER_NOT_FOUND)
    if order.status != ORDER_STATUS_PENDING:
        return FulfillmentResult(outcome=OUTCOME_ALREADY_HANDLED, order_id=order.id)
    current_app.logger.warning("Fulfilling order %s without gateway verification", order_id)
    return fulfill_order(order.id, provider_payload={"source": "test-webhook"})


# =============================================================================
# PAYMENT CANCELED
# =============================================================================

def _closing_status(payment: GatewayPayment) -> str:
    if payment.cancellation_reason in PAYMENT_FAILURE_REASONS:
        return ORDER_STATUS_FAILED
    return ORDER_STATUS_CANCELED


def handle_payment_canceled(external_payment_id: str) -> FulfillmentResult:
    """
    Close the order of a payment the gateway confirms as canceled.

    pending -> failed when the cancellation reason is a payment failure,
    pending -> canceled otherwise. No sale, token, counters or promo use.

    Raises:
        VerificationFailure: gateway unreachable or status not canceled
    """
    payment = _verify(external_payment_id, payment_gateway.PAYMENT_STATUS_CANCELED)

    order = order_service.find_by_external_payment_id(external_payment_id)
    if order is None:
        current_app.logger.warning("No order for canceled payment %s; acknowledging", external_payment_id)
        return FulfillmentResult(outcome=OUTCOME_ORDER_NOT_FOUND)

    to_status = _closing_status(payment)
    order_id = order.id

    def _op():
        moved = order_service.transition(
            order_id,
            ORDER_STATUS_PENDING,
            to_status,
            {"closed_at": utcnow(), "provider_metadata": payment.raw},
        )
        db.session.commit()
        return moved

    if not run_with_retry(_op):
        current_app.logger.info("Order %s no longer pending; cancellation ignored", order_id)
        return FulfillmentResult(outcome=OUTCOME_ALREADY_HANDLED, order_id=order_id)

    current_app.logger.info(
        "Order %s %s (party=%s, reason=%s)",
        order_id, to_status, payment.cancellation_party, payment.cancellation_reason,
    )
    outcome = OUTCOME_FAILED if to_status == ORDER_STATUS_FAILED else OUTCOME_CANCELED
    return FulfillmentResult(outcome=outcome, order_id=order_id)
