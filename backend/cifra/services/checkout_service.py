# Overview: Storefront checkout; prices the purchase server-side, opens a gateway payment, records a pending order.

from __future__ import annotations

import uuid
from dataclasses import dataclass

from flask import current_app

from . import order_service, payment_gateway, products_service, promotions_service
from .payment_gateway import PaymentGatewayError
from .promotions_service import PromoError
from ..validation import validate_email, ValidationError


class CheckoutError(Exception):
    """Raised when checkout cannot start."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class CheckoutResult:
    order_id: int
    payment_id: str
    confirmation_url: str
    amount: int
    promo_code: str | None = None


def quote_price(product, promo_code: str | None) -> tuple[int, object | None]:
    """Amount to charge for product with an optional code; (amount, promo)."""
    if not promo_code:
        return product.price, None
    try:
        promo = promotions_service.validate_for_product(promo_code, product)
    except PromoError as exc:
        raise CheckoutError(str(exc))
    return promotions_service.apply_discount(product.price, promo.discount_percent), promo


def start_checkout(product_id: int, buyer_email: str, promo_code: str | None = None) -> CheckoutResult:
    """
    Begin a purchase.

    The amount is always derived from the product price and promo here;
    nothing the client sends about price is used.

    Raises:
        CheckoutError: invalid input, unpublished product, gateway rejection
    """
    try:
        email = validate_email(buyer_email)
    except ValidationError as exc:
        raise CheckoutError(str(exc))

    product = products_service.get_published_product(product_id)
    if product is None:
        raise CheckoutError("Product not found", status_code=404)

    amount, promo = quote_price(product, promo_code)
    if amount < 1:
        raise CheckoutError("Discounted amount is too small to charge")

    idempotence_key = str(uuid.uuid4())
    return_url = f"{current_app.config['SITE_URL']}/payment/success"
    try:
        payment = payment_gateway.create_payment(
            amount,
            return_url,
            metadata={"productId": str(product.id), "customerEmail": email},
            description=f"Purchase: {product.title}",
            idempotence_key=idempotence_key,
        )
    except PaymentGatewayError as exc:
        current_app.logger.error("Gateway rejected payment for product %s: %s", product.id, exc)
        raise CheckoutError(f"Payment could not be created: {exc}", status_code=502)

    order = order_service.create_order(
        product=product,
        buyer_email=email,
        amount=amount,
        external_payment_id=payment.id,
        promo=promo,
        provider_metadata=payment.raw,
    )
    current_app.logger.info("Checkout started: order %s, payment %s, amount %s", order.id, payment.id, amount)

    return CheckoutResult(
        order_id=order.id,
        payment_id=payment.id,
        confirmation_url=payment.confirmation_url,
        amount=amount,
        promo_code=promo.code if promo else None,
    )
