# Overview: YooKassa payment gateway adapter; creates and re-fetches payments over HTTPS.

"""
Payment Gateway Adapter (YooKassa v3 API)

WHY: Checkout needs a hosted payment page, and fulfillment must never trust
a webhook body. Every status used for a state transition comes from
get_payment(), fetched with our own credentials.

DESIGN:
- One short-lived httpx.Client per call, built from app config; no
  module-level credential state
- Bounded timeouts (HTTP_TIMEOUT_SECONDS)
- Responses are parsed into GatewayPayment at the boundary; callers never
  index into raw JSON
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

import httpx
from flask import current_app


PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_WAITING_FOR_CAPTURE = "waiting_for_capture"
PAYMENT_STATUS_SUCCEEDED = "succeeded"
PAYMENT_STATUS_CANCELED = "canceled"

KNOWN_PAYMENT_STATUSES = {
    PAYMENT_STATUS_PENDING,
    PAYMENT_STATUS_WAITING_FOR_CAPTURE,
    PAYMENT_STATUS_SUCCEEDED,
    PAYMENT_STATUS_CANCELED,
}


class PaymentGatewayError(Exception):
    """Raised when the gateway cannot be reached or returns an unusable answer."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class GatewayPayment:
    id: str
    status: str
    amount: int
    currency: str
    confirmation_url: str | None = None
    cancellation_party: str | None = None
    cancellation_reason: str | None = None
    metadata: dict = field(default_factory=dict)
    raw: dict = field(default_factory=dict)


def _client() -> httpx.Client:
    cfg = current_app.config
    shop_id = cfg.get("YOOKASSA_SHOP_ID")
    secret_key = cfg.get("YOOKASSA_SECRET_KEY")
    if not shop_id or not secret_key:
        raise PaymentGatewayError("YooKassa credentials not configured")
    return httpx.Client(
        base_url=cfg["YOOKASSA_API_BASE"],
        auth=(shop_id, secret_key),
        timeout=cfg.get("HTTP_TIMEOUT_SECONDS", 10.0),
        headers={"Accept": "application/json"},
    )


def format_amount(amount: int) -> str:
    """Gateway wire format: decimal string with two places."""
    return f"{Decimal(amount):.2f}"


def _parse_amount(raw_amount) -> tuple[int, str]:
    if not isinstance(raw_amount, dict):
        raise PaymentGatewayError("Payment response missing amount")
    try:
        value = Decimal(str(raw_amount.get("value")))
    except (InvalidOperation, TypeError):
        raise PaymentGatewayError("Payment response has invalid amount")
    if value != value.to_integral_value():
        raise PaymentGatewayError(f"Fractional payment amount not supported: {value}")
    return int(value), str(raw_amount.get("currency") or "")


def parse_payment(data: dict) -> GatewayPayment:
    """Validate a gateway payment object and convert it to GatewayPayment."""
    if not isinstance(data, dict):
        raise PaymentGatewayError("Payment response is not an object")

    payment_id = data.get("id")
    status = data.get("status")
    if not isinstance(payment_id, str) or not payment_id:
        raise PaymentGatewayError("Payment response missing id")
    if status not in KNOWN_PAYMENT_STATUSES:
        raise PaymentGatewayError(f"Unknown payment status: {status!r}")

    amount, currency = _parse_amount(data.get("amount"))

    confirmation = data.get("confirmation") or {}
    cancellation = data.get("cancellation_details") or {}
    metadata = data.get("metadata") or {}

    return GatewayPayment(
        id=payment_id,
        status=status,
        amount=amount,
        currency=currency,
        confirmation_url=confirmation.get("confirmation_url") if isinstance(confirmation, dict) else None,
        cancellation_party=cancellation.get("party") if isinstance(cancellation, dict) else None,
        cancellation_reason=cancellation.get("reason") if isinstance(cancellation, dict) else None,
        metadata=metadata if isinstance(metadata, dict) else {},
        raw=data,
    )


def _read_payment(response: httpx.Response) -> GatewayPayment:
    if response.status_code >= 400:
        try:
            description = response.json().get("description")
        except ValueError:
            description = None
        raise PaymentGatewayError(
            description or f"Gateway returned HTTP {response.status_code}",
            status_code=response.status_code,
        )
    try:
        data = response.json()
    except ValueError:
        raise PaymentGatewayError("Gateway returned invalid JSON")
    return parse_payment(data)


def create_payment(
    amount: int,
    return_url: str,
    metadata: dict,
    description: str | None = None,
    *,
    idempotence_key: str | None = None,
    client: httpx.Client | None = None,
) -> GatewayPayment:
    """
    Create a one-step (auto-capture) redirect payment.

    Returns the created payment; confirmation_url is where the buyer pays.

    Raises:
        PaymentGatewayError: transport failure or rejected request
    """
    body = {
        "amount": {
            "value": format_amount(amount),
            "currency": current_app.config.get("PAYMENT_CURRENCY", "RUB"),
        },
        "capture": True,
        "confirmation": {"type": "redirect", "return_url": return_url},
        "metadata": metadata,
    }
    if description:
        body["description"] = description[:128]

    headers = {"Idempotence-Key": idempotence_key or str(uuid.uuid4())}

    http = client or _client()
    try:
        response = http.post("/payments", json=body, headers=headers)
    except httpx.HTTPError as exc:
        raise PaymentGatewayError(f"Gateway request failed: {exc}")
    finally:
        if client is None:
            http.close()

    payment = _read_payment(response)
    if not payment.confirmation_url:
        raise PaymentGatewayError("Gateway did not return a confirmation URL")
    return payment


def get_payment(payment_id: str, *, client: httpx.Client | None = None) -> GatewayPayment:
    """
    Re-fetch a payment by id. This is the only trusted source of payment status.

    Raises:
        PaymentGatewayError: transport failure, non-2xx, or malformed payment
    """
    if not payment_id:
        raise PaymentGatewayError("payment_id is required")

    http = client or _client()
    try:
        response = http.get(f"/payments/{payment_id}")
    except httpx.HTTPError as exc:
        raise PaymentGatewayError(f"Gateway request failed: {exc}")
    finally:
        if client is None:
            http.close()

    return _read_payment(response)
