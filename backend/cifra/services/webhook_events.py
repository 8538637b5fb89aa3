"""
Gateway webhook payloads, validated into explicit event types.

The payload is only a trigger: it tells us which payment to re-fetch.
Nothing else from it is read.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


EVENT_PAYMENT_SUCCEEDED = "payment.succeeded"
EVENT_PAYMENT_CANCELED = "payment.canceled"


class InvalidWebhookPayload(ValueError):
    """Payload does not have the {event, object: {id}} shape."""


@dataclass(frozen=True)
class PaymentSucceededEvent:
    payment_id: str


@dataclass(frozen=True)
class PaymentCanceledEvent:
    payment_id: str


@dataclass(frozen=True)
class UnsupportedEvent:
    event: str
    payment_id: str | None = None


WebhookEvent = Union[PaymentSucceededEvent, PaymentCanceledEvent, UnsupportedEvent]


def parse_webhook_event(payload) -> WebhookEvent:
    if not isinstance(payload, dict):
        raise InvalidWebhookPayload("payload must be a JSON object")

    event = payload.get("event")
    if not isinstance(event, str) or not event:
        raise InvalidWebhookPayload("event is required")

    obj = payload.get("object")
    payment_id = obj.get("id") if isinstance(obj, dict) else None
    if payment_id is not None and (not isinstance(payment_id, str) or not payment_id.strip()):
        payment_id = None

    if event == EVENT_PAYMENT_SUCCEEDED:
        if payment_id is None:
            raise InvalidWebhookPayload("object.id is required")
        return PaymentSucceededEvent(payment_id=payment_id.strip())
    if event == EVENT_PAYMENT_CANCELED:
        if payment_id is None:
            raise InvalidWebhookPayload("object.id is required")
        return PaymentCanceledEvent(payment_id=payment_id.strip())
    return UnsupportedEvent(event=event, payment_id=payment_id)
