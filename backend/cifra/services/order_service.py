# Overview: Order ledger; records purchase intents and moves them through their lifecycle.

"""
Order Ledger

DESIGN PRINCIPLES:
- Orders are created pending by checkout, before the buyer is redirected
- Status changes go through transition(), a conditional UPDATE on the
  current status; zero rows affected means someone else got there first
- pending is the only non-terminal status
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, Product, PromoCode
from ..models.orders import (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PAID,
    ORDER_STATUS_CANCELED,
    ORDER_STATUS_FAILED,
    ORDER_STATUSES,
)


class OrderError(Exception):
    """Raised for invalid order operations."""
    pass


ALLOWED_TRANSITIONS = {
    (ORDER_STATUS_PENDING, ORDER_STATUS_PAID),
    (ORDER_STATUS_PENDING, ORDER_STATUS_CANCELED),
    (ORDER_STATUS_PENDING, ORDER_STATUS_FAILED),
}

# Columns a transition may stamp alongside the status
TRANSITION_FIELDS = {"paid_at", "closed_at", "provider_metadata"}


def create_order(
    *,
    product: Product,
    buyer_email: str,
    amount: int,
    external_payment_id: str,
    promo: PromoCode | None = None,
    provider_metadata: dict | None = None,
) -> Order:
    """Record a pending order for a gateway payment. Commits."""
    if amount < 0:
        raise OrderError("Order amount cannot be negative")
    if not external_payment_id:
        raise OrderError("external_payment_id is required")

    order = Order(
        product_id=product.id,
        seller_id=product.seller_id,
        promo_id=promo.id if promo else None,
        buyer_email=buyer_email,
        amount=amount,
        status=ORDER_STATUS_PENDING,
        external_payment_id=external_payment_id,
        provider_metadata=provider_metadata,
    )
    db.session.add(order)
    db.session.commit()
    return order


def get_order(order_id: int) -> Order | None:
    return db.session.get(Order, order_id)


def find_by_external_payment_id(external_payment_id: str) -> Order | None:
    return db.session.query(Order).filter_by(external_payment_id=external_payment_id).first()


def transition(order_id: int, from_status: str, to_status: str, fields: dict | None = None) -> bool:
    """
    Move an order from from_status to to_status, only if it is still in from_status.

    Returns:
        True if this call performed the transition, False on conflict
        (the order is no longer in from_status, or does not exist).

    Does not commit: the caller owns the surrounding transaction.

    Raises:
        OrderError: transition not part of the lifecycle, or unknown field
    """
    if from_status not in ORDER_STATUSES or to_status not in ORDER_STATUSES:
        raise OrderError(f"Unknown order status: {from_status} -> {to_status}")
    if (from_status, to_status) not in ALLOWED_TRANSITIONS:
        raise OrderError(f"Transition {from_status} -> {to_status} is not allowed")

    values = {"status": to_status}
    for key, value in (fields or {}).items():
        if key not in TRANSITION_FIELDS:
            raise OrderError(f"Field not allowed in transition: {key}")
        values[key] = value

    rows = (
        db.session.query(Order)
        .filter(Order.id == order_id, Order.status == from_status)
        .update(values, synchronize_session=False)
    )
    if rows:
        # Keep any loaded instance in step with the row we just wrote
        loaded = db.session.get(Order, order_id)
        if loaded is not None:
            db.session.refresh(loaded)
    return rows == 1


def list_orders_for_seller(seller_id: int, status: str | None = None, limit: int = 100) -> list[Order]:
    q = db.session.query(Order).filter_by(seller_id=seller_id)
    if status:
        if status not in ORDER_STATUSES:
            raise OrderError(f"Unknown order status: {status}")
        q = q.filter_by(status=status)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).all()
