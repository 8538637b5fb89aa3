# Overview: Notification outbox; queues purchase emails in the fulfillment transaction, sends them after commit.

"""
Notification Outbox

WHY: Email is a secondary effect. Fulfillment writes outbox rows in the same
transaction as the Sale and DownloadToken, then delivery runs after commit.
A failed send leaves a failed row (with the error) that can be retried with
`flask notifications dispatch`; the fulfillment itself stays committed.
"""

from __future__ import annotations

from flask import current_app, render_template

from ..extensions import db
from ..models import NotificationOutbox, Order, Sale, DownloadToken, Product, Seller
from ..models.notifications import (
    NOTIFICATION_BUYER_PURCHASE,
    NOTIFICATION_SELLER_SALE,
    NOTIFICATION_PENDING,
    NOTIFICATION_SENT,
    NOTIFICATION_FAILED,
)
from cifra.time_utils import utcnow
from . import email_client


def download_url_for(token: str) -> str:
    return f"{current_app.config['SITE_URL']}/download/{token}"


def enqueue_purchase_notifications(
    *,
    order: Order,
    sale: Sale,
    token: DownloadToken,
    product: Product,
    seller: Seller | None,
) -> list[NotificationOutbox]:
    """
    Queue the buyer receipt and, when the seller wants it, the sale notice.

    Does not commit; rows become visible together with the fulfillment.
    """
    currency = current_app.config.get("PAYMENT_CURRENCY", "RUB")
    rows = []

    buyer_html = render_template(
        "emails/purchase_confirmation.html",
        order_id=order.id,
        product_title=product.title,
        amount=sale.amount,
        currency=currency,
        download_url=download_url_for(token.token),
        expires_at=token.expires_at.strftime("%Y-%m-%d"),
    )
    rows.append(NotificationOutbox(
        order_id=order.id,
        kind=NOTIFICATION_BUYER_PURCHASE,
        recipient=order.buyer_email,
        subject=f"Your purchase: {product.title}",
        html_body=buyer_html,
        status=NOTIFICATION_PENDING,
        attempts=0,
    ))

    if seller is None:
        current_app.logger.warning("Seller missing for order %s; skipping sale notification", order.id)
    elif not seller.email_notifications:
        current_app.logger.info("Sale notifications disabled for seller %s; skipping", seller.id)
    else:
        seller_html = render_template(
            "emails/sale_notification.html",
            order_id=order.id,
            product_title=product.title,
            buyer_email=order.buyer_email,
            amount=sale.amount,
            platform_fee=sale.platform_fee,
            net_amount=sale.net_amount,
            currency=currency,
        )
        rows.append(NotificationOutbox(
            order_id=order.id,
            kind=NOTIFICATION_SELLER_SALE,
            recipient=seller.email,
            subject=f"New sale: {product.title}",
            html_body=seller_html,
            status=NOTIFICATION_PENDING,
            attempts=0,
        ))

    for row in rows:
        db.session.add(row)
    db.session.flush()
    return rows


def _deliver(row: NotificationOutbox) -> bool:
    result = email_client.send_email(row.recipient, row.subject, row.html_body)
    row.attempts = (row.attempts or 0) + 1
    if result.success:
        row.status = NOTIFICATION_SENT
        row.sent_at = utcnow()
        row.last_error = None
        current_app.logger.info("Sent %s email for order %s to %s", row.kind, row.order_id, row.recipient)
        return True

    row.status = NOTIFICATION_FAILED
    row.last_error = result.error
    current_app.logger.error(
        "Failed to send %s email for order %s to %s: %s",
        row.kind, row.order_id, row.recipient, result.error,
    )
    return False


def dispatch_for_order(order_id: int) -> dict:
    """
    Send the pending notifications of one order. Best-effort: never raises
    for delivery problems.

    Returns:
        {"sent": n, "failed": n}
    """
    rows = (
        db.session.query(NotificationOutbox)
        .filter_by(order_id=order_id, status=NOTIFICATION_PENDING)
        .order_by(NotificationOutbox.id)
        .all()
    )
    return _dispatch_rows(rows)


def dispatch_pending(limit: int = 100, max_attempts: int | None = None) -> dict:
    """
    Retry everything not yet sent (pending, or failed below max_attempts).
    Used by the `flask notifications dispatch` command.
    """
    if max_attempts is None:
        max_attempts = current_app.config.get("NOTIFICATION_MAX_ATTEMPTS", 5)

    rows = (
        db.session.query(NotificationOutbox)
        .filter(NotificationOutbox.status.in_([NOTIFICATION_PENDING, NOTIFICATION_FAILED]))
        .filter(NotificationOutbox.attempts < max_attempts)
        .order_by(NotificationOutbox.created_at, NotificationOutbox.id)
        .limit(limit)
        .all()
    )
    return _dispatch_rows(rows)


def _dispatch_rows(rows: list[NotificationOutbox]) -> dict:
    sent = failed = 0
    for row in rows:
        if _deliver(row):
            sent += 1
        else:
            failed += 1
        db.session.commit()
    return {"sent": sent, "failed": failed}
