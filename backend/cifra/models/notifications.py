from __future__ import annotations

from ..extensions import db
from cifra.time_utils import to_utc_z


NOTIFICATION_BUYER_PURCHASE = "buyer_purchase"
NOTIFICATION_SELLER_SALE = "seller_sale"

NOTIFICATION_PENDING = "pending"
NOTIFICATION_SENT = "sent"
NOTIFICATION_FAILED = "failed"


class NotificationOutbox(db.Model):
    """
    Email queued by fulfillment inside its transaction.

    Delivery happens after commit and can be retried on its own, so a
    failed send never looks like a failed fulfillment.
    """
    __tablename__ = "notification_outbox"
    __table_args__ = (
        db.UniqueConstraint("order_id", "kind", name="uq_notification_outbox_order_kind"),
        db.Index("ix_notification_outbox_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    kind = db.Column(db.String(32), nullable=False)

    recipient = db.Column(db.String(255), nullable=False)
    subject = db.Column(db.String(255), nullable=False)
    html_body = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=NOTIFICATION_PENDING)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "kind": self.kind,
            "recipient": self.recipient,
            "subject": self.subject,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "created_at": to_utc_z(self.created_at),
            "sent_at": to_utc_z(self.sent_at),
        }
