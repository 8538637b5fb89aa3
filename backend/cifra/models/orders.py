from __future__ import annotations

from ..extensions import db
from cifra.time_utils import to_utc_z


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_PAID = "paid"
ORDER_STATUS_CANCELED = "canceled"
ORDER_STATUS_FAILED = "failed"

ORDER_STATUSES = (
    ORDER_STATUS_PENDING,
    ORDER_STATUS_PAID,
    ORDER_STATUS_CANCELED,
    ORDER_STATUS_FAILED,
)


class Order(db.Model):
    """
    Buyer purchase intent, created at checkout before the gateway redirect.

    Lifecycle: pending -> paid | canceled | failed. All terminal.
    Only fulfillment moves an order out of pending, always through a
    conditional update on the current status.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_seller_status_created", "seller_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)
    promo_id = db.Column(db.Integer, db.ForeignKey("promo_codes.id"), nullable=True, index=True)

    buyer_email = db.Column(db.String(255), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)

    # Gateway payment id; one order per payment
    external_payment_id = db.Column(db.String(128), nullable=False, unique=True, index=True)

    # Raw gateway payment object: creation response, then the verified object
    provider_metadata = db.Column(db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)  # canceled/failed

    product = db.relationship("Product")
    seller = db.relationship("Seller")
    promo = db.relationship("PromoCode")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "promo_id": self.promo_id,
            "buyer_email": self.buyer_email,
            "amount": self.amount,
            "status": self.status,
            "external_payment_id": self.external_payment_id,
            "created_at": to_utc_z(self.created_at),
            "paid_at": to_utc_z(self.paid_at),
            "closed_at": to_utc_z(self.closed_at),
        }


class Sale(db.Model):
    """
    Immutable ledger entry for a fulfilled order.

    Append-only: created once per paid order (order_id is unique), never
    updated or deleted. amount == platform_fee + net_amount.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_seller_created", "seller_id", "created_at"),
        db.CheckConstraint("platform_fee + net_amount = amount", name="ck_sales_amount_split"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)

    buyer_email = db.Column(db.String(255), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    platform_fee = db.Column(db.Integer, nullable=False)
    net_amount = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("sale", uselist=False))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "seller_id": self.seller_id,
            "buyer_email": self.buyer_email,
            "amount": self.amount,
            "platform_fee": self.platform_fee,
            "net_amount": self.net_amount,
            "created_at": to_utc_z(self.created_at),
        }


class DownloadToken(db.Model):
    """
    Bearer credential for a paid order's files.

    One per order (order_id is unique), never re-issued. download_count is a
    usage counter, not a limit; expires_at is enforced when resolving.
    """
    __tablename__ = "download_tokens"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(128), nullable=False, unique=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, unique=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    buyer_email = db.Column(db.String(255), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    used = db.Column(db.Boolean, nullable=False, default=False)
    download_count = db.Column(db.Integer, nullable=False, default=0)
    last_downloaded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("download_token", uselist=False))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "buyer_email": self.buyer_email,
            "expires_at": to_utc_z(self.expires_at),
            "used": self.used,
            "download_count": self.download_count,
            "last_downloaded_at": to_utc_z(self.last_downloaded_at),
            "created_at": to_utc_z(self.created_at),
        }
