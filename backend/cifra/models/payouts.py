from __future__ import annotations

from ..extensions import db
from cifra.time_utils import to_utc_z


PAYOUT_STATUS_PENDING = "pending"
PAYOUT_STATUS_COMPLETED = "completed"
PAYOUT_STATUS_FAILED = "failed"


class Payout(db.Model):
    """Seller withdrawal request against net sales."""
    __tablename__ = "payouts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)

    amount = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=PAYOUT_STATUS_PENDING, index=True)
    method = db.Column(db.String(100), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "amount": self.amount,
            "status": self.status,
            "method": self.method,
            "created_at": to_utc_z(self.created_at),
        }
