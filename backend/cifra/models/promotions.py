from __future__ import annotations

from ..extensions import db
from cifra.time_utils import to_utc_z


class PromoCode(db.Model):
    """
    Percentage discount code owned by a seller.

    code is unique and stored upper-case; lookups upper-case their input.
    uses counts fulfilled orders only (abandoned checkouts never consume).
    """
    __tablename__ = "promo_codes"
    __table_args__ = (
        db.CheckConstraint("discount_percent >= 0 AND discount_percent <= 100", name="ck_promo_codes_percent"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)

    code = db.Column(db.String(50), nullable=False, unique=True, index=True)
    discount_percent = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    uses = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "code": self.code,
            "discount_percent": self.discount_percent,
            "is_active": self.is_active,
            "uses": self.uses,
            "created_at": to_utc_z(self.created_at),
        }
