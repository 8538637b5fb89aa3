from __future__ import annotations

from ..extensions import db
from cifra.time_utils import to_utc_z


PRODUCT_STATUS_DRAFT = "draft"
PRODUCT_STATUS_PUBLISHED = "published"
PRODUCT_STATUSES = (PRODUCT_STATUS_DRAFT, PRODUCT_STATUS_PUBLISHED)

PRODUCT_CATEGORIES = (
    "Notion Template",
    "Design Asset",
    "Code Snippet/Plugin",
    "E-book/Guide",
    "Audio/Preset",
    "Other",
)


class Product(db.Model):
    """
    Downloadable digital product.

    Files live in object storage (file_keys). Products created before the
    object storage migration carry plain file names in legacy_files instead.

    sales_count and revenue are maintained by fulfillment only, through
    atomic increments; catalog edits never write them.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_seller_status", "seller_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(db.Integer, db.ForeignKey("sellers.id"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(64), nullable=False, default="Other", index=True)
    price = db.Column(db.Integer, nullable=False)  # whole currency units
    status = db.Column(db.String(16), nullable=False, default=PRODUCT_STATUS_DRAFT, index=True)

    file_keys = db.Column(db.JSON, nullable=False, default=list)
    legacy_files = db.Column(db.JSON, nullable=False, default=list)
    cover_image_key = db.Column(db.String(512), nullable=True)

    # Aggregates (fulfillment only)
    sales_count = db.Column(db.Integer, nullable=False, default=0)
    revenue = db.Column(db.Integer, nullable=False, default=0)  # sum of net amounts

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    seller = db.relationship("Seller", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def file_count(self) -> int:
        return len(self.file_keys or []) or len(self.legacy_files or [])

    def to_public_dict(self) -> dict:
        """Storefront view: no file locations, no aggregates."""
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "price": self.price,
            "cover_image_key": self.cover_image_key,
            "file_count": self.file_count,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "price": self.price,
            "status": self.status,
            "file_keys": list(self.file_keys or []),
            "legacy_files": list(self.legacy_files or []),
            "cover_image_key": self.cover_image_key,
            "sales_count": self.sales_count,
            "revenue": self.revenue,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
