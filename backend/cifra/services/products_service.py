# backend/cifra/services/products_service.py
"""
Products Service (seller catalog)

All catalog operations are seller-scoped: a seller only ever sees and edits
their own products. Storefront reads go through get_published_product().
"""
from __future__ import annotations

from ..extensions import db
from ..models import Order, Product
from ..models.catalog import PRODUCT_STATUS_PUBLISHED, PRODUCT_STATUSES
from .concurrency import run_with_retry

PRODUCT_MUTABLE_FIELDS = {
    "title", "description", "category", "price", "status",
    "file_keys", "legacy_files", "cover_image_key",
}


class ProductError(Exception):
    """Raised for catalog rule violations (e.g. deleting a sold product)."""
    pass


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def list_products(
    seller_id: int,
    status: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Seller product listing with optional pagination.

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Product).filter(Product.seller_id == seller_id)
    if status:
        base_query = base_query.filter(Product.status == status)
    base_query = base_query.order_by(Product.created_at.desc(), Product.id.desc())

    if page is None:
        items = [p.to_dict() for p in base_query.all()]
        return {"items": items, "count": len(items)}

    per_page = min(max(per_page or 20, 1), 100)
    page = max(page, 1)
    total = base_query.count()
    items = [p.to_dict() for p in base_query.offset((page - 1) * per_page).limit(per_page).all()]
    return {
        "items": items,
        "count": len(items),
        "page": page,
        "per_page": per_page,
        "total": total,
        "pages": (total + per_page - 1) // per_page,
    }


def get_product(seller_id: int, product_id: int) -> Product | None:
    return db.session.query(Product).filter_by(id=product_id, seller_id=seller_id).first()


def get_published_product(product_id: int) -> Product | None:
    return db.session.query(Product).filter_by(id=product_id, status=PRODUCT_STATUS_PUBLISHED).first()


def create_product(seller_id: int, patch: dict) -> dict:
    p = Product(seller_id=seller_id, sales_count=0, revenue=0)
    apply_product_patch(p, patch)
    if p.file_keys is None:
        p.file_keys = []
    if p.legacy_files is None:
        p.legacy_files = []
    db.session.add(p)
    db.session.commit()
    return p.to_dict()


def update_product(seller_id: int, product_id: int, patch: dict) -> dict | None:
    def _op():
        p = get_product(seller_id, product_id)
        if not p:
            return None
        apply_product_patch(p, patch)
        db.session.commit()
        return p.to_dict()

    return run_with_retry(_op)


def delete_product(seller_id: int, product_id: int) -> bool:
    """
    Delete a product nobody has tried to buy.

    Raises:
        ProductError: product has orders (archive it as draft instead)
    """
    p = get_product(seller_id, product_id)
    if not p:
        return False
    has_orders = db.session.query(Order.id).filter_by(product_id=p.id).first() is not None
    if has_orders:
        raise ProductError("Product has orders and cannot be deleted; set it to draft instead")
    db.session.delete(p)
    db.session.commit()
    return True


def set_status(seller_id: int, product_id: int, status: str) -> dict | None:
    """Publish or unpublish a product."""
    if status not in PRODUCT_STATUSES:
        raise ProductError(f"status must be one of: {', '.join(PRODUCT_STATUSES)}")

    def _op():
        p = get_product(seller_id, product_id)
        if not p:
            return None
        if status == PRODUCT_STATUS_PUBLISHED and not (p.file_keys or p.legacy_files):
            raise ProductError("Upload at least one file before publishing")
        p.status = status
        db.session.commit()
        return p.to_dict()

    return run_with_retry(_op)
