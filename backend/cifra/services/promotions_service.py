from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Order, PromoCode, Product
from ..validation import ConflictError, ValidationError, normalize_promo_code


class PromoError(Exception):
    """Raised when a promo code cannot be applied."""
    pass


def list_promos(seller_id: int, active_only: bool = False) -> list[dict]:
    q = db.session.query(PromoCode).filter_by(seller_id=seller_id)
    if active_only:
        q = q.filter_by(is_active=True)
    return [p.to_dict() for p in q.order_by(PromoCode.created_at.desc(), PromoCode.id.desc()).all()]


def get_promo(seller_id: int, promo_id: int) -> PromoCode | None:
    return db.session.query(PromoCode).filter_by(id=promo_id, seller_id=seller_id).first()


def create_promo(seller_id: int, patch: dict) -> dict:
    promo = PromoCode(
        seller_id=seller_id,
        code=patch["code"],
        discount_percent=patch["discount_percent"],
        is_active=patch.get("is_active", True),
        uses=0,
    )
    db.session.add(promo)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Promo code {patch['code']} already exists")
    return promo.to_dict()


def update_promo(seller_id: int, promo_id: int, patch: dict) -> dict | None:
    promo = get_promo(seller_id, promo_id)
    if not promo:
        return None
    for key in ("code", "discount_percent", "is_active"):
        if key in patch:
            setattr(promo, key, patch[key])
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"Promo code {patch.get('code')} already exists")
    return promo.to_dict()


def delete_promo(seller_id: int, promo_id: int) -> bool:
    """
    Delete a promo. Codes already referenced by orders are deactivated
    instead, so order history keeps pointing at a real row.
    """
    promo = get_promo(seller_id, promo_id)
    if not promo:
        return False
    referenced = db.session.query(Order.id).filter_by(promo_id=promo.id).first() is not None
    if referenced:
        promo.is_active = False
    else:
        db.session.delete(promo)
    db.session.commit()
    return True


def find_active_by_code(code: str) -> PromoCode | None:
    """Case-insensitive lookup of an active code."""
    try:
        normalized = normalize_promo_code(code)
    except ValidationError:
        return None
    return db.session.query(PromoCode).filter_by(code=normalized, is_active=True).first()


def increment_uses(promo_id: int) -> bool:
    """
    Atomically add one use. Does not commit.

    Returns False when the promo row no longer exists.
    """
    rows = (
        db.session.query(PromoCode)
        .filter(PromoCode.id == promo_id)
        .update({PromoCode.uses: PromoCode.uses + 1}, synchronize_session=False)
    )
    return rows == 1


def apply_discount(price: int, discount_percent: int) -> int:
    """Discounted price: price - round_half_up(price * percent / 100), never below zero."""
    discount = (Decimal(price) * Decimal(discount_percent) / Decimal(100)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, price - int(discount))


def validate_for_product(code: str, product: Product) -> PromoCode:
    """
    Resolve a buyer-entered code for a product.

    Raises:
        PromoError: unknown, inactive, or owned by another seller
    """
    promo = find_active_by_code(code)
    if promo is None or promo.seller_id != product.seller_id:
        raise PromoError("Promo code not found or inactive")
    return promo
