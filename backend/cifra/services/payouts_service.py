# Overview: Seller payouts; balance from net sales minus requested withdrawals.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Payout, Sale, Seller
from ..models.payouts import PAYOUT_STATUS_PENDING, PAYOUT_STATUS_COMPLETED
from .concurrency import lock_for_update, run_with_retry


class PayoutError(Exception):
    """Raised when a payout request is invalid."""
    pass


def get_available_balance(seller_id: int) -> dict:
    """
    Net sales minus pending and completed payouts.

    Failed payouts return their amount to the balance.
    """
    earned = db.session.query(func.coalesce(func.sum(Sale.net_amount), 0)).filter(
        Sale.seller_id == seller_id
    ).scalar()
    withdrawn = db.session.query(func.coalesce(func.sum(Payout.amount), 0)).filter(
        Payout.seller_id == seller_id,
        Payout.status.in_((PAYOUT_STATUS_PENDING, PAYOUT_STATUS_COMPLETED)),
    ).scalar()
    pending = db.session.query(func.coalesce(func.sum(Payout.amount), 0)).filter(
        Payout.seller_id == seller_id,
        Payout.status == PAYOUT_STATUS_PENDING,
    ).scalar()

    return {
        "earned": int(earned),
        "withdrawn": int(withdrawn),
        "pending": int(pending),
        "available": int(earned) - int(withdrawn),
    }


def request_payout(seller_id: int, amount, method: str | None = None) -> dict:
    """
    Create a pending payout.

    Raises:
        PayoutError: amount not a positive integer or above the available balance
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise PayoutError("amount must be a positive integer")
    if method is not None and (not isinstance(method, str) or len(method) > 100):
        raise PayoutError("method must be a string of at most 100 characters")

    def _op():
        # Serialize concurrent requests for the same seller where the DB supports it
        lock_for_update(db.session.query(Seller).filter(Seller.id == seller_id)).first()

        available = get_available_balance(seller_id)["available"]
        if amount > available:
            raise PayoutError(f"Requested {amount} exceeds available balance {available}")

        payout = Payout(seller_id=seller_id, amount=amount, method=method, status=PAYOUT_STATUS_PENDING)
        db.session.add(payout)
        db.session.commit()
        return payout.to_dict()

    return run_with_retry(_op)


def list_payouts(seller_id: int, limit: int = 100) -> list[dict]:
    rows = (
        db.session.query(Payout)
        .filter_by(seller_id=seller_id)
        .order_by(Payout.created_at.desc(), Payout.id.desc())
        .limit(min(max(limit, 1), 500))
        .all()
    )
    return [p.to_dict() for p in rows]
