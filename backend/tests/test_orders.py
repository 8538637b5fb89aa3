"""
Order ledger tests: the conditional status transition is the idempotency
gate for everything fulfillment does.
"""

import pytest

from cifra.models import Order
from cifra.services import order_service
from cifra.services.order_service import OrderError
from cifra.time_utils import utcnow


class TestCreateOrder:

    def test_pending_with_payment_id(self, db_session, product, promo):
        order = order_service.create_order(
            product=product,
            buyer_email="buyer@example.com",
            amount=1799,
            external_payment_id="pay-new",
            promo=promo,
            provider_metadata={"id": "pay-new", "status": "pending"},
        )

        assert order.status == "pending"
        assert order.seller_id == product.seller_id
        assert order.promo_id == promo.id
        assert order_service.find_by_external_payment_id("pay-new").id == order.id

    def test_payment_id_required(self, db_session, product):
        with pytest.raises(OrderError):
            order_service.create_order(product=product, buyer_email="b@example.com", amount=1999, external_payment_id="")

    def test_negative_amount(self, db_session, product):
        with pytest.raises(OrderError):
            order_service.create_order(product=product, buyer_email="b@example.com", amount=-1, external_payment_id="p")


class TestTransition:

    def test_first_wins(self, db_session, pending_order):
        assert order_service.transition(pending_order.id, "pending", "paid", {"paid_at": utcnow()}) is True
        db_session.commit()

        assert order_service.transition(pending_order.id, "pending", "paid", {"paid_at": utcnow()}) is False
        assert order_service.transition(pending_order.id, "pending", "canceled") is False
        assert db_session.get(Order, pending_order.id).status == "paid"

    def test_loaded_instance_refreshed(self, db_session, pending_order):
        order_service.transition(pending_order.id, "pending", "failed", {"closed_at": utcnow()})

        assert pending_order.status == "failed"
        assert pending_order.closed_at is not None

    def test_missing_order(self, db_session):
        assert order_service.transition(4242, "pending", "paid") is False

    @pytest.mark.parametrize("from_status, to_status", [
        ("paid", "pending"),
        ("paid", "canceled"),
        ("canceled", "paid"),
        ("failed", "paid"),
        ("pending", "pending"),
        ("pending", "refunded"),
    ])
    def test_disallowed(self, db_session, pending_order, from_status, to_status):
        with pytest.raises(OrderError):
            order_service.transition(pending_order.id, from_status, to_status)

    def test_unknown_field(self, db_session, pending_order):
        with pytest.raises(OrderError):
            order_service.transition(pending_order.id, "pending", "paid", {"amount": 1})
        assert db_session.get(Order, pending_order.id).status == "pending"


class TestListOrders:

    def test_newest_first(self, db_session, order_factory, seller):
        first = order_factory(payment_id="pay-a")
        second = order_factory(payment_id="pay-b")

        orders = order_service.list_orders_for_seller(seller.id)

        assert [o.id for o in orders] == [second.id, first.id]

    def test_unknown_status(self, db_session, seller):
        with pytest.raises(OrderError):
            order_service.list_orders_for_seller(seller.id, status="shipped")
