"""
Checkout tests.

Verifies:
- Amount is always computed from product price and promo
- A pending order is recorded per gateway payment
- Promo codes of other sellers never apply
- Gateway rejection surfaces as 502 and records nothing
"""

import pytest

from cifra.models import Order, Product, PromoCode
from cifra.services import checkout_service
from cifra.services.checkout_service import CheckoutError
from cifra.services.payment_gateway import PaymentGatewayError


CREATE_URL = "/api/payment/create"


# =============================================================================
# SERVICE
# =============================================================================


class TestStartCheckout:

    def test_full_price(self, db_session, product, fake_gateway):
        result = checkout_service.start_checkout(product.id, "Buyer@Example.com")

        assert result.amount == 1999
        assert result.payment_id == "pay-created-1"
        assert result.confirmation_url == "https://yoomoney.test/checkout/pay-created-1"
        assert result.promo_code is None

        order = db_session.get(Order, result.order_id)
        assert order.status == "pending"
        assert order.amount == 1999
        assert order.buyer_email == "buyer@example.com"
        assert order.external_payment_id == "pay-created-1"
        assert order.seller_id == product.seller_id

        sent = fake_gateway.created[0]
        assert sent["amount"] == 1999
        assert sent["return_url"] == "https://cifra.test/payment/success"
        assert sent["metadata"] == {"productId": str(product.id), "customerEmail": "buyer@example.com"}
        assert sent["idempotence_key"]

    def test_each_checkout_gets_own_idempotence_key(self, db_session, product, fake_gateway):
        checkout_service.start_checkout(product.id, "a@example.com")
        checkout_service.start_checkout(product.id, "b@example.com")

        keys = {c["idempotence_key"] for c in fake_gateway.created}
        assert len(keys) == 2

    def test_promo_discount(self, db_session, product, promo, fake_gateway):
        result = checkout_service.start_checkout(product.id, "buyer@example.com", "spring-10")

        assert result.amount == 1799
        assert result.promo_code == "SPRING-10"
        order = db_session.get(Order, result.order_id)
        assert order.promo_id == promo.id
        # uses only count fulfilled orders
        assert db_session.get(PromoCode, promo.id).uses == 0

    def test_other_sellers_promo_rejected(self, db_session, product, other_seller, fake_gateway):
        db_session.add(PromoCode(seller_id=other_seller.id, code="ELSEWHERE", discount_percent=50))
        db_session.commit()

        with pytest.raises(CheckoutError) as exc:
            checkout_service.start_checkout(product.id, "buyer@example.com", "ELSEWHERE")

        assert exc.value.status_code == 400
        assert fake_gateway.created == []
        assert db_session.query(Order).count() == 0

    def test_inactive_promo_rejected(self, db_session, product, promo, fake_gateway):
        promo.is_active = False
        db_session.commit()

        with pytest.raises(CheckoutError):
            checkout_service.start_checkout(product.id, "buyer@example.com", "SPRING-10")

    def test_full_discount_rejected(self, db_session, product, seller, fake_gateway):
        db_session.add(PromoCode(seller_id=seller.id, code="FREEBIE", discount_percent=100))
        db_session.commit()

        with pytest.raises(CheckoutError):
            checkout_service.start_checkout(product.id, "buyer@example.com", "FREEBIE")
        assert fake_gateway.created == []

    def test_draft_product(self, db_session, product, fake_gateway):
        product.status = "draft"
        db_session.commit()

        with pytest.raises(CheckoutError) as exc:
            checkout_service.start_checkout(product.id, "buyer@example.com")

        assert exc.value.status_code == 404

    def test_invalid_email(self, db_session, product, fake_gateway):
        with pytest.raises(CheckoutError) as exc:
            checkout_service.start_checkout(product.id, "not-an-email")

        assert exc.value.status_code == 400
        assert fake_gateway.created == []

    def test_gateway_rejection(self, db_session, product, fake_gateway):
        fake_gateway.fail_with = PaymentGatewayError("Shop is blocked", status_code=403)

        with pytest.raises(CheckoutError) as exc:
            checkout_service.start_checkout(product.id, "buyer@example.com")

        assert exc.value.status_code == 502
        assert db_session.query(Order).count() == 0


# =============================================================================
# ROUTE
# =============================================================================


class TestCreatePaymentRoute:

    def test_create(self, client, db_session, product, fake_gateway):
        resp = client.post(CREATE_URL, json={
            "productId": product.id,
            "customerEmail": "buyer@example.com",
            "amount": 1,
        })

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["amount"] == 1999
        assert data["paymentId"] == "pay-created-1"
        assert data["confirmationUrl"].endswith("/pay-created-1")
        assert db_session.get(Order, data["orderId"]).amount == 1999

    def test_create_with_promo_snake_case(self, client, db_session, product, promo, fake_gateway):
        resp = client.post(CREATE_URL, json={
            "product_id": str(product.id),
            "email": "buyer@example.com",
            "promo_code": "SPRING-10",
        })

        assert resp.status_code == 200
        assert resp.get_json()["amount"] == 1799
        assert resp.get_json()["promoCode"] == "SPRING-10"

    def test_missing_fields(self, client, db_session, fake_gateway):
        resp = client.post(CREATE_URL, json={"customerEmail": "buyer@example.com"})
        assert resp.status_code == 400

    def test_unknown_product(self, client, db_session, fake_gateway):
        resp = client.post(CREATE_URL, json={"productId": 12345, "customerEmail": "buyer@example.com"})
        assert resp.status_code == 404

    def test_bad_promo(self, client, db_session, product, fake_gateway):
        resp = client.post(CREATE_URL, json={
            "productId": product.id,
            "customerEmail": "buyer@example.com",
            "promoCode": "NOPE-123",
        })
        assert resp.status_code == 400
        assert "error" in resp.get_json()

    def test_gateway_down(self, client, db_session, product, fake_gateway):
        fake_gateway.fail_with = PaymentGatewayError("Gateway request failed: timeout")

        resp = client.post(CREATE_URL, json={"productId": product.id, "customerEmail": "buyer@example.com"})

        assert resp.status_code == 502
        assert db_session.query(Order).count() == 0
        assert db_session.get(Product, product.id).sales_count == 0
