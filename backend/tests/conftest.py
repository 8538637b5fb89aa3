"""
Pytest fixtures for Cifra backend tests.

Provides test database setup, seller/catalog/order fixtures, fake gateway
and email adapters, and the test client.
"""

import pytest

from cifra import create_app
from cifra.extensions import db
from cifra.models import Seller, Product, PromoCode, Order
from cifra.services import email_client, payment_gateway, session_service
from cifra.services.auth_service import hash_password
from cifra.services.email_client import EmailResult
from cifra.services.payment_gateway import GatewayPayment, PaymentGatewayError


TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'SITE_URL': 'https://cifra.test',
    'YOOKASSA_SHOP_ID': 'shop-1',
    'YOOKASSA_SECRET_KEY': 'test-secret',
    'S3_ACCESS_KEY_ID': 'test-access-key',
    'S3_SECRET_ACCESS_KEY': 'test-secret-key',
    'S3_BUCKET': 'cifra-test',
    'LEGACY_FILES_BASE_URL': 'https://files.cifra.test/api/files/products',
    'RESEND_API_KEY': '',
    'TEST_WEBHOOK_ENABLED': True,
}

SELLER_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TEST_CONFIG)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# SELLERS
# =============================================================================

def _make_seller(db_session, email, display_name, email_notifications=True):
    seller = Seller(
        email=email,
        password_hash=hash_password(SELLER_PASSWORD),
        display_name=display_name,
        email_notifications=email_notifications,
    )
    db_session.add(seller)
    db_session.commit()
    return seller


@pytest.fixture(scope='function')
def seller(db_session):
    return _make_seller(db_session, "studio@cifra.test", "Studio Nine")


@pytest.fixture(scope='function')
def other_seller(db_session):
    return _make_seller(db_session, "other@cifra.test", "Other Shop")


@pytest.fixture(scope='function')
def auth_headers(seller):
    _, token = session_service.create_session(seller.id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope='function')
def other_headers(other_seller):
    _, token = session_service.create_session(other_seller.id)
    return {"Authorization": f"Bearer {token}"}


# =============================================================================
# CATALOG AND ORDERS
# =============================================================================

@pytest.fixture(scope='function')
def product(db_session, seller):
    p = Product(
        seller_id=seller.id,
        title="Notion Finance Tracker",
        description="Track every expense in one tidy workspace.",
        category="Notion Template",
        price=1999,
        status="published",
        file_keys=["products/1/finance-tracker.zip"],
        legacy_files=[],
    )
    db_session.add(p)
    db_session.commit()
    return p


@pytest.fixture(scope='function')
def promo(db_session, seller):
    code = PromoCode(seller_id=seller.id, code="SPRING-10", discount_percent=10, is_active=True, uses=0)
    db_session.add(code)
    db_session.commit()
    return code


def make_order(db_session, product, *, payment_id="pay-1", amount=None, promo=None,
               buyer_email="buyer@example.com", status="pending"):
    order = Order(
        product_id=product.id,
        seller_id=product.seller_id,
        promo_id=promo.id if promo else None,
        buyer_email=buyer_email,
        amount=product.price if amount is None else amount,
        status=status,
        external_payment_id=payment_id,
    )
    db_session.add(order)
    db_session.commit()
    return order


@pytest.fixture(scope='function')
def pending_order(db_session, product):
    return make_order(db_session, product)


# =============================================================================
# FAKE ADAPTERS
# =============================================================================

def gateway_payment(payment_id, status="succeeded", amount=1999, reason=None, party=None):
    raw = {
        "id": payment_id,
        "status": status,
        "amount": {"value": f"{amount}.00", "currency": "RUB"},
    }
    if reason:
        raw["cancellation_details"] = {"party": party or "payment_network", "reason": reason}
    return GatewayPayment(
        id=payment_id,
        status=status,
        amount=amount,
        currency="RUB",
        cancellation_party=party or ("payment_network" if reason else None),
        cancellation_reason=reason,
        raw=raw,
    )


class FakeGateway:
    """Stands in for the gateway: payments are registered by the test."""

    def __init__(self):
        self.payments = {}
        self.lookups = []
        self.created = []
        self.fail_with = None

    def add(self, payment_id, status="succeeded", amount=1999, reason=None, party=None):
        self.payments[payment_id] = gateway_payment(payment_id, status, amount, reason, party)

    def get_payment(self, payment_id, *, client=None):
        self.lookups.append(payment_id)
        if self.fail_with:
            raise self.fail_with
        if payment_id not in self.payments:
            raise PaymentGatewayError("Payment not found", status_code=404)
        return self.payments[payment_id]

    def create_payment(self, amount, return_url, metadata, description=None, *, idempotence_key=None, client=None):
        if self.fail_with:
            raise self.fail_with
        payment_id = f"pay-created-{len(self.created) + 1}"
        self.created.append({
            "amount": amount,
            "return_url": return_url,
            "metadata": metadata,
            "description": description,
            "idempotence_key": idempotence_key,
        })
        return GatewayPayment(
            id=payment_id,
            status="pending",
            amount=amount,
            currency="RUB",
            confirmation_url=f"https://yoomoney.test/checkout/{payment_id}",
            raw={"id": payment_id, "status": "pending"},
        )


@pytest.fixture(scope='function')
def fake_gateway(monkeypatch):
    fake = FakeGateway()
    monkeypatch.setattr(payment_gateway, "get_payment", fake.get_payment)
    monkeypatch.setattr(payment_gateway, "create_payment", fake.create_payment)
    return fake


@pytest.fixture(scope='function')
def sent_emails(monkeypatch):
    """Captures outgoing email; set .fail = True to make every send fail."""

    class Outbox(list):
        fail = False

    outbox = Outbox()

    def fake_send(to_address, subject, html_body, *, client=None):
        if outbox.fail:
            return EmailResult(success=False, error="SMTP relay unavailable")
        outbox.append({"to": to_address, "subject": subject, "html": html_body})
        return EmailResult(success=True, message_id=f"msg-{len(outbox)}")

    monkeypatch.setattr(email_client, "send_email", fake_send)
    return outbox


@pytest.fixture(scope='function')
def order_factory(db_session, product):
    """make_order bound to the test session; pass product= to override."""
    def _make(**kwargs):
        return make_order(db_session, kwargs.pop("product", product), **kwargs)
    return _make
