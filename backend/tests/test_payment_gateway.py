"""
Gateway adapter tests against a mocked HTTP transport.
"""

import json

import httpx
import pytest

from cifra.services import payment_gateway
from cifra.services.payment_gateway import PaymentGatewayError


def payment_body(**overrides):
    body = {
        "id": "2c5e2a1f-000f-5000-8000-1b2c3d4e5f60",
        "status": "pending",
        "paid": False,
        "amount": {"value": "1999.00", "currency": "RUB"},
        "confirmation": {"type": "redirect", "confirmation_url": "https://yoomoney.ru/checkout/payments/v2/contract?orderId=2c5e"},
        "metadata": {"productId": "7"},
    }
    body.update(overrides)
    return body


def mock_client(handler):
    return httpx.Client(base_url="https://gateway.test/v3", transport=httpx.MockTransport(handler))


# =============================================================================
# CREATE PAYMENT
# =============================================================================


class TestCreatePayment:

    def test_request_shape(self, app):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=payment_body())

        with mock_client(handler) as client:
            payment = payment_gateway.create_payment(
                1999,
                "https://cifra.test/payment/success",
                metadata={"productId": "7", "customerEmail": "buyer@example.com"},
                description="Purchase: Notion Finance Tracker",
                idempotence_key="key-123",
                client=client,
            )

        assert seen["method"] == "POST"
        assert seen["path"] == "/v3/payments"
        assert seen["headers"]["Idempotence-Key"] == "key-123"
        assert seen["body"]["amount"] == {"value": "1999.00", "currency": "RUB"}
        assert seen["body"]["capture"] is True
        assert seen["body"]["confirmation"] == {"type": "redirect", "return_url": "https://cifra.test/payment/success"}
        assert seen["body"]["metadata"]["customerEmail"] == "buyer@example.com"

        assert payment.id == "2c5e2a1f-000f-5000-8000-1b2c3d4e5f60"
        assert payment.status == "pending"
        assert payment.amount == 1999
        assert payment.confirmation_url.startswith("https://yoomoney.ru/checkout/")

    def test_generates_idempotence_key(self, app):
        keys = []

        def handler(request):
            keys.append(request.headers.get("Idempotence-Key"))
            return httpx.Response(200, json=payment_body())

        with mock_client(handler) as client:
            payment_gateway.create_payment(100, "https://cifra.test/r", {}, client=client)

        assert keys[0]

    def test_rejection_uses_description(self, app):
        def handler(request):
            return httpx.Response(400, json={"type": "error", "code": "invalid_request", "description": "Invalid amount"})

        with mock_client(handler) as client:
            with pytest.raises(PaymentGatewayError) as exc:
                payment_gateway.create_payment(1999, "https://cifra.test/r", {}, client=client)

        assert str(exc.value) == "Invalid amount"
        assert exc.value.status_code == 400

    def test_missing_confirmation_url(self, app):
        def handler(request):
            return httpx.Response(200, json=payment_body(confirmation=None))

        with mock_client(handler) as client:
            with pytest.raises(PaymentGatewayError):
                payment_gateway.create_payment(1999, "https://cifra.test/r", {}, client=client)

    def test_transport_error(self, app):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with mock_client(handler) as client:
            with pytest.raises(PaymentGatewayError) as exc:
                payment_gateway.create_payment(1999, "https://cifra.test/r", {}, client=client)

        assert "Gateway request failed" in str(exc.value)

    def test_missing_credentials(self, app, monkeypatch):
        monkeypatch.setitem(app.config, "YOOKASSA_SECRET_KEY", "")

        with pytest.raises(PaymentGatewayError):
            payment_gateway.create_payment(1999, "https://cifra.test/r", {})


# =============================================================================
# GET PAYMENT
# =============================================================================


class TestGetPayment:

    def test_succeeded(self, app):
        def handler(request):
            assert request.url.path == "/v3/payments/pay-42"
            return httpx.Response(200, json=payment_body(id="pay-42", status="succeeded", paid=True))

        with mock_client(handler) as client:
            payment = payment_gateway.get_payment("pay-42", client=client)

        assert payment.status == "succeeded"
        assert payment.amount == 1999
        assert payment.raw["paid"] is True

    def test_canceled_details(self, app):
        body = payment_body(
            id="pay-9",
            status="canceled",
            cancellation_details={"party": "payment_network", "reason": "insufficient_funds"},
        )

        with mock_client(lambda request: httpx.Response(200, json=body)) as client:
            payment = payment_gateway.get_payment("pay-9", client=client)

        assert payment.cancellation_party == "payment_network"
        assert payment.cancellation_reason == "insufficient_funds"

    def test_not_found(self, app):
        def handler(request):
            return httpx.Response(404, json={"type": "error", "description": "Payment not found"})

        with mock_client(handler) as client:
            with pytest.raises(PaymentGatewayError) as exc:
                payment_gateway.get_payment("missing", client=client)

        assert exc.value.status_code == 404

    def test_non_json_error(self, app):
        with mock_client(lambda request: httpx.Response(502, text="Bad Gateway")) as client:
            with pytest.raises(PaymentGatewayError) as exc:
                payment_gateway.get_payment("pay-1", client=client)

        assert "HTTP 502" in str(exc.value)

    def test_fractional_amount_rejected(self, app):
        body = payment_body(status="succeeded", amount={"value": "1999.50", "currency": "RUB"})

        with mock_client(lambda request: httpx.Response(200, json=body)) as client:
            with pytest.raises(PaymentGatewayError):
                payment_gateway.get_payment("pay-1", client=client)

    def test_unknown_status_rejected(self, app):
        body = payment_body(status="refunded")

        with mock_client(lambda request: httpx.Response(200, json=body)) as client:
            with pytest.raises(PaymentGatewayError):
                payment_gateway.get_payment("pay-1", client=client)

    def test_empty_id(self, app):
        with pytest.raises(PaymentGatewayError):
            payment_gateway.get_payment("")


class TestFormatAmount:

    @pytest.mark.parametrize("amount, expected", [(0, "0.00"), (99, "99.00"), (1999, "1999.00")])
    def test_two_decimals(self, amount, expected):
        assert payment_gateway.format_amount(amount) == expected
