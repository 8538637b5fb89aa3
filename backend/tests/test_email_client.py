"""
Email adapter tests. send_email must report problems, never raise.
"""

import json

import httpx
import pytest

from cifra.services import email_client


@pytest.fixture
def configured(app, monkeypatch):
    monkeypatch.setitem(app.config, "RESEND_API_KEY", "re_test_key")
    monkeypatch.setitem(app.config, "MAIL_FROM", "Cifra <noreply@cifra.test>")
    return app


def mock_client(handler):
    return httpx.Client(base_url="https://mail.test", transport=httpx.MockTransport(handler))


class TestSendEmail:

    def test_success(self, configured):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "49a3999c-0ce1-4ea6-ab68-afcd6dc2e794"})

        with mock_client(handler) as client:
            result = email_client.send_email("buyer@example.com", "Your purchase", "<p>hi</p>", client=client)

        assert result.success is True
        assert result.message_id == "49a3999c-0ce1-4ea6-ab68-afcd6dc2e794"
        assert seen["auth"] == "Bearer re_test_key"
        assert seen["body"] == {
            "from": "Cifra <noreply@cifra.test>",
            "to": ["buyer@example.com"],
            "subject": "Your purchase",
            "html": "<p>hi</p>",
        }

    def test_provider_error(self, configured):
        def handler(request):
            return httpx.Response(422, json={"statusCode": 422, "message": "Invalid `to` field"})

        with mock_client(handler) as client:
            result = email_client.send_email("bad", "s", "b", client=client)

        assert result.success is False
        assert result.error == "Invalid `to` field"

    def test_transport_error(self, configured):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with mock_client(handler) as client:
            result = email_client.send_email("buyer@example.com", "s", "b", client=client)

        assert result.success is False
        assert "Email request failed" in result.error

    def test_not_configured(self, app):
        result = email_client.send_email("buyer@example.com", "s", "b")

        assert result.success is False
        assert result.error == "Email provider not configured"
