"""
Gateway webhook route tests.

The gateway redelivers on anything but 2xx, so the status code is the
contract: 500 only when the payment could not be verified and must be
redelivered, 200 for everything else, including internal failures that
leave the order pending.
"""

from cifra.models import Order, Sale


WEBHOOK_URL = "/api/yookassa/webhook"


def succeeded(payment_id="pay-1"):
    return {"type": "notification", "event": "payment.succeeded", "object": {"id": payment_id}}


# =============================================================================
# /api/yookassa/webhook
# =============================================================================


class TestYookassaWebhook:

    def test_fulfilled_returns_200(self, client, db_session, pending_order, fake_gateway, sent_emails):
        fake_gateway.add("pay-1")

        resp = client.post(WEBHOOK_URL, json=succeeded())

        assert resp.status_code == 200
        assert resp.get_json() == {"received": True}
        assert db_session.get(Order, pending_order.id).status == "paid"

    def test_duplicate_returns_200(self, client, db_session, pending_order, fake_gateway, sent_emails):
        fake_gateway.add("pay-1")

        assert client.post(WEBHOOK_URL, json=succeeded()).status_code == 200
        assert client.post(WEBHOOK_URL, json=succeeded()).status_code == 200
        assert db_session.query(Sale).count() == 1

    def test_unknown_payment_returns_200(self, client, db_session, fake_gateway):
        fake_gateway.add("pay-nobody")

        resp = client.post(WEBHOOK_URL, json=succeeded("pay-nobody"))

        assert resp.status_code == 200

    def test_unverified_payment_returns_500(self, client, db_session, pending_order, fake_gateway):
        fake_gateway.add("pay-1", status="waiting_for_capture")

        resp = client.post(WEBHOOK_URL, json=succeeded())

        assert resp.status_code == 500
        assert "error" in resp.get_json()
        assert db_session.get(Order, pending_order.id).status == "pending"

    def test_amount_mismatch_returns_500(self, client, db_session, pending_order, fake_gateway):
        fake_gateway.add("pay-1", amount=10)

        resp = client.post(WEBHOOK_URL, json=succeeded())

        assert resp.status_code == 500
        assert db_session.query(Sale).count() == 0

    def test_malformed_payload_returns_200(self, client, db_session, fake_gateway):
        resp = client.post(WEBHOOK_URL, data="not json", content_type="application/json")

        assert resp.status_code == 200
        assert fake_gateway.lookups == []

    def test_missing_payment_id_returns_200(self, client, db_session, fake_gateway):
        resp = client.post(WEBHOOK_URL, json={"event": "payment.succeeded", "object": {}})

        assert resp.status_code == 200
        assert fake_gateway.lookups == []

    def test_unsupported_event_returns_200(self, client, db_session, fake_gateway):
        resp = client.post(WEBHOOK_URL, json={"event": "payout.succeeded", "object": {"id": "po-1"}})

        assert resp.status_code == 200
        assert fake_gateway.lookups == []

    def test_canceled_event(self, client, db_session, pending_order, fake_gateway):
        fake_gateway.add("pay-1", status="canceled", reason="card_expired")

        resp = client.post(WEBHOOK_URL, json={"event": "payment.canceled", "object": {"id": "pay-1"}})

        assert resp.status_code == 200
        assert db_session.get(Order, pending_order.id).status == "failed"

    def test_crash_during_fulfillment_acknowledged(self, client, db_session, pending_order, fake_gateway,
                                                   sent_emails, monkeypatch):
        from cifra.services import fulfillment_service

        fake_gateway.add("pay-1")
        generate_download_token = fulfillment_service.generate_download_token

        def boom(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(fulfillment_service, "generate_download_token", boom)

        resp = client.post(WEBHOOK_URL, json=succeeded())

        assert resp.status_code == 200
        assert resp.get_json() == {"received": True}
        assert db_session.get(Order, pending_order.id).status == "pending"
        assert db_session.query(Sale).count() == 0

        monkeypatch.setattr(fulfillment_service, "generate_download_token", generate_download_token)
        replay = client.post(WEBHOOK_URL, json=succeeded())

        assert replay.status_code == 200
        assert db_session.get(Order, pending_order.id).status == "paid"
        assert db_session.query(Sale).count() == 1


# =============================================================================
# /api/test-webhook
# =============================================================================


class TestManualWebhook:

    def test_fulfills_without_gateway(self, client, db_session, pending_order, fake_gateway, sent_emails):
        resp = client.post("/api/test-webhook", json={"orderId": pending_order.id})

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["success"] is True
        assert data["outcome"] == "fulfilled"
        assert data["orderId"] == pending_order.id
        assert len(data["downloadToken"]) == 64
        assert data["notifications"] == {"sent": 2, "failed": 0}
        assert fake_gateway.lookups == []

    def test_second_call_already_handled(self, client, db_session, pending_order, sent_emails):
        client.post("/api/test-webhook", json={"orderId": pending_order.id})
        resp = client.post("/api/test-webhook", json={"order_id": str(pending_order.id)})

        assert resp.status_code == 200
        assert resp.get_json()["outcome"] == "already_handled"
        assert resp.get_json()["downloadToken"] is None

    def test_unknown_order(self, client, db_session):
        resp = client.post("/api/test-webhook", json={"orderId": 999})
        assert resp.status_code == 404

    def test_order_id_required(self, client, db_session):
        resp = client.post("/api/test-webhook", json={})
        assert resp.status_code == 400

    def test_disabled_by_config(self, app, client, db_session, pending_order, monkeypatch):
        monkeypatch.setitem(app.config, "TEST_WEBHOOK_ENABLED", False)

        resp = client.post("/api/test-webhook", json={"orderId": pending_order.id})

        assert resp.status_code == 404
        assert db_session.get(Order, pending_order.id).status == "pending"
