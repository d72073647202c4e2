import hashlib
import hmac
import json
import time

import pytest
import requests

from config import TestConfig
from domain.errors import GatewayError
from models import db
from models.audit_log import AuditLog
from models.booking import Booking
from models.payment import Payment
from payments.gateways import RazorpayGateway


def _sign(secret, message):
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def _stripe_header(payload, secret=TestConfig.STRIPE_WEBHOOK_SECRET):
    timestamp = int(time.time())
    return f"t={timestamp},v1={_sign(secret, f'{timestamp}.{payload}')}"


@pytest.fixture()
def fake_orders(monkeypatch):
    created = []

    def create_order(self, amount, receipt, currency="INR", notes=None):
        order = {"id": f"order_test_{len(created) + 1}", "amount": amount * 100, "currency": currency, "receipt": receipt}
        created.append(order)
        return order

    monkeypatch.setattr(RazorpayGateway, "create_order", create_order)
    return created


@pytest.fixture()
def booking_id(client, booking_payload):
    return client.post("/bookings/public", json=booking_payload()).get_json()["booking"]["id"]


def _order(client, booking_id, **extra):
    return client.post("/payments/public/create-order", json={"bookingId": booking_id, **extra})


def _verify_body(booking_id, order_id, payment_id="pay_test_1", secret=TestConfig.RAZORPAY_KEY_SECRET):
    return {
        "bookingId": booking_id,
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": _sign(secret, f"{order_id}|{payment_id}"),
    }


class TestRazorpayCheckout:
    def test_create_order(self, client, booking_id, fake_orders):
        resp = _order(client, booking_id, amount=4000)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["orderId"] == "order_test_1"
        assert body["amount"] == 400000
        assert body["keyId"] == TestConfig.RAZORPAY_KEY_ID

        payment = Payment.query.filter_by(gateway_order_id="order_test_1").one()
        assert (payment.booking_id, payment.amount, payment.status) == (booking_id, 4000, "CREATED")

    def test_amount_mismatch(self, client, booking_id, fake_orders):
        resp = _order(client, booking_id, amount=100)
        assert resp.status_code == 400
        assert resp.get_json()["expected"] == 4000
        assert fake_orders == []

    def test_unknown_booking(self, client, catalog, fake_orders):
        assert _order(client, "missing").status_code == 404

    def test_gateway_down(self, client, booking_id, monkeypatch):
        def boom(*args, **kwargs):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr("payments.gateways.requests.post", boom)
        resp = _order(client, booking_id)
        assert resp.status_code == 502
        assert Payment.query.count() == 0

    def test_missing_keys(self, app, client, booking_id):
        app.config["RAZORPAY_KEY_ID"] = None
        assert _order(client, booking_id).status_code == 500

    def test_verify_marks_paid_once(self, client, booking_id, fake_orders, sent_emails):
        order_id = _order(client, booking_id).get_json()["orderId"]

        resp = client.post("/payments/public/verify", json=_verify_body(booking_id, order_id))
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["alreadyProcessed"] is False
        assert body["booking"]["paymentStatus"] == "paid"
        assert body["booking"]["paymentId"] == "pay_test_1"
        assert len(sent_emails) == 2

        resp = client.post("/payments/public/verify", json=_verify_body(booking_id, order_id))
        assert resp.status_code == 200
        assert resp.get_json()["alreadyProcessed"] is True
        assert len(sent_emails) == 2

        assert Payment.query.filter_by(gateway_order_id=order_id).one().status == "PAID"
        assert _order(client, booking_id).status_code == 400

    def test_bad_signature_leaves_booking_pending(self, client, booking_id, fake_orders, sent_emails):
        order_id = _order(client, booking_id).get_json()["orderId"]

        resp = client.post("/payments/public/verify", json=_verify_body(booking_id, order_id, secret="wrong"))
        assert resp.status_code == 400
        assert resp.get_json()["paymentStatus"] == "pending"
        assert db.session.get(Booking, booking_id).payment_status == "pending"
        assert sent_emails == []
        assert AuditLog.query.filter_by(action="PAYMENT_VERIFY_FAIL").count() == 1

    def test_order_must_belong_to_booking(self, client, booking_payload, fake_orders, sent_emails):
        first = client.post("/bookings/public", json=booking_payload()).get_json()["booking"]["id"]
        second = client.post("/bookings/public", json=booking_payload()).get_json()["booking"]["id"]
        order_id = _order(client, first).get_json()["orderId"]

        resp = client.post("/payments/public/verify", json=_verify_body(second, order_id))
        assert resp.status_code == 400
        assert db.session.get(Booking, second).payment_status == "pending"

    def test_missing_fields(self, client, catalog):
        resp = client.post("/payments/public/verify", json={"bookingId": "x"})
        assert resp.status_code == 400
        assert "razorpay_signature" in resp.get_json()["details"]

    def test_client_failure_report_changes_nothing(self, client, booking_id):
        resp = client.post("/payments/public/failure", json={"bookingId": booking_id, "reason": "card declined"})
        assert resp.status_code == 200
        assert resp.get_json()["paymentStatus"] == "pending"


def test_gateway_signature_helpers():
    gateway = RazorpayGateway("key", "secret", webhook_secret="hook")
    assert gateway.verify_payment_signature("order_1", "pay_1", _sign("secret", "order_1|pay_1"))
    assert not gateway.verify_payment_signature("order_1", "pay_1", _sign("secret", "order_1|pay_2"))
    assert not gateway.verify_payment_signature("order_1", "pay_1", "")
    assert gateway.verify_webhook('{"a":1}', _sign("hook", '{"a":1}'))
    with pytest.raises(GatewayError):
        RazorpayGateway("key", "secret").verify_webhook("{}", "sig")


class TestRazorpayWebhook:
    def _post(self, client, event, secret=TestConfig.RAZORPAY_WEBHOOK_SECRET):
        body = json.dumps(event)
        return client.post(
            "/webhooks/razorpay",
            data=body,
            content_type="application/json",
            headers={"X-Razorpay-Signature": _sign(secret, body)},
        )

    def _event(self, name, order_id, payment_id="pay_hook_1", **entity):
        return {"event": name, "payload": {"payment": {"entity": {
            "id": payment_id, "order_id": order_id, "amount": 400000, **entity,
        }}}}

    def test_captured_marks_paid(self, client, booking_id, fake_orders, sent_emails):
        order_id = _order(client, booking_id).get_json()["orderId"]

        assert self._post(client, self._event("payment.captured", order_id)).status_code == 200
        assert self._post(client, self._event("payment.captured", order_id)).status_code == 200

        booking = db.session.get(Booking, booking_id)
        assert booking.payment_status == "paid"
        assert booking.payment_id == "pay_hook_1"
        assert len(sent_emails) == 2

    def test_failed_marks_failed(self, client, booking_id, fake_orders, sent_emails):
        order_id = _order(client, booking_id).get_json()["orderId"]

        resp = self._post(client, self._event("payment.failed", order_id, error_description="Card declined"))
        assert resp.status_code == 200
        booking = db.session.get(Booking, booking_id)
        assert booking.payment_status == "failed"
        assert booking.status == "pending"

        # a late capture is acknowledged but flagged for an admin
        assert self._post(client, self._event("payment.captured", order_id)).status_code == 200
        assert db.session.get(Booking, booking_id).payment_status == "failed"
        assert AuditLog.query.filter_by(action="WEBHOOK_STATE_CONFLICT").count() == 1

    def test_bad_signature(self, client, booking_id, fake_orders):
        order_id = _order(client, booking_id).get_json()["orderId"]
        resp = self._post(client, self._event("payment.captured", order_id), secret="nope")
        assert resp.status_code == 400
        assert db.session.get(Booking, booking_id).payment_status == "pending"

    def test_unknown_order_is_acknowledged(self, client, catalog):
        assert self._post(client, self._event("payment.captured", "order_unknown")).status_code == 200
        assert AuditLog.query.filter_by(action="WEBHOOK_UNKNOWN_BOOKING").count() == 1


class TestStripe:
    @pytest.fixture()
    def fake_session(self, monkeypatch):
        calls = []

        def create(**kwargs):
            calls.append(kwargs)
            return {"id": f"cs_test_{len(calls)}", "url": "https://checkout.stripe.test/cs"}

        monkeypatch.setattr("stripe.checkout.Session.create", create)
        return calls

    def _post(self, client, event):
        payload = json.dumps(event)
        return client.post(
            "/webhooks/stripe",
            data=payload,
            content_type="application/json",
            headers={"Stripe-Signature": _stripe_header(payload)},
        )

    def _event(self, event_type, booking_id, session_id="cs_test_1", payment_status="paid"):
        return {"id": "evt_1", "type": event_type, "data": {"object": {
            "id": session_id,
            "payment_status": payment_status,
            "payment_intent": "pi_test_1",
            "amount_total": 400000,
            "metadata": {"booking_id": booking_id},
        }}}

    def test_start_checkout(self, client, booking_id, fake_session):
        resp = client.post("/payments/stripe/start", json={"bookingId": booking_id})
        assert resp.status_code == 200
        assert resp.get_json()["checkout_url"] == "https://checkout.stripe.test/cs"

        call = fake_session[0]
        assert call["line_items"][0]["price_data"]["unit_amount"] == 400000
        assert call["line_items"][0]["price_data"]["currency"] == "inr"
        assert call["metadata"]["booking_id"] == booking_id
        payment = Payment.query.filter_by(gateway_order_id="cs_test_1").one()
        assert payment.provider == "STRIPE"

    def test_completed_session_marks_paid(self, client, booking_id, fake_session, sent_emails):
        client.post("/payments/stripe/start", json={"bookingId": booking_id})

        assert self._post(client, self._event("checkout.session.completed", booking_id)).status_code == 200
        booking = db.session.get(Booking, booking_id)
        assert booking.payment_status == "paid"
        assert booking.payment_id == "pi_test_1"
        assert Payment.query.filter_by(gateway_order_id="cs_test_1").one().status == "PAID"
        assert len(sent_emails) == 2

    def test_unpaid_completion_waits(self, client, booking_id, fake_session):
        event = self._event("checkout.session.completed", booking_id, payment_status="unpaid")
        assert self._post(client, event).status_code == 200
        assert db.session.get(Booking, booking_id).payment_status == "pending"

    def test_expired_session_marks_failed(self, client, booking_id, fake_session):
        assert self._post(client, self._event("checkout.session.expired", booking_id)).status_code == 200
        assert db.session.get(Booking, booking_id).payment_status == "failed"

    def test_bad_signature(self, client, booking_id):
        resp = client.post(
            "/webhooks/stripe",
            data=json.dumps(self._event("checkout.session.completed", booking_id)),
            content_type="application/json",
            headers={"Stripe-Signature": "t=1,v1=deadbeef"},
        )
        assert resp.status_code == 400
        assert db.session.get(Booking, booking_id).payment_status == "pending"

    def test_cancel_page_drops_attempt_only(self, client, booking_id, fake_session):
        client.post("/payments/stripe/start", json={"bookingId": booking_id})
        payment = Payment.query.filter_by(gateway_order_id="cs_test_1").one()

        resp = client.get(f"/pay/cancel?payment_id={payment.id}&booking_id={booking_id}")
        assert resp.status_code == 200
        assert b"Payment Cancelled" in resp.data
        db.session.refresh(payment)
        assert payment.status == "FAILED"
        assert db.session.get(Booking, booking_id).payment_status == "pending"

    def test_success_page(self, client):
        resp = client.get("/pay/success?booking_id=abc")
        assert resp.status_code == 200
        assert b"/booking/abc" in resp.data
