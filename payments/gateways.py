import hashlib
import hmac
import json
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

import requests
import stripe
from flask import current_app

from domain.errors import GatewayError


def _append_query(url: str, params: dict) -> str:
    if not url:
        return url
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query))
    query.update({k: v for k, v in params.items() if v is not None})
    new_query = urlencode(query)
    return urlunparse(parts._replace(query=new_query))


class RazorpayGateway:
    """Orders API over HTTPS plus the HMAC-SHA256 signature checks Razorpay documents."""

    provider = "RAZORPAY"
    api_base = "https://api.razorpay.com/v1"

    def __init__(self, key_id, key_secret, webhook_secret=None, timeout=10):
        self.key_id = key_id
        self.key_secret = key_secret
        self.webhook_secret = webhook_secret
        self.timeout = timeout

    @classmethod
    def from_config(cls, config=None):
        cfg = config if config is not None else current_app.config
        key_id = cfg.get("RAZORPAY_KEY_ID")
        key_secret = cfg.get("RAZORPAY_KEY_SECRET")
        if not key_id or not key_secret:
            raise GatewayError("Razorpay keys missing (RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET)")
        return cls(
            key_id,
            key_secret,
            webhook_secret=cfg.get("RAZORPAY_WEBHOOK_SECRET"),
            timeout=cfg.get("GATEWAY_TIMEOUT_SECONDS", 10),
        )

    def create_order(self, amount: int, receipt: str, currency: str = "INR", notes=None) -> dict:
        """Create an order for ``amount`` whole rupees. Razorpay wants paise."""
        data = {
            "amount": amount * 100,
            "currency": currency,
            "receipt": receipt[:40],
            "notes": notes or {},
        }
        try:
            resp = requests.post(
                f"{self.api_base}/orders",
                json=data,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise GatewayError(f"Razorpay order creation failed: {exc}") from exc

        if resp.status_code >= 400:
            try:
                description = resp.json().get("error", {}).get("description")
            except ValueError:
                description = None
            raise GatewayError(f"Razorpay order creation failed ({resp.status_code}): {description or resp.text[:200]}")
        return resp.json()

    @staticmethod
    def _sign(secret: str, message: str) -> str:
        return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify_payment_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not order_id or not payment_id or not signature:
            return False
        expected = self._sign(self.key_secret, f"{order_id}|{payment_id}")
        return hmac.compare_digest(expected, signature)

    def verify_webhook(self, body: str, signature: str) -> bool:
        if not self.webhook_secret:
            raise GatewayError("Razorpay webhook secret not configured (RAZORPAY_WEBHOOK_SECRET)")
        if not signature:
            return False
        return hmac.compare_digest(self._sign(self.webhook_secret, body), signature)


class StripeGateway:
    provider = "STRIPE"

    def __init__(self, secret_key, webhook_secret=None, success_url=None, cancel_url=None):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.success_url = success_url
        self.cancel_url = cancel_url

    @classmethod
    def from_config(cls, config=None):
        cfg = config if config is not None else current_app.config
        secret_key = cfg.get("STRIPE_SECRET_KEY")
        if not secret_key:
            raise GatewayError("Stripe secret key missing (STRIPE_SECRET_KEY)")
        return cls(
            secret_key,
            webhook_secret=cfg.get("STRIPE_WEBHOOK_SECRET"),
            success_url=cfg.get("STRIPE_SUCCESS_URL"),
            cancel_url=cfg.get("STRIPE_CANCEL_URL"),
        )

    def create_checkout_session(self, booking, payment, currency: str = "INR"):
        if not self.success_url or not self.cancel_url:
            raise GatewayError("Stripe success/cancel URLs not configured")

        stripe.api_key = self.secret_key
        params = {"booking_id": booking.id, "payment_id": str(payment.id)}
        try:
            return stripe.checkout.Session.create(
                mode="payment",
                line_items=[{
                    "price_data": {
                        "currency": currency.lower(),
                        "product_data": {"name": f"Kshetra Retreat booking {booking.id}"},
                        "unit_amount": booking.final_amount * 100,
                    },
                    "quantity": 1,
                }],
                customer_email=booking.guest_email,
                client_reference_id=booking.id,
                success_url=_append_query(self.success_url, params),
                cancel_url=_append_query(self.cancel_url, params),
                metadata=params,
            )
        except stripe.StripeError as exc:
            raise GatewayError(f"Stripe checkout creation failed: {exc}") from exc

    def construct_event(self, payload: bytes, signature: str):
        """Verified webhook event as a plain dict, or None when the signature does not check out."""
        if not self.webhook_secret:
            raise GatewayError("Webhook secret not configured")
        if not signature:
            return None
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        try:
            stripe.WebhookSignature.verify_header(payload, signature, self.webhook_secret)
            return json.loads(payload)
        except (ValueError, stripe.SignatureVerificationError):
            return None
