import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to app.py as kshetra.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "kshetra.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Admin API access (header X-Admin-Key)
    ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

    # Payments
    PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "INR")
    GATEWAY_TIMEOUT_SECONDS = int(os.getenv("GATEWAY_TIMEOUT_SECONDS", "10"))

    RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")
    RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET")
    RAZORPAY_WEBHOOK_SECRET = os.getenv("RAZORPAY_WEBHOOK_SECRET")

    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_SUCCESS_URL = os.getenv("STRIPE_SUCCESS_URL")
    STRIPE_CANCEL_URL = os.getenv("STRIPE_CANCEL_URL")

    FRONTEND_BASE_URL = os.getenv("FRONTEND_BASE_URL", "http://localhost:3000")

    # Fixed resort prices (INR, whole rupees)
    PRICE_FOOD_PER_ADULT_PER_DAY = 150
    PRICE_BREAKFAST_PER_ADULT_PER_DAY = 200
    PRICE_TRANSPORT_PICKUP = 1500
    PRICE_TRANSPORT_DROP = 1500

    # Guests younger than this are children (free meals)
    CHILD_AGE_LIMIT = 5

    # Booking drafts
    DRAFT_TTL_SECONDS = int(os.getenv("DRAFT_TTL_SECONDS", str(24 * 60 * 60)))

    # Simple IP rate limit for coupon validation
    COUPON_RATE_WINDOW_SECONDS = 60
    COUPON_RATE_MAX_REQUESTS = 20

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "true").lower() == "true"

    # Notification recipients
    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
    AGENCY_NOTIFICATION_EMAIL = os.getenv("AGENCY_NOTIFICATION_EMAIL")

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    ADMIN_API_KEY = "test-admin-key"

    RAZORPAY_KEY_ID = "rzp_test_key"
    RAZORPAY_KEY_SECRET = "rzp_test_secret"
    RAZORPAY_WEBHOOK_SECRET = "rzp_webhook_secret"

    STRIPE_SECRET_KEY = "sk_test_dummy"
    STRIPE_WEBHOOK_SECRET = "whsec_dummy"
    STRIPE_SUCCESS_URL = "http://localhost/pay/success"
    STRIPE_CANCEL_URL = "http://localhost/pay/cancel"

    SMTP_HOST = None
    ADMIN_EMAIL = "admin@kshetra.test"
    AGENCY_NOTIFICATION_EMAIL = "agency@kshetra.test"
