from routes.health import health_bp
from routes.catalog import catalog_bp
from routes.booking import booking_bp
from routes.drafts import drafts_bp
from routes.coupons import coupons_bp
from routes.payments import payments_bp
from routes.webhooks import webhook_bp
from routes.pay_pages import pay_pages_bp
from routes.admin import admin_bp
from routes.audit_logs import audit_bp

ALL_BLUEPRINTS = (
    health_bp,
    catalog_bp,
    booking_bp,
    drafts_bp,
    coupons_bp,
    payments_bp,
    webhook_bp,
    pay_pages_bp,
    admin_bp,
    audit_bp,
)
