from datetime import datetime
from models.db import db

COUPON_SERVICE_TYPES = ("airport", "yoga", "rental", "adventure", "all")

class Coupon(db.Model):
    __tablename__ = "coupons"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(40), unique=True, nullable=False, index=True)  # stored upper-case
    description = db.Column(db.String(255), nullable=True)

    discount_type = db.Column(db.String(20), nullable=False, default="fixed")  # fixed, percentage
    discount_value = db.Column(db.Integer, nullable=False)
    max_discount = db.Column(db.Integer, nullable=True)  # cap for percentage coupons
    min_order_value = db.Column(db.Integer, nullable=False, default=0)

    service_type = db.Column(db.String(20), nullable=False, default="all")

    valid_from = db.Column(db.DateTime, nullable=True)
    valid_until = db.Column(db.DateTime, nullable=True)

    usage_limit = db.Column(db.Integer, nullable=True)
    used_count = db.Column(db.Integer, nullable=False, default=0)
    per_phone_limit = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "description": self.description,
            "discountType": self.discount_type,
            "discountValue": self.discount_value,
            "maxDiscount": self.max_discount,
            "minOrderValue": self.min_order_value,
            "serviceType": self.service_type,
            "validUntil": self.valid_until.isoformat() if self.valid_until else None,
        }


class CouponUsage(db.Model):
    __tablename__ = "coupon_usages"

    id = db.Column(db.Integer, primary_key=True)
    coupon_id = db.Column(db.Integer, db.ForeignKey("coupons.id"), nullable=False, index=True)
    booking_id = db.Column(db.String(32), db.ForeignKey("bookings.id"), nullable=False, index=True)
    phone_number = db.Column(db.String(30), nullable=True, index=True)
    discount = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("coupon_id", "booking_id", name="uq_coupon_usage_booking"),
    )
