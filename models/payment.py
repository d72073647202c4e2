from datetime import datetime
from models.db import db

class Payment(db.Model):
    __tablename__ = "payments"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.String(32), db.ForeignKey("bookings.id"), nullable=False, index=True)

    provider = db.Column(db.String(20), nullable=False, default="RAZORPAY")  # RAZORPAY, STRIPE
    amount = db.Column(db.Integer, nullable=False)   # whole rupees
    currency = db.Column(db.String(10), nullable=False, default="INR")

    status = db.Column(db.String(20), nullable=False, default="CREATED")  # CREATED, PAID, FAILED

    # razorpay order id or stripe checkout session id
    gateway_order_id = db.Column(db.String(255), nullable=True, unique=True, index=True)
    gateway_payment_id = db.Column(db.String(255), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)
