from .db import db
from .audit_log import AuditLog
from .ip_rate_limit import IpRateLimit
from .room import Room
from .service import Service
from .yoga_session import YogaSession
from .booking import Booking, BookingGuest, BookingServiceItem
from .booking_draft import BookingDraftRecord
from .coupon import Coupon, CouponUsage
from .payment import Payment
