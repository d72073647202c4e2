import uuid
from datetime import datetime
from models.db import db

BOOKING_TYPES = ("room", "yoga", "transport", "adventure", "service", "package")
BOOKING_CATEGORIES = ("accommodation", "activity", "transport", "mixed")
BOOKING_STATUSES = ("pending", "confirmed", "checked_in", "checked_out", "cancelled")
PAYMENT_STATUSES = ("pending", "paid", "failed", "refunded")


def _new_booking_id():
    return uuid.uuid4().hex


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.String(32), primary_key=True, default=_new_booking_id)

    booking_type = db.Column(db.String(20), nullable=False, default="room")
    booking_category = db.Column(db.String(20), nullable=False, default="accommodation")

    # for non-lodging bookings: service date and service date + 1 day
    check_in = db.Column(db.DateTime, nullable=False)
    check_out = db.Column(db.DateTime, nullable=False)

    room_id = db.Column(db.Integer, db.ForeignKey("rooms.id"), nullable=True, index=True)

    total_guests = db.Column(db.Integer, nullable=False)
    adults = db.Column(db.Integer, nullable=False)
    children = db.Column(db.Integer, nullable=False, default=0)

    # primary guest contact
    guest_name = db.Column(db.String(120), nullable=False)
    guest_email = db.Column(db.String(255), nullable=False, index=True)
    guest_phone = db.Column(db.String(30), nullable=False)
    guest_address = db.Column(db.String(255), nullable=True)
    guest_city = db.Column(db.String(80), nullable=True)
    guest_state = db.Column(db.String(80), nullable=True)
    guest_pincode = db.Column(db.String(12), nullable=True)
    emergency_contact_name = db.Column(db.String(120), nullable=True)
    emergency_contact_phone = db.Column(db.String(30), nullable=True)
    emergency_contact_relationship = db.Column(db.String(40), nullable=True)

    include_food = db.Column(db.Boolean, default=False, nullable=False)
    include_breakfast = db.Column(db.Boolean, default=False, nullable=False)

    # transport sub-document
    transport_pickup = db.Column(db.Boolean, default=False, nullable=False)
    transport_drop = db.Column(db.Boolean, default=False, nullable=False)
    flight_number = db.Column(db.String(20), nullable=True)
    arrival_time = db.Column(db.String(40), nullable=True)
    departure_time = db.Column(db.String(40), nullable=True)
    airport_from = db.Column(db.String(80), nullable=True)

    yoga_session_id = db.Column(db.Integer, db.ForeignKey("yoga_sessions.id"), nullable=True, index=True)
    yoga_participants = db.Column(db.Integer, nullable=False, default=0)

    special_requests = db.Column(db.Text, nullable=True)

    # pricing breakdown (whole rupees)
    room_price = db.Column(db.Integer, nullable=False, default=0)
    food_price = db.Column(db.Integer, nullable=False, default=0)
    breakfast_price = db.Column(db.Integer, nullable=False, default=0)
    services_price = db.Column(db.Integer, nullable=False, default=0)
    transport_price = db.Column(db.Integer, nullable=False, default=0)
    yoga_price = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Integer, nullable=False, default=0)
    coupon_code = db.Column(db.String(40), nullable=True)
    coupon_discount = db.Column(db.Integer, nullable=False, default=0)
    final_amount = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    payment_status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    payment_id = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)

    guests = db.relationship(
        "BookingGuest", backref="booking", cascade="all, delete-orphan",
        order_by="BookingGuest.position",
    )
    selected_services = db.relationship(
        "BookingServiceItem", backref="booking", cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.CheckConstraint("final_amount >= 0", name="ck_booking_final_amount_non_negative"),
        db.CheckConstraint("coupon_discount <= total_amount", name="ck_booking_discount_within_total"),
        db.CheckConstraint("check_in <= check_out", name="ck_booking_stay_window"),
    )

    @property
    def has_transport(self):
        if self.transport_pickup or self.transport_drop:
            return True
        return any(item.kind == "transport" for item in self.selected_services)

    def apply_breakdown(self, breakdown):
        self.room_price = breakdown.room_price
        self.food_price = breakdown.food_price
        self.breakfast_price = breakdown.breakfast_price
        self.services_price = breakdown.services_price
        self.transport_price = breakdown.transport_price
        self.yoga_price = breakdown.yoga_price
        self.total_amount = breakdown.total_amount
        self.coupon_discount = breakdown.coupon_discount
        self.final_amount = breakdown.final_amount

    def subtotal_sum(self):
        return (
            self.room_price + self.food_price + self.breakfast_price
            + self.services_price + self.transport_price + self.yoga_price
        )

    def to_dict(self):
        return {
            "id": self.id,
            "bookingType": self.booking_type,
            "bookingCategory": self.booking_category,
            "checkIn": self.check_in.isoformat(),
            "checkOut": self.check_out.isoformat(),
            "roomId": self.room_id,
            "totalGuests": self.total_guests,
            "adults": self.adults,
            "children": self.children,
            "guests": [g.to_dict() for g in self.guests],
            "primaryGuestInfo": {
                "name": self.guest_name,
                "email": self.guest_email,
                "phone": self.guest_phone,
                "address": self.guest_address,
                "city": self.guest_city,
                "state": self.guest_state,
                "pincode": self.guest_pincode,
                "emergencyContact": {
                    "name": self.emergency_contact_name,
                    "phone": self.emergency_contact_phone,
                    "relationship": self.emergency_contact_relationship,
                },
            },
            "includeFood": self.include_food,
            "includeBreakfast": self.include_breakfast,
            "transport": {
                "pickup": self.transport_pickup,
                "drop": self.transport_drop,
                "flightNumber": self.flight_number,
                "arrivalTime": self.arrival_time,
                "departureTime": self.departure_time,
                "airportFrom": self.airport_from,
            },
            "selectedServices": [s.to_dict() for s in self.selected_services],
            "yogaSessionId": self.yoga_session_id,
            "yogaParticipants": self.yoga_participants,
            "specialRequests": self.special_requests,
            "roomPrice": self.room_price,
            "foodPrice": self.food_price,
            "breakfastPrice": self.breakfast_price,
            "servicesPrice": self.services_price,
            "transportPrice": self.transport_price,
            "yogaPrice": self.yoga_price,
            "totalAmount": self.total_amount,
            "couponCode": self.coupon_code,
            "couponDiscount": self.coupon_discount,
            "finalAmount": self.final_amount,
            "status": self.status,
            "paymentStatus": self.payment_status,
            "paymentId": self.payment_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
        }


class BookingGuest(db.Model):
    __tablename__ = "booking_guests"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.String(32), db.ForeignKey("bookings.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    name = db.Column(db.String(120), nullable=False)
    age = db.Column(db.Integer, nullable=False)
    is_child = db.Column(db.Boolean, nullable=False, default=False)
    gender = db.Column(db.String(10), nullable=True)

    def to_dict(self):
        return {"name": self.name, "age": self.age, "isChild": self.is_child, "gender": self.gender}


class BookingServiceItem(db.Model):
    __tablename__ = "booking_services"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.String(32), db.ForeignKey("bookings.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False, index=True)

    kind = db.Column(db.String(20), nullable=False)  # vehicle_rental, adventure, transport
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Integer, nullable=False)
    duration = db.Column(db.Integer, nullable=False, default=1)
    total_price = db.Column(db.Integer, nullable=False)

    # rental window, kept as columns for overlap queries
    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)

    details = db.Column(db.JSON, nullable=True)

    def to_dict(self):
        return {
            "serviceId": self.service_id,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "duration": self.duration,
            "totalPrice": self.total_price,
            "details": self.details,
        }
