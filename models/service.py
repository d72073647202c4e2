from datetime import datetime
from models.db import db

SERVICE_CATEGORIES = (
    "vehicle_rental", "surfing", "adventure", "diving",
    "trekking", "sightseeing", "transport",
)
PRICE_UNITS = ("per_person", "per_day", "per_session", "flat")

class Service(db.Model):
    __tablename__ = "services"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    category = db.Column(db.String(30), nullable=False, index=True)
    description = db.Column(db.Text, nullable=True)

    price = db.Column(db.Integer, nullable=False)  # whole rupees per price_unit
    price_unit = db.Column(db.String(20), nullable=False, default="per_person")

    # vehicle rentals only
    driver_charge_per_day = db.Column(db.Integer, nullable=True)

    # units that can be out at the same time; NULL means unlimited
    max_quantity = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_vehicle_rental(self):
        return self.category == "vehicle_rental"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "price": self.price,
            "priceUnit": self.price_unit,
            "driverChargePerDay": self.driver_charge_per_day,
            "maxQuantity": self.max_quantity,
        }
