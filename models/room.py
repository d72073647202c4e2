from datetime import datetime
from models.db import db

class Room(db.Model):
    __tablename__ = "rooms"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    room_type = db.Column(db.String(40), nullable=False, default="standard")
    description = db.Column(db.Text, nullable=True)

    price_per_night = db.Column(db.Integer, nullable=False)  # whole rupees
    capacity = db.Column(db.Integer, nullable=False, default=2)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "roomType": self.room_type,
            "description": self.description,
            "pricePerNight": self.price_per_night,
            "capacity": self.capacity,
        }
