from models import db
from models.room import Room
from models.service import Service
from models.yoga_session import YogaSession

DEFAULT_ROOMS = [
    {"name": "AC Room", "room_type": "ac", "price_per_night": 2000, "capacity": 3},
    {"name": "Non-AC Room", "room_type": "non_ac", "price_per_night": 1500, "capacity": 3},
    {"name": "Sea View Cottage", "room_type": "cottage", "price_per_night": 3500, "capacity": 4},
]

DEFAULT_SERVICES = [
    {"name": "Surfing Lesson", "category": "surfing", "price": 1500, "price_unit": "per_person"},
    {"name": "Scuba Diving", "category": "diving", "price": 4500, "price_unit": "per_person", "max_quantity": 8},
    {"name": "Kayaking", "category": "adventure", "price": 800, "price_unit": "per_person"},
    {"name": "Varkala Cliff Trek", "category": "trekking", "price": 600, "price_unit": "per_person"},
    {"name": "Scooter Rental", "category": "vehicle_rental", "price": 400, "price_unit": "per_day",
     "max_quantity": 6},
    {"name": "Car Rental", "category": "vehicle_rental", "price": 2500, "price_unit": "per_day",
     "driver_charge_per_day": 800, "max_quantity": 2},
]

DEFAULT_YOGA_SESSIONS = [
    {"name": "Morning Hatha", "session_type": "daily", "price": 500, "capacity": 20},
    {"name": "200hr Teacher Training", "session_type": "200hr", "price": 45000, "capacity": 15},
]


def seed_catalog():
    """Insert the default catalog. Rows are matched by name, so re-running is safe."""
    added = 0
    for model, rows in ((Room, DEFAULT_ROOMS), (Service, DEFAULT_SERVICES), (YogaSession, DEFAULT_YOGA_SESSIONS)):
        existing = {name for (name,) in db.session.query(model.name).all()}
        for row in rows:
            if row["name"] not in existing:
                db.session.add(model(**row))
                added += 1
    db.session.commit()
    return added
