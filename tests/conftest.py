from types import SimpleNamespace

import pytest

from app import create_app
from config import TestConfig
from models import db
from models.room import Room
from models.service import Service
from models.yoga_session import YogaSession


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def admin_headers():
    return {"X-Admin-Key": TestConfig.ADMIN_API_KEY}


@pytest.fixture()
def catalog(app):
    room = Room(name="Sea View Cottage", room_type="cottage", price_per_night=2000, capacity=4)
    car = Service(
        name="Car Rental", category="vehicle_rental", price=800, price_unit="per_day",
        driver_charge_per_day=300, max_quantity=2,
    )
    surfing = Service(name="Surfing Lesson", category="surfing", price=1500, price_unit="per_person")
    shuttle = Service(name="Airport Shuttle", category="transport", price=1200, price_unit="flat")
    yoga = YogaSession(name="Morning Hatha", session_type="daily", price=500, capacity=3)
    db.session.add_all([room, car, surfing, shuttle, yoga])
    db.session.commit()
    return SimpleNamespace(room=room, car=car, surfing=surfing, shuttle=shuttle, yoga=yoga)


@pytest.fixture()
def booking_payload(catalog):
    """Factory for a valid room booking payload; keyword overrides replace top-level keys."""
    def build(**overrides):
        payload = {
            "bookingType": "room",
            "roomId": catalog.room.id,
            "checkIn": "2030-03-01T12:00:00",
            "checkOut": "2030-03-03T11:00:00",
            "guests": [
                {"name": "Asha Menon", "age": 34, "gender": "female"},
                {"name": "Ravi Menon", "age": 36},
                {"name": "Mia Menon", "age": 4},
            ],
            "primaryGuestInfo": {
                "name": "Asha Menon",
                "email": "Asha@Example.com",
                "phone": "+919800000001",
                "city": "Kochi",
                "emergencyContact": {"name": "Lakshmi", "phone": "+919800000002", "relationship": "mother"},
            },
        }
        payload.update(overrides)
        return {k: v for k, v in payload.items() if v is not None}
    return build


@pytest.fixture()
def sent_emails(monkeypatch):
    sent = []

    def fake_send(to_email, subject, body, html=None, cc=None):
        sent.append({"to": to_email, "subject": subject, "body": body, "html": html, "cc": cc})
        return True, None

    monkeypatch.setattr("domain.notifications.send_email", fake_send)
    return sent
