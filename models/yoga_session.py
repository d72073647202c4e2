from datetime import datetime
from models.db import db

class YogaSession(db.Model):
    __tablename__ = "yoga_sessions"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    session_type = db.Column(db.String(20), nullable=False, default="single")  # 200hr, 300hr, single, daily

    price = db.Column(db.Integer, nullable=False)  # per participant
    capacity = db.Column(db.Integer, nullable=False, default=20)

    start_date = db.Column(db.DateTime, nullable=True)
    end_date = db.Column(db.DateTime, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "sessionType": self.session_type,
            "price": self.price,
            "capacity": self.capacity,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
        }
