from datetime import datetime
from models.db import db

class BookingDraftRecord(db.Model):
    __tablename__ = "booking_drafts"

    token = db.Column(db.String(64), primary_key=True)
    payload_json = db.Column(db.JSON, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False, index=True)
