from datetime import datetime, timezone
from models.db import db


class RateCounter(db.Model):
    __tablename__ = "rate_counters"

    id = db.Column(db.Integer, primary_key=True)
    # e.g. "rl:auth:10.0.0.1" or "bf:10.0.0.1:/api/auth/login"
    key = db.Column(db.String(255), unique=True, nullable=False, index=True)

    window_start = db.Column(db.DateTime, nullable=False)
    count = db.Column(db.Integer, default=0, nullable=False)

    updated_at = db.Column(
        db.DateTime,
        default=lambda: datetime.now(timezone.utc).replace(tzinfo=None),
        onupdate=lambda: datetime.now(timezone.utc).replace(tzinfo=None),
        nullable=False,
    )
