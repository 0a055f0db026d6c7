from datetime import datetime, timezone
from models.db import db


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(db.Model):
    __tablename__ = "users"

    # timestamp-derived string ids, shared with the JSON backend
    id = db.Column(db.String(32), primary_key=True)

    username = db.Column(db.String(50), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    rating = db.Column(db.Float, default=0.0, nullable=False)

    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    last_login = db.Column(db.DateTime, nullable=True)

    # lockout state
    failed_login_attempts = db.Column(db.Integer, default=0, nullable=False)
    account_locked = db.Column(db.Boolean, default=False, nullable=False)
    lock_until = db.Column(db.DateTime, nullable=True)
