from datetime import datetime, timezone
from models.db import db


def _utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SwapRequest(db.Model):
    __tablename__ = "swap_requests"

    id = db.Column(db.String(64), primary_key=True)

    from_user_id = db.Column(db.String(32), db.ForeignKey("users.id"), nullable=False, index=True)
    to_user_id = db.Column(db.String(32), db.ForeignKey("users.id"), nullable=False, index=True)

    skill_offered = db.Column(db.String(100), nullable=False)
    skill_wanted = db.Column(db.String(100), nullable=False)
    message = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(20), nullable=False, default="pending")
    # status values: pending, accepted, rejected, completed

    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=_utcnow, nullable=False)

    __table_args__ = (
        db.Index("ix_swap_requests_pair_status", "from_user_id", "to_user_id", "status"),
        # one pending request per (from, to) pair
        db.Index(
            "uq_swap_requests_pending_pair", "from_user_id", "to_user_id",
            unique=True,
            sqlite_where=db.text("status = 'pending'"),
            postgresql_where=db.text("status = 'pending'"),
        ),
    )
