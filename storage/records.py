"""
Typed records passed across the storage boundary.

Both backends hand out these dataclasses. The JSON documents keep the
camelCase field names of the flat files (``failedLoginAttempts``,
``lockUntil`` ...) so existing ``users.json`` / ``swap-requests.json`` files
stay readable.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from utils.timeutil import to_iso, from_iso

PENDING = "pending"
ACCEPTED = "accepted"
REJECTED = "rejected"
COMPLETED = "completed"


@dataclass(frozen=True)
class UserRecord:
    id: str
    username: str
    email: str
    password_hash: str
    created_at: datetime
    last_login: Optional[datetime] = None
    failed_login_attempts: int = 0
    account_locked: bool = False
    lock_until: Optional[datetime] = None
    rating: float = 0.0

    def public(self) -> dict:
        return {"id": self.id, "username": self.username, "email": self.email}

    def snapshot(self) -> dict:
        """Denormalised view embedded in swap request listings."""
        return {"name": self.username, "email": self.email, "rating": self.rating}

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "password": self.password_hash,
            "createdAt": to_iso(self.created_at),
            "lastLogin": to_iso(self.last_login),
            "failedLoginAttempts": self.failed_login_attempts,
            "accountLocked": self.account_locked,
            "lockUntil": to_iso(self.lock_until),
            "rating": self.rating,
        }

    @classmethod
    def from_document(cls, doc: dict) -> "UserRecord":
        return cls(
            id=str(doc["id"]),
            username=doc.get("username") or "",
            email=doc["email"],
            password_hash=doc["password"],
            created_at=from_iso(doc.get("createdAt")),
            last_login=from_iso(doc.get("lastLogin")),
            failed_login_attempts=int(doc.get("failedLoginAttempts") or 0),
            account_locked=bool(doc.get("accountLocked", False)),
            lock_until=from_iso(doc.get("lockUntil")),
            rating=float(doc.get("rating") or 0),
        )


@dataclass(frozen=True)
class SwapRequestRecord:
    id: str
    from_user_id: str
    to_user_id: str
    skill_offered: str
    skill_wanted: str
    message: str
    status: str
    created_at: datetime
    updated_at: datetime

    def to_document(self) -> dict:
        return {
            "id": self.id,
            "fromUserId": self.from_user_id,
            "toUserId": self.to_user_id,
            "skillOffered": self.skill_offered,
            "skillWanted": self.skill_wanted,
            "message": self.message,
            "status": self.status,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }

    @classmethod
    def from_document(cls, doc: dict) -> "SwapRequestRecord":
        return cls(
            id=doc["id"],
            from_user_id=str(doc["fromUserId"]),
            to_user_id=str(doc["toUserId"]),
            skill_offered=doc["skillOffered"],
            skill_wanted=doc["skillWanted"],
            message=doc.get("message") or "",
            status=doc["status"],
            created_at=from_iso(doc.get("createdAt")),
            updated_at=from_iso(doc.get("updatedAt")),
        )


