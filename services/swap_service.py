"""
Swap request workflow.

    pending --accept--> accepted --complete--> completed
    pending --decline-> rejected

Each transition is a compare-and-swap on the current status, so two callers
racing on the same request cannot both win.
"""
import logging
import secrets
from typing import Callable, Dict, List, Optional

from services.fields import id_field, text_field
from storage.base import UserRepository, SwapRequestRepository
from storage.records import (
    SwapRequestRecord,
    PENDING,
    ACCEPTED,
    REJECTED,
    COMPLETED,
)
from utils import timeutil
from utils.audit import log_event
from utils.errors import ConflictError, Forbidden, InvalidState, NotFound, ValidationError

logger = logging.getLogger(__name__)

SKILL_MAX_LEN = 100
MESSAGE_MAX_LEN = 1000

UNKNOWN_USER = {"name": "Unknown User", "email": "", "rating": 0}


def new_request_id() -> str:
    millis = int(timeutil.now_utc().timestamp() * 1000)
    return f"req_{millis}_{secrets.token_hex(5)[:9]}"


class SwapService:
    def __init__(self, users: UserRepository, requests: SwapRequestRepository):
        self.users = users
        self.requests = requests

    def _snapshots(self) -> Dict[str, dict]:
        return {user.id: user.snapshot() for user in self.users.list()}

    def create_request(self, from_user_id: str, to_user_id: str, skill_offered: str,
                       skill_wanted: str, message: str) -> SwapRequestRecord:
        to_user_id = id_field(to_user_id, "toUserId")
        skill_offered = text_field(skill_offered, "skillOffered")
        skill_wanted = text_field(skill_wanted, "skillWanted")
        message = text_field(message, "message")

        if not to_user_id or not skill_offered or not skill_wanted or not message:
            raise ValidationError("All fields are required", error="Missing required fields")
        if len(skill_offered) > SKILL_MAX_LEN or len(skill_wanted) > SKILL_MAX_LEN:
            raise ValidationError(f"Skills must be at most {SKILL_MAX_LEN} characters")
        if len(message) > MESSAGE_MAX_LEN:
            raise ValidationError(f"Message must be at most {MESSAGE_MAX_LEN} characters")

        if not self.users.get(from_user_id) or not self.users.get(to_user_id):
            raise NotFound("One or both users not found", error="User not found")

        if from_user_id == to_user_id:
            raise ValidationError("Cannot request swap with yourself", error="Invalid request")

        now = timeutil.now_utc()
        record = SwapRequestRecord(
            id=new_request_id(),
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            skill_offered=skill_offered,
            skill_wanted=skill_wanted,
            message=message,
            status=PENDING,
            created_at=now,
            updated_at=now,
        )
        if not self.requests.insert_pending(record):
            raise ConflictError(
                "You already have a pending request with this user", error="Duplicate request"
            )

        logger.info("New swap request created: %s -> %s", from_user_id, to_user_id)
        log_event("SWAP_CREATE", user_id=from_user_id, entity="swap_request", entity_id=record.id)
        return record

    def list_incoming(self, user_id: str) -> List[dict]:
        snapshots = self._snapshots()
        rows = sorted(
            self.requests.list(to_user_id=user_id, status=PENDING),
            key=lambda r: r.created_at, reverse=True,
        )
        return [
            {
                "id": r.id,
                "fromUser": snapshots.get(r.from_user_id, UNKNOWN_USER),
                "skillOffered": r.skill_offered,
                "skillWanted": r.skill_wanted,
                "message": r.message,
                "date": timeutil.to_iso(r.created_at),
                "status": r.status,
            }
            for r in rows
        ]

    def list_outgoing(self, user_id: str) -> List[dict]:
        snapshots = self._snapshots()
        rows = sorted(self.requests.list(from_user_id=user_id), key=lambda r: r.created_at, reverse=True)
        out = []
        for r in rows:
            doc = r.to_document()
            doc["toUser"] = snapshots.get(r.to_user_id, UNKNOWN_USER)
            out.append(doc)
        return out

    def list_completed(self, user_id: str) -> List[dict]:
        snapshots = self._snapshots()
        rows = [
            r for r in self.requests.list(status=COMPLETED)
            if user_id in (r.from_user_id, r.to_user_id)
        ]
        out = []
        for r in sorted(rows, key=lambda r: r.created_at, reverse=True):
            doc = r.to_document()
            doc["fromUser"] = snapshots.get(r.from_user_id, UNKNOWN_USER)
            doc["toUser"] = snapshots.get(r.to_user_id, UNKNOWN_USER)
            out.append(doc)
        return out

    def _load(self, request_id: str) -> SwapRequestRecord:
        record = self.requests.get(request_id)
        if not record:
            raise NotFound("Swap request not found", error="Request not found")
        return record

    def _transition(self, request_id: str, caller_id: str,
                    allowed: Callable[[SwapRequestRecord], bool], denied_message: str,
                    from_status: str, to_status: str, action: str) -> SwapRequestRecord:
        record = self._load(request_id)
        if not allowed(record):
            raise Forbidden(denied_message)
        if record.status != from_status:
            raise InvalidState(f"Request is not {from_status}")

        updated: Optional[SwapRequestRecord] = self.requests.cas_update(
            request_id,
            {"status": from_status},
            {"status": to_status, "updated_at": timeutil.now_utc()},
        )
        if updated is None:
            raise InvalidState(f"Request is not {from_status}")

        logger.info("Swap request %s: %s", to_status, request_id)
        log_event(action, user_id=caller_id, entity="swap_request", entity_id=request_id)
        return updated

    def accept(self, request_id: str, caller_id: str) -> SwapRequestRecord:
        return self._transition(
            request_id, caller_id,
            lambda r: r.to_user_id == caller_id,
            "You can only accept requests sent to you",
            PENDING, ACCEPTED, "SWAP_ACCEPT",
        )

    def decline(self, request_id: str, caller_id: str) -> SwapRequestRecord:
        return self._transition(
            request_id, caller_id,
            lambda r: r.to_user_id == caller_id,
            "You can only decline requests sent to you",
            PENDING, REJECTED, "SWAP_DECLINE",
        )

    def complete(self, request_id: str, caller_id: str) -> SwapRequestRecord:
        return self._transition(
            request_id, caller_id,
            lambda r: caller_id in (r.from_user_id, r.to_user_id),
            "You can only complete swaps you are part of",
            ACCEPTED, COMPLETED, "SWAP_COMPLETE",
        )

    def delete(self, request_id: str, caller_id: str) -> None:
        record = self._load(request_id)
        if record.from_user_id != caller_id:
            raise Forbidden("You can only delete requests you sent")
        if record.status != PENDING:
            raise InvalidState("Only pending requests can be deleted")
        if not self.requests.delete(request_id, {"status": PENDING}):
            raise InvalidState("Only pending requests can be deleted")

        logger.info("Swap request deleted: %s", request_id)
        log_event("SWAP_DELETE", user_id=caller_id, entity="swap_request", entity_id=request_id)
