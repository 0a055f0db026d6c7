"""
Relational backend on Flask-SQLAlchemy.

Compare-and-swap updates are conditional ``UPDATE ... WHERE`` statements; the
row count tells whether the expected state still held.
"""
from datetime import datetime, timezone
from typing import List, Mapping, Optional

from sqlalchemy import update, delete
from sqlalchemy.exc import IntegrityError

from models import db
from models.user import User
from models.swap_request import SwapRequest
from storage.base import UserRepository, SwapRequestRepository
from storage.records import UserRecord, SwapRequestRecord
from utils.timeutil import as_utc


def _db_value(value):
    # DateTime columns hold naive UTC
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _conditions(model, expected: Mapping):
    conds = []
    for field, value in (expected or {}).items():
        column = getattr(model, field)
        conds.append(column.is_(None) if value is None else column == _db_value(value))
    return conds


def _user_record(row: User) -> UserRecord:
    return UserRecord(
        id=row.id,
        username=row.username,
        email=row.email,
        password_hash=row.password_hash,
        created_at=as_utc(row.created_at),
        last_login=as_utc(row.last_login),
        failed_login_attempts=row.failed_login_attempts or 0,
        account_locked=bool(row.account_locked),
        lock_until=as_utc(row.lock_until),
        rating=row.rating or 0.0,
    )


def _request_record(row: SwapRequest) -> SwapRequestRecord:
    return SwapRequestRecord(
        id=row.id,
        from_user_id=row.from_user_id,
        to_user_id=row.to_user_id,
        skill_offered=row.skill_offered,
        skill_wanted=row.skill_wanted,
        message=row.message,
        status=row.status,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _user_columns(record: UserRecord) -> dict:
    return {
        "username": record.username,
        "email": record.email,
        "password_hash": record.password_hash,
        "created_at": _db_value(record.created_at),
        "last_login": _db_value(record.last_login),
        "failed_login_attempts": record.failed_login_attempts,
        "account_locked": record.account_locked,
        "lock_until": _db_value(record.lock_until),
        "rating": record.rating,
    }


def _request_columns(record: SwapRequestRecord) -> dict:
    return {
        "from_user_id": record.from_user_id,
        "to_user_id": record.to_user_id,
        "skill_offered": record.skill_offered,
        "skill_wanted": record.skill_wanted,
        "message": record.message,
        "status": record.status,
        "created_at": _db_value(record.created_at),
        "updated_at": _db_value(record.updated_at),
    }


class SqlUserRepository(UserRepository):

    def get(self, user_id: str) -> Optional[UserRecord]:
        row = db.session.get(User, str(user_id))
        return _user_record(row) if row else None

    def get_by_email(self, email: str) -> Optional[UserRecord]:
        row = User.query.filter_by(email=email).first()
        return _user_record(row) if row else None

    def list(self) -> List[UserRecord]:
        return [_user_record(row) for row in User.query.order_by(User.created_at.asc()).all()]

    def insert(self, record: UserRecord) -> bool:
        if User.query.filter_by(email=record.email).first() or db.session.get(User, record.id):
            return False
        db.session.add(User(id=record.id, **_user_columns(record)))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return False
        return True

    def upsert(self, record: UserRecord) -> UserRecord:
        row = db.session.get(User, record.id)
        if row is None:
            db.session.add(User(id=record.id, **_user_columns(record)))
        else:
            for key, value in _user_columns(record).items():
                setattr(row, key, value)
        db.session.commit()
        return record

    def cas_update(self, user_id: str, expected: Mapping, changes: Mapping) -> Optional[UserRecord]:
        stmt = (
            update(User)
            .where(User.id == str(user_id), *_conditions(User, expected))
            .values({k: _db_value(v) for k, v in changes.items()})
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.commit()
        if result.rowcount != 1:
            return None
        db.session.expire_all()
        return self.get(user_id)


class SqlSwapRequestRepository(SwapRequestRepository):

    def get(self, request_id: str) -> Optional[SwapRequestRecord]:
        row = db.session.get(SwapRequest, request_id)
        return _request_record(row) if row else None

    def list(self, from_user_id: str = None, to_user_id: str = None,
             status: str = None) -> List[SwapRequestRecord]:
        q = SwapRequest.query
        if from_user_id is not None:
            q = q.filter_by(from_user_id=from_user_id)
        if to_user_id is not None:
            q = q.filter_by(to_user_id=to_user_id)
        if status is not None:
            q = q.filter_by(status=status)
        return [_request_record(row) for row in q.order_by(SwapRequest.created_at.asc()).all()]

    def insert_pending(self, record: SwapRequestRecord) -> bool:
        # uq_swap_requests_pending_pair decides between concurrent creates
        db.session.add(SwapRequest(id=record.id, **_request_columns(record)))
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return False
        return True

    def upsert(self, record: SwapRequestRecord) -> SwapRequestRecord:
        row = db.session.get(SwapRequest, record.id)
        if row is None:
            db.session.add(SwapRequest(id=record.id, **_request_columns(record)))
        else:
            for key, value in _request_columns(record).items():
                setattr(row, key, value)
        db.session.commit()
        return record

    def cas_update(self, request_id: str, expected: Mapping, changes: Mapping) -> Optional[SwapRequestRecord]:
        stmt = (
            update(SwapRequest)
            .where(SwapRequest.id == request_id, *_conditions(SwapRequest, expected))
            .values({k: _db_value(v) for k, v in changes.items()})
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.commit()
        if result.rowcount != 1:
            return None
        db.session.expire_all()
        return self.get(request_id)

    def delete(self, request_id: str, expected: Mapping = None) -> bool:
        stmt = (
            delete(SwapRequest)
            .where(SwapRequest.id == request_id, *_conditions(SwapRequest, expected))
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        db.session.commit()
        return result.rowcount == 1
