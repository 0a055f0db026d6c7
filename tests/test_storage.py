import json
import os
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from models import db
from models.swap_request import SwapRequest
from storage import get_storage
from storage.json_store import JsonUserRepository, JsonSwapRequestRepository, USERS_FILE, REQUESTS_FILE
from storage.records import UserRecord, SwapRequestRecord, PENDING, ACCEPTED
from utils import timeutil


def _user(user_id="1", email="alice@example.com", **kw):
    return UserRecord(
        id=user_id,
        username=kw.pop("username", "alice"),
        email=email,
        password_hash="$2b$04$notarealhash",
        created_at=timeutil.now_utc(),
        **kw,
    )


def _request(request_id="req_1_abc", status=PENDING, from_user_id="1", to_user_id="2"):
    now = timeutil.now_utc()
    return SwapRequestRecord(
        id=request_id,
        from_user_id=from_user_id,
        to_user_id=to_user_id,
        skill_offered="Guitar",
        skill_wanted="Spanish",
        message="hi",
        status=status,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def repos(app):
    with app.app_context():
        yield get_storage()


def test_json_files_created_on_first_run(tmp_path):
    JsonUserRepository(str(tmp_path))
    JsonSwapRequestRepository(str(tmp_path))

    with open(os.path.join(tmp_path, USERS_FILE)) as fh:
        raw = fh.read()
    assert json.loads(raw) == {"users": []}
    with open(os.path.join(tmp_path, REQUESTS_FILE)) as fh:
        assert json.load(fh) == {"requests": []}


def test_json_documents_use_flat_file_field_names(tmp_path):
    repo = JsonUserRepository(str(tmp_path))
    repo.insert(_user())

    with open(os.path.join(tmp_path, USERS_FILE)) as fh:
        raw = fh.read()
    assert "\n  " in raw  # pretty printed
    doc = json.loads(raw)["users"][0]
    assert doc["password"] == "$2b$04$notarealhash"
    assert doc["failedLoginAttempts"] == 0
    assert doc["accountLocked"] is False
    assert doc["lockUntil"] is None
    assert doc["createdAt"].endswith("Z")


def test_json_repository_reads_existing_file(tmp_path):
    path = os.path.join(tmp_path, USERS_FILE)
    with open(path, "w") as fh:
        json.dump({"users": [{
            "id": "1700000000000",
            "username": "legacy",
            "email": "legacy@example.com",
            "password": "$2b$10$abc",
            "createdAt": "2024-01-01T00:00:00.000Z",
            "lastLogin": None,
        }]}, fh)

    user = JsonUserRepository(str(tmp_path)).get("1700000000000")
    assert user.username == "legacy"
    assert user.failed_login_attempts == 0
    assert user.account_locked is False
    assert user.created_at.year == 2024


def test_user_insert_rejects_duplicate_email(repos):
    assert repos.users.insert(_user()) is True
    assert repos.users.insert(_user(user_id="2")) is False
    assert [u.id for u in repos.users.list()] == ["1"]


def test_user_cas_update(repos):
    repos.users.insert(_user())

    updated = repos.users.cas_update("1", {"failed_login_attempts": 0}, {"failed_login_attempts": 1})
    assert updated.failed_login_attempts == 1

    # stale expectation loses
    assert repos.users.cas_update("1", {"failed_login_attempts": 0}, {"failed_login_attempts": 7}) is None
    assert repos.users.get("1").failed_login_attempts == 1

    assert repos.users.cas_update("missing", {}, {"failed_login_attempts": 1}) is None


def test_user_cas_update_with_datetime_change(repos):
    repos.users.insert(_user())
    lock_until = timeutil.now_utc() + timedelta(minutes=15)

    updated = repos.users.cas_update(
        "1", {"account_locked": False}, {"account_locked": True, "lock_until": lock_until}
    )
    assert updated.account_locked is True
    assert abs((updated.lock_until - lock_until).total_seconds()) < 0.01


def test_user_upsert(repos):
    repos.users.upsert(_user(username="first"))
    repos.users.upsert(_user(username="second"))
    assert repos.users.get("1").username == "second"
    assert len(repos.users.list()) == 1


def test_insert_pending_is_unique_per_pair(repos):
    repos.users.insert(_user())
    repos.users.insert(_user(user_id="2", email="bob@example.com", username="bob"))

    assert repos.requests.insert_pending(_request("req_1_a")) is True
    assert repos.requests.insert_pending(_request("req_1_b")) is False

    repos.requests.cas_update("req_1_a", {"status": PENDING}, {"status": ACCEPTED})
    assert repos.requests.insert_pending(_request("req_1_c")) is True

    assert {r.id for r in repos.requests.list(from_user_id="1")} == {"req_1_a", "req_1_c"}
    assert [r.id for r in repos.requests.list(status=ACCEPTED)] == ["req_1_a"]
    assert repos.requests.list(to_user_id="1") == []


def test_request_cas_and_delete(repos):
    repos.users.insert(_user())
    repos.users.insert(_user(user_id="2", email="bob@example.com", username="bob"))
    repos.requests.insert_pending(_request())

    assert repos.requests.cas_update("req_1_abc", {"status": ACCEPTED}, {"status": PENDING}) is None
    assert repos.requests.delete("req_1_abc", {"status": ACCEPTED}) is False
    assert repos.requests.get("req_1_abc").status == PENDING

    assert repos.requests.delete("req_1_abc", {"status": PENDING}) is True
    assert repos.requests.get("req_1_abc") is None
    assert repos.requests.delete("req_1_abc") is False


def test_sql_schema_allows_one_pending_request_per_pair(make_app):
    app = make_app("sql")
    with app.app_context():
        def row(request_id, status):
            return SwapRequest(
                id=request_id, from_user_id="1", to_user_id="2",
                skill_offered="Guitar", skill_wanted="Spanish", message="hi", status=status,
            )

        db.session.add(row("req_1_a", PENDING))
        db.session.add(row("req_1_b", ACCEPTED))
        db.session.commit()

        db.session.add(row("req_1_c", PENDING))
        with pytest.raises(IntegrityError):
            db.session.commit()
        db.session.rollback()

        # the insert itself is refused, without a prior lookup
        assert get_storage().requests.insert_pending(_request("req_1_d")) is False
        assert {r.id for r in get_storage().requests.list()} == {"req_1_a", "req_1_b"}
