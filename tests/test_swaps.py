import pytest

from storage import get_storage
from tests.conftest import bearer


def _create(client, sender, recipient, **fields):
    payload = {
        "toUserId": recipient["id"],
        "skillOffered": "Guitar",
        "skillWanted": "Spanish",
        "message": "Happy to trade lessons on weekends",
    }
    payload.update(fields)
    return client.post("/api/swaps/request", json=payload, headers=bearer(sender["token"]))


def _stored(app, request_id):
    with app.app_context():
        return get_storage().requests.get(request_id)


def test_swap_scenario(app, client, users, clock):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]

    created = _create(client, alice, bob)
    assert created.status_code == 201
    request = created.get_json()["request"]
    assert request["status"] == "pending"
    assert request["fromUserId"] == alice["id"]
    assert request["toUserId"] == bob["id"]
    assert request["skillOffered"] == "Guitar"
    assert request["skillWanted"] == "Spanish"
    assert request["id"].startswith("req_")

    clock.advance(seconds=30)
    accepted = client.put(f"/api/swaps/accept/{request['id']}", headers=bearer(bob["token"]))
    assert accepted.status_code == 200
    body = accepted.get_json()["request"]
    assert body["status"] == "accepted"
    assert body["updatedAt"] > request["updatedAt"]

    stolen = client.put(f"/api/swaps/accept/{request['id']}", headers=bearer(carol["token"]))
    assert stolen.status_code == 403


def test_only_recipient_can_accept_and_record_is_unchanged(app, client, users):
    request = _create(client, users["alice"], users["bob"]).get_json()["request"]
    before = _stored(app, request["id"])

    for intruder in ("alice", "carol"):
        resp = client.put(f"/api/swaps/accept/{request['id']}", headers=bearer(users[intruder]["token"]))
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Access denied"

    assert _stored(app, request["id"]) == before


def test_duplicate_pending_request_rejected(client, users):
    assert _create(client, users["alice"], users["bob"]).status_code == 201

    dup = _create(client, users["alice"], users["bob"], skillOffered="Piano")
    assert dup.status_code == 400
    assert dup.get_json()["error"] == "Duplicate request"

    # the reverse direction is a different pair
    assert _create(client, users["bob"], users["alice"]).status_code == 201


@pytest.mark.parametrize("settle", ["accept", "decline", "complete"])
def test_new_request_allowed_once_previous_is_settled(client, users, settle):
    alice, bob = users["alice"], users["bob"]
    request_id = _create(client, alice, bob).get_json()["request"]["id"]

    if settle == "decline":
        assert client.put(f"/api/swaps/decline/{request_id}", headers=bearer(bob["token"])).status_code == 200
    else:
        assert client.put(f"/api/swaps/accept/{request_id}", headers=bearer(bob["token"])).status_code == 200
    if settle == "complete":
        assert client.put(f"/api/swaps/complete/{request_id}", headers=bearer(alice["token"])).status_code == 200

    assert _create(client, alice, bob).status_code == 201


def test_accept_non_pending_is_invalid_state(client, users):
    bob = users["bob"]
    request_id = _create(client, users["alice"], bob).get_json()["request"]["id"]
    client.put(f"/api/swaps/decline/{request_id}", headers=bearer(bob["token"]))

    resp = client.put(f"/api/swaps/accept/{request_id}", headers=bearer(bob["token"]))
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Request is not pending"


def test_complete_requires_accepted_and_participant(client, users):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    request_id = _create(client, alice, bob).get_json()["request"]["id"]

    early = client.put(f"/api/swaps/complete/{request_id}", headers=bearer(bob["token"]))
    assert early.status_code == 400

    client.put(f"/api/swaps/accept/{request_id}", headers=bearer(bob["token"]))
    outsider = client.put(f"/api/swaps/complete/{request_id}", headers=bearer(carol["token"]))
    assert outsider.status_code == 403

    done = client.put(f"/api/swaps/complete/{request_id}", headers=bearer(bob["token"]))
    assert done.status_code == 200
    assert done.get_json()["request"]["status"] == "completed"


def test_create_request_validation(client, users):
    alice = users["alice"]

    missing = _create(client, alice, users["bob"], message="")
    assert missing.status_code == 400
    assert missing.get_json()["error"] == "Missing required fields"

    self_swap = _create(client, alice, alice)
    assert self_swap.status_code == 400
    assert self_swap.get_json()["message"] == "Cannot request swap with yourself"

    ghost = _create(client, alice, {"id": "12345"})
    assert ghost.status_code == 404

    anonymous = client.post("/api/swaps/request", json={"toUserId": users["bob"]["id"]})
    assert anonymous.status_code == 401


def test_incoming_lists_pending_with_requester_snapshot(client, users):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    first = _create(client, alice, bob).get_json()["request"]["id"]
    second = _create(client, carol, bob, skillOffered="Cooking").get_json()["request"]["id"]
    client.put(f"/api/swaps/decline/{first}", headers=bearer(bob["token"]))

    resp = client.get(f"/api/swaps/incoming/{bob['id']}", headers=bearer(bob["token"]))
    assert resp.status_code == 200
    rows = resp.get_json()
    assert [r["id"] for r in rows] == [second]
    assert rows[0]["fromUser"] == {"name": "carol", "email": "carol@example.com", "rating": 0}
    assert rows[0]["skillOffered"] == "Cooking"
    assert rows[0]["status"] == "pending"
    assert rows[0]["date"]


def test_lists_are_self_only(client, users):
    bob = users["bob"]
    for kind in ("incoming", "outgoing", "completed"):
        resp = client.get(f"/api/swaps/{kind}/{bob['id']}", headers=bearer(users["alice"]["token"]))
        assert resp.status_code == 403
        assert resp.get_json()["message"] == "You can only view your own requests"


def test_outgoing_and_completed_lists(client, users):
    alice, bob, carol = users["alice"], users["bob"], users["carol"]
    to_bob = _create(client, alice, bob).get_json()["request"]["id"]
    _create(client, alice, carol)

    outgoing = client.get(f"/api/swaps/outgoing/{alice['id']}", headers=bearer(alice["token"])).get_json()
    assert {r["toUser"]["name"] for r in outgoing} == {"bob", "carol"}

    client.put(f"/api/swaps/accept/{to_bob}", headers=bearer(bob["token"]))
    client.put(f"/api/swaps/complete/{to_bob}", headers=bearer(bob["token"]))

    for who in (alice, bob):
        done = client.get(f"/api/swaps/completed/{who['id']}", headers=bearer(who["token"])).get_json()
        assert [r["id"] for r in done] == [to_bob]
        assert done[0]["fromUser"]["name"] == "alice"
        assert done[0]["toUser"]["name"] == "bob"

    carol_done = client.get(f"/api/swaps/completed/{carol['id']}", headers=bearer(carol["token"])).get_json()
    assert carol_done == []


def test_delete_pending_request_by_requester_only(app, client, users):
    alice, bob = users["alice"], users["bob"]
    request_id = _create(client, alice, bob).get_json()["request"]["id"]

    assert client.delete(f"/api/swaps/{request_id}", headers=bearer(bob["token"])).status_code == 403
    assert client.delete(f"/api/swaps/{request_id}", headers=bearer(alice["token"])).status_code == 200
    assert _stored(app, request_id) is None

    gone = client.delete(f"/api/swaps/{request_id}", headers=bearer(alice["token"]))
    assert gone.status_code == 404


def test_accepted_request_cannot_be_deleted(client, users):
    alice, bob = users["alice"], users["bob"]
    request_id = _create(client, alice, bob).get_json()["request"]["id"]
    client.put(f"/api/swaps/accept/{request_id}", headers=bearer(bob["token"]))

    resp = client.delete(f"/api/swaps/{request_id}", headers=bearer(alice["token"]))
    assert resp.status_code == 400


@pytest.mark.parametrize("field,value", [
    ("skillOffered", 5),
    ("skillWanted", ["Spanish"]),
    ("message", {"text": "hi"}),
    ("toUserId", True),
])
def test_create_request_rejects_non_string_fields(client, users, field, value):
    resp = _create(client, users["alice"], users["bob"], **{field: value})
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Invalid field type"


def test_create_request_accepts_numeric_user_id(client, users):
    resp = _create(client, users["alice"], {"id": int(users["bob"]["id"])})
    assert resp.status_code == 201
    assert resp.get_json()["request"]["toUserId"] == users["bob"]["id"]
