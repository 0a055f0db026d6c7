from datetime import datetime

import pytest
from sqlalchemy.exc import IntegrityError

from models import db
from models.rate_counter import RateCounter
from security.bruteforce import is_blocked, is_protected, register_failure
from security.rate_limit import (
    MemoryCounterStore,
    RedisCounterStore,
    SqlCounterStore,
    build_counter_store,
    check_rate_limits,
    matching_rules,
    rules_from_config,
)

WINDOW = 900


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.ops = []

    def incr(self, name):
        self.ops.append(("incr", name))

    def ttl(self, name):
        self.ops.append(("ttl", name))

    def execute(self):
        return [getattr(self.client, op)(name) for op, name in self.ops]


class FakeRedis:
    """Just enough of redis.Redis for the counter store."""

    def __init__(self):
        self.values = {}
        self.ttls = {}

    def pipeline(self):
        return FakePipeline(self)

    def incr(self, name):
        self.values[name] = self.values.get(name, 0) + 1
        return self.values[name]

    def ttl(self, name):
        if name not in self.values:
            return -2
        return self.ttls.get(name, -1)

    def expire(self, name, seconds):
        self.ttls[name] = seconds

    def get(self, name):
        value = self.values.get(name)
        return None if value is None else str(value).encode()

    def delete(self, name):
        self.values.pop(name, None)
        self.ttls.pop(name, None)


@pytest.fixture
def sql_store(make_app):
    app = make_app("sql", RATE_LIMIT_STORAGE="sql")
    with app.app_context():
        yield SqlCounterStore()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return MemoryCounterStore()
    return request.getfixturevalue("sql_store")


def test_counts_within_window_then_resets(store, clock):
    assert store.hit("k", WINDOW).count == 1
    clock.advance(minutes=5)
    state = store.hit("k", WINDOW)
    assert state.count == 2
    assert store.peek("k", WINDOW).count == 2
    assert 1 <= state.retry_after() <= 600

    clock.advance(minutes=10, seconds=1)
    assert store.peek("k", WINDOW) is None
    assert store.hit("k", WINDOW).count == 1


def test_keys_are_independent_and_resettable(store):
    store.hit("a", WINDOW)
    store.hit("a", WINDOW)
    assert store.hit("b", WINDOW).count == 1

    store.reset("a")
    assert store.peek("a", WINDOW) is None
    assert store.peek("b", WINDOW).count == 1


def test_redis_store_sets_expiry_on_first_hit():
    client = FakeRedis()
    store = RedisCounterStore(client)

    assert store.hit("rl:auth:1.2.3.4", WINDOW).count == 1
    assert client.ttls["skillswap:rl:auth:1.2.3.4"] == WINDOW

    client.ttls["skillswap:rl:auth:1.2.3.4"] = 300
    state = store.hit("rl:auth:1.2.3.4", WINDOW)
    assert state.count == 2
    assert client.ttls["skillswap:rl:auth:1.2.3.4"] == 300
    assert 299 <= state.retry_after() <= 300

    assert store.peek("rl:auth:1.2.3.4", WINDOW).count == 2
    store.reset("rl:auth:1.2.3.4")
    assert store.peek("rl:auth:1.2.3.4", WINDOW) is None


def test_build_counter_store_rejects_unknown_kind():
    assert isinstance(build_counter_store({"RATE_LIMIT_STORAGE": "memory"}), MemoryCounterStore)
    with pytest.raises(ValueError):
        build_counter_store({"RATE_LIMIT_STORAGE": "carrier-pigeon"})


def test_rules_match_by_path_prefix():
    rules = rules_from_config({})
    assert [r.name for r in matching_rules(rules, "/api/auth/login")] == ["auth", "general"]
    assert [r.name for r in matching_rules(rules, "/api/swaps/request")] == ["swap", "general"]
    assert [r.name for r in matching_rules(rules, "/api/profile")] == ["general"]
    assert matching_rules(rules, "/api/authentic") == [r for r in rules if r.name == "general"]
    assert matching_rules(rules, "/health") == []


def test_check_rate_limits_reports_tightest_rule():
    store = MemoryCounterStore()
    rules = rules_from_config({"RATE_LIMIT_AUTH": 2, "RATE_LIMIT_GENERAL": 10})

    rule, state, blocked = check_rate_limits(store, rules, "1.2.3.4", "/api/auth/login", WINDOW)
    assert (rule.name, state.count, blocked) == ("auth", 1, False)

    check_rate_limits(store, rules, "1.2.3.4", "/api/auth/login", WINDOW)
    rule, state, blocked = check_rate_limits(store, rules, "1.2.3.4", "/api/auth/login", WINDOW)
    assert (rule.name, state.count, blocked) == ("auth", 3, True)

    # a different client has its own counters
    _, state, blocked = check_rate_limits(store, rules, "5.6.7.8", "/api/auth/login", WINDOW)
    assert (state.count, blocked) == (1, False)

    assert check_rate_limits(store, rules, "1.2.3.4", "/health", WINDOW) == (None, None, False)


def test_bruteforce_counters(clock):
    store = MemoryCounterStore()
    path = "/api/auth/login"

    assert is_protected(path, ("/api/auth",))
    assert not is_protected("/api/swaps/request", ("/api/auth",))

    for expected in (1, 2, 3):
        assert register_failure(store, "1.2.3.4", path, WINDOW) == expected
    blocked, retry = is_blocked(store, "1.2.3.4", path, 3, WINDOW)
    assert blocked and retry >= 1
    assert is_blocked(store, "1.2.3.4", "/api/auth/register", 3, WINDOW) == (False, 0)
    assert is_blocked(store, "9.9.9.9", path, 3, WINDOW) == (False, 0)

    clock.advance(minutes=15, seconds=1)
    assert is_blocked(store, "1.2.3.4", path, 3, WINDOW) == (False, 0)


def test_sql_store_retries_when_row_was_created_concurrently(sql_store, monkeypatch):
    real_hit = SqlCounterStore._hit
    failures = []

    def lose_first_insert(self, key, window_seconds):
        if not failures:
            failures.append(key)
            # a row left behind by the failed flush must be discarded
            db.session.add(RateCounter(key=key, window_start=datetime(2000, 1, 1), count=99))
            raise IntegrityError("INSERT INTO rate_counters", {}, Exception("UNIQUE constraint failed"))
        return real_hit(self, key, window_seconds)

    monkeypatch.setattr(SqlCounterStore, "_hit", lose_first_insert)

    state = sql_store.hit("rl:auth:1.2.3.4", WINDOW)
    assert state.count == 1
    assert failures == ["rl:auth:1.2.3.4"]
    assert sql_store.peek("rl:auth:1.2.3.4", WINDOW).count == 1
