"""
Fixed-window counters behind a small store interface.

The pipeline only talks to ``CounterStore``; which store backs it is chosen by
``RATE_LIMIT_STORAGE``:

* ``memory`` - per-process dict, reset on restart
* ``sql``    - ``rate_counters`` table, shared by every process on the database
* ``redis``  - shared across instances, windows expire through key TTLs
"""
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from utils import timeutil


@dataclass(frozen=True)
class CounterState:
    count: int
    window_start: datetime
    window_seconds: int

    @property
    def window_end(self) -> datetime:
        return self.window_start + timedelta(seconds=self.window_seconds)

    def retry_after(self, now: datetime = None) -> int:
        now = now or timeutil.now_utc()
        return max(int((self.window_end - now).total_seconds()), 1)


class CounterStore(ABC):

    @abstractmethod
    def hit(self, key: str, window_seconds: int) -> CounterState:
        """Increment ``key`` in its current window (starting a new one if expired)."""

    @abstractmethod
    def peek(self, key: str, window_seconds: int) -> Optional[CounterState]:
        """Current window state without incrementing; None if absent or expired."""

    @abstractmethod
    def reset(self, key: str) -> None:
        ...


class MemoryCounterStore(CounterStore):
    def __init__(self):
        self._lock = threading.Lock()
        self._rows: Dict[str, CounterState] = {}

    def hit(self, key: str, window_seconds: int) -> CounterState:
        now = timeutil.now_utc()
        with self._lock:
            row = self._rows.get(key)
            if row is None or now >= row.window_end:
                row = CounterState(0, now, window_seconds)
            row = CounterState(row.count + 1, row.window_start, window_seconds)
            self._rows[key] = row
            return row

    def peek(self, key: str, window_seconds: int) -> Optional[CounterState]:
        now = timeutil.now_utc()
        with self._lock:
            row = self._rows.get(key)
            if row is None or now >= row.window_end:
                return None
            return row

    def reset(self, key: str) -> None:
        with self._lock:
            self._rows.pop(key, None)


class SqlCounterStore(CounterStore):
    """Same fixed-window logic, one ``RateCounter`` row per key."""

    INSERT_RETRIES = 3

    def hit(self, key: str, window_seconds: int) -> CounterState:
        from sqlalchemy.exc import IntegrityError
        from models import db

        for _ in range(self.INSERT_RETRIES - 1):
            try:
                return self._hit(key, window_seconds)
            except IntegrityError:
                # another request created the row first; read it again
                db.session.rollback()
        return self._hit(key, window_seconds)

    def _hit(self, key: str, window_seconds: int) -> CounterState:
        from models import db
        from models.rate_counter import RateCounter

        now = timeutil.now_utc()
        row = RateCounter.query.filter_by(key=key).with_for_update().first()
        if not row:
            row = RateCounter(key=key, window_start=now.replace(tzinfo=None), count=0)
            db.session.add(row)

        window_start = timeutil.as_utc(row.window_start)
        window_end = window_start + timedelta(seconds=window_seconds)

        # Reset window if expired
        if now >= window_end:
            row.window_start = now.replace(tzinfo=None)
            row.count = 0
            window_start = now

        row.count += 1
        db.session.commit()
        return CounterState(row.count, window_start, window_seconds)

    def peek(self, key: str, window_seconds: int) -> Optional[CounterState]:
        from models.rate_counter import RateCounter

        row = RateCounter.query.filter_by(key=key).first()
        if not row:
            return None
        state = CounterState(row.count, timeutil.as_utc(row.window_start), window_seconds)
        if timeutil.now_utc() >= state.window_end:
            return None
        return state

    def reset(self, key: str) -> None:
        from models import db
        from models.rate_counter import RateCounter

        RateCounter.query.filter_by(key=key).delete()
        db.session.commit()


class RedisCounterStore(CounterStore):
    """
    INCR plus EXPIRE on first hit. The window start is derived from the
    remaining TTL, so no second key is needed.
    """

    def __init__(self, client, prefix: str = "skillswap:"):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str) -> "RedisCounterStore":
        import redis

        return cls(redis.Redis.from_url(url))

    def _state(self, count: int, ttl: int, window_seconds: int) -> CounterState:
        now = timeutil.now_utc()
        if ttl is None or ttl < 0:
            ttl = window_seconds
        start = now - timedelta(seconds=window_seconds - ttl)
        return CounterState(int(count), start, window_seconds)

    def hit(self, key: str, window_seconds: int) -> CounterState:
        name = self.prefix + key
        pipe = self.client.pipeline()
        pipe.incr(name)
        pipe.ttl(name)
        count, ttl = pipe.execute()
        if int(count) == 1 or ttl is None or ttl < 0:
            self.client.expire(name, window_seconds)
            ttl = window_seconds
        return self._state(count, ttl, window_seconds)

    def peek(self, key: str, window_seconds: int) -> Optional[CounterState]:
        name = self.prefix + key
        count = self.client.get(name)
        if count is None:
            return None
        return self._state(int(count), self.client.ttl(name), window_seconds)

    def reset(self, key: str) -> None:
        self.client.delete(self.prefix + key)


def build_counter_store(config) -> CounterStore:
    kind = (config.get("RATE_LIMIT_STORAGE") or "memory").lower()
    if kind == "memory":
        return MemoryCounterStore()
    if kind == "sql":
        return SqlCounterStore()
    if kind == "redis":
        return RedisCounterStore.from_url(config["REDIS_URL"])
    raise ValueError(f"Unknown RATE_LIMIT_STORAGE: {kind!r}")


@dataclass(frozen=True)
class RateRule:
    name: str
    prefix: str
    limit: int
    message: str


def rules_from_config(config) -> List[RateRule]:
    return [
        RateRule("auth", "/api/auth", int(config.get("RATE_LIMIT_AUTH", 5)),
                 "Too many authentication attempts. Please try again later."),
        RateRule("swap", "/api/swaps", int(config.get("RATE_LIMIT_SWAP", 20)),
                 "Too many swap requests. Please slow down."),
        RateRule("general", "/api", int(config.get("RATE_LIMIT_GENERAL", 100)),
                 "Too many requests. Please slow down."),
    ]


def matching_rules(rules: List[RateRule], path: str) -> List[RateRule]:
    return [
        rule for rule in rules
        if path == rule.prefix or path.startswith(rule.prefix + "/")
    ]


def check_rate_limits(store: CounterStore, rules: List[RateRule], client_ip: str,
                      path: str, window_seconds: int):
    """
    Count the request against every matching rule.
    Returns ``(rule, state, blocked)``: the first rule over its limit with
    blocked=True, otherwise the rule with the fewest remaining requests.
    ``rule`` is None when no rule covers the path.
    """
    tightest = None
    for rule in matching_rules(rules, path):
        state = store.hit(f"rl:{rule.name}:{client_ip}", window_seconds)
        if state.count > rule.limit:
            return rule, state, True
        if tightest is None or (rule.limit - state.count) < (tightest[0].limit - tightest[1].count):
            tightest = (rule, state)
    if tightest is None:
        return None, None, False
    return tightest[0], tightest[1], False
