from typing import Iterable

from security.rate_limit import CounterStore


def _key(ip: str, path: str) -> str:
    return f"bf:{ip}:{path}"


def is_protected(path: str, prefixes: Iterable[str]) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes)


def is_blocked(store: CounterStore, ip: str, path: str,
               max_attempts: int, window_seconds: int) -> tuple[bool, int]:
    """
    Returns (blocked, seconds_remaining)
    """
    state = store.peek(_key(ip, path), window_seconds)
    if not state or state.count < max_attempts:
        return False, 0
    return True, state.retry_after()


def register_failure(store: CounterStore, ip: str, path: str, window_seconds: int) -> int:
    """
    Increments the failure counter for (ip, path). Returns the new count.
    """
    return store.hit(_key(ip, path), window_seconds).count
