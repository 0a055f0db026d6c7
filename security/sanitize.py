"""
Input sanitisation helpers used by the request pipeline.

``strip_dangerous`` is a blacklist: it deletes SQL keywords, comment markers,
quote characters, event-handler names and HTML tags from strings. It is plain
pattern matching and will mangle legitimate text containing those words
("selection" loses "select"). It does not replace parameterised queries or
output encoding.
"""
import re
from typing import Any, Iterable

_BLACKLIST = [
    re.compile(r"['\";]"),
    re.compile(r"--"),
    re.compile(r"/\*"),
    re.compile(r"\*/"),
    re.compile(r"xp_", re.IGNORECASE),
    re.compile(r"sp_", re.IGNORECASE),
    re.compile(r"exec", re.IGNORECASE),
    re.compile(r"execute", re.IGNORECASE),
    re.compile(r"union", re.IGNORECASE),
    re.compile(r"select", re.IGNORECASE),
    re.compile(r"insert", re.IGNORECASE),
    re.compile(r"update", re.IGNORECASE),
    re.compile(r"delete", re.IGNORECASE),
    re.compile(r"drop", re.IGNORECASE),
    re.compile(r"create", re.IGNORECASE),
    re.compile(r"alter", re.IGNORECASE),
    re.compile(r"script", re.IGNORECASE),
    re.compile(r"javascript", re.IGNORECASE),
    re.compile(r"onload", re.IGNORECASE),
    re.compile(r"onerror", re.IGNORECASE),
    re.compile(r"onclick", re.IGNORECASE),
    re.compile(r"onmouseover", re.IGNORECASE),
    re.compile(r"<[^>]*>"),
]

_HTML_ESCAPES = [
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&#x27;"),
    ("/", "&#x2F;"),
]


def strip_dangerous(value: str) -> str:
    for pattern in _BLACKLIST:
        value = pattern.sub("", value)
    return value.strip()


def escape_html(value: str) -> str:
    for raw, escaped in _HTML_ESCAPES:
        value = value.replace(raw, escaped)
    return value


def clean(obj: Any, fn, exempt: Iterable[str] = ()) -> Any:
    """Apply ``fn`` to every string inside ``obj`` except values under ``exempt`` keys."""
    exempt = frozenset(exempt)
    if isinstance(obj, str):
        return fn(obj)
    if isinstance(obj, dict):
        return {
            key: value if key in exempt else clean(value, fn, exempt)
            for key, value in obj.items()
        }
    if isinstance(obj, list):
        return [clean(item, fn, exempt) for item in obj]
    return obj


def collapse_params(multi: dict) -> dict:
    """Keep only the last value of repeated query parameters (``{key: [values]}`` in)."""
    return {key: values[-1] for key, values in multi.items() if values}
