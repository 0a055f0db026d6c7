import re
from typing import List, Tuple

try:
    from flask import current_app
except Exception:  # pragma: no cover - used outside app context (tests/CLI)
    current_app = None

_UPPER = re.compile(r"[A-Z]")
_LOWER = re.compile(r"[a-z]")
_DIGIT = re.compile(r"\d")
_SPECIAL = re.compile(r"[@$!%*?&]")
# letters, digits and the special set only
_ALLOWED = re.compile(r"[A-Za-z0-9@$!%*?&]+")

# bcrypt only looks at the first 72 bytes and rejects longer input
BCRYPT_MAX_BYTES = 72

_DEFAULTS = {
    "PASSWORD_MIN_LEN": 8,
    "PASSWORD_REQUIRE_UPPER": True,
    "PASSWORD_REQUIRE_LOWER": True,
    "PASSWORD_REQUIRE_DIGIT": True,
    "PASSWORD_REQUIRE_SPECIAL": True,
}

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _cfg(name: str):
    if current_app is None:
        return _DEFAULTS[name]
    try:
        return current_app.config.get(name, _DEFAULTS[name])
    except RuntimeError:
        return _DEFAULTS[name]


def is_valid_email(email: str) -> bool:
    return isinstance(email, str) and len(email) <= 255 and EMAIL_RE.match(email) is not None


def validate_password(pw: str) -> Tuple[bool, List[str]]:
    errors: List[str] = []

    if not isinstance(pw, str):
        return False, ["Password must be a string"]

    min_len = int(_cfg("PASSWORD_MIN_LEN"))

    if len(pw) < min_len:
        errors.append(f"Password must be at least {min_len} characters long")
    if len(pw.encode("utf-8")) > BCRYPT_MAX_BYTES:
        errors.append(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")

    if bool(_cfg("PASSWORD_REQUIRE_LOWER")) and not _LOWER.search(pw):
        errors.append("Password must contain at least one lowercase letter")
    if bool(_cfg("PASSWORD_REQUIRE_UPPER")) and not _UPPER.search(pw):
        errors.append("Password must contain at least one uppercase letter")
    if bool(_cfg("PASSWORD_REQUIRE_DIGIT")) and not _DIGIT.search(pw):
        errors.append("Password must contain at least one number")
    if pw and not _ALLOWED.fullmatch(pw):
        errors.append("Password may only contain letters, numbers and @$!%*?&")
    if bool(_cfg("PASSWORD_REQUIRE_SPECIAL")) and not _SPECIAL.search(pw):
        errors.append("Password must contain at least one special character (@$!%*?&)")

    return (len(errors) == 0), errors
