from dataclasses import dataclass, field
from datetime import timedelta
from typing import Optional

from jose import jwt, JWTError

from utils import timeutil


@dataclass(frozen=True)
class UserContext:
    """The authenticated caller, handed explicitly to views that need it."""
    user_id: str
    email: Optional[str] = None
    claims: dict = field(default_factory=dict)


class TokenError(Exception):
    pass


def issue_token(user_id: str, email: str, secret: str,
                algorithm: str = "HS256", expires_hours: int = 24) -> str:
    now = timeutil.now_utc()
    claims = {
        "sub": str(user_id),
        "userId": str(user_id),
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(hours=expires_hours)).timestamp()),
    }
    return jwt.encode(claims, secret, algorithm=algorithm)


def decode_token(token: str, secret: str, algorithm: str = "HS256") -> UserContext:
    """Verify signature and expiry. Raises TokenError on any failure."""
    try:
        claims = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as exc:
        raise TokenError(str(exc)) from exc

    user_id = claims.get("sub") or claims.get("userId")
    if not user_id:
        raise TokenError("Token has no subject")
    return UserContext(user_id=str(user_id), email=claims.get("email"), claims=claims)


def bearer_token(authorization_header: Optional[str]) -> Optional[str]:
    if not authorization_header:
        return None
    parts = authorization_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]
