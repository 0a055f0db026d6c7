from functools import wraps
from flask import current_app, request

from security.tokens import bearer_token, decode_token, TokenError
from utils.errors import AuthError, Forbidden


def authenticate_token(authorization_header):
    """
    Resolve the bearer token in an Authorization header to a UserContext.
    Missing token -> AuthError (401); bad signature or expired -> Forbidden (403).
    """
    token = bearer_token(authorization_header)
    if not token:
        raise AuthError("No token provided")
    try:
        return decode_token(
            token,
            current_app.config["JWT_SECRET"],
            current_app.config.get("JWT_ALGORITHM", "HS256"),
        )
    except TokenError as exc:
        current_app.logger.warning("Token verification failed: %s", exc)
        raise Forbidden("Token is invalid or expired", error="Invalid token")


def token_required(fn):
    """Pass the caller's UserContext to the view as ``current_user``."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        ctx = authenticate_token(request.headers.get("Authorization"))
        return fn(*args, current_user=ctx, **kwargs)
    return wrapper
