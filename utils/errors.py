"""
Error taxonomy for the API.

Services raise these; the handler registered in ``register_error_handlers``
renders them as ``{"error": ..., "message": ..., **extra}`` with the matching
status code. Anything else is logged and turned into a generic 500.
"""
import logging

from flask import jsonify
from werkzeug.exceptions import HTTPException, RequestEntityTooLarge

logger = logging.getLogger(__name__)


class ApiError(Exception):
    status_code = 500
    error = "Internal server error"

    def __init__(self, message: str = None, error: str = None, **extra):
        super().__init__(message or self.error)
        self.message = message or self.error
        if error:
            self.error = error
        self.extra = extra

    def to_dict(self) -> dict:
        body = {"error": self.error, "message": self.message}
        body.update(self.extra)
        return body


class ValidationError(ApiError):
    status_code = 400
    error = "Validation failed"


class ConflictError(ApiError):
    status_code = 400
    error = "Conflict"


class InvalidState(ApiError):
    status_code = 400
    error = "Invalid request"


class AuthError(ApiError):
    status_code = 401
    error = "Access denied"


class InvalidCredentials(AuthError):
    error = "Invalid credentials"


class Forbidden(ApiError):
    status_code = 403
    error = "Access denied"


class NotFound(ApiError):
    status_code = 404
    error = "Not found"


class PayloadTooLarge(ApiError):
    status_code = 413
    error = "Request too large"


class AccountLocked(ApiError):
    status_code = 423
    error = "Account locked"


class RateLimited(ApiError):
    status_code = 429
    error = "Rate limit exceeded"

    def __init__(self, message: str = None, retry_after: int = 1, **extra):
        super().__init__(message, retryAfter=retry_after, **extra)
        self.retry_after = retry_after


def error_response(exc: ApiError):
    resp = jsonify(exc.to_dict())
    resp.status_code = exc.status_code
    if isinstance(exc, RateLimited):
        resp.headers["Retry-After"] = str(exc.retry_after)
    return resp


def register_error_handlers(app):
    @app.errorhandler(ApiError)
    def _api_error(exc):
        return error_response(exc)

    @app.errorhandler(RequestEntityTooLarge)
    def _too_large(exc):
        return error_response(PayloadTooLarge("Request body exceeds maximum allowed size"))

    @app.errorhandler(HTTPException)
    def _http_error(exc):
        if exc.code == 404:
            return error_response(NotFound("Endpoint not found"))
        resp = jsonify(error=exc.name, message=exc.description)
        resp.status_code = exc.code
        return resp

    @app.errorhandler(Exception)
    def _unhandled(exc):
        logger.exception("Unhandled error")
        resp = jsonify(error="Internal server error", message="Something went wrong")
        resp.status_code = 500
        return resp
