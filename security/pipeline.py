"""
Per-request security chain.

Before the view, in order:
  sanitize input -> escape body strings -> collapse repeated query params
  -> size check -> route-class rate limits -> brute-force guard
After the view:
  brute-force failure hook (401/403) -> rate limit headers
  -> security headers -> CORS -> access log

Views read the cleaned body and query through ``request_payload()`` and
``query_params()`` rather than ``request.get_json()``.
"""
import logging
import time

from flask import g, request, current_app

from security import bruteforce
from security.rate_limit import build_counter_store, rules_from_config, check_rate_limits
from security.sanitize import strip_dangerous, escape_html, clean, collapse_params
from utils.errors import PayloadTooLarge, RateLimited

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("access")

COUNTERS_KEY = "skillswap.counters"

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains; preload",
    # API only; nothing here should ever be rendered or framed
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none';",
}

CORS_ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
CORS_ALLOW_HEADERS = "Content-Type, Authorization, X-Requested-With"
CORS_EXPOSE_HEADERS = "X-Total-Count, X-Page-Count"


def client_ip() -> str:
    if current_app.config.get("TRUST_PROXY_HEADERS"):
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.remote_addr or "unknown"


def request_payload() -> dict:
    payload = getattr(g, "payload", None)
    return payload if isinstance(payload, dict) else {}


def query_params() -> dict:
    return getattr(g, "query", None) or {}


def get_counter_store():
    return current_app.extensions[COUNTERS_KEY]


def add_security_headers(resp):
    for name, value in SECURITY_HEADERS.items():
        resp.headers[name] = value
    resp.headers.pop("X-Powered-By", None)
    return resp


def add_cors_headers(resp):
    origin = request.headers.get("Origin")
    allowed = current_app.config.get("ALLOWED_ORIGINS") or []
    if origin and origin in allowed:
        resp.headers["Access-Control-Allow-Origin"] = origin
        resp.headers["Access-Control-Allow-Credentials"] = "true"
        resp.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
        resp.headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS
        resp.headers["Access-Control-Expose-Headers"] = CORS_EXPOSE_HEADERS
        resp.headers.add("Vary", "Origin")
    return resp


def install_pipeline(app, counter_store=None):
    store = counter_store or build_counter_store(app.config)
    app.extensions[COUNTERS_KEY] = store
    rules = rules_from_config(app.config)

    @app.before_request
    def _sanitize_input():
        g.request_started = time.perf_counter()
        exempt = app.config.get("SANITIZE_EXEMPT_FIELDS", ())

        body = request.get_json(silent=True) if request.is_json else None
        g.payload = clean(body, strip_dangerous, exempt) if body is not None else {}

        g.query_multi = {
            key: [strip_dangerous(v) for v in values]
            for key, values in request.args.lists()
        }

        if request.view_args:
            request.view_args = clean(request.view_args, strip_dangerous)

    @app.before_request
    def _escape_body():
        exempt = app.config.get("SANITIZE_EXEMPT_FIELDS", ())
        g.payload = clean(g.payload, escape_html, exempt)

    @app.before_request
    def _collapse_query():
        g.query = collapse_params(g.query_multi)

    @app.before_request
    def _limit_request_size():
        max_size = app.config.get("MAX_CONTENT_LENGTH") or 1024 * 1024
        if request.content_length and request.content_length > max_size:
            raise PayloadTooLarge("Request body exceeds maximum allowed size")

    @app.before_request
    def _rate_limit():
        if request.method == "OPTIONS":
            return None
        rule, state, blocked = check_rate_limits(
            store, rules, client_ip(), request.path,
            int(app.config.get("RATE_LIMIT_WINDOW_SECONDS", 900)),
        )
        g.rate_limit = (rule, state) if rule else None
        if blocked:
            logger.warning("Rate limit '%s' exceeded by %s on %s", rule.name, client_ip(), request.path)
            raise RateLimited(rule.message, retry_after=state.retry_after())
        return None

    @app.before_request
    def _bruteforce_guard():
        if not bruteforce.is_protected(request.path, app.config.get("BRUTEFORCE_PROTECTED_PREFIXES", ())):
            return None
        blocked, seconds_left = bruteforce.is_blocked(
            store, client_ip(), request.path,
            int(app.config.get("BRUTEFORCE_MAX_ATTEMPTS", 10)),
            int(app.config.get("BRUTEFORCE_WINDOW_SECONDS", 900)),
        )
        if blocked:
            raise RateLimited(
                "Account temporarily locked. Please try again later.",
                error="Too many failed attempts",
                retry_after=seconds_left,
            )
        return None

    @app.after_request
    def _finalize(resp):
        if resp.status_code in (401, 403) and bruteforce.is_protected(
            request.path, app.config.get("BRUTEFORCE_PROTECTED_PREFIXES", ())
        ):
            count = bruteforce.register_failure(
                store, client_ip(), request.path,
                int(app.config.get("BRUTEFORCE_WINDOW_SECONDS", 900)),
            )
            logger.warning(
                "Failed authentication attempt from %s on %s. Total attempts: %s",
                client_ip(), request.path, count,
            )

        limit = getattr(g, "rate_limit", None)
        if limit:
            rule, state = limit
            resp.headers["RateLimit-Limit"] = str(rule.limit)
            resp.headers["RateLimit-Remaining"] = str(max(rule.limit - state.count, 0))
            resp.headers["RateLimit-Reset"] = str(state.retry_after())

        add_security_headers(resp)
        add_cors_headers(resp)

        started = getattr(g, "request_started", None)
        elapsed_ms = (time.perf_counter() - started) * 1000 if started else 0.0
        access_logger.info(
            "%s %s %s %s %.1fms",
            client_ip(), request.method, request.full_path.rstrip("?"), resp.status_code, elapsed_ms,
        )
        return resp

    return store
