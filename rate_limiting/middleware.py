"""Flask integration for the fixed-window rate limiter.

``init_app`` installs a ``before_request`` hook that limits every route under
a path prefix, and an ``after_request`` hook that copies the
``X-RateLimit-*`` headers onto responses that were let through. Views can
carry their own limit with ``@rate_limited(max_requests, window_ms)``;
``@rate_limited()`` gives a view its own bucket at the app-wide limit.
"""
import math
import logging
from functools import wraps

from flask import current_app, g, jsonify, request

logger = logging.getLogger("governor.rate_limiting.middleware")

EXTENSION_KEY = "rate_limiter"


def client_identifier(req) -> str:
    """Client IP (first X-Forwarded-For hop) plus the first 50 chars of the user agent."""
    forwarded = req.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = req.remote_addr or "anonymous"
    user_agent = req.headers.get("User-Agent", "")
    return f"{ip}:{user_agent[:50]}"


def rejection_response(result, now):
    """429 response carrying retry guidance for a blocked RateLimitResult."""
    retry_after = max(1, math.ceil(result.reset_time - now))
    resp = jsonify({"error": "Rate limit exceeded", "retryAfter": retry_after})
    resp.status_code = 429
    for name, value in result.headers().items():
        resp.headers[name] = value
    resp.headers["X-RateLimit-Remaining"] = "0"
    resp.headers["Retry-After"] = str(retry_after)
    return resp


def check_request(limiter, max_requests, window_ms, req=None, scope=None):
    """Check one request against the limiter.

    Returns None when the request may continue (headers are stashed on
    ``flask.g`` for the response), or a 429 response to return instead.
    """
    req = req if req is not None else request
    identifier = client_identifier(req)
    if scope:
        identifier = f"{scope}|{identifier}"

    result = limiter.check(identifier, max_requests, window_ms)
    if not result.allowed:
        logger.info(f"Rate limit exceeded for {identifier} ({max_requests}/{window_ms}ms)")
        return rejection_response(result, limiter.clock.now())

    g.rate_limit_headers = result.headers()
    return None


def rate_limited(max_requests=None, window_ms=None):
    """Give a view its own limit instead of the app-wide default.

    Either argument left as None takes the value passed to ``init_app``;
    the view still counts against its own bucket.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            return view(*args, **kwargs)
        wrapper.rate_limit = (max_requests, window_ms)
        return wrapper
    return decorator


def attach_rate_limit_headers(response):
    headers = g.pop("rate_limit_headers", None)
    if headers and response.status_code < 400:
        for name, value in headers.items():
            response.headers[name] = value
    return response


def init_app(app, limiter, max_requests=60, window_ms=60_000, path_prefix="/api/"):
    app.extensions[EXTENSION_KEY] = limiter

    @app.before_request
    def _enforce_rate_limit():
        if not request.path.startswith(path_prefix):
            return None
        view = current_app.view_functions.get(request.endpoint)
        custom = getattr(view, "rate_limit", None)
        if custom is not None:
            view_max, view_window = custom
            return check_request(
                limiter,
                max_requests if view_max is None else view_max,
                window_ms if view_window is None else view_window,
                scope=request.endpoint,
            )
        return check_request(limiter, max_requests, window_ms)

    app.after_request(attach_rate_limit_headers)
    return limiter
