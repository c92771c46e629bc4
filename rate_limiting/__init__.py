"""Per-client request rate limiting."""
from rate_limiting.limiter import RateLimiter
from rate_limiting.middleware import check_request, client_identifier, rate_limited, init_app
