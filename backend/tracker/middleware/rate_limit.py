"""
Rate limiting middleware using slowapi.
Sign-in attempts are throttled per client address.
"""

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from tracker.core.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
)

# Applied to the sign-in route
login_limit = limiter.limit(settings.login_rate_limit)


def setup_rate_limiting(app):
    """Configure rate limiting for the FastAPI app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
