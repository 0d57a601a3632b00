# haatbazaar/core/rate_limit.py
from slowapi import Limiter
from slowapi.util import get_remote_address

from haatbazaar.core.config import settings

# Per-route limits are applied with @limiter.limit(...) on the auth endpoints
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)
