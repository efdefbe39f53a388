"""
Shared slowapi limiter for guest-facing write endpoints.

Lives outside main.py so the booking router can decorate its routes without
importing the application module.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

# One bucket per client address; RATE_LIMIT_ENABLED=false turns every limit off
limiter = Limiter(
    key_func=get_remote_address,
    enabled=settings.rate_limit_enabled,
)
