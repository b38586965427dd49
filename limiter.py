"""
Rate limiter configuration using SlowAPI.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from config import settings

# Keyed by client IP; switched off with RATE_LIMIT_ENABLED=false (tests, load runs)
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

SCORE_SUBMIT_LIMIT = settings.SCORE_SUBMIT_RATE_LIMIT
