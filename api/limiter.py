"""
api/limiter.py -- Per-IP rate limiter for the credential endpoints.

POST /api/login and POST /api/register carry @limiter.limit(LOGIN_RATE_LIMIT);
api/main.py mounts SlowAPIMiddleware and turns RateLimitExceeded into a 429
error envelope. Every decorated route must share this one instance, otherwise
each module counts against its own empty store.

Counters are held in process memory: a restart resets them, and several
uvicorn workers each keep their own count.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://", strategy="fixed-window")
