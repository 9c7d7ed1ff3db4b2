"""
Rate limiter configuration using SlowAPI.

Counters live in RATE_LIMIT_STORAGE_URI (``redis://...`` in production) so every
worker process sees the same fixed-window counts.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

import config

_FORWARDED_HEADERS = ("cf-connecting-ip", "x-forwarded-for", "x-cluster-client-ip", "forwarded-for")


def client_identity(request: Request) -> str:
    """First proxy-reported client address, falling back to the socket peer."""
    for header in _FORWARDED_HEADERS:
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=client_identity,
    storage_uri=config.RATE_LIMIT_STORAGE_URI,
    enabled=config.RATE_LIMIT_ENABLED,
)
