"""Rate limiting for scheduler-facing endpoints, backed by Flask-Limiter."""
from __future__ import annotations

import time
from typing import Optional

from flask import current_app, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address


def client_identifier() -> str:
    """Caller identity: first proxy hop, then ``X-Real-IP``/``CF-Connecting-IP``, then the socket."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    for header in ("X-Real-IP", "CF-Connecting-IP"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    return get_remote_address() or "unknown"


# Storage, header and strategy settings come from the RATELIMIT_* config keys
limiter = Limiter(key_func=client_identifier)


def cron_rate_limit() -> str:
    return current_app.config["CRON_RATE_LIMIT"]


def retry_after_seconds() -> Optional[int]:
    """Seconds until the limit that rejected this request resets."""
    current = limiter.current_limit
    if current is None:
        return None
    return max(1, int(current.reset_at - time.time()))
