"""Shared-secret authentication for scheduler-triggered endpoints."""
from __future__ import annotations

import functools
import hmac
from typing import Callable, Optional

from flask import current_app, request

from .api_response import ApiError, ErrorCodes


def _bearer_token() -> Optional[str]:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def cron_secret_valid() -> bool:
    """Constant-time comparison of the bearer token against ``CRON_SECRET``."""
    expected = current_app.config.get("CRON_SECRET") or ""
    presented = _bearer_token()
    if not expected or presented is None:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def cron_secret_required(view: Callable):
    """Decorator guarding endpoints that only the external scheduler may call."""

    @functools.wraps(view)
    def wrapped_view(*args, **kwargs):
        if not current_app.config.get("CRON_SECRET"):
            current_app.logger.error("CRON_SECRET is not configured; rejecting cron call to %s", request.path)
        if not cron_secret_valid():
            raise ApiError(ErrorCodes.UNAUTHORIZED, "Invalid cron secret")
        return view(*args, **kwargs)

    return wrapped_view
