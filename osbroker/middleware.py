"""Combining middlewares around an endpoint."""

from __future__ import annotations

from typing import Callable, Optional

from .web import Handler

Middleware = Callable[[Handler], Handler]


def use(endpoint: Handler, *args: Optional[Middleware]) -> Handler:
    """Wrap ``endpoint`` so the middlewares run in the order given; None is skipped."""
    middlewares = [m for m in args if m is not None]
    for middleware in reversed(middlewares):
        endpoint = middleware(endpoint)
    return endpoint