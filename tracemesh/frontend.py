"""Middleware plumbing for the query frontend's round trips."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

Handler = Callable[[Any], Any]
Middleware = Callable[[Handler], Handler]


def merge_middlewares(*middlewares: Middleware) -> Middleware:
    """Combine middlewares into one; the first given runs outermost."""

    def wrap(next_handler: Handler) -> Handler:
        for middleware in reversed(middlewares):
            next_handler = middleware(next_handler)
        return next_handler

    return wrap


class RoundTripper:
    """Sends requests through a chain of middlewares and then to the next round trip."""

    def __init__(self, next_round_trip: Handler, *middlewares: Middleware) -> None:
        self._next = next_round_trip
        self._handler = merge_middlewares(*middlewares)(self._do)

    def _do(self, request: Any) -> Any:
        return self._next(request)

    def round_trip(self, request: Any) -> Any:
        """Run the request through the middlewares and return the response."""
        return self._handler(request)

    __call__ = round_trip