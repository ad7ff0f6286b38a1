"""Execution middleware for job handlers.

Middleware wraps handler execution on the orchestrator using the
onion pattern: the first middleware added is the outermost.

Usage::

    from jobstream.middleware.logging import logging_middleware
    from jobstream.middleware.timeout import timeout_middleware

    orchestrator.middleware(logging_middleware())
    orchestrator.middleware(timeout_middleware(seconds=300))
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from typing import Any

from jobstream.job import JobContext

# Execution middleware: receives a JobContext and a next callable.
# Calling next() passes to the next middleware or the handler.
ExecutionNext = Callable[[], Coroutine[Any, Any, Any]]
ExecutionMiddleware = Callable[[JobContext, ExecutionNext], Coroutine[Any, Any, Any]]


class ExecutionMiddlewareChain:
    """Manages the ordered list of execution middleware."""

    def __init__(self) -> None:
        self._middlewares: list[ExecutionMiddleware] = []

    def __len__(self) -> int:
        return len(self._middlewares)

    def add(self, middleware: ExecutionMiddleware) -> None:
        """Append middleware to the end of the chain (innermost)."""
        self._middlewares.append(middleware)

    def prepend(self, middleware: ExecutionMiddleware) -> None:
        """Insert middleware at the beginning of the chain (outermost)."""
        self._middlewares.insert(0, middleware)

    def remove(self, middleware: ExecutionMiddleware) -> None:
        self._middlewares.remove(middleware)

    async def execute(
        self, ctx: JobContext, handler: Callable[[JobContext], Coroutine[Any, Any, Any]]
    ) -> Any:
        """Execute the middleware chain wrapping the handler."""

        async def _build_chain(middlewares: list[ExecutionMiddleware]) -> Any:
            if not middlewares:
                return await handler(ctx)

            current = middlewares[0]
            remaining = middlewares[1:]

            async def next_fn() -> Any:
                return await _build_chain(remaining)

            return await current(ctx, next_fn)

        return await _build_chain(list(self._middlewares))


__all__ = ["ExecutionMiddleware", "ExecutionMiddlewareChain", "ExecutionNext"]
