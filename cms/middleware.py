import logging
import time
from contextvars import ContextVar

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from cms.config import settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Per-request SQL statement counter
# ---------------------------------------------------------------------------

class QueryCounter:
    __slots__ = ("count",)

    def __init__(self) -> None:
        self.count = 0


# Holds a mutable counter rather than an int: repository listings run
# their queries in child tasks, which see a copy of the context.
query_counter_var: ContextVar[QueryCounter | None] = ContextVar("query_counter", default=None)


def install_query_counter(engine: AsyncEngine) -> None:
    """
    Count every statement *engine* executes against the current request's
    ``QueryCounter``, if there is one.  Call once per engine.
    """

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        counter = query_counter_var.get()
        if counter is not None:
            counter.count += 1


# ---------------------------------------------------------------------------
# Middleware (pure ASGI, so ContextVar updates made by the app are visible here)
# ---------------------------------------------------------------------------

class TimingMiddleware:
    """
    Adds ``X-Response-Time-Ms`` and ``X-Query-Count`` to HTTP responses
    and logs requests slower than ``settings.SLOW_REQUEST_MS``.
    """

    def __init__(self, app: ASGIApp, slow_request_ms: float | None = None) -> None:
        self.app = app
        self.slow_request_ms = (
            settings.SLOW_REQUEST_MS if slow_request_ms is None else slow_request_ms
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        counter = QueryCounter()
        token = query_counter_var.set(counter)
        start = time.perf_counter()

        async def send_with_timing(message: Message) -> None:
            if message["type"] == "http.response.start":
                elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
                queries = counter.count
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(elapsed_ms).encode()))
                headers.append((b"x-query-count", str(queries).encode()))
                message["headers"] = headers
                if elapsed_ms > self.slow_request_ms:
                    logger.warning(
                        "Slow request %s %s: %.2f ms, %d queries",
                        scope.get("method"), scope.get("path"), elapsed_ms, queries,
                    )
            await send(message)

        try:
            await self.app(scope, receive, send_with_timing)
        finally:
            query_counter_var.reset(token)
