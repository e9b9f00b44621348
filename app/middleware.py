import logging
import time
import uuid
from contextvars import ContextVar

from sqlalchemy import event
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = b"x-request-id"

# ---------------------------------------------------------------------------
# Per-request context variables
# ---------------------------------------------------------------------------

query_count_var: ContextVar[int] = ContextVar("query_count", default=0)
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


def install_query_counter(engine) -> None:
    """
    Count every SQL statement executed on *engine* into ``query_count_var``.

    Statements issued by eager-loading strategies (``selectinload``) are
    counted too, since the listener sits on the cursor level.
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _count_query(conn, cursor, statement, parameters, context, executemany):
        query_count_var.set(query_count_var.get() + 1)


def _incoming_request_id(scope: Scope) -> str:
    for name, value in scope.get("headers", []):
        if name == REQUEST_ID_HEADER and value:
            return value.decode("latin-1")
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Middleware (pure ASGI, so ContextVar mutations stay visible to send)
# ---------------------------------------------------------------------------

class RequestContextMiddleware:
    """
    Tag each HTTP request with an id and report what it cost.

    Response headers added:

    - ``X-Request-ID``: echoed from the request, or freshly generated.
    - ``X-Response-Time-Ms``: wall-clock time for the whole request.
    - ``X-Query-Count``: SQL statements executed while serving it.

    The request id is also stored on ``request.state.request_id`` so the
    error handlers can include it in error bodies.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = _incoming_request_id(scope)
        scope.setdefault("state", {})["request_id"] = request_id
        request_id_var.set(request_id)
        query_count_var.set(0)
        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                headers = list(message.get("headers", []))
                headers.append((REQUEST_ID_HEADER, request_id.encode("latin-1")))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                headers.append((b"x-query-count", str(query_count_var.get()).encode()))
                message["headers"] = headers
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            logger.info(
                "%s %s -> %s (%d queries, %.2f ms) [%s]",
                scope.get("method"),
                scope.get("path"),
                status_code,
                query_count_var.get(),
                (time.perf_counter() - start) * 1000,
                request_id,
            )
