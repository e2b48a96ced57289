# =============================================================================
# Doris Webhook - Middleware
# =============================================================================
"""
ASGI middleware: CORS policy and structured access logging.
"""

import asyncio
import time
from typing import Optional, Sequence

import structlog
from starlette.datastructures import Headers
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send


logger = structlog.get_logger(__name__)


class CorsPolicyMiddleware(CORSMiddleware):
    """
    Starlette CORS with two adjustments.

    - With credentials allowed, a wildcard origin list is turned into a
      match-all regex, so the requesting origin is echoed back instead of
      ``*`` on both preflight and simple responses.
    - Accepted preflights get ``204 No Content`` with CORS headers only.
    """

    def __init__(
        self,
        app: ASGIApp,
        allow_origins: Sequence[str] = (),
        allow_credentials: bool = False,
        allow_origin_regex: Optional[str] = None,
        **kwargs,
    ) -> None:
        if allow_credentials and "*" in allow_origins:
            allow_origins = ()
            allow_origin_regex = ".*"
        super().__init__(
            app,
            allow_origins=allow_origins,
            allow_credentials=allow_credentials,
            allow_origin_regex=allow_origin_regex,
            **kwargs,
        )

    def preflight_response(self, request_headers: Headers) -> Response:
        response = super().preflight_response(request_headers=request_headers)
        if response.status_code != 200:
            return response
        headers = {
            key: value
            for key, value in response.headers.items()
            if key not in ("content-length", "content-type")
        }
        return Response(status_code=204, headers=headers)


class RequestTracker:
    """
    Counts requests in flight and requests cancelled before finishing.

    uvicorn cancels whatever is still running once the graceful
    shutdown timeout expires; those show up in ``dropped``.
    """

    def __init__(self) -> None:
        self.in_flight = 0
        self.dropped = 0


class AccessLogMiddleware:
    """One structured log line per HTTP request."""

    def __init__(self, app: ASGIApp, tracker: RequestTracker) -> None:
        self.app = app
        self.tracker = tracker

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        fields = {
            "method": scope["method"],
            "path": scope["path"],
            "ip": scope["client"][0] if scope.get("client") else None,
        }
        query = scope.get("query_string", b"")
        if query:
            fields["query"] = query.decode("latin-1")

        self.tracker.in_flight += 1
        try:
            await self.app(scope, receive, send_wrapper)
        except asyncio.CancelledError:
            self.tracker.dropped += 1
            logger.error("http_request_dropped", **fields)
            raise
        except Exception:
            fields["latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
            logger.error("http_request", status=500, **fields)
            raise
        finally:
            self.tracker.in_flight -= 1

        fields["status"] = status_code
        fields["latency_ms"] = round((time.perf_counter() - start) * 1000, 2)
        if status_code >= 500:
            logger.error("http_request", **fields)
        elif status_code >= 400:
            logger.warning("http_request", **fields)
        else:
            logger.info("http_request", **fields)
