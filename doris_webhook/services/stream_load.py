# =============================================================================
# Doris Webhook - Stream Load Client
# =============================================================================
"""
Doris Stream Load client.

Writes newline-delimited JSON straight to a BE node's HTTP port,
skipping the FE. Each ``submit`` is a single attempt: failures are
classified and raised, never retried.
"""

import asyncio
import base64
from typing import Optional

import httpx
import structlog
from pydantic import ValidationError

from ..config import Credentials
from ..models import StreamLoadResult
from ..models.schemas import STREAM_LOAD_COLUMNS, generate_label


logger = structlog.get_logger(__name__)

MAX_REDIRECTS = 10
DEFAULT_TIMEOUT = 30.0
MAX_CONNECTIONS = 100
MAX_KEEPALIVE_CONNECTIONS = 50
KEEPALIVE_EXPIRY = 90.0
BODY_EXCERPT = 512


class StreamLoadError(Exception):
    """Base class for failed Stream Load calls."""


class TransportError(StreamLoadError):
    """The BE could not be reached, timed out, or redirected too often."""


class GatewayError(StreamLoadError):
    """The BE answered with a non-200 HTTP status."""

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Doris returned HTTP {status_code}")


class ProtocolError(StreamLoadError):
    """The BE answered 200 with a body that is not a Stream Load result."""

    def __init__(self, body: str) -> None:
        self.body = body
        super().__init__("Unparseable Stream Load response")


class LoadRejected(StreamLoadError):
    """The BE parsed the load but reported a status other than Success."""

    def __init__(self, status: str, message: str, error_url: str = "") -> None:
        self.status = status
        self.message = message
        self.error_url = error_url
        super().__init__(f"Stream Load failed: Status={status}, Message={message}")


class StreamLoadClient:
    """
    Pooled async client for one Doris table.

    The underlying ``httpx.AsyncClient`` is shared by all concurrent
    requests; it talks to a single BE, so its connection cap is also
    the per-host cap.

    Attributes:
        credentials: Immutable connection parameters
        stream_url: Full ``_stream_load`` URL of the target table
        timeout: End-to-end budget for one call, in seconds
        debug: Log payloads and load metrics at debug level
    """

    def __init__(
        self,
        credentials: Credentials,
        timeout: float = DEFAULT_TIMEOUT,
        debug: bool = False,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            credentials: Doris connection parameters
            timeout: End-to-end timeout for a single call
            debug: Enable payload/metric debug logging
            transport: Optional transport override (tests)
        """
        self.credentials = credentials
        self.timeout = timeout
        self.debug = debug
        self.stream_url = (
            f"{credentials.be_http}/api/{credentials.database}"
            f"/{credentials.table}/_stream_load"
        )
        token = base64.b64encode(
            f"{credentials.user}:{credentials.password}".encode("utf-8")
        ).decode("ascii")
        self._auth_header = f"Basic {token}"
        self._client = httpx.AsyncClient(
            transport=transport,
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(
                max_connections=MAX_CONNECTIONS,
                max_keepalive_connections=MAX_KEEPALIVE_CONNECTIONS,
                keepalive_expiry=KEEPALIVE_EXPIRY,
            ),
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
        )

    def _headers(self, label: str, length: int) -> dict:
        return {
            "Authorization": self._auth_header,
            "Content-Type": "application/json",
            "Content-Length": str(length),
            "Expect": "100-continue",
            "Accept-Encoding": "identity",
            "label": label,
            "format": "json",
            "read_json_by_line": "true",
            "columns": STREAM_LOAD_COLUMNS,
        }

    async def submit(self, records: bytes) -> StreamLoadResult:
        """
        Load newline-delimited JSON records in one Stream Load call.

        Args:
            records: One or more JSON objects, each terminated by ``\\n``

        Returns:
            StreamLoadResult: The acknowledgment of a successful load

        Raises:
            TransportError: Connection, timeout or redirect-limit failure
            GatewayError: Non-200 HTTP status
            ProtocolError: 200 with an unparseable body
            LoadRejected: 200 with a status other than Success
        """
        label = generate_label()

        if self.debug:
            logger.debug(
                "stream_load_request",
                url=self.stream_url,
                label=label,
                data=records.decode("utf-8", errors="replace"),
            )

        try:
            response = await asyncio.wait_for(
                self._client.put(
                    self.stream_url,
                    content=records,
                    headers=self._headers(label, len(records)),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("stream_load_timeout", url=self.stream_url, label=label, timeout=self.timeout)
            raise TransportError(f"Doris request timed out after {self.timeout:g}s") from e
        except httpx.TooManyRedirects as e:
            logger.error("stream_load_too_many_redirects", url=self.stream_url, label=label)
            raise TransportError(f"Too many redirects (limit {MAX_REDIRECTS})") from e
        except httpx.TimeoutException as e:
            logger.error("stream_load_timeout", url=self.stream_url, label=label, error=str(e))
            raise TransportError(f"Doris request timed out: {e}") from e
        except httpx.RequestError as e:
            logger.error(
                "stream_load_connection_failed",
                url=self.stream_url,
                label=label,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TransportError(f"Doris connection failed: {e}") from e

        # httpx has already read the whole body at this point
        body = response.text

        if response.status_code != httpx.codes.OK:
            logger.error(
                "stream_load_http_error",
                label=label,
                status_code=response.status_code,
                body=body[:BODY_EXCERPT],
            )
            raise GatewayError(response.status_code, body)

        try:
            result = StreamLoadResult.model_validate_json(body)
        except ValidationError as e:
            logger.error(
                "stream_load_unparseable_response",
                label=label,
                error=str(e),
                body=body[:BODY_EXCERPT],
            )
            raise ProtocolError(body) from e

        if not result.succeeded:
            logger.error(
                "stream_load_rejected",
                label=result.label or label,
                status=result.status,
                message=result.message,
                error_url=result.error_url,
            )
            raise LoadRejected(result.status, result.message, result.error_url)

        if self.debug:
            logger.debug(
                "stream_load_succeeded",
                label=result.label,
                txn_id=result.txn_id,
                loaded_rows=result.number_loaded_rows,
                total_rows=result.number_total_rows,
                load_time_ms=result.load_time_ms,
            )

        return result

    async def aclose(self) -> None:
        """Close pooled connections."""
        await self._client.aclose()
