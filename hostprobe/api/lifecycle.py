"""Request lifecycle wrapper shared by every route handler.

For each request the wrapper assigns a ``REQ-<n>`` identifier, builds a
cancellable ProbeContext tied to client disconnection, runs the handler,
renders its payload or error in the negotiated format and, once the
response has been sent, emits exactly one access-log record.
"""

import asyncio
import itertools
import logging
import os
import signal
import threading
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel
from starlette.background import BackgroundTask
from starlette.requests import Request
from starlette.responses import Response

from hostprobe.api.encoders import render_response
from hostprobe.api.negotiation import TEXT_PLAIN
from hostprobe.errors import ConfigurationError, HttpError
from hostprobe.probes.context import ProbeContext, RequestMetadata

logger = logging.getLogger(__name__)
access_logger = logging.getLogger("hostprobe.access")

REQUEST_ID_HEADER = "X-RequestID"

Handler = Callable[[ProbeContext, Request], Awaitable[Any]]
FatalHook = Callable[[BaseException], None]


class RequestIDGenerator:
    """Thread-safe, strictly increasing request identifiers."""

    def __init__(self, prefix: str = "REQ-", start: int = 0) -> None:
        self.prefix = prefix
        self._counter = itertools.count(start + 1)
        self._lock = threading.Lock()

    def next(self) -> str:
        with self._lock:
            value = next(self._counter)
        return f"{self.prefix}{value}"


class RequestLog(BaseModel):
    """One access-log record, built after the response is written."""

    request_id: str
    method: str
    remote_ip: str
    uri: str
    content_length: int
    status: int
    elapsed_ms: int
    response_size: int

    model_config = {"frozen": True}

    def to_line(self) -> str:
        return "\t".join(
            str(v)
            for v in (
                self.request_id,
                self.method,
                self.remote_ip,
                self.uri,
                self.content_length,
                self.status,
                self.elapsed_ms,
                self.response_size,
            )
        )


def split_host_port(address: str) -> Tuple[str, str]:
    """Split ``host:port`` or ``[host]:port``.

    Raises:
        ConfigurationError: If the address is not in host:port form.
    """
    if address.startswith("["):
        end = address.find("]")
        if end < 0:
            raise ConfigurationError(f"Missing ']' in address '{address}'")
        host, rest = address[1:end], address[end + 1 :]
        if not rest.startswith(":"):
            raise ConfigurationError(f"Missing port in address '{address}'")
        port = rest[1:]
    else:
        host, sep, port = address.rpartition(":")
        if not sep:
            raise ConfigurationError(f"Missing port in address '{address}'")
        if ":" in host:
            raise ConfigurationError(f"Too many colons in address '{address}'")
    if not host:
        raise ConfigurationError(f"Missing host in address '{address}'")
    return host, port


def peer_address(request: Request) -> str:
    """The transport peer as ``host:port``, or empty when unknown."""
    client = request.client
    if client is None or not client.host:
        return ""
    if ":" in client.host:
        return f"[{client.host}]:{client.port}"
    return f"{client.host}:{client.port}"


def resolve_client_ip(request: Request) -> str:
    """Client IP, preferring X-Forwarded-For over the socket peer.

    Raises:
        ConfigurationError: If no forwarded header is set and the peer
            address cannot be parsed.
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded
    host, _ = split_host_port(peer_address(request))
    return host


def request_uri(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


def request_metadata(request: Request) -> RequestMetadata:
    """Snapshot the inbound request for probes that report on it."""
    headers: Dict[str, List[str]] = {}
    for key, value in request.headers.items():
        headers.setdefault(key, []).append(value)
    return RequestMetadata(
        method=request.method,
        uri=request_uri(request),
        remote_addr=peer_address(request),
        headers=headers,
    )


def _content_length(request: Request) -> int:
    try:
        return int(request.headers.get("content-length", "0"))
    except ValueError:
        return -1


def terminate_process(exc: BaseException) -> None:
    """Default fatal hook: ask the running server to shut down."""
    os.kill(os.getpid(), signal.SIGTERM)


class RequestLifecycle:
    """Uniform pre/post processing around route handlers.

    Handlers receive ``(ctx, request)`` and return a payload (possibly None)
    or raise. HttpError keeps its status; any other exception becomes a 500.
    ConfigurationError is fatal and is handed to ``on_fatal``.
    """

    def __init__(
        self,
        default_media_type: str = TEXT_PLAIN,
        access_log: bool = True,
        id_generator: Optional[RequestIDGenerator] = None,
        on_fatal: Optional[FatalHook] = None,
    ) -> None:
        self.default_media_type = default_media_type
        self.access_log = access_log
        self.id_generator = id_generator or RequestIDGenerator()
        self.on_fatal = on_fatal or terminate_process

    async def handle(self, request: Request, handler: Handler) -> Response:
        start = time.monotonic()
        request_id = self.id_generator.next()
        ctx = ProbeContext(request_id, request_metadata(request))
        watcher = asyncio.create_task(self._watch_disconnect(request, ctx))

        payload: Any = None
        error: Optional[HttpError] = None
        try:
            payload = await handler(ctx, request)
        except HttpError as exc:
            error = exc
        except ConfigurationError as exc:
            self._fatal(exc)
            raise
        except Exception as exc:
            logger.exception(f"{request_id} unhandled error in handler")
            error = HttpError(str(exc) or type(exc).__name__)
        finally:
            watcher.cancel()
            ctx.cancel()

        headers = {REQUEST_ID_HEADER: request_id}
        if error is not None:
            response = render_response(
                request, error, error.status, self.default_media_type, headers
            )
            self._log_error(request_id, request, error.status, error.message)
        else:
            response = render_response(
                request, payload, 200, self.default_media_type, headers
            )

        elapsed = time.monotonic() - start
        if self.access_log:
            # Runs after the response has been sent
            response.background = BackgroundTask(
                self.log_request,
                request_id,
                request,
                response.status_code,
                elapsed,
                len(response.body),
            )
        return response

    def log_request(
        self,
        request_id: str,
        request: Request,
        status: int,
        elapsed: float,
        response_size: int,
    ) -> RequestLog:
        record = RequestLog(
            request_id=request_id,
            method=request.method,
            remote_ip=self._client_ip(request),
            uri=request_uri(request),
            content_length=_content_length(request),
            status=status,
            elapsed_ms=int(elapsed * 1000),
            response_size=response_size,
        )
        access_logger.info(record.to_line())
        return record

    def _log_error(
        self, request_id: str, request: Request, status: int, message: str
    ) -> None:
        logger.error(
            "\t".join(
                str(v)
                for v in (
                    "ERR",
                    request_id,
                    request.method,
                    self._client_ip(request),
                    request_uri(request),
                    _content_length(request),
                    status,
                    message,
                )
            )
        )

    def _client_ip(self, request: Request) -> str:
        try:
            return resolve_client_ip(request)
        except ConfigurationError as exc:
            self._fatal(exc)
            raise

    def _fatal(self, exc: ConfigurationError) -> None:
        logger.critical(f"Fatal configuration error, shutting down: {exc}")
        self.on_fatal(exc)

    @staticmethod
    async def _watch_disconnect(request: Request, ctx: ProbeContext) -> None:
        while True:
            message = await request.receive()
            if message["type"] == "http.disconnect":
                logger.debug(f"{ctx.request_id} client disconnected")
                ctx.cancel()
                return
