"""Request-scoped context handed to every probe function."""

import asyncio
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from hostprobe.errors import RequestCancelledError


class RequestMetadata(BaseModel):
    """Inbound HTTP request facts that probes may report on."""

    method: str = "GET"
    uri: str = "/"
    remote_addr: str = ""
    headers: Dict[str, List[str]] = Field(default_factory=dict)

    model_config = {"frozen": True}


class ProbeContext:
    """Cancellable per-request token.

    The request lifecycle creates one context per request and cancels it
    either when the client disconnects or when the handler returns. Slow
    probes should call ``raise_if_cancelled()`` between steps.
    """

    def __init__(
        self, request_id: str = "", request: Optional[RequestMetadata] = None
    ) -> None:
        self.request_id = request_id
        self.request = request
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Signal cancellation. Safe to call more than once."""
        self._cancelled.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise RequestCancelledError(self.request_id)

    async def wait_cancelled(self) -> None:
        """Block until the context is cancelled."""
        await self._cancelled.wait()

    def __repr__(self) -> str:
        return f"ProbeContext(request_id={self.request_id!r}, cancelled={self.cancelled})"
