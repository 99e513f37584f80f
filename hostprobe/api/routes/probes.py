"""Probes router - run one probe by name or all of them."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse, Response

from hostprobe.api.dependencies import get_lifecycle, get_registry
from hostprobe.api.lifecycle import RequestLifecycle
from hostprobe.probes.context import ProbeContext
from hostprobe.probes.registry import ProbeRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/favicon.ico", include_in_schema=False)
async def favicon() -> Response:
    """Browsers ask for this on every page; there is none."""
    return PlainTextResponse("404 page not found", status_code=404)


@router.api_route("/", methods=["GET", "HEAD"])
async def run_all_probes(
    request: Request,
    registry: ProbeRegistry = Depends(get_registry),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
) -> Response:
    """Run every registered probe, results sorted by name."""
    return await _dispatch(request, "", registry, lifecycle)


@router.api_route("/{name}", methods=["GET", "HEAD"])
async def run_probe(
    name: str,
    request: Request,
    registry: ProbeRegistry = Depends(get_registry),
    lifecycle: RequestLifecycle = Depends(get_lifecycle),
) -> Response:
    """Run a single probe by name."""
    return await _dispatch(request, name, registry, lifecycle)


async def _dispatch(
    request: Request,
    name: str,
    registry: ProbeRegistry,
    lifecycle: RequestLifecycle,
) -> Response:
    async def handler(ctx: ProbeContext, req: Request) -> Any:
        logger.debug(f"{ctx.request_id} dispatching probe: {name or '<all>'}")
        return await registry.dispatch(ctx, name)

    return await lifecycle.handle(request, handler)
