"""FastAPI application entry point."""

import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from hostprobe import __version__
from hostprobe.config import ProbeSettings, get_settings


def configure_logging() -> None:
    """Configure logging based on environment variables.

    Environment variables:
        LOG_LEVEL: Set the logging level (DEBUG, INFO, WARNING, ERROR). Default: INFO
        LOG_FORMAT: Set the log format (simple, detailed). Default: detailed
    """
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    log_format = os.getenv("LOG_FORMAT", "detailed")

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    level = level_map.get(log_level, logging.INFO)

    if log_format == "simple":
        format_str = "%(levelname)s: %(message)s"
    else:
        format_str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        stream=sys.stdout,
    )

    logging.getLogger("hostprobe").setLevel(level)

    # hostprobe.access already records every request
    if level > logging.DEBUG:
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)


# Configure logging on module load
configure_logging()

logger = logging.getLogger(__name__)
from hostprobe.api.lifecycle import RequestLifecycle  # noqa: E402
from hostprobe.api.routes import probes_router  # noqa: E402
from hostprobe.probes import ProbeRegistry, register_builtin_probes  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    settings: ProbeSettings = app.state.settings
    registry: ProbeRegistry = app.state.registry
    logger.info(f"Starting hostprobe on {settings.listen}")
    logger.info(f"Probes registered: {', '.join(registry.names()) or '<none>'}")
    yield
    logger.info("Shutting down hostprobe")


def create_app(
    settings: Optional[ProbeSettings] = None,
    registry: Optional[ProbeRegistry] = None,
    lifecycle: Optional[RequestLifecycle] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use. Defaults to the global settings.
        registry: Probe registry to serve. Defaults to a new registry holding
            the built-in probes. It must be fully populated before the app
            starts accepting traffic.
        lifecycle: Request lifecycle wrapper. Defaults to one built from
            settings.
    """
    settings = settings or get_settings()
    if registry is None:
        registry = register_builtin_probes(ProbeRegistry(policy=settings.dispatch_policy))
    if lifecycle is None:
        lifecycle = RequestLifecycle(
            default_media_type=settings.default_content_type,
            access_log=settings.access_log,
        )

    # Every top-level path is a probe name, so the docs routes stay off
    application = FastAPI(
        title="hostprobe",
        description="Diagnostic probes over HTTP",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    application.state.settings = settings
    application.state.registry = registry
    application.state.lifecycle = lifecycle

    application.include_router(probes_router, tags=["Probes"])

    return application


# Create app instance
app = create_app()
