"""API route modules."""

from hostprobe.api.routes.probes import router as probes_router

__all__ = [
    "probes_router",
]
