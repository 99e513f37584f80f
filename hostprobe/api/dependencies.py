"""FastAPI dependencies.

The registry and lifecycle are built once by ``create_app`` and kept on
``app.state``; routes receive them through these dependencies so tests can
run each app against its own isolated registry.
"""

from fastapi import Request

from hostprobe.api.lifecycle import RequestLifecycle
from hostprobe.probes.registry import ProbeRegistry


def get_registry(request: Request) -> ProbeRegistry:
    """Get the ProbeRegistry bound to this application."""
    return request.app.state.registry


def get_lifecycle(request: Request) -> RequestLifecycle:
    """Get the RequestLifecycle bound to this application."""
    return request.app.state.lifecycle
