"""Pytest fixtures for API tests."""

from typing import Callable
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from hostprobe.api.lifecycle import RequestLifecycle
from hostprobe.api.main import create_app
from hostprobe.config import ProbeSettings
from hostprobe.probes.registry import DispatchPolicy, ProbeRegistry
from probe_fixtures import fixed_probe


@pytest.fixture
def on_fatal() -> MagicMock:
    """Stand-in for the process-terminating fatal hook."""
    return MagicMock()


@pytest.fixture
def registry() -> ProbeRegistry:
    """An isolated registry with a status probe."""
    registry = ProbeRegistry()
    registry.register("status", fixed_probe("status", {"status": "ok"}))
    return registry


@pytest.fixture
def make_client(on_fatal) -> Callable[..., TestClient]:
    """Factory building a TestClient around an isolated app."""
    clients = []

    def _make(
        registry: ProbeRegistry,
        policy: DispatchPolicy = DispatchPolicy.FAIL_FAST,
        default_content_type: str = "text/plain",
    ) -> TestClient:
        settings = ProbeSettings(
            dispatch_policy=policy, default_content_type=default_content_type
        )
        registry.policy = settings.dispatch_policy
        lifecycle = RequestLifecycle(
            default_media_type=settings.default_content_type, on_fatal=on_fatal
        )
        app = create_app(settings=settings, registry=registry, lifecycle=lifecycle)
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)


@pytest.fixture
def client(make_client, registry) -> TestClient:
    """A test client serving the isolated registry."""
    return make_client(registry)
