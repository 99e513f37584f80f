"""Tests for the request lifecycle wrapper."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient
from starlette.requests import Request as StarletteRequest

from hostprobe.api.lifecycle import (
    RequestIDGenerator,
    RequestLifecycle,
    RequestLog,
    request_metadata,
    resolve_client_ip,
    split_host_port,
)
from hostprobe.errors import ConfigurationError, HttpError
from hostprobe.probes.context import ProbeContext


def _scope(client=("10.0.0.5", 41000), headers=None, path="/status", query=b""):
    return {
        "type": "http",
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": query,
        "headers": [(k.encode(), v.encode()) for k, v in (headers or [])],
        "client": client,
        "server": ("testserver", 80),
    }


def _request(**kwargs) -> StarletteRequest:
    messages = [{"type": "http.request", "body": b"", "more_body": False}]

    async def receive():
        if messages:
            return messages.pop(0)
        # The client never goes away
        await asyncio.sleep(3600)

    return StarletteRequest(_scope(**kwargs), receive)


def _app(handler, lifecycle: RequestLifecycle) -> FastAPI:
    """A one-route app that runs handler inside the lifecycle."""
    app = FastAPI()

    @app.get("/run")
    async def run(request: Request):
        return await lifecycle.handle(request, handler)

    return app


class TestRequestIDGenerator:
    """Tests for RequestIDGenerator."""

    def test_format_and_order(self) -> None:
        gen = RequestIDGenerator()

        assert [gen.next() for _ in range(3)] == ["REQ-1", "REQ-2", "REQ-3"]

    def test_unique_across_threads(self) -> None:
        gen = RequestIDGenerator()

        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(lambda _: gen.next(), range(1000)))

        assert len(set(ids)) == 1000
        assert max(int(i.split("-")[1]) for i in ids) == 1000


class TestClientAddress:
    """Tests for split_host_port() and resolve_client_ip()."""

    def test_split_ipv4(self) -> None:
        assert split_host_port("192.168.1.10:8080") == ("192.168.1.10", "8080")

    def test_split_bracketed_ipv6(self) -> None:
        assert split_host_port("[::1]:443") == ("::1", "443")

    @pytest.mark.parametrize(
        "address", ["", "no-port", "::1:443", "[::1", "[::1]443", ":80"]
    )
    def test_split_malformed(self, address) -> None:
        with pytest.raises(ConfigurationError):
            split_host_port(address)

    def test_forwarded_for_wins(self) -> None:
        request = _request(headers=[("x-forwarded-for", "203.0.113.7, 10.0.0.1")])

        assert resolve_client_ip(request) == "203.0.113.7, 10.0.0.1"

    def test_empty_forwarded_for_falls_back_to_peer(self) -> None:
        request = _request(headers=[("x-forwarded-for", "")])

        assert resolve_client_ip(request) == "10.0.0.5"

    def test_ipv6_peer(self) -> None:
        assert resolve_client_ip(_request(client=("::1", 5000))) == "::1"

    def test_missing_peer_is_fatal(self) -> None:
        with pytest.raises(ConfigurationError):
            resolve_client_ip(_request(client=None))


class TestRequestMetadata:
    """Tests for request_metadata()."""

    def test_snapshot(self) -> None:
        request = _request(
            headers=[("accept", "text/plain"), ("x-multi", "a"), ("x-multi", "b")],
            query=b"pretty=1",
        )

        meta = request_metadata(request)

        assert meta.method == "GET"
        assert meta.uri == "/status?pretty=1"
        assert meta.remote_addr == "10.0.0.5:41000"
        assert meta.headers["x-multi"] == ["a", "b"]

    def test_missing_peer_is_empty(self) -> None:
        assert request_metadata(_request(client=None)).remote_addr == ""


class TestRequestLog:
    """Tests for RequestLog."""

    def test_to_line(self) -> None:
        record = RequestLog(
            request_id="REQ-3",
            method="GET",
            remote_ip="10.0.0.5",
            uri="/status",
            content_length=0,
            status=200,
            elapsed_ms=4,
            response_size=17,
        )

        assert record.to_line() == "REQ-3\tGET\t10.0.0.5\t/status\t0\t200\t4\t17"


class TestRequestLifecycle:
    """Tests for RequestLifecycle.handle()."""

    def test_none_payload_renders_ok(self) -> None:
        async def handler(ctx, request):
            return None

        client = TestClient(_app(handler, RequestLifecycle()))

        text = client.get("/run", headers={"Accept": "text/plain"})
        js = client.get("/run", headers={"Accept": "application/json"})

        assert text.status_code == 200
        assert text.text == "OK"
        assert js.json() == {"type": "OK", "code": 200}

    def test_string_payload(self) -> None:
        async def handler(ctx, request):
            return "HelloWorld"

        client = TestClient(_app(handler, RequestLifecycle()))

        assert client.get("/run").text == "HelloWorld"

    def test_http_error_status_is_used(self) -> None:
        async def handler(ctx, request):
            raise HttpError("gone fishing", status=503)

        client = TestClient(_app(handler, RequestLifecycle()))

        response = client.get("/run", headers={"Accept": "application/json"})

        assert response.status_code == 503
        assert response.json() == {"type": "ERROR", "code": 503, "message": "gone fishing"}

    def test_unstructured_error_is_500(self) -> None:
        async def handler(ctx, request):
            raise KeyError("missing")

        client = TestClient(_app(handler, RequestLifecycle()))

        response = client.get("/run", headers={"Accept": "application/json"})

        assert response.status_code == 500
        assert response.json()["type"] == "ERROR"

    def test_encoding_failure_becomes_500(self) -> None:
        async def handler(ctx, request):
            return {"value": object()}

        client = TestClient(_app(handler, RequestLifecycle()))

        response = client.get("/run", headers={"Accept": "application/json"})

        assert response.status_code == 500
        assert response.json()["message"].startswith("Error serializing to JSON")

    def test_request_id_header_and_context(self) -> None:
        seen = []

        async def handler(ctx, request):
            seen.append(ctx)
            return None

        client = TestClient(_app(handler, RequestLifecycle()))

        response = client.get("/run")

        assert response.headers["x-requestid"] == "REQ-1"
        assert seen[0].request_id == "REQ-1"
        assert seen[0].request.uri == "/run"

    def test_context_released_after_handler(self) -> None:
        seen = []

        async def handler(ctx, request):
            seen.append((ctx, ctx.cancelled))
            return None

        client = TestClient(_app(handler, RequestLifecycle()))

        client.get("/run")

        ctx, cancelled_during = seen[0]
        assert cancelled_during is False
        assert ctx.cancelled is True

    def test_one_access_record_per_request(self, caplog) -> None:
        async def handler(ctx, request):
            return "x" * 10

        client = TestClient(_app(handler, RequestLifecycle()))
        caplog.set_level(logging.INFO, logger="hostprobe")

        client.get("/run?a=1", headers={"X-Forwarded-For": "198.51.100.9"})

        access = [r for r in caplog.records if r.name == "hostprobe.access"]
        assert len(access) == 1
        fields = access[0].getMessage().split("\t")
        assert fields[0] == "REQ-1"
        assert fields[2] == "198.51.100.9"
        assert fields[3] == "/run?a=1"
        assert fields[5] == "200"
        assert fields[7] == "10"

    def test_access_log_can_be_disabled(self, caplog) -> None:
        async def handler(ctx, request):
            return None

        client = TestClient(_app(handler, RequestLifecycle(access_log=False)))
        caplog.set_level(logging.INFO, logger="hostprobe")

        client.get("/run")

        assert [r for r in caplog.records if r.name == "hostprobe.access"] == []

    @pytest.mark.asyncio
    async def test_missing_peer_triggers_fatal_hook(self) -> None:
        on_fatal = MagicMock()
        lifecycle = RequestLifecycle(on_fatal=on_fatal)

        async def handler(ctx, request):
            return None

        response = await lifecycle.handle(_request(client=None), handler)
        assert response.status_code == 200

        with pytest.raises(ConfigurationError):
            await response.background()

        on_fatal.assert_called_once()
        assert isinstance(on_fatal.call_args[0][0], ConfigurationError)

    @pytest.mark.asyncio
    async def test_missing_peer_on_error_path_is_fatal(self) -> None:
        on_fatal = MagicMock()
        lifecycle = RequestLifecycle(on_fatal=on_fatal)

        async def handler(ctx, request):
            raise HttpError("nope", status=404)

        with pytest.raises(ConfigurationError):
            await lifecycle.handle(_request(client=None), handler)

        on_fatal.assert_called_once()

    @pytest.mark.asyncio
    async def test_disconnect_cancels_context(self) -> None:
        disconnected = asyncio.Event()
        messages = [{"type": "http.request", "body": b"", "more_body": False}]

        async def receive():
            if messages:
                return messages.pop(0)
            await disconnected.wait()
            return {"type": "http.disconnect"}

        request = StarletteRequest(_scope(), receive)
        observed = []

        async def handler(ctx: ProbeContext, req):
            disconnected.set()
            await asyncio.wait_for(ctx.wait_cancelled(), timeout=2)
            observed.append(ctx.cancelled)
            ctx.raise_if_cancelled()

        lifecycle = RequestLifecycle(access_log=False)
        response = await lifecycle.handle(request, handler)

        assert observed == [True]
        assert response.status_code == 499
