"""Tests for the HTTP batch transport."""

import json

import httpx
import pytest

from pulse.sdk.config import PulseConfig
from pulse.sdk.transport import HTTPTransport
from tests.conftest import TEST_SDK_KEY, make_sdk_trace


def make_transport(handler) -> HTTPTransport:
    config = PulseConfig(api_key=TEST_SDK_KEY, api_url="https://collector.test/").validate()
    return HTTPTransport(config, transport=httpx.MockTransport(handler))


class TestHTTPTransport:
    @pytest.mark.asyncio
    async def test_posts_batch_with_bearer_auth(self) -> None:
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(202, json={"count": 2})

        transport = make_transport(handler)
        traces = [make_sdk_trace(), make_sdk_trace(session_id="sess-1")]

        assert await transport.send(traces) is True

        request = captured[0]
        assert request.method == "POST"
        assert str(request.url) == "https://collector.test/v1/traces/batch"
        assert request.headers["Authorization"] == f"Bearer {TEST_SDK_KEY}"
        assert request.headers["Content-Type"] == "application/json"

        body = json.loads(request.content)
        assert [t["trace_id"] for t in body] == [t.trace_id for t in traces]
        assert "session_id" not in body[0]
        assert body[1]["session_id"] == "sess-1"

    @pytest.mark.asyncio
    async def test_server_error_returns_false(self) -> None:
        transport = make_transport(lambda request: httpx.Response(500, json={"error": "boom"}))
        assert await transport.send([make_sdk_trace()]) is False

    @pytest.mark.asyncio
    async def test_auth_error_returns_false(self) -> None:
        transport = make_transport(lambda request: httpx.Response(401, json={"error": "Invalid API key"}))
        assert await transport.send([make_sdk_trace()]) is False

    @pytest.mark.asyncio
    async def test_network_error_returns_false(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = make_transport(handler)
        assert await transport.send([make_sdk_trace()]) is False

    @pytest.mark.asyncio
    async def test_timeout_returns_false(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        transport = make_transport(handler)
        assert await transport.send([make_sdk_trace()]) is False

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self) -> None:
        calls = []
        transport = make_transport(lambda request: calls.append(request) or httpx.Response(202))

        assert await transport.send([]) is True
        assert calls == []
