import asyncio
from dataclasses import replace

import httpx
import pytest

from speedtest_proxy.errors import UpstreamFetchError
from speedtest_proxy.upstream import fetch_speedtest_servers

from conftest import make_server, upstream_handler


def _fetch(handler, ip, cfg):
    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await fetch_speedtest_servers(client, ip, cfg)

    return asyncio.run(run())


def test_sends_spoofed_header_and_fixed_query(cfg):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=[make_server("1", 12.5)])

    servers = _fetch(handler, "8.8.8.8", cfg)

    assert [s.id for s in servers] == ["1"]
    request = seen[0]
    assert request.method == "GET"
    assert request.headers["X-Forwarded-For"] == "8.8.8.8"
    assert str(request.url).startswith("https://upstream.test/api/js/servers?")
    assert dict(request.url.params) == {"engine": "js", "https_functional": "true", "limit": "10000"}


def test_uses_configured_forwarded_header(cfg):
    seen = []

    def handler(request):
        seen.append(request.headers.get("X-Real-IP"))
        return httpx.Response(200, json=[])

    _fetch(handler, "1.2.3.4", replace(cfg, forwarded_header="X-Real-IP"))

    assert seen == ["1.2.3.4"]


def test_records_round_trip_as_received(cfg):
    payload = [
        {"id": 123, "distance": 5, "lat": 50.06, "preferred": True, "extra_field": "kept"},
        make_server("abc", 7.25),
    ]

    servers = _fetch(upstream_handler({"1.1.1.1": payload}), "1.1.1.1", cfg)

    assert servers[0].id == 123
    assert servers[0].distance == 5
    assert [s.model_dump() for s in servers] == payload
    dumped = servers[0].model_dump()
    assert type(dumped["id"]) is int
    assert type(dumped["distance"]) is int
    assert dumped["preferred"] is True


def test_follows_redirects(cfg):
    def handler(request):
        if request.url.path == "/api/js/servers":
            return httpx.Response(302, headers={"Location": "https://upstream.test/moved"})
        return httpx.Response(200, json=[make_server("r", 1)])

    servers = _fetch(handler, "1.1.1.1", cfg)

    assert [s.id for s in servers] == ["r"]


@pytest.mark.parametrize(
    "response",
    [
        500,
        404,
        b"<html>not json</html>",
        b'{"error": "not an array"}',
        b'[{"distance": 3}]',
        b'[{"id": "x", "distance": "far"}]',
        b'[{"id": "x", "distance": "12"}]',
        b'[{"id": true, "distance": 1}]',
        b'[{"id": "x", "distance": 1, "preferred": "yes"}]',
    ],
)
def test_failures_raise_upstream_fetch_error(cfg, response):
    with pytest.raises(UpstreamFetchError) as exc_info:
        _fetch(upstream_handler({"9.9.9.9": response}), "9.9.9.9", cfg)

    assert exc_info.value.ip == "9.9.9.9"


def test_network_error_raises_upstream_fetch_error(cfg):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UpstreamFetchError) as exc_info:
        _fetch(handler, "5.5.5.5", cfg)

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)


def test_slow_upstream_times_out(cfg):
    async def handler(request):
        await asyncio.sleep(1)
        return httpx.Response(200, json=[])

    with pytest.raises(UpstreamFetchError) as exc_info:
        _fetch(handler, "7.7.7.7", replace(cfg, upstream_timeout_seconds=0.05))

    assert "timed out" in str(exc_info.value)
