import json

import httpx
import pytest

from speedtest_proxy import runtime
from speedtest_proxy.config import AppConfig

UPSTREAM_URL = "https://upstream.test/api/js/servers"


def make_server(server_id, distance, **extra):
    data = {
        "url": f"https://{server_id}.example/backend/empty.php",
        "lat": "50.0",
        "lon": "19.9",
        "distance": distance,
        "name": f"Server {server_id}",
        "country": "Poland",
        "cc": "PL",
        "sponsor": "Example ISP",
        "id": server_id,
        "preferred": 0,
        "https_functional": 1,
        "host": f"{server_id}.example",
    }
    data.update(extra)
    return data


def upstream_handler(responses):
    """MockTransport handler answering per spoofed IP.

    ``responses`` maps an IP to a list (served as JSON), an int status code,
    or raw bytes. Unknown IPs get an empty array.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        ip = request.headers.get("X-Forwarded-For", "")
        value = responses.get(ip, [])
        if isinstance(value, int):
            return httpx.Response(value, json={"error": "boom"})
        if isinstance(value, bytes):
            return httpx.Response(200, content=value, headers={"content-type": "application/json"})
        return httpx.Response(200, content=json.dumps(value).encode(), headers={"content-type": "application/json"})

    return handler


@pytest.fixture
def cfg():
    return AppConfig(
        upstream_url=UPSTREAM_URL,
        forwarded_header="X-Forwarded-For",
        upstream_timeout_seconds=1.0,
        aggregate_deadline_seconds=5.0,
        max_concurrent_probes=4,
        registry_file=None,
        log_level="DEBUG",
        expose_country_breakdown=True,
    )


@pytest.fixture
def mock_upstream(monkeypatch):
    """Install a shared client backed by MockTransport for the HTTP app."""

    def install(responses):
        transport = httpx.MockTransport(upstream_handler(responses))
        rt = runtime.ProxyRuntime(client=httpx.AsyncClient(transport=transport))
        monkeypatch.setattr(runtime, "_runtime", rt)
        return rt

    return install
