from __future__ import annotations

import asyncio
import logging

import httpx
from pydantic import TypeAdapter, ValidationError

from .config import AppConfig
from .errors import UpstreamFetchError
from .models import SpeedTestServer

log = logging.getLogger(__name__)

_servers_adapter = TypeAdapter(list[SpeedTestServer])


async def _get(client: httpx.AsyncClient, ip: str, cfg: AppConfig) -> httpx.Response:
    resp = await client.get(
        cfg.upstream_url,
        params=cfg.upstream_params,
        headers={cfg.forwarded_header: ip},
        follow_redirects=True,
    )
    resp.raise_for_status()
    return resp


async def fetch_speedtest_servers(client: httpx.AsyncClient, ip: str, cfg: AppConfig) -> list[SpeedTestServer]:
    """Fetch the server directory as seen from ``ip`` (single attempt, no retry)."""
    log.debug("Fetching speedtest servers for %s", ip)
    try:
        resp = await asyncio.wait_for(_get(client, ip, cfg), timeout=cfg.upstream_timeout_seconds)
        data = resp.json()
    except asyncio.TimeoutError as e:
        raise UpstreamFetchError(ip, f"timed out after {cfg.upstream_timeout_seconds}s") from e
    except (httpx.HTTPError, ValueError) as e:
        raise UpstreamFetchError(ip, e) from e

    if not isinstance(data, list):
        raise UpstreamFetchError(ip, f"expected a JSON array, got {type(data).__name__}")

    try:
        return _servers_adapter.validate_python(data)
    except ValidationError as e:
        raise UpstreamFetchError(ip, e) from e
