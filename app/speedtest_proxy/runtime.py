from __future__ import annotations

from dataclasses import dataclass

import httpx


@dataclass
class ProxyRuntime:
    client: httpx.AsyncClient


_runtime: ProxyRuntime | None = None


def init_runtime(
    timeout_seconds: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProxyRuntime:
    global _runtime
    # Limit całkowity daje asyncio.wait_for w upstream.py; klient nie może go skracać.
    _runtime = ProxyRuntime(client=httpx.AsyncClient(timeout=timeout_seconds, transport=transport))
    return _runtime


def get_runtime() -> ProxyRuntime:
    global _runtime
    if _runtime is None:
        # fallback (np. jeśli ktoś zaimportuje bez startup event)
        _runtime = ProxyRuntime(client=httpx.AsyncClient(timeout=None))
    return _runtime


async def close_runtime() -> None:
    global _runtime
    if _runtime is None:
        return
    await _runtime.client.aclose()
    _runtime = None
