from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Query
from fastapi.responses import FileResponse, JSONResponse

from .aggregator import aggregate
from .config import AppConfig
from .errors import FETCH_ERROR_MESSAGE, UpstreamFetchError
from .models import AggregationResult, ErrorResponse
from .registry import DEFAULT_REGISTRY, Registry, all_probes, load_registry
from .runtime import close_runtime, get_runtime, init_runtime
from .upstream import fetch_speedtest_servers

log = logging.getLogger(__name__)

cfg = AppConfig()
registry: Registry = load_registry(cfg.registry_file) if cfg.registry_file else DEFAULT_REGISTRY

APP_VERSION = os.getenv("APP_VERSION", "dev")
app = FastAPI(title="Speedtest Server Proxy", version=APP_VERSION)
_STATIC_DIR = Path(__file__).resolve().parent / "static"


def _error_response() -> JSONResponse:
    return JSONResponse(status_code=500, content={"error": FETCH_ERROR_MESSAGE})


@app.on_event("startup")
async def _startup() -> None:
    logging.basicConfig(
        level=cfg.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    init_runtime(timeout_seconds=cfg.upstream_timeout_seconds)
    log.info(
        "Speedtest proxy %s started: %d probes, upstream %s",
        APP_VERSION,
        len(all_probes(registry)),
        cfg.upstream_url,
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    await close_runtime()


@app.get("/", include_in_schema=False)
def index():
    return FileResponse(str(_STATIC_DIR / "index.html"))


@app.get("/healthz", include_in_schema=False)
def healthz():
    return {"ok": True}


@app.get("/api/version")
def api_version():
    return {"version": APP_VERSION}


@app.get("/api/registry")
def api_registry() -> dict[str, Any]:
    probes = all_probes(registry)
    return {
        "total": len(probes),
        "probes": [{"ip": p.ip, "country": p.country} for p in probes],
    }


@app.get(
    "/speedtest",
    response_model=AggregationResult,
    response_model_exclude_unset=True,
    responses={500: {"model": ErrorResponse}},
)
async def speedtest_all(countries: bool = Query(default=False)):
    rt = get_runtime()
    try:
        return await aggregate(
            rt.client,
            registry,
            cfg,
            include_countries=countries and cfg.expose_country_breakdown,
        )
    except Exception:
        log.exception("Aggregation failed")
        return _error_response()


@app.get(
    "/speedtest/{ip}",
    response_model=AggregationResult,
    response_model_exclude_unset=True,
    responses={500: {"model": ErrorResponse}},
)
async def speedtest_single(ip: str):
    rt = get_runtime()
    try:
        servers = await fetch_speedtest_servers(rt.client, ip, cfg)
    except UpstreamFetchError as e:
        log.warning("Passthrough failed: %s", e)
        return _error_response()
    except Exception:
        log.exception("Passthrough failed for %s", ip)
        return _error_response()
    return AggregationResult(total=len(servers), servers=servers)
