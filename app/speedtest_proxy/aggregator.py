"""
Fan-out / fan-in over the geo-IP registry.

One upstream request is issued per probe (bounded by a semaphore and an overall
deadline). A failing or timed-out probe contributes nothing instead of failing
the request. Results are grouped by country, flattened, deduplicated by server
id and sorted by distance.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable

import httpx

from .config import AppConfig
from .errors import AggregationError
from .models import AggregationResult, CountrySummary, SpeedTestServer
from .registry import Probe, Registry, all_probes
from .upstream import fetch_speedtest_servers

log = logging.getLogger(__name__)

FetchFn = Callable[[httpx.AsyncClient, str, AppConfig], Awaitable[list[SpeedTestServer]]]


@dataclass(frozen=True)
class ProbeResult:
    country: str
    ip: str
    servers: list[SpeedTestServer]
    error: str | None = None


@dataclass
class CountryGroup:
    servers: list[SpeedTestServer] = field(default_factory=list)
    ips: list[str] = field(default_factory=list)


def group_by_country(results: Iterable[ProbeResult]) -> dict[str, CountryGroup]:
    groups: dict[str, CountryGroup] = {}
    for r in results:
        group = groups.setdefault(r.country, CountryGroup())
        group.servers.extend(r.servers)
        group.ips.append(r.ip)
    return groups


def dedupe_by_id(servers: Iterable[SpeedTestServer]) -> list[SpeedTestServer]:
    """Collapse servers sharing an ``id``.

    The LAST record seen for an id wins, but it keeps the position where that
    id was FIRST seen (dict assignment to an existing key keeps its slot).
    """
    by_id: dict[str, SpeedTestServer] = {}
    for server in servers:
        by_id[server.id] = server
    return list(by_id.values())


def merge_probe_results(results: Iterable[ProbeResult], include_countries: bool = False) -> AggregationResult:
    groups = group_by_country(results)
    merged = [server for group in groups.values() for server in group.servers]
    unique = dedupe_by_id(merged)
    # sorted() is stable: equal distances keep the dedup order.
    unique = sorted(unique, key=lambda s: s.distance)

    if not include_countries:
        return AggregationResult(total=len(unique), servers=unique)

    countries = [
        CountrySummary(country=country, ips_used=group.ips, server_count=len(group.servers))
        for country, group in groups.items()
    ]
    return AggregationResult(total=len(unique), servers=unique, countries=countries)


async def _run_probe(
    probe: Probe,
    client: httpx.AsyncClient,
    cfg: AppConfig,
    sem: asyncio.Semaphore,
    fetch: FetchFn,
) -> ProbeResult:
    async with sem:
        try:
            servers = await fetch(client, probe.ip, cfg)
            return ProbeResult(country=probe.country, ip=probe.ip, servers=servers)
        except Exception as e:
            log.warning("Failed to fetch from %s (%s): %s", probe.country, probe.ip, e)
            return ProbeResult(country=probe.country, ip=probe.ip, servers=[], error=str(e))


async def gather_probes(
    probes: list[Probe],
    client: httpx.AsyncClient,
    cfg: AppConfig,
    fetch: FetchFn = fetch_speedtest_servers,
) -> list[ProbeResult]:
    """Run every probe and return one result per probe, in probe order."""
    if not probes:
        return []

    sem = asyncio.Semaphore(max(1, cfg.max_concurrent_probes))
    tasks = [asyncio.create_task(_run_probe(p, client, cfg, sem, fetch)) for p in probes]
    done, pending = await asyncio.wait(tasks, timeout=max(0.001, cfg.aggregate_deadline_seconds))

    for t in pending:
        t.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
        log.warning(
            "Aggregation deadline of %.1fs exceeded, %d probe(s) cancelled",
            cfg.aggregate_deadline_seconds,
            len(pending),
        )

    results: list[ProbeResult] = []
    for probe, task in zip(probes, tasks):
        if task in done:
            results.append(task.result())
        else:
            results.append(ProbeResult(country=probe.country, ip=probe.ip, servers=[], error="deadline exceeded"))
    return results


async def aggregate(
    client: httpx.AsyncClient,
    registry: Registry,
    cfg: AppConfig,
    *,
    fetch: FetchFn = fetch_speedtest_servers,
    include_countries: bool = False,
) -> AggregationResult:
    t0 = time.perf_counter()
    try:
        probes = all_probes(registry)
        results = await gather_probes(probes, client, cfg, fetch=fetch)
        out = merge_probe_results(results, include_countries=include_countries)
        failed = sum(1 for r in results if r.error is not None)
    except Exception as e:
        raise AggregationError(f"aggregation failed: {e}") from e

    log.info(
        "Aggregated %d unique servers from %d probes (%d failed) in %.0f ms",
        out.total,
        len(probes),
        failed,
        (time.perf_counter() - t0) * 1000.0,
    )
    return out
