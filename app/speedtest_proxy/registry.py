"""
Geo-IP registry: continent -> country -> representative client IPs.

Each IP is used as a spoofed request origin so the upstream directory returns
servers near that location. Entries are opaque strings; nothing here checks
that they are valid addresses.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


@dataclass(frozen=True)
class GeoEntry:
    country: str
    ips: tuple[str, ...]


@dataclass(frozen=True)
class Probe:
    ip: str
    country: str


Registry = Mapping[str, tuple[GeoEntry, ...]]


def _entry(country: str, *ips: str) -> GeoEntry:
    return GeoEntry(country=country, ips=tuple(ips))


DEFAULT_REGISTRY: Registry = MappingProxyType(
    {
        "north_america": (
            _entry("United States", "104.16.132.229", "8.8.8.8", "205.251.242.103", "157.240.2.35", "104.244.42.193"),
            _entry("Canada", "99.79.32.120", "35.182.93.184", "52.60.50.0", "104.215.116.88"),
            _entry("Mexico", "189.203.197.143", "201.175.47.68", "187.190.255.160", "200.56.193.140"),
        ),
        "europe": (
            _entry("Germany", "87.121.61.139", "3.120.181.107", "52.29.63.206", "35.157.127.248", "18.184.99.128"),
            _entry("United Kingdom", "178.62.127.241", "35.176.92.63", "52.56.34.0", "51.141.47.105"),
            _entry("France", "51.159.30.240", "163.172.220.253", "35.180.0.1", "35.181.3.245"),
        ),
        "asia": (
            _entry("Japan", "103.152.34.12", "54.178.26.110", "52.192.64.163", "40.115.186.96", "104.215.140.80"),
            _entry("Singapore", "174.138.27.185", "52.74.223.119", "52.221.221.153", "104.215.189.96"),
            _entry("South Korea", "119.205.235.214", "52.78.63.252", "13.124.63.251", "52.231.32.118"),
        ),
        "oceania": (
            _entry("Australia", "1.1.1.1", "54.253.0.200", "52.62.63.255", "13.70.159.8", "168.1.168.1"),
            _entry("New Zealand", "103.247.196.86", "49.50.252.21", "203.109.152.251", "103.231.168.1"),
        ),
        "south_america": (
            _entry("Brazil", "200.229.211.1", "54.232.0.241", "52.67.255.254", "191.232.38.129", "152.67.40.0"),
            _entry("Argentina", "181.30.128.34", "200.5.119.42", "190.210.25.157", "200.123.180.122"),
            _entry("Chile", "200.12.186.50", "200.75.0.1", "200.29.248.1", "200.54.168.1"),
        ),
    }
)


def all_probes(registry: Registry = DEFAULT_REGISTRY) -> list[Probe]:
    """Flatten continent -> country -> ip in declaration order."""
    return [
        Probe(ip=ip, country=entry.country)
        for entries in registry.values()
        for entry in entries
        for ip in entry.ips
    ]


class GeoEntryModel(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    country: str = Field(min_length=1)
    ips: list[str]


_registry_adapter = TypeAdapter(dict[str, list[GeoEntryModel]])


def _freeze(parsed: dict[str, list[GeoEntryModel]]) -> Registry:
    return MappingProxyType(
        {
            continent: tuple(GeoEntry(country=e.country, ips=tuple(e.ips)) for e in entries)
            for continent, entries in parsed.items()
        }
    )


def registry_from_dict(data: Mapping[str, Any]) -> Registry:
    """Validate plain data; raises ``pydantic.ValidationError`` (a ``ValueError``)."""
    return _freeze(_registry_adapter.validate_python(data))


def load_registry(path: str | Path) -> Registry:
    return _freeze(_registry_adapter.validate_json(Path(path).read_bytes()))
