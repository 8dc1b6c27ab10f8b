from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class AppConfig:
    # Katalog serwerów LibreSpeed; parametry zapytania są stałe (upstream.py).
    upstream_url: str = os.getenv("UPSTREAM_URL", "https://librespeed.speedtestcustom.com/api/js/servers")
    forwarded_header: str = os.getenv("FORWARDED_HEADER", "X-Forwarded-For")
    upstream_timeout_seconds: float = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))

    # Limit dla całego fan-outu; sondy niezakończone w tym czasie liczą się jako błędy.
    aggregate_deadline_seconds: float = float(os.getenv("AGGREGATE_DEADLINE_SECONDS", "30"))
    max_concurrent_probes: int = int(os.getenv("MAX_CONCURRENT_PROBES", "16"))

    # Opcjonalny plik JSON {continent: [{country, ips}]} zamiast wbudowanej tabeli.
    registry_file: str | None = (os.getenv("REGISTRY_FILE") or "").strip() or None

    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    expose_country_breakdown: bool = _env_bool("EXPOSE_COUNTRY_BREAKDOWN", True)

    @property
    def upstream_params(self) -> dict[str, str]:
        return {"engine": "js", "https_functional": "true", "limit": "10000"}
