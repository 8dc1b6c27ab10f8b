from __future__ import annotations


FETCH_ERROR_MESSAGE = "Failed to fetch speedtest servers"


class UpstreamFetchError(Exception):
    """Raised when the server directory could not be fetched for one spoofed IP."""

    def __init__(self, ip: str, cause: BaseException | str):
        self.ip = ip
        self.cause = cause
        super().__init__(f"upstream fetch failed for {ip}: {cause}")


class AggregationError(Exception):
    """Raised when aggregation fails outside of per-probe isolation."""
