from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_serializer, model_validator


class SpeedTestServer(BaseModel):
    """One entry of the upstream server directory.

    Only ``id`` (dedup key) and ``distance`` (sort key) are interpreted. The
    fields are checked strictly; a mismatch is a validation error, never a
    conversion. The record is serialized back exactly as it was received.
    """

    model_config = ConfigDict(extra="allow", strict=True)

    id: str | int
    distance: int | float
    url: str | None = None
    lat: str | int | float | None = None
    lon: str | int | float | None = None
    name: str | None = None
    country: str | None = None
    cc: str | None = None
    sponsor: str | None = None
    preferred: int | bool | None = None
    https_functional: int | bool | None = None
    host: str | None = None

    _raw: dict[str, Any] = PrivateAttr(default_factory=dict)

    @model_validator(mode="wrap")
    @classmethod
    def _keep_raw(cls, data: Any, handler):
        server = handler(data)
        if isinstance(data, dict):
            server._raw = dict(data)
        return server

    @model_serializer(mode="plain")
    def _as_received(self) -> dict[str, Any]:
        return dict(self._raw)


class CountrySummary(BaseModel):
    country: str
    ips_used: list[str]
    server_count: int


class AggregationResult(BaseModel):
    total: int
    servers: list[SpeedTestServer] = Field(default_factory=list)
    countries: list[CountrySummary] | None = None


class ErrorResponse(BaseModel):
    error: str
