from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

UNKNOWN = "Unknown"


def _as_utc(value: datetime) -> datetime:
    # Persisted blobs written by older versions may carry naive timestamps.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RecordModel(BaseModel):
    """Immutable model serialized with camelCase keys."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


class Location(RecordModel):
    country: str = UNKNOWN
    city: str = UNKNOWN
    region: str = UNKNOWN


class ClickRecord(RecordModel):
    id: str
    timestamp: datetime
    source: str
    user_agent: str | None = None
    location: Location | None = None

    @field_validator("timestamp")
    @classmethod
    def timestamp_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)


class ShortenedUrlRecord(RecordModel):
    id: str
    original_url: str
    short_code: str
    short_url: str
    validity_period: int
    created_at: datetime
    expiry_date: datetime
    click_count: int = 0
    clicks: tuple[ClickRecord, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def sync_click_count(cls, data: Any) -> Any:
        # click_count always mirrors the click list, including for older
        # blobs that lack one or both fields.
        if isinstance(data, dict):
            data = dict(data)
            clicks = data.get("clicks") or ()
            data["clicks"] = clicks
            data.pop("click_count", None)
            data["clickCount"] = len(clicks)
        return data

    @field_validator("created_at", "expiry_date")
    @classmethod
    def dates_utc(cls, v: datetime) -> datetime:
        return _as_utc(v)

    def is_live(self, now: datetime) -> bool:
        # not the complement of validation.is_expired at expiry_date == now
        return self.expiry_date > now

    def with_click(self, click: ClickRecord) -> "ShortenedUrlRecord":
        clicks = self.clicks + (click,)
        return self.model_copy(update={"clicks": clicks, "click_count": len(clicks)})


class UrlStatistics(RecordModel):
    total_urls: int = 0
    active_urls: int = 0
    expired_urls: int = 0
    total_clicks: int = 0
    average_clicks_per_url: float = 0
    most_clicked_url: ShortenedUrlRecord | None = None


class ClickContext(BaseModel):
    """What is known about a single access to a short link."""

    model_config = ConfigDict(frozen=True)

    referrer: str | None = None
    user_agent: str | None = None
    client_ip: str | None = None
    # Device coordinates the client chose to share, (latitude, longitude).
    coordinates: tuple[float, float] | None = None


class ShortenRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    original_url: str
    validity_period: str = ""
    preferred_short_code: str = ""

    @field_validator("validity_period", "preferred_short_code", mode="before")
    @classmethod
    def blank_if_missing(cls, v: Any) -> Any:
        if v is None:
            return ""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v


class SweepResponse(BaseModel):
    removed: int = Field(ge=0)
