"""Content identity and stream schemas shared by the store, aggregator and ranking."""

import re
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from db.config import settings
from db.enums import MediaType, Quality
from utils import const
from utils.parser import (
    build_magnet_link,
    detect_video_features,
    format_size_mb,
    get_quality_symbol,
)
from utils.validation_helper import InvalidInput

INFO_HASH_REGEX = re.compile(r"^[a-f0-9]{40}$")
CATALOG_ID_REGEX = re.compile(r"^(?:tt\d+|tmdb:\d+|\d+)$")


def utcnow() -> datetime:
    return datetime.now(UTC)


def _validate_info_hash(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("info_hash must be a string")
    value = value.strip().lower()
    if not INFO_HASH_REGEX.match(value):
        raise ValueError(f"invalid info_hash: {value!r}")
    return value


class ContentIdentity(BaseModel):
    """A requested movie, or one episode of a series."""

    model_config = {"frozen": True}

    media_type: MediaType
    catalog_id: str
    season: Optional[int] = Field(default=None, ge=0)
    episode: Optional[int] = Field(default=None, ge=0)

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except ValidationError as error:
            raise InvalidInput(str(error)) from error

    @field_validator("catalog_id", mode="before")
    @classmethod
    def normalize_catalog_id(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("catalog_id must be a string")
        value = value.strip()
        if value.startswith("tmdb-"):
            value = value.replace("tmdb-", "tmdb:", 1)
        if not CATALOG_ID_REGEX.match(value):
            raise ValueError(f"unsupported catalog id: {value!r}")
        return value

    @model_validator(mode="after")
    def validate_episode_fields(self) -> "ContentIdentity":
        if self.media_type == MediaType.SERIES:
            if self.season is None or self.episode is None:
                raise ValueError("series identity requires season and episode")
        elif self.season is not None or self.episode is not None:
            raise ValueError("movie identity cannot have season or episode")
        return self

    @property
    def canonical_key(self) -> str:
        if self.media_type == MediaType.SERIES:
            return f"{self.media_type}:{self.catalog_id}:{self.season}:{self.episode}"
        return f"{self.media_type}:{self.catalog_id}"

    @property
    def search_query(self) -> str:
        if self.media_type == MediaType.SERIES:
            return f"{self.catalog_id}:{self.season}:{self.episode}"
        return self.catalog_id

    @property
    def default_title(self) -> str:
        if self.media_type == MediaType.SERIES:
            return f"Series {self.catalog_id} S{self.season}E{self.episode}"
        return f"Movie {self.catalog_id}"

    @classmethod
    def from_stremio_id(cls, media_type: str, stremio_id: str) -> "ContentIdentity":
        """Parse "tt123", "tmdb:123" or, for series, "tt123:1:2" style ids."""
        parts = stremio_id.split(":")
        if parts[0] == "tmdb" and len(parts) > 1:
            parts = [f"tmdb:{parts[1]}", *parts[2:]]
        if media_type == MediaType.SERIES:
            if len(parts) != 3:
                raise InvalidInput(f"series id must include season and episode: {stremio_id!r}")
            return cls(
                media_type=media_type,
                catalog_id=parts[0],
                season=parts[1],
                episode=parts[2],
            )
        return cls(media_type=media_type, catalog_id=parts[0])


class CandidateStream(BaseModel):
    """A deduplicated search result, optionally carrying fresh availability flags."""

    info_hash: str
    magnet_link: str
    filename: str = ""
    title: str = ""
    quality: Quality = Quality.UNKNOWN
    size_mb: float = Field(default=0, ge=0)
    source: str = ""
    availability: dict[str, bool] = Field(default_factory=dict)
    degraded: dict[str, bool] = Field(default_factory=dict)

    @field_validator("info_hash", mode="before")
    @classmethod
    def validate_info_hash(cls, value: Any) -> str:
        return _validate_info_hash(value)


class StreamRecord(BaseModel):
    info_hash: str
    magnet_link: Optional[str] = None
    filename: str = ""
    display_title: str = ""
    quality: Quality = Quality.UNKNOWN
    size_mb: float = Field(default=0, ge=0)
    source: str = ""
    availability: dict[str, bool] = Field(default_factory=dict)
    degraded: dict[str, bool] = Field(default_factory=dict)
    checked_at: dict[str, datetime] = Field(default_factory=dict)
    last_checked_at: Optional[datetime] = None
    added_at: datetime = Field(default_factory=utcnow)

    @field_validator("info_hash", mode="before")
    @classmethod
    def validate_info_hash(cls, value: Any) -> str:
        return _validate_info_hash(value)

    def is_fresh(
        self,
        now: Optional[datetime] = None,
        validity_hours: Optional[int] = None,
        provider_id: Optional[str] = None,
    ) -> bool:
        """Whether the last check, of provider_id when given, is within the validity window."""
        checked = self.last_checked_at
        if provider_id is not None:
            checked = self.checked_at.get(provider_id, checked)
        if checked is None:
            return False
        now = now or utcnow()
        validity = timedelta(hours=validity_hours or settings.cache_validity_hours)
        return now - checked <= validity

    def is_cached_on(
        self,
        provider_id: str,
        now: Optional[datetime] = None,
        validity_hours: Optional[int] = None,
    ) -> bool:
        """Cached flag for the provider, trusted only while its last check is fresh."""
        return self.availability.get(provider_id, False) and self.is_fresh(
            now, validity_hours, provider_id
        )


class ContentRecord(BaseModel):
    identity_key: str
    title: str
    streams: list[StreamRecord] = Field(default_factory=list)
    last_updated_at: datetime = Field(default_factory=utcnow)


class RankedStream(BaseModel):
    """One stream as offered to the caller through one provider."""

    info_hash: str
    provider_id: str
    magnet_link: str
    name: str
    description: str
    filename: str = ""
    quality: Quality = Quality.UNKNOWN
    size_mb: float = 0
    source: str = ""
    degraded: bool = False

    @classmethod
    def from_record(cls, record: StreamRecord, provider_id: str) -> "RankedStream":
        degraded = record.degraded.get(provider_id, False)
        short_name = const.STREAMING_PROVIDERS_SHORT_NAMES.get(provider_id, provider_id)
        cache_label = const.UNVERIFIED_CACHE_LABEL if degraded else const.CACHED_LABEL
        name = " | ".join(
            filter(
                None,
                [
                    f"[{short_name} {cache_label}]",
                    get_quality_symbol(record.quality),
                    format_size_mb(record.size_mb),
                ],
            )
        )
        details = " | ".join(
            [f"🤖 {record.source}", *detect_video_features(record.filename)]
        )
        description = "\n".join(
            filter(None, [record.filename or record.display_title, details])
        )
        return cls(
            info_hash=record.info_hash,
            provider_id=provider_id,
            magnet_link=build_magnet_link(record.info_hash, service=provider_id),
            name=name,
            description=description,
            filename=record.filename,
            quality=record.quality,
            size_mb=record.size_mb,
            source=record.source,
            degraded=degraded,
        )
