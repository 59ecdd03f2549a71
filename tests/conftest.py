"""
Pytest configuration and shared fixtures for the stream engine tests.
"""

from contextlib import asynccontextmanager
from datetime import timedelta

import pytest

from db.config import settings
from db.content_store import InMemoryContentStore
from db.enums import MediaType
from db.schemas import ContentIdentity, ProviderAvailabilityResult
from streaming_providers import availability
from streaming_providers.exceptions import AvailabilityDisabled, ProviderException
from utils.lock import IdentityLockRegistry


class FakeProvider:
    """In-memory stand-in for a configured debrid provider."""

    def __init__(
        self,
        provider_id: str,
        cached=(),
        url: str | None = "https://cdn.example.com/video.mkv",
        error: Exception | None = None,
        batch_size: int = 50,
        supports_availability: bool = True,
        supports_precheck: bool = False,
        disabled: bool = False,
        fail_on_batch: int | None = None,
    ):
        self.provider_id = provider_id
        self.cached = {info_hash.lower() for info_hash in cached}
        self.url = url
        self.error = error
        self.batch_size = batch_size
        self.batch_delay = 0
        self.supports_availability = supports_availability
        self.supports_precheck = supports_precheck
        self.disabled = disabled
        self.fail_on_batch = fail_on_batch
        self.batches: list[list[str]] = []
        self.resolve_calls: list[tuple] = []

    def identify(self) -> str:
        return self.provider_id

    @asynccontextmanager
    async def client(self):
        yield self

    async def fetch_cache_status(self, client, info_hashes):
        self.batches.append(list(info_hashes))
        if self.disabled:
            raise AvailabilityDisabled()
        if self.fail_on_batch is not None and len(self.batches) - 1 == self.fail_on_batch:
            raise ProviderException("Debrid service is down.", "api_error.mp4")
        return {
            info_hash: ProviderAvailabilityResult(
                info_hash=info_hash, cached=info_hash in self.cached
            )
            for info_hash in info_hashes
        }

    async def check_availability(self, info_hashes):
        return await availability.check_availability(self, info_hashes)

    async def resolve(self, magnet_link, season=None, episode=None):
        self.resolve_calls.append((magnet_link, season, episode))
        if self.error:
            raise self.error
        return self.url


@pytest.fixture(autouse=True)
def no_url_probe(monkeypatch):
    """Never send HEAD requests to stream urls from tests."""
    monkeypatch.setattr(settings, "probe_stream_urls", False)


@pytest.fixture
def store():
    return InMemoryContentStore()


@pytest.fixture
def lock_registry():
    return IdentityLockRegistry()


@pytest.fixture
def movie_identity():
    return ContentIdentity(media_type=MediaType.MOVIE, catalog_id="tt0111161")


@pytest.fixture
def episode_identity():
    return ContentIdentity(
        media_type=MediaType.SERIES, catalog_id="tt0944947", season=2, episode=5
    )


@pytest.fixture
def stale_delta():
    """Just past the cache validity window."""
    return timedelta(hours=settings.cache_validity_hours, minutes=1)


@pytest.fixture
def make_provider():
    return FakeProvider
