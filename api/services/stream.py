"""Stream ranking and resolution service."""

import logging
import re
from collections.abc import Sequence
from datetime import datetime

from db.config import settings
from db.content_store import ContentStore
from db.crud import get_content_record, upsert_streams
from db.schemas import (
    CandidateStream,
    ContentIdentity,
    ProviderAvailabilityResult,
    RankedStream,
    StreamRecord,
    utcnow,
)
from scrapers.aggregator import aggregate
from scrapers.torrent_search import TorrentSearchScraper
from streaming_providers import cascade
from streaming_providers.availability import check_all_providers, check_each_provider
from streaming_providers.exceptions import InvalidMagnet
from streaming_providers.mapper import DebridProvider, get_debrid_services
from utils.lock import IdentityLockRegistry, RedisLockRegistry
from utils.parser import build_magnet_link, extract_info_hash, rank_streams, strip_service_param

from .base import BaseService

BARE_INFO_HASH_REGEX = re.compile(r"^[a-fA-F0-9]{40}$")


class StreamService(BaseService):
    """Service for stream lookup and playback resolution.

    Combines the content store, the search aggregator and the configured
    debrid providers into the two caller operations: listing ranked cached
    streams and turning a selected stream into a playable url.
    """

    def __init__(
        self,
        api_keys: str | None = None,
        providers: Sequence[DebridProvider] | None = None,
        sources: Sequence[TorrentSearchScraper] | None = None,
        store: ContentStore | None = None,
        lock_registry: IdentityLockRegistry | RedisLockRegistry | None = None,
        logger: logging.Logger | None = None,
    ):
        """Initialize the stream service.

        Args:
            api_keys: Provider configuration such as "rd=<token>,tb=<token>".
            providers: Already built providers, used instead of api_keys.
            sources: Search sources. Defaults to the configured ones.
        """
        super().__init__(store=store, lock_registry=lock_registry, logger=logger)
        self._providers = (
            list(providers) if providers is not None else get_debrid_services(api_keys)
        )
        self._sources = sources

    @property
    def providers(self) -> list[DebridProvider]:
        """Get the configured providers in configuration order."""
        return self._providers

    def select_providers(self, provider_ids: Sequence[str] | None = None) -> list[DebridProvider]:
        if provider_ids is None:
            return list(self._providers)
        wanted = set(provider_ids)
        return [provider for provider in self._providers if provider.identify() in wanted]

    @staticmethod
    def project_cached_streams(
        streams: Sequence[StreamRecord],
        providers: Sequence[DebridProvider],
        now: datetime | None = None,
    ) -> list[RankedStream]:
        """One ranked entry per stream and provider it is freshly cached on."""
        now = now or utcnow()
        return rank_streams(
            RankedStream.from_record(record, provider.identify())
            for record in streams
            for provider in providers
            if record.is_cached_on(provider.identify(), now)
        )

    async def get_ranked_streams(
        self,
        identity: ContentIdentity,
        provider_ids: Sequence[str] | None = None,
    ) -> list[RankedStream]:
        """Get ranked cached streams of identity on the selected providers.

        Known streams are served straight from the store once enough of them
        are fresh. Otherwise the sources are searched, each provider re-checks
        the hashes it has no fresh cached answer for, and the merged result is
        ranked again.

        Args:
            identity: The movie or episode being requested.
            provider_ids: Restrict to these provider ids. Defaults to all.

        Returns:
            At most `max_streams_in_response` streams, best first.
        """
        providers = self.select_providers(provider_ids)
        if not providers:
            self.logger.info("No debrid providers configured for %s", identity.canonical_key)
            return []

        record = await get_content_record(identity, self.store)
        known_streams = record.streams if record else []
        now = utcnow()
        ranked = self.project_cached_streams(known_streams, providers, now)
        if len(ranked) >= settings.short_circuit_threshold:
            self.logger.info(
                "Serving %s cached streams for %s from store",
                len(ranked),
                identity.canonical_key,
            )
            return ranked[: settings.max_streams_in_response]

        try:
            candidates = await aggregate(identity, self._sources)
        except Exception:
            self.logger.exception("Aggregation failed for %s", identity.canonical_key)
            return ranked[: settings.max_streams_in_response]

        known_by_hash = {stream.info_hash: stream for stream in known_streams}
        to_check, checks = [], {provider.identify(): [] for provider in providers}
        for candidate in candidates:
            known = known_by_hash.get(candidate.info_hash)
            # only a fresh positive answer spares a provider the re-check
            stale_providers = [
                provider_id
                for provider_id in checks
                if known is None or not known.is_cached_on(provider_id, now)
            ]
            if not stale_providers:
                continue
            to_check.append(candidate)
            for provider_id in stale_providers:
                checks[provider_id].append(candidate.info_hash)
            if len(to_check) >= settings.max_streams_to_check:
                break
        if not to_check:
            return ranked[: settings.max_streams_in_response]

        availability = await check_each_provider(
            [(provider, checks[provider.identify()]) for provider in providers]
        )
        updates = [
            self._with_availability(candidate, availability) for candidate in to_check
        ]
        streams = await upsert_streams(
            identity,
            updates,
            store=self.store,
            lock_registry=self.lock_registry,
        )
        ranked = self.project_cached_streams(streams, providers)
        self.logger.info(
            "Found %s cached streams for %s after checking %s candidates",
            len(ranked),
            identity.canonical_key,
            len(to_check),
        )
        return ranked[: settings.max_streams_in_response]

    @staticmethod
    def _with_availability(
        candidate: CandidateStream,
        availability: dict[str, dict[str, ProviderAvailabilityResult]],
    ) -> CandidateStream:
        flags, degraded = {}, {}
        for provider_id, results in availability.items():
            result = results.get(candidate.info_hash)
            if result is None:
                continue
            flags[provider_id] = result.cached
            degraded[provider_id] = result.degraded
        return candidate.model_copy(update={"availability": flags, "degraded": degraded})

    @staticmethod
    def _to_magnet_link(magnet_link_or_hash: str) -> str:
        value = (magnet_link_or_hash or "").strip()
        if BARE_INFO_HASH_REGEX.match(value):
            return build_magnet_link(value)
        return value

    async def resolve_selection(
        self,
        magnet_link_or_hash: str,
        preferred_provider_id: str | None = None,
        season: int | None = None,
        episode: int | None = None,
    ) -> str:
        """Resolve a selected stream to a playable url.

        Raises:
            InvalidMagnet: No info hash could be extracted.
            AllProvidersFailed: Every provider failed, with per-provider reasons.
        """
        return await cascade.resolve(
            self._to_magnet_link(magnet_link_or_hash),
            self._providers,
            preferred_provider_id,
            season=season,
            episode=episode,
        )

    async def probe_providers(
        self, magnet_link_or_hash: str
    ) -> dict[str, ProviderAvailabilityResult]:
        """Check one torrent on every provider without resolving it."""
        magnet_link, _ = strip_service_param(self._to_magnet_link(magnet_link_or_hash))
        info_hash = extract_info_hash(magnet_link)
        if not info_hash:
            raise InvalidMagnet(f"No info hash in magnet link: {magnet_link!r}")

        availability = await check_all_providers(self._providers, [info_hash])
        return {
            provider_id: results[info_hash]
            for provider_id, results in availability.items()
        }
