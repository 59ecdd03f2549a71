import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from db.config import settings
from db.enums import MediaType, Quality
from db.schemas import CandidateStream, ContentIdentity
from scrapers.torrent_search import TorrentSearchScraper, get_configured_sources
from utils.parser import (
    extract_info_hash,
    is_episode_match,
    parse_quality,
    parse_size_mb,
)

logger = logging.getLogger(__name__)


def _parse_declared_size(size: Any) -> float:
    """Numbers are byte counts, strings like "1.4 GB" are parsed."""
    if isinstance(size, bool):
        return 0.0
    if isinstance(size, (int, float)):
        return max(size, 0) / (1024 * 1024)
    return parse_size_mb(size)


def build_candidate(result: Dict[str, Any], source_name: str) -> Optional[CandidateStream]:
    """Normalize one raw search result, None when no info hash can be extracted."""
    magnet_link = result.get("magnetLink") or result.get("magnet_link")
    info_hash = extract_info_hash(magnet_link)
    if not info_hash:
        return None

    title = str(result.get("title") or "")
    filename = str(result.get("filename") or title)

    quality = parse_quality(result.get("quality"))
    if quality == Quality.UNKNOWN:
        quality = parse_quality(filename) or parse_quality(title)

    size_mb = (
        _parse_declared_size(result.get("size"))
        or parse_size_mb(title)
        or parse_size_mb(filename)
    )

    try:
        return CandidateStream(
            info_hash=info_hash,
            magnet_link=magnet_link,
            filename=filename,
            title=title,
            quality=quality,
            size_mb=size_mb,
            source=source_name,
        )
    except ValidationError as error:
        logger.warning("Skipping malformed result from %s: %s", source_name, error)
        return None


async def _search_source(
    scraper: TorrentSearchScraper, identity: ContentIdentity, timeout: float
) -> List[Dict[str, Any]]:
    try:
        async with asyncio.timeout(timeout):
            return await scraper.scrape_and_parse(identity)
    except TimeoutError:
        scraper.metrics.record_error("timeout")
        logger.warning("Source %s timed out after %ss", scraper.name, timeout)
        return []


async def aggregate(
    identity: ContentIdentity,
    sources: Optional[Sequence[TorrentSearchScraper]] = None,
    timeout: Optional[float] = None,
) -> List[CandidateStream]:
    """
    Query every source concurrently and merge the results. Duplicate info
    hashes keep the entry from the earliest source in configuration order.
    Series results must cover the requested episode.
    """
    owns_sources = sources is None
    sources = get_configured_sources() if owns_sources else list(sources)
    timeout = timeout or settings.source_timeout

    try:
        results = await asyncio.gather(
            *[_search_source(scraper, identity, timeout) for scraper in sources]
        )
    finally:
        if owns_sources:
            await asyncio.gather(*[scraper.aclose() for scraper in sources])

    seen_hashes = set()
    candidates = []
    for scraper, raw_results in zip(sources, results):
        for result in raw_results:
            candidate = build_candidate(result, scraper.name)
            if candidate is None:
                scraper.metrics.record_skip("Invalid magnet")
                continue
            if candidate.info_hash in seen_hashes:
                scraper.metrics.record_skip("Duplicate")
                continue
            if identity.media_type == MediaType.SERIES and not is_episode_match(
                candidate.filename or candidate.title,
                identity.season,
                identity.episode,
            ):
                scraper.metrics.record_skip("Episode mismatch")
                continue

            seen_hashes.add(candidate.info_hash)
            scraper.metrics.record_processed_item()
            scraper.metrics.record_quality(candidate.quality)
            candidates.append(candidate)

    for scraper in sources:
        scraper.metrics.log_summary(scraper.logger)

    logger.info(
        "Aggregated %s unique streams for %s from %s sources",
        len(candidates),
        identity.canonical_key,
        len(sources),
    )
    return candidates
