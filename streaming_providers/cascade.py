import logging
from typing import TYPE_CHECKING, Optional, Sequence

from db.config import settings
from db.enums import ResolutionStatus
from db.schemas import ResolutionOutcome
from streaming_providers.exceptions import (
    AllProvidersFailed,
    InvalidMagnet,
    ProviderException,
)
from utils.parser import extract_info_hash, strip_service_param
from utils.validation_helper import does_url_exist, is_valid_url

if TYPE_CHECKING:
    from streaming_providers.mapper import DebridProvider

logger = logging.getLogger(__name__)


def order_providers(
    providers: Sequence["DebridProvider"], preferred_provider_id: Optional[str] = None
) -> list["DebridProvider"]:
    """Move the preferred provider to the front, keep everyone else in order."""
    providers = list(providers)
    for index, provider in enumerate(providers):
        if provider.identify() == preferred_provider_id:
            return [providers.pop(index), *providers]
    return providers


async def try_provider(
    provider: "DebridProvider",
    magnet_link: str,
    info_hash: str,
    season: Optional[int] = None,
    episode: Optional[int] = None,
) -> ResolutionOutcome:
    provider_id = provider.identify()
    try:
        if provider.supports_precheck:
            result = (await provider.check_availability([info_hash])).get(info_hash)
            if result is not None and not result.cached and not result.degraded:
                return ResolutionOutcome(
                    provider_id=provider_id,
                    status=ResolutionStatus.NOT_CACHED,
                    reason="Torrent is not cached",
                )
        url = await provider.resolve(magnet_link, season=season, episode=episode)
    except ProviderException as error:
        logger.warning(
            "%s failed to resolve %s: %s (%s)",
            provider_id,
            info_hash,
            error.message,
            error.error_kind,
        )
        return ResolutionOutcome(
            provider_id=provider_id,
            status=error.error_kind.resolution_status,
            reason=error.message,
        )
    except Exception as error:
        logger.exception("%s crashed while resolving %s", provider_id, info_hash)
        return ResolutionOutcome(
            provider_id=provider_id,
            status=ResolutionStatus.TRANSIENT_ERROR,
            reason=f"Unexpected error: {error}",
        )

    if not is_valid_url(url):
        logger.warning("%s returned an invalid stream url: %r", provider_id, url)
        return ResolutionOutcome(
            provider_id=provider_id,
            status=ResolutionStatus.PERMANENT_ERROR,
            reason="Invalid stream url",
        )

    if settings.probe_stream_urls and not await does_url_exist(url):
        logger.warning("%s stream url did not answer a HEAD probe", provider_id)

    return ResolutionOutcome(
        provider_id=provider_id, status=ResolutionStatus.READY, url=url
    )


async def resolve(
    magnet_link: str,
    providers: Sequence["DebridProvider"],
    preferred_provider_id: Optional[str] = None,
    season: Optional[int] = None,
    episode: Optional[int] = None,
) -> str:
    """
    Try each provider in turn, preferred one first, and return the first
    playable url. Raises AllProvidersFailed with every outcome when none works.
    """
    magnet_link, service = strip_service_param(magnet_link)
    info_hash = extract_info_hash(magnet_link)
    if not info_hash:
        raise InvalidMagnet(f"No info hash in magnet link: {magnet_link!r}")

    outcomes = []
    for provider in order_providers(providers, preferred_provider_id or service):
        outcome = await try_provider(provider, magnet_link, info_hash, season, episode)
        if outcome.status == ResolutionStatus.READY:
            logger.info("Resolved %s via %s", info_hash, outcome.provider_id)
            return outcome.url
        outcomes.append(outcome)

    raise AllProvidersFailed(outcomes)
