import asyncio
import logging
from typing import TYPE_CHECKING, Any, Iterator, List, Sequence

from db.schemas import ProviderAvailabilityResult
from streaming_providers.exceptions import AvailabilityDisabled, ProviderException

if TYPE_CHECKING:
    from streaming_providers.mapper import DebridProvider

logger = logging.getLogger(__name__)


def divide_chunks(lst: List[Any], n: int) -> Iterator[List[Any]]:
    """Yield successive n-sized chunks from lst."""
    for i in range(0, len(lst), n):
        yield lst[i : i + n]


def degraded_results(
    info_hashes: Sequence[str], reason: str
) -> dict[str, ProviderAvailabilityResult]:
    """Assume cached when the provider could not tell us."""
    return {
        info_hash: ProviderAvailabilityResult(
            info_hash=info_hash, cached=True, degraded=True, error=reason
        )
        for info_hash in info_hashes
    }


async def check_availability(
    provider: "DebridProvider", info_hashes: Sequence[str]
) -> dict[str, ProviderAvailabilityResult]:
    """
    Check the cache status of info_hashes on one provider.

    Hashes are sent in batches of `provider.batch_size`, one batch at a time
    with `provider.batch_delay` seconds in between. Once a batch fails, or the
    provider reports its check as disabled, every hash without a confirmed
    answer comes back as cached and degraded. A non-empty request never yields
    an empty result.
    """
    info_hashes = list(dict.fromkeys(info_hash.lower() for info_hash in info_hashes))
    if not info_hashes:
        return {}

    provider_id = provider.identify()
    if not provider.supports_availability:
        logger.debug("%s has no batch availability check, degrading", provider_id)
        return degraded_results(info_hashes, "availability check not supported")

    results: dict[str, ProviderAvailabilityResult] = {}
    reason = None
    try:
        async with provider.client() as client:
            for index, chunk in enumerate(
                divide_chunks(info_hashes, provider.batch_size)
            ):
                if index:
                    await asyncio.sleep(provider.batch_delay)
                batch = await provider.fetch_cache_status(client, chunk)
                for info_hash in chunk:
                    results[info_hash] = batch.get(
                        info_hash
                    ) or ProviderAvailabilityResult(info_hash=info_hash, cached=False)
    except AvailabilityDisabled as error:
        reason = error.message
        logger.warning("%s availability disabled: %s", provider_id, reason)
    except ProviderException as error:
        reason = error.message
        logger.warning("%s availability check failed: %s", provider_id, reason)
    except Exception as error:
        reason = f"unexpected error: {error}"
        logger.exception("%s availability check crashed", provider_id)

    missing = [info_hash for info_hash in info_hashes if info_hash not in results]
    if missing:
        results.update(degraded_results(missing, reason or "no answer from provider"))
    return results


async def check_each_provider(
    checks: Sequence[tuple["DebridProvider", Sequence[str]]],
) -> dict[str, dict[str, ProviderAvailabilityResult]]:
    """Check each provider's own hash list, independent providers concurrently."""
    checks = [(provider, info_hashes) for provider, info_hashes in checks if info_hashes]
    responses = await asyncio.gather(
        *[check_availability(provider, info_hashes) for provider, info_hashes in checks]
    )
    return {
        provider.identify(): response
        for (provider, _), response in zip(checks, responses)
    }


async def check_all_providers(
    providers: Sequence["DebridProvider"], info_hashes: Sequence[str]
) -> dict[str, dict[str, ProviderAvailabilityResult]]:
    """Run check_availability for the same hashes on every provider."""
    return await check_each_provider([(provider, info_hashes) for provider in providers])
