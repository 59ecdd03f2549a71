from typing import Optional

from db.config import settings
from db.enums import ErrorKind
from db.schemas import ProviderAvailabilityResult
from streaming_providers.debridlink.client import DebridLink
from streaming_providers.exceptions import AvailabilityDisabled, ProviderException
from streaming_providers.parser import select_best_file
from streaming_providers.premiumize.client import Premiumize
from streaming_providers.premiumize.utils import get_premiumize_cache_status


def get_download_link(
    torrent_info: dict,
    season: Optional[int],
    episode: Optional[int],
) -> str:
    files = torrent_info.get("files") or []
    selected_file = files[select_best_file(files, season, episode).index]

    if selected_file.get("downloadPercent") != 100:
        raise ProviderException(
            "Torrent not downloaded yet.",
            "torrent_not_downloaded.mp4",
            ErrorKind.NOT_CACHED,
        )
    return selected_file["downloadUrl"]


async def get_video_url_from_debridlink(
    dl_client: DebridLink,
    info_hash: str,
    magnet_link: str,
    season: Optional[int] = None,
    episode: Optional[int] = None,
    max_retries: Optional[int] = None,
    retry_interval: Optional[float] = None,
) -> str:
    torrent_info = await dl_client.get_available_torrent(info_hash)
    if not torrent_info:
        torrent_info = await dl_client.add_magnet_link(magnet_link)

    torrent_id = torrent_info.get("id")
    if not torrent_id:
        raise ProviderException(
            "Failed to add magnet link to DebridLink", "transfer_error.mp4"
        )

    if torrent_info.get("errorString"):
        await dl_client.delete_torrent(torrent_id)
        raise ProviderException(
            f"Torrent cannot be downloaded due to error: {torrent_info.get('errorString')}",
            "transfer_error.mp4",
            ErrorKind.PERMANENT_ERROR,
        )

    torrent_info = await dl_client.wait_for_status(
        torrent_id,
        100,
        max_retries,
        retry_interval,
        torrent_info,
        status_key="downloadPercent",
    )
    return get_download_link(torrent_info, season, episode)


async def get_debridlink_cache_status(
    dl_client: DebridLink, info_hashes: list[str]
) -> dict[str, ProviderAvailabilityResult]:
    """
    Debrid-Link has no batch cache endpoint. When a Premiumize key is
    configured for it, Premiumize's cache is used as a stand-in.
    """
    premiumize_key = settings.debridlink_cache_check_premiumize_key
    if not premiumize_key:
        raise AvailabilityDisabled("Debrid-Link has no batch cache check")

    async with Premiumize(token=premiumize_key) as pm_client:
        return await get_premiumize_cache_status(pm_client, info_hashes)
