from typing import Any, Dict, Optional

from db.schemas import ProviderAvailabilityResult
from streaming_providers.exceptions import ProviderException
from streaming_providers.parser import select_best_file
from streaming_providers.torbox.client import Torbox


async def get_video_url_from_torbox(
    torbox_client: Torbox,
    info_hash: str,
    magnet_link: str,
    season: Optional[int] = None,
    episode: Optional[int] = None,
    max_retries: Optional[int] = None,
    retry_interval: Optional[float] = None,
) -> str:
    # Check if the torrent already exists
    torrent_info = await torbox_client.get_available_torrent(info_hash)
    if torrent_info:
        torrent_id = torrent_info["id"]
    else:
        response = await torbox_client.add_magnet_link(magnet_link)
        torrent_id = (response.get("data") or {}).get("torrent_id")
        if not torrent_id:
            raise ProviderException(
                f"Failed to add magnet link to Torbox {response}",
                "transfer_error.mp4",
            )

    torrent_info = await torbox_client.wait_for_status(
        torrent_id,
        True,
        max_retries,
        retry_interval,
        torrent_info,
        status_key="download_finished",
    )
    file_id = select_file_id_from_torrent(torrent_info, season, episode)
    response = await torbox_client.create_download_link(torrent_id, file_id)
    return response["data"]


def select_file_id_from_torrent(
    torrent_info: Dict[str, Any],
    season: Optional[int],
    episode: Optional[int],
) -> int:
    """Select the file id from the torrent info."""
    files = torrent_info.get("files") or []
    selected_file = select_best_file(files, season, episode)
    return files[selected_file.index]["id"]


async def get_torbox_cache_status(
    torbox_client: Torbox, info_hashes: list[str]
) -> dict[str, ProviderAvailabilityResult]:
    """One checkcached call for up to BATCH_SIZE hashes."""
    cached_data = await torbox_client.get_torrent_instant_availability(info_hashes)
    if isinstance(cached_data, dict):
        cached_data = [{"hash": key, **value} for key, value in cached_data.items()]

    cached_torrents = {
        torrent["hash"].lower(): torrent
        for torrent in cached_data
        if isinstance(torrent, dict) and torrent.get("hash")
    }
    return {
        info_hash: ProviderAvailabilityResult(
            info_hash=info_hash,
            cached=info_hash in cached_torrents,
            files=cached_torrents.get(info_hash, {}).get("files"),
        )
        for info_hash in info_hashes
    }
