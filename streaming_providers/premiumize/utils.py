from os.path import basename
from typing import Any, Optional

from db.enums import ErrorKind
from db.schemas import ProviderAvailabilityResult
from streaming_providers.exceptions import ProviderException
from streaming_providers.parser import select_best_file
from streaming_providers.premiumize.client import Premiumize


async def add_new_torrent(pm_client: Premiumize, magnet_link: str) -> str:
    response_data = await pm_client.add_magnet_link(magnet_link)
    if "id" not in response_data:
        raise ProviderException(
            "Failed to add magnet link to Premiumize", "transfer_error.mp4"
        )
    return response_data["id"]


async def get_video_url_from_premiumize(
    pm_client: Premiumize,
    info_hash: str,
    magnet_link: str,
    season: Optional[int] = None,
    episode: Optional[int] = None,
    max_retries: Optional[int] = None,
    retry_interval: Optional[float] = None,
) -> str:
    # Cached torrents are served straight from directdl
    response_data = await pm_client.create_direct_download(magnet_link)
    files = [
        {"name": basename(file_data["path"]), **file_data}
        for file_data in response_data.get("content") or []
        if file_data.get("stream_link") or file_data.get("link")
    ]
    if files:
        return get_stream_link(files, season, episode)

    torrent_info = await pm_client.get_available_torrent(info_hash)
    if torrent_info is None:
        torrent_id = await add_new_torrent(pm_client, magnet_link)
    else:
        torrent_id = torrent_info["id"]
        if torrent_info.get("status") in ("error", "deleted", "banned"):
            raise ProviderException(
                f"Premiumize transfer failed: {torrent_info.get('message')}",
                "transfer_error.mp4",
                ErrorKind.PERMANENT_ERROR,
            )

    torrent_info = await pm_client.wait_for_status(
        torrent_id, ("finished", "seeding"), max_retries, retry_interval, torrent_info
    )
    folder_data = await pm_client.get_folder_list(torrent_info.get("folder_id"))
    files = [
        file_data
        for file_data in folder_data.get("content") or []
        if file_data.get("type", "file") == "file"
    ]
    return get_stream_link(files, season, episode)


def get_stream_link(
    files: list[dict[str, Any]],
    season: Optional[int] = None,
    episode: Optional[int] = None,
) -> str:
    """Get the stream link of the best matching file."""
    selected_file = files[select_best_file(files, season, episode).index]
    return selected_file.get("stream_link") or selected_file["link"]


async def get_premiumize_cache_status(
    pm_client: Premiumize, info_hashes: list[str]
) -> dict[str, ProviderAvailabilityResult]:
    """One cache/check call for up to BATCH_SIZE hashes."""
    availability_data = await pm_client.get_torrent_instant_availability(info_hashes)
    cached_statuses = availability_data.get("response") or []
    filenames = availability_data.get("filename") or []
    filesizes = availability_data.get("filesize") or []

    results = {}
    for index, info_hash in enumerate(info_hashes):
        cached = index < len(cached_statuses) and bool(cached_statuses[index])
        files = None
        if cached and index < len(filenames) and filenames[index]:
            files = [
                {
                    "name": filenames[index],
                    "size": int(filesizes[index] or 0) if index < len(filesizes) else 0,
                }
            ]
        results[info_hash] = ProviderAvailabilityResult(
            info_hash=info_hash, cached=cached, files=files
        )
    return results
