import logging
from typing import Optional

from db.enums import ErrorKind
from db.schemas import ProviderAvailabilityResult
from streaming_providers.exceptions import ProviderException
from streaming_providers.parser import select_best_file, select_video_files
from streaming_providers.realdebrid.client import RealDebrid

logger = logging.getLogger(__name__)

ERROR_STATUSES = ("magnet_error", "error", "virus", "dead")
DOWNLOADING_STATUSES = ("queued", "downloading", "uploading", "compressing")


async def create_download_link(
    rd_client: RealDebrid,
    torrent_info: dict,
    season: Optional[int],
    episode: Optional[int],
) -> str:
    selected_files = [
        file for file in torrent_info["files"] if file.get("selected") == 1
    ]
    links = torrent_info.get("links") or []
    if not selected_files or len(selected_files) != len(links):
        raise ProviderException(
            "Real-Debrid torrent has no usable links", "torrent_not_downloaded.mp4"
        )

    relevant_file = select_best_file(
        selected_files, season, episode, name_key="path", size_key="bytes"
    )
    response = await rd_client.create_download_link(links[relevant_file.index])

    if not response.get("mimeType", "video").startswith("video"):
        raise ProviderException(
            f"Requested file is not a video file. {response['mimeType']}",
            "torrent_not_downloaded.mp4",
            ErrorKind.PERMANENT_ERROR,
        )

    return response.get("download")


async def add_new_torrent(rd_client: RealDebrid, magnet_link: str, info_hash: str):
    response = await rd_client.get_active_torrents()
    if response["limit"] == response["nb"]:
        raise ProviderException(
            "Torrent limit reached. Please try again later.",
            "torrent_limit.mp4",
            ErrorKind.DOWNLOAD_LIMIT_REACHED,
        )
    if info_hash in response.get("list", []):
        raise ProviderException(
            "Torrent is already being downloading", "torrent_not_downloaded.mp4"
        )

    torrent_id = (await rd_client.add_magnet_link(magnet_link)).get("id")
    if not torrent_id:
        raise ProviderException(
            "Failed to add magnet link to Real-Debrid", "transfer_error.mp4"
        )

    return await rd_client.get_torrent_info(torrent_id)


async def get_video_url_from_realdebrid(
    rd_client: RealDebrid,
    info_hash: str,
    magnet_link: str,
    season: Optional[int] = None,
    episode: Optional[int] = None,
    max_retries: Optional[int] = None,
    retry_interval: Optional[float] = None,
) -> str:
    torrent_info = await rd_client.get_available_torrent(info_hash)
    if not torrent_info:
        torrent_info = await add_new_torrent(rd_client, magnet_link, info_hash)

    torrent_id = torrent_info["id"]
    status = torrent_info["status"]

    if status in ERROR_STATUSES:
        await rd_client.delete_torrent(torrent_id)
        raise ProviderException(
            f"Torrent cannot be downloaded due to status: {status}",
            "transfer_error.mp4",
            ErrorKind.PERMANENT_ERROR,
        )

    if status != "downloaded" and status not in DOWNLOADING_STATUSES:
        torrent_info = await rd_client.wait_for_status(
            torrent_id,
            "waiting_files_selection",
            max_retries,
            retry_interval,
            torrent_info,
        )
        video_files = select_video_files(
            torrent_info.get("files", []), name_key="path", size_key="bytes"
        )
        file_ids = (
            ",".join(str(torrent_info["files"][f.index]["id"]) for f in video_files)
            or "all"
        )
        try:
            await rd_client.start_torrent_download(torrent_id, file_ids=file_ids)
        except ProviderException as error:
            await rd_client.delete_torrent(torrent_id)
            raise ProviderException(
                f"Failed to start torrent download, {error}",
                "transfer_error.mp4",
                error.error_kind,
            )

    torrent_info = await rd_client.wait_for_status(
        torrent_id, "downloaded", max_retries, retry_interval
    )
    return await create_download_link(rd_client, torrent_info, season, episode)


async def get_realdebrid_cache_status(
    rd_client: RealDebrid, info_hashes: list[str]
) -> dict[str, ProviderAvailabilityResult]:
    """One instantAvailability call for up to BATCH_SIZE hashes."""
    response = await rd_client.get_torrent_instant_availability(info_hashes)
    if not isinstance(response, dict):
        response = {}
    availability = {key.lower(): value for key, value in response.items()}

    results = {}
    for info_hash in info_hashes:
        entry = availability.get(info_hash)
        variants = entry.get("rd") if isinstance(entry, dict) else None
        files = None
        if variants:
            files = [
                {"id": file_id, **file_data}
                for file_id, file_data in variants[0].items()
            ]
        results[info_hash] = ProviderAvailabilityResult(
            info_hash=info_hash, cached=bool(variants), files=files
        )
    return results
