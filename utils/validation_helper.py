import logging
from urllib.parse import urlparse

import httpx

from utils import const

logger = logging.getLogger(__name__)


def is_valid_url(url: str) -> bool:
    if not isinstance(url, str):
        return False
    parsed_url = urlparse(url)
    return parsed_url.scheme in ("http", "https") and bool(parsed_url.netloc)


async def does_url_exist(url: str, timeout: float = 5) -> bool:
    """
    Lightweight HEAD probe. Some debrid CDNs reject HEAD, so callers treat a
    negative answer as a hint rather than a verdict.
    """
    async with httpx.AsyncClient() as client:
        try:
            response = await client.head(
                url, timeout=timeout, headers=const.UA_HEADER, follow_redirects=True
            )
            response.raise_for_status()
            return response.status_code == 200
        except httpx.HTTPStatusError as err:
            logger.warning("URL: %s, Status: %s", url, err.response.status_code)
            return False
        except (httpx.RequestError, httpx.TimeoutException) as err:
            logger.warning("URL: %s, Status: %s", url, err)
            return False


def is_video_file(filename: str) -> bool:
    """
    Check if a filename is a playable video container supported by
    common media players.
    """
    return filename.lower().endswith(
        (
            # Modern Containers (most common first)
            ".mp4",  # MPEG-4 Part 14
            ".mkv",  # Matroska
            ".webm",  # WebM
            ".m4v",  # MPEG-4
            ".mov",  # QuickTime
            # MPEG Transport Streams
            ".ts",  # Transport Stream
            ".m2ts",  # Blu-ray Transport Stream
            # MPEG Program Streams
            ".mpeg",
            ".mpg",
            # Legacy Formats
            ".avi",  # Audio Video Interleave
            ".wmv",  # Windows Media Video
            ".flv",  # Flash Video
            ".divx",  # DivX Video
        )
    )


def is_excluded_file(filename: str) -> bool:
    """Samples, trailers and bonus material are never served."""
    filename = filename.lower()
    return any(keyword in filename for keyword in const.EXCLUDED_FILE_KEYWORDS)


class InvalidInput(ValueError):
    """Malformed content identity or magnet link, never retried."""
