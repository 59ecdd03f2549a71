import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from os.path import basename
from typing import Any, Optional, Pattern

from db.config import settings
from db.enums import ErrorKind
from streaming_providers.exceptions import ProviderException
from utils.validation_helper import is_excluded_file, is_video_file

logger = logging.getLogger(__name__)


@lru_cache(maxsize=256)
def episode_file_patterns(season: int, episode: int) -> tuple[Pattern, ...]:
    return (
        # S01E04, s1e4
        re.compile(rf"s0?{season}e0?{episode}\b", re.IGNORECASE),
        # 1x04
        re.compile(rf"\b{season}x0?{episode}\b", re.IGNORECASE),
        # Season 1 Episode 4, season.1.episode.4
        re.compile(
            rf"season[. ]?{season}[. ]?episode[. ]?{episode}\b", re.IGNORECASE
        ),
    )


@dataclass
class FileInfo:
    index: int
    filename: str
    size: int
    is_video: bool = False
    is_excluded: bool = False

    @classmethod
    def from_torrent_file(
        cls,
        index: int,
        file_data: dict[str, Any],
        name_key: str = "name",
        size_key: str = "size",
    ) -> "FileInfo":
        filename = basename(str(file_data.get(name_key) or ""))
        return cls(
            index=index,
            filename=filename,
            size=int(file_data.get(size_key) or 0),
            is_video=is_video_file(filename),
            is_excluded=is_excluded_file(filename),
        )

    def matches_episode(self, season: int, episode: int) -> bool:
        return any(
            pattern.search(self.filename)
            for pattern in episode_file_patterns(season, episode)
        )


class TorrentFileProcessor:
    def __init__(
        self,
        files: list[dict[str, Any]],
        name_key: str = "name",
        size_key: str = "size",
    ):
        self.files = files
        self.file_infos = [
            FileInfo.from_torrent_file(idx, file, name_key, size_key)
            for idx, file in enumerate(files)
        ]

    def get_video_files(self, min_size: int = 0) -> list[FileInfo]:
        return [f for f in self.file_infos if f.is_video and f.size > min_size]

    def get_playable_files(self) -> list[FileInfo]:
        """Video files that are not samples, trailers or extras."""
        return [f for f in self.get_video_files() if not f.is_excluded]

    def find_specific_episode(self, season: int, episode: int) -> Optional[FileInfo]:
        matches = [
            f for f in self.get_playable_files() if f.matches_episode(season, episode)
        ]
        return max(matches, key=lambda x: x.size) if matches else None

    def get_largest_video_file(self) -> Optional[FileInfo]:
        video_files = self.get_playable_files()
        return max(video_files, key=lambda x: x.size) if video_files else None


def select_video_files(
    files: list[dict[str, Any]],
    name_key: str = "name",
    size_key: str = "size",
    min_size: Optional[int] = None,
) -> list[FileInfo]:
    """
    Video files worth downloading when a provider asks which files of a
    torrent to fetch. Anything at or below min_size bytes is left out.
    """
    min_size = settings.min_video_file_size if min_size is None else min_size
    return TorrentFileProcessor(files, name_key, size_key).get_video_files(min_size)


def select_best_file(
    files: list[dict[str, Any]],
    season: Optional[int] = None,
    episode: Optional[int] = None,
    name_key: str = "name",
    size_key: str = "size",
) -> FileInfo:
    """
    Pick the file to stream: the largest file matching the requested episode
    when one is given, otherwise the largest playable video file.
    """
    processor = TorrentFileProcessor(files, name_key, size_key)
    if not processor.get_playable_files():
        raise ProviderException(
            "No valid video files found in torrent",
            "no_matching_file.mp4",
            ErrorKind.PERMANENT_ERROR,
        )

    if season is not None and episode is not None:
        selected_file = processor.find_specific_episode(season, episode)
        if selected_file:
            return selected_file
        logger.debug(
            "No file matched S%02dE%02d, falling back to largest video file",
            season,
            episode,
        )

    return processor.get_largest_video_file()


def select_file_index_from_torrent(
    torrent_info: dict[str, Any],
    season: Optional[int] = None,
    episode: Optional[int] = None,
    file_key: str = "files",
    name_key: str = "name",
    size_key: str = "size",
) -> int:
    return select_best_file(
        torrent_info.get(file_key) or [], season, episode, name_key, size_key
    ).index
