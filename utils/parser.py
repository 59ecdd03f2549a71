import logging
import math
import re
from functools import lru_cache
from typing import Any, Iterable, Optional, TypeVar

from db.enums import Quality
from utils import const

logger = logging.getLogger(__name__)

StreamT = TypeVar("StreamT")

# Checked from the highest tier down so "4k.1080p.upscale" is still 2160
QUALITY_PATTERNS = [
    (Quality.UHD, re.compile(r"(?<![a-z0-9])(?:4k|2160p|uhd)(?![a-z0-9])", re.I)),
    (Quality.FHD, re.compile(r"(?<![a-z0-9])(?:1080p|fhd)(?![a-z0-9])", re.I)),
    (Quality.HD, re.compile(r"(?<![a-z0-9])(?:720p|hd)(?![a-z0-9])", re.I)),
    (Quality.SD, re.compile(r"(?<![a-z0-9])(?:480p|sd)(?![a-z0-9])", re.I)),
]

SIZE_PATTERN = re.compile(r"(\d+(?:\.\d+)?)\s*(GB|MB)", re.I)
INFO_HASH_PATTERN = re.compile(r"btih:([a-fA-F0-9]{40})")
SERVICE_PARAM_PATTERN = re.compile(r"&service=([^&]+)")

VIDEO_FEATURE_PATTERNS = [
    ("HDR", re.compile(r"(?<![a-z0-9])hdr(?:10\+?)?(?![a-z])", re.I)),
    ("Dolby Vision", re.compile(r"(?<![a-z0-9])(?:dv|dovi|dolby[ ._-]?vision)(?![a-z])", re.I)),
    ("Atmos", re.compile(r"(?<![a-z0-9])atmos(?![a-z])", re.I)),
    ("HEVC", re.compile(r"(?<![a-z0-9])(?:hevc|x265|h[ .]?265)(?![a-z0-9])", re.I)),
    ("H.264", re.compile(r"(?<![a-z0-9])(?:avc|x264|h[ .]?264)(?![a-z0-9])", re.I)),
]


def parse_quality(text: Any) -> Quality:
    """Extract a quality tier from free text, Quality.UNKNOWN when nothing matches."""
    if isinstance(text, Quality):
        return text
    if isinstance(text, int) and not isinstance(text, bool):
        try:
            return Quality(text)
        except ValueError:
            return Quality.UNKNOWN
    if not isinstance(text, str) or not text:
        return Quality.UNKNOWN
    for quality, pattern in QUALITY_PATTERNS:
        if pattern.search(text):
            return quality
    return Quality.UNKNOWN


def parse_size_mb(text: Any) -> float:
    """Return the first "<number> GB|MB" token of text in megabytes, 0 when absent."""
    if not isinstance(text, str) or not text:
        return 0.0
    match = SIZE_PATTERN.search(text)
    if not match:
        return 0.0
    size, unit = match.groups()
    size = float(size)
    match unit.lower():
        case "gb":
            return size * 1024
        case _:
            return size


def format_size_mb(size_mb: float) -> str:
    if not size_mb:
        return ""
    if size_mb >= 1024:
        return f"{size_mb / 1024:.2f} GB"
    return f"{size_mb:.0f} MB"


def extract_info_hash(magnet_link: Any) -> Optional[str]:
    if not isinstance(magnet_link, str):
        return None
    match = INFO_HASH_PATTERN.search(magnet_link)
    return match.group(1).lower() if match else None


def strip_service_param(magnet_link: str) -> tuple[str, Optional[str]]:
    """Remove the "&service=" routing hint and return it alongside the clean magnet."""
    match = SERVICE_PARAM_PATTERN.search(magnet_link)
    if not match:
        return magnet_link, None
    return SERVICE_PARAM_PATTERN.sub("", magnet_link, count=1), match.group(1)


def build_magnet_link(info_hash: str, service: Optional[str] = None) -> str:
    magnet_link = f"magnet:?xt=urn:btih:{info_hash.lower()}"
    if service:
        magnet_link += f"&service={service}"
    return magnet_link


@lru_cache(maxsize=256)
def _episode_patterns(season: int, episode: int) -> dict[str, re.Pattern]:
    s = rf"0*{season}"
    e = rf"0*{episode}"
    return {
        "exact": re.compile(
            rf"(?<![a-z0-9])s{s}[ ._-]?e{e}(?!\d)"
            rf"|(?<![a-z0-9]){s}x{e}(?!\d)"
            rf"|season[ ._-]?{s}[ ._-]?episode[ ._-]?{e}(?!\d)",
            re.I,
        ),
        "range": re.compile(
            rf"(?<![a-z0-9])s{s}[ ._-]?e(\d{{1,3}})[ ._]?-[ ._]?e?(\d{{1,3}})(?![\dpi])", re.I
        ),
        "other_episode": re.compile(
            rf"(?<![a-z0-9])s{s}[ ._-]?e\d"
            rf"|(?<![a-z0-9]){s}x\d"
            rf"|season[ ._-]?{s}[ ._-]?episode[ ._-]?\d",
            re.I,
        ),
        "season_pack": re.compile(
            rf"(?<![a-z0-9])s{s}(?!\d)(?![ ._-]?e\d)|season[ ._-]?{s}(?!\d)", re.I
        ),
    }


MULTI_SEASON_PATTERN = re.compile(
    r"(?<![a-z0-9])s(\d{1,2})[ ._]?-[ ._]?s?(\d{1,2})(?![0-9]|[ ._-]?e\d)", re.I
)


def is_episode_match(text: Optional[str], season: int, episode: int) -> bool:
    """Whether a release name covers the given episode.

    Exact SxxEyy / SxEE names must match the episode, episode ranges must
    contain it, and season packs (S02, Season 2, S01-S03) are accepted.
    """
    if not text:
        return False
    patterns = _episode_patterns(int(season), int(episode))

    range_match = patterns["range"].search(text)
    if range_match:
        first, last = int(range_match.group(1)), int(range_match.group(2))
        return first <= episode <= last

    if patterns["exact"].search(text):
        return True
    if patterns["other_episode"].search(text):
        return False
    if patterns["season_pack"].search(text):
        return True

    for multi_season in MULTI_SEASON_PATTERN.finditer(text):
        if int(multi_season.group(1)) <= season <= int(multi_season.group(2)):
            return True
    return False


def detect_video_features(filename: Optional[str]) -> list[str]:
    if not filename:
        return []
    return [
        feature
        for feature, pattern in VIDEO_FEATURE_PATTERNS
        if pattern.search(filename)
    ]


def get_quality_symbol(quality: Any) -> str:
    return const.QUALITY_SYMBOLS[parse_quality(quality)]


def get_ideal_size_score(size_mb: float, quality: Quality) -> float:
    """Distance in MB from the ideal size band of the quality tier, 0 inside it."""
    band_min, band_max = const.IDEAL_SIZE_BANDS.get(quality, (0, math.inf))
    if size_mb < band_min:
        return band_min - size_mb
    if size_mb > band_max:
        return size_mb - band_max
    return 0


def _ranking_key(stream: Any) -> tuple[int, float, float]:
    quality = parse_quality(getattr(stream, "quality", None))
    size_mb = getattr(stream, "size_mb", 0) or 0
    return -int(quality), get_ideal_size_score(size_mb, quality), -size_mb


def rank_streams(streams: Iterable[StreamT]) -> list[StreamT]:
    """
    Order streams by quality descending, then by distance from the ideal size
    band of their tier, then larger first. Stable, so equal streams keep
    their input order.
    """
    return sorted(streams, key=_ranking_key)
