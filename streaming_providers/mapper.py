import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from db.config import settings
from db.schemas import ProviderAvailabilityResult
from streaming_providers import availability
from streaming_providers.debrid_client import DebridClient
from streaming_providers.debridlink.client import DebridLink
from streaming_providers.debridlink.utils import (
    get_debridlink_cache_status,
    get_video_url_from_debridlink,
)
from streaming_providers.exceptions import InvalidMagnet
from streaming_providers.premiumize.client import Premiumize
from streaming_providers.premiumize.utils import (
    get_premiumize_cache_status,
    get_video_url_from_premiumize,
)
from streaming_providers.realdebrid.client import RealDebrid
from streaming_providers.realdebrid.utils import (
    get_realdebrid_cache_status,
    get_video_url_from_realdebrid,
)
from streaming_providers.torbox.client import Torbox
from streaming_providers.torbox.utils import (
    get_torbox_cache_status,
    get_video_url_from_torbox,
)
from utils import const
from utils.parser import extract_info_hash

logger = logging.getLogger(__name__)

CacheStatusFunction = Callable[
    [DebridClient, list[str]], Awaitable[dict[str, ProviderAvailabilityResult]]
]
VideoUrlFunction = Callable[..., Awaitable[str]]

CLIENT_CLASSES: dict[str, type[DebridClient]] = {
    "realdebrid": RealDebrid,
    "torbox": Torbox,
    "premiumize": Premiumize,
    "debridlink": DebridLink,
}

CACHE_STATUS_FUNCTIONS: dict[str, CacheStatusFunction] = {
    "realdebrid": get_realdebrid_cache_status,
    "torbox": get_torbox_cache_status,
    "premiumize": get_premiumize_cache_status,
    "debridlink": get_debridlink_cache_status,
}

GET_VIDEO_URL_FUNCTIONS: dict[str, VideoUrlFunction] = {
    "realdebrid": get_video_url_from_realdebrid,
    "torbox": get_video_url_from_torbox,
    "premiumize": get_video_url_from_premiumize,
    "debridlink": get_video_url_from_debridlink,
}


@dataclass
class DebridProvider:
    """
    One configured debrid account. Opens a fresh client per operation so a
    provider can be shared between concurrent requests.
    """

    provider_id: str
    token: str = field(repr=False)
    client_class: type[DebridClient] = field(repr=False)
    get_cache_status: CacheStatusFunction = field(repr=False)
    get_video_url: VideoUrlFunction = field(repr=False)

    @property
    def batch_size(self) -> int:
        return self.client_class.BATCH_SIZE

    @property
    def batch_delay(self) -> float:
        return self.client_class.BATCH_DELAY

    @property
    def supports_availability(self) -> bool:
        return self.client_class.supports_availability()

    @property
    def supports_precheck(self) -> bool:
        return self.client_class.SUPPORTS_PRECHECK

    @property
    def short_name(self) -> str:
        return const.STREAMING_PROVIDERS_SHORT_NAMES[self.provider_id]

    def identify(self) -> str:
        return self.provider_id

    def client(self) -> DebridClient:
        return self.client_class(token=self.token)

    async def fetch_cache_status(
        self, client: DebridClient, info_hashes: list[str]
    ) -> dict[str, ProviderAvailabilityResult]:
        return await self.get_cache_status(client, info_hashes)

    async def check_availability(
        self, info_hashes: list[str]
    ) -> dict[str, ProviderAvailabilityResult]:
        return await availability.check_availability(self, info_hashes)

    async def resolve(
        self,
        magnet_link: str,
        season: Optional[int] = None,
        episode: Optional[int] = None,
    ) -> str:
        info_hash = extract_info_hash(magnet_link)
        if not info_hash:
            raise InvalidMagnet(f"No info hash in magnet link: {magnet_link!r}")
        async with self.client() as client:
            return await self.get_video_url(
                client, info_hash, magnet_link, season=season, episode=episode
            )


def parse_api_keys(api_keys: Optional[str]) -> dict[str, str]:
    """
    Parse "rd=<token>,tb=<token>" into {provider_id: token}, keeping the
    configured order. Unknown prefixes and empty tokens are skipped.
    """
    tokens: dict[str, str] = {}
    for entry in (api_keys or "").split(","):
        prefix, _, token = entry.strip().partition("=")
        provider_id = const.PROVIDER_KEY_PREFIXES.get(prefix.strip().lower())
        token = token.strip()
        if not provider_id or not token:
            if entry.strip():
                logger.debug("Ignoring api key entry with prefix %r", prefix)
            continue
        tokens.setdefault(provider_id, token)
    return tokens


def get_debrid_service(provider_id: str, token: str) -> DebridProvider:
    return DebridProvider(
        provider_id=provider_id,
        token=token,
        client_class=CLIENT_CLASSES[provider_id],
        get_cache_status=CACHE_STATUS_FUNCTIONS[provider_id],
        get_video_url=GET_VIDEO_URL_FUNCTIONS[provider_id],
    )


def get_debrid_services(api_keys: Optional[str]) -> list[DebridProvider]:
    return [
        get_debrid_service(provider_id, token)
        for provider_id, token in parse_api_keys(api_keys).items()
        if provider_id not in settings.disabled_providers
    ]
