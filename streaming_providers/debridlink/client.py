from typing import Any, Optional

from db.config import settings
from db.enums import ErrorKind
from streaming_providers.debrid_client import DebridClient
from streaming_providers.exceptions import ProviderException


class DebridLink(DebridClient):
    PROVIDER_ID = "debridlink"
    BASE_URL = "https://debrid-link.com/api/v2"
    # Cache checks are answered by Premiumize's batch endpoint when configured
    BATCH_SIZE = 99
    BATCH_DELAY = 0.5
    SUPPORTS_AVAILABILITY = False

    @classmethod
    def supports_availability(cls) -> bool:
        return bool(settings.debridlink_cache_check_premiumize_key)

    @staticmethod
    def _handle_error_message(error_message, status_code: Optional[int] = None):
        match error_message:
            case "freeServerOverload":
                raise ProviderException(
                    "Debrid-Link free servers are overloaded",
                    "need_premium.mp4",
                    ErrorKind.TRANSIENT_ERROR,
                    status_code,
                )
            case "badToken" | "expired_token" | "notPremium" | "accountLocked":
                raise ProviderException(
                    f"Invalid token: {error_message}",
                    "invalid_token.mp4",
                    ErrorKind.NOT_ENTITLED,
                    status_code,
                )
            case "server_error" | "notDebrid":
                raise ProviderException(
                    "Debrid-Link server error",
                    "debrid_service_down_error.mp4",
                    ErrorKind.TRANSIENT_ERROR,
                    status_code,
                )
            case "maxLink" | "maxLinkHost" | "maxData" | "maxDataHost" | "maxTorrent":
                raise ProviderException(
                    "Debrid-Link daily limit reached",
                    "daily_download_limit.mp4",
                    ErrorKind.DOWNLOAD_LIMIT_REACHED,
                    status_code,
                )
            case "floodDetected":
                raise ProviderException(
                    "Too many requests",
                    "too_many_requests.mp4",
                    ErrorKind.RATE_LIMITED,
                    status_code,
                )
            case "disabledServerHost":
                raise ProviderException(
                    "Debrid-Link Server / VPN are not allowed on this host",
                    "ip_not_allowed.mp4",
                    ErrorKind.NOT_ENTITLED,
                    status_code,
                )
            case "torrentTooBig" | "badFileUrl" | "badArguments":
                raise ProviderException(
                    f"Debrid-Link rejected the torrent: {error_message}",
                    "transfer_error.mp4",
                    ErrorKind.PERMANENT_ERROR,
                    status_code,
                )

    async def _handle_service_specific_errors(self, error_data: dict, status_code: int):
        if isinstance(error_data, dict):
            self._handle_error_message(error_data.get("error"), status_code)

    async def initialize_headers(self):
        if self.token:
            self.headers = {"Authorization": f"Bearer {self.token}"}

    async def add_magnet_link(self, magnet_link):
        response = await self._make_request(
            "POST",
            f"{self.BASE_URL}/seedbox/add",
            json={"url": magnet_link, "async": True},
            is_expected_to_fail=True,
        )
        if not isinstance(response, dict) or response.get("error"):
            error = response.get("error") if isinstance(response, dict) else response
            self._handle_error_message(error)
            raise ProviderException(
                f"Failed to add magnet link to Debrid-Link: {error}",
                "transfer_error.mp4",
            )
        return response.get("value", {})

    async def get_user_torrent_list(self) -> dict[str, Any]:
        return await self._make_request("GET", f"{self.BASE_URL}/seedbox/list")

    async def get_torrent_info(self, torrent_id) -> dict[str, Any]:
        response = await self._make_request(
            "GET", f"{self.BASE_URL}/seedbox/list", params={"ids": torrent_id}
        )
        if response.get("value"):
            return response.get("value")[0]
        raise ProviderException(
            "Failed to get torrent info from Debrid-Link", "transfer_error.mp4"
        )

    async def delete_torrent(self, torrent_id) -> dict[str, Any]:
        return await self._make_request(
            "DELETE", f"{self.BASE_URL}/seedbox/{torrent_id}/remove"
        )

    async def get_available_torrent(self, info_hash: str) -> Optional[dict[str, Any]]:
        torrent_list_response = await self.get_user_torrent_list()
        if "error" in torrent_list_response:
            raise ProviderException(
                "Failed to get torrent info from Debrid-Link", "transfer_error.mp4"
            )

        for torrent in torrent_list_response.get("value") or []:
            if (torrent.get("hashString") or "").lower() == info_hash:
                return torrent
        return None
