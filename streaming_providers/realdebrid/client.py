from typing import Any, Optional

from db.enums import ErrorKind
from streaming_providers.debrid_client import DebridClient
from streaming_providers.exceptions import AvailabilityDisabled, ProviderException


class RealDebrid(DebridClient):
    PROVIDER_ID = "realdebrid"
    BASE_URL = "https://api.real-debrid.com/rest/1.0"
    BATCH_SIZE = 50
    BATCH_DELAY = 0.1
    SUPPORTS_PRECHECK = True

    async def _handle_service_specific_errors(self, error_data: dict, status_code: int):
        if not isinstance(error_data, dict):
            return
        error_code = error_data.get("error_code")
        match error_code:
            case 8 | 9:
                raise ProviderException(
                    "Real-Debrid Permission denied",
                    "invalid_token.mp4",
                    ErrorKind.NOT_ENTITLED,
                    status_code,
                )
            case 20:
                raise ProviderException(
                    "Real-Debrid premium account required",
                    "need_premium.mp4",
                    ErrorKind.NOT_ENTITLED,
                    status_code,
                )
            case 22:
                raise ProviderException(
                    "IP address not allowed",
                    "ip_not_allowed.mp4",
                    ErrorKind.NOT_ENTITLED,
                    status_code,
                )
            case 34:
                raise ProviderException(
                    "Too many requests",
                    "too_many_requests.mp4",
                    ErrorKind.RATE_LIMITED,
                    status_code,
                )
            case 35:
                raise ProviderException(
                    "Content marked as infringing",
                    "content_infringing.mp4",
                    ErrorKind.PERMANENT_ERROR,
                    status_code,
                )
            case 21:
                raise ProviderException(
                    "Active torrents limit reached",
                    "torrent_limit.mp4",
                    ErrorKind.DOWNLOAD_LIMIT_REACHED,
                    status_code,
                )
            case 37:
                raise AvailabilityDisabled(
                    "Real-Debrid instant availability endpoint is disabled"
                )

    async def initialize_headers(self):
        if self.token:
            self.headers = {"Authorization": f"Bearer {self.token}"}

    async def add_magnet_link(self, magnet_link):
        return await self._make_request(
            "POST", f"{self.BASE_URL}/torrents/addMagnet", data={"magnet": magnet_link}
        )

    async def get_active_torrents(self):
        return await self._make_request("GET", f"{self.BASE_URL}/torrents/activeCount")

    async def get_user_torrent_list(self):
        return await self._make_request("GET", f"{self.BASE_URL}/torrents")

    async def get_torrent_info(self, torrent_id):
        return await self._make_request(
            "GET", f"{self.BASE_URL}/torrents/info/{torrent_id}"
        )

    async def get_torrent_instant_availability(self, torrent_hashes: list[str]):
        response = await self._make_request(
            "GET",
            f"{self.BASE_URL}/torrents/instantAvailability/{'/'.join(torrent_hashes)}",
        )
        if isinstance(response, dict) and response.get("error_code") == 37:
            raise AvailabilityDisabled(
                "Real-Debrid instant availability endpoint is disabled"
            )
        return response

    async def start_torrent_download(self, torrent_id, file_ids="all"):
        return await self._make_request(
            "POST",
            f"{self.BASE_URL}/torrents/selectFiles/{torrent_id}",
            data={"files": file_ids},
            is_return_none=True,
        )

    async def get_available_torrent(self, info_hash) -> Optional[dict[str, Any]]:
        available_torrents = await self.get_user_torrent_list()
        for torrent in available_torrents:
            if torrent["hash"].lower() == info_hash:
                return torrent
        return None

    async def create_download_link(self, link):
        response = await self._make_request(
            "POST",
            f"{self.BASE_URL}/unrestrict/link",
            data={"link": link},
            is_expected_to_fail=True,
        )
        if isinstance(response, dict) and "download" in response:
            return response

        if isinstance(response, dict) and response.get("error_code") == 23:
            raise ProviderException(
                "Exceed remote traffic limit",
                "exceed_remote_traffic_limit.mp4",
                ErrorKind.DOWNLOAD_LIMIT_REACHED,
            )
        raise ProviderException(
            f"Failed to create download link. response: {response}", "api_error.mp4"
        )

    async def delete_torrent(self, torrent_id) -> dict:
        return await self._make_request(
            "DELETE",
            f"{self.BASE_URL}/torrents/delete/{torrent_id}",
            is_return_none=True,
        )
