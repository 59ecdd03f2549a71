from typing import Any, Optional

from db.enums import ErrorKind
from streaming_providers.debrid_client import DebridClient, QueryParams
from streaming_providers.exceptions import ProviderException


class Torbox(DebridClient):
    PROVIDER_ID = "torbox"
    BASE_URL = "https://api.torbox.app/v1/api"
    BATCH_SIZE = 50
    BATCH_DELAY = 0.1

    async def initialize_headers(self):
        self.headers = {"Authorization": f"Bearer {self.token}"}

    async def _handle_service_specific_errors(self, error_data: dict, status_code: int):
        if not isinstance(error_data, dict) or error_data.get("success") is not False:
            return
        detail = error_data.get("detail") or error_data.get("error")
        match error_data.get("error"):
            case "BAD_TOKEN" | "AUTH_ERROR" | "NO_AUTH" | "PLAN_RESTRICTED_FEATURE":
                raise ProviderException(
                    f"Torbox rejected the api key: {detail}",
                    "invalid_token.mp4",
                    ErrorKind.NOT_ENTITLED,
                    status_code,
                )
            case "ACTIVE_LIMIT" | "MONTHLY_LIMIT" | "COOLDOWN_LIMIT" | "DOWNLOAD_TOO_LARGE":
                raise ProviderException(
                    f"Torbox download limit reached: {detail}",
                    "torrent_limit.mp4",
                    ErrorKind.DOWNLOAD_LIMIT_REACHED,
                    status_code,
                )
            case "RATE_LIMITED":
                raise ProviderException(
                    "Too many requests",
                    "too_many_requests.mp4",
                    ErrorKind.RATE_LIMITED,
                    status_code,
                )
            case "INVALID_OPTION" | "BAD_MAGNET" | "BOZO_TORRENT":
                raise ProviderException(
                    f"Torbox rejected the torrent: {detail}",
                    "transfer_error.mp4",
                    ErrorKind.PERMANENT_ERROR,
                    status_code,
                )

    async def _make_request(
        self,
        method: str,
        url: str,
        data: Optional[dict | str] = None,
        json: Optional[dict] = None,
        params: QueryParams = None,
        is_return_none: bool = False,
        is_expected_to_fail: bool = False,
        retry_count: int = 0,
    ) -> dict:
        params = params or {}
        url = self.BASE_URL + url
        return await super()._make_request(
            method, url, data, json, params, is_return_none, is_expected_to_fail
        )

    async def add_magnet_link(self, magnet_link):
        response_data = await self._make_request(
            "POST",
            "/torrents/createtorrent",
            data={"magnet": magnet_link},
            is_expected_to_fail=True,
        )
        if not isinstance(response_data, dict) or response_data.get("success") is False:
            await self._handle_service_specific_errors(response_data, 400)
            raise ProviderException(
                f"Failed to add magnet link to Torbox {response_data}",
                "transfer_error.mp4",
            )
        return response_data

    async def get_user_torrent_list(self):
        return await self._make_request(
            "GET", "/torrents/mylist", params={"bypass_cache": "true"}
        )

    async def get_torrent_info(self, torrent_id):
        response = await self._make_request(
            "GET",
            "/torrents/mylist",
            params={"bypass_cache": "true", "id": torrent_id},
        )
        return response.get("data") or {}

    async def get_torrent_instant_availability(self, torrent_hashes: list[str]):
        response = await self._make_request(
            "GET",
            "/torrents/checkcached",
            params={
                "hash": ",".join(torrent_hashes),
                "format": "list",
                "list_files": "true",
            },
        )
        return response.get("data") or []

    async def get_available_torrent(self, info_hash) -> dict[str, Any] | None:
        response = await self.get_user_torrent_list()
        torrent_list = response.get("data") or []
        for torrent in torrent_list:
            if torrent.get("hash", "").lower() == info_hash:
                return torrent
        return None

    async def create_download_link(self, torrent_id, file_id):
        response = await self._make_request(
            "GET",
            "/torrents/requestdl",
            params={"token": self.token, "torrent_id": torrent_id, "file_id": file_id},
            is_expected_to_fail=True,
        )
        if isinstance(response, dict) and "successfully" in (
            response.get("detail") or ""
        ):
            return response
        await self._handle_service_specific_errors(response, 400)
        raise ProviderException(
            f"Failed to create download link from Torbox {response}",
            "transfer_error.mp4",
        )

    async def delete_torrent(self, torrent_id):
        return await self._make_request(
            "POST",
            "/torrents/controltorrent",
            json={"torrent_id": torrent_id, "operation": "delete"},
        )
