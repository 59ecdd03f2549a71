from typing import Any, Optional

from db.enums import ErrorKind
from streaming_providers.debrid_client import DebridClient, QueryParams
from streaming_providers.exceptions import ProviderException


class Premiumize(DebridClient):
    PROVIDER_ID = "premiumize"
    BASE_URL = "https://www.premiumize.me/api"
    BATCH_SIZE = 99
    BATCH_DELAY = 0.5

    async def _handle_service_specific_errors(self, error_data: dict, status_code: int):
        if not isinstance(error_data, dict) or error_data.get("status") != "error":
            return
        message = error_data.get("message") or ""
        match message.lower():
            case "not logged in." | "customer_id and pin param missing or not logged in":
                raise ProviderException(
                    "Premiumize is not logged in.",
                    "invalid_token.mp4",
                    ErrorKind.NOT_ENTITLED,
                    status_code,
                )
            case msg if "premium" in msg:
                raise ProviderException(
                    f"Premiumize account required: {message}",
                    "need_premium.mp4",
                    ErrorKind.NOT_ENTITLED,
                    status_code,
                )
            case msg if "limit" in msg:
                raise ProviderException(
                    f"Premiumize limit reached: {message}",
                    "torrent_limit.mp4",
                    ErrorKind.DOWNLOAD_LIMIT_REACHED,
                    status_code,
                )

    async def initialize_headers(self):
        self.headers = {"Accept": "application/json"}

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
        if isinstance(params, (list, tuple)):
            params = [*params, ("apikey", self.token)]
        else:
            params = {**(params or {}), "apikey": self.token}
        response = await super()._make_request(
            method, url, data, json, params, is_return_none, is_expected_to_fail
        )
        # Premiumize reports most failures with HTTP 200 and status=error
        await self._handle_service_specific_errors(response, 200)
        return response

    async def add_magnet_link(self, magnet_link: str, folder_id: str = None):
        data = {"src": magnet_link}
        if folder_id:
            data["folder_id"] = folder_id
        return await self._make_request(
            "POST", f"{self.BASE_URL}/transfer/create", data=data
        )

    async def create_direct_download(self, magnet_link: str):
        return await self._make_request(
            "POST", f"{self.BASE_URL}/transfer/directdl", data={"src": magnet_link}
        )

    async def get_transfer_list(self):
        return await self._make_request("GET", f"{self.BASE_URL}/transfer/list")

    async def get_torrent_info(self, torrent_id):
        transfer_list = await self.get_transfer_list()
        torrent_info = next(
            (
                torrent
                for torrent in transfer_list.get("transfers", [])
                if torrent["id"] == torrent_id
            ),
            None,
        )
        return torrent_info

    async def get_folder_list(self, folder_id: str = None):
        return await self._make_request(
            "GET",
            f"{self.BASE_URL}/folder/list",
            params={"id": folder_id} if folder_id else None,
        )

    async def delete_torrent(self, torrent_id):
        return await self._make_request(
            "POST", f"{self.BASE_URL}/transfer/delete", data={"id": torrent_id}
        )

    async def get_torrent_instant_availability(self, torrent_hashes: list[str]):
        results = await self._make_request(
            "GET",
            f"{self.BASE_URL}/cache/check",
            params=[("items[]", torrent_hash) for torrent_hash in torrent_hashes],
        )
        if results.get("status") != "success":
            raise ProviderException(
                "Failed to get instant availability from Premiumize",
                "transfer_error.mp4",
            )
        return results

    async def get_available_torrent(self, info_hash: str) -> dict[str, Any] | None:
        torrent_list_response = await self.get_transfer_list()
        if torrent_list_response.get("status") != "success":
            raise ProviderException(
                "Failed to get torrent info from Premiumize", "transfer_error.mp4"
            )

        for torrent in torrent_list_response.get("transfers", []):
            src = (torrent.get("src") or "").lower()
            if info_hash in src or info_hash == torrent.get("name"):
                return torrent
        return None
