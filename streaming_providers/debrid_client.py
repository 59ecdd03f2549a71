import asyncio
import logging
import traceback
from abc import abstractmethod
from contextlib import AsyncContextDecorator
from typing import Any, Collection, Dict, Optional, Sequence, Union

import aiohttp
from aiohttp import ClientResponse, ClientTimeout, ContentTypeError

from db.config import settings
from db.enums import ErrorKind
from streaming_providers.exceptions import ProviderException

logger = logging.getLogger(__name__)

QueryParams = Optional[Union[dict, Sequence[tuple[str, Any]]]]


class DebridClient(AsyncContextDecorator):
    """
    Base aiohttp client for debrid provider APIs. Subclasses describe their
    availability batching through the class attributes below.
    """

    PROVIDER_ID: str = ""
    BATCH_SIZE: int = 50
    BATCH_DELAY: float = 0.1  # seconds between availability batches
    SUPPORTS_AVAILABILITY: bool = True
    SUPPORTS_PRECHECK: bool = False

    def __init__(self, token: Optional[str] = None):
        self.token = token
        self.headers: Dict[str, str] = {}
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = ClientTimeout(total=settings.provider_timeout)

    @classmethod
    def supports_availability(cls) -> bool:
        return cls.SUPPORTS_AVAILABILITY

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                connector=aiohttp.TCPConnector(ttl_dns_cache=300),
            )
        return self._session

    async def __aenter__(self):
        try:
            await self.initialize_headers()
        except ProviderException as error:
            await self.close()
            raise error
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        if self._session:
            await self._session.close()
            self._session = None

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
    ) -> dict | list | str:
        try:
            async with self.session.request(
                method, url, data=data, json=json, params=params, headers=self.headers
            ) as response:
                await self._check_response_status(response, is_expected_to_fail)
                return await self._parse_response(
                    response, is_return_none, is_expected_to_fail
                )

        except ProviderException as error:
            raise error
        except aiohttp.ClientConnectorError as error:
            if retry_count < 1:  # Try one more time
                return await self._make_request(
                    method,
                    url,
                    data=data,
                    json=json,
                    params=params,
                    is_return_none=is_return_none,
                    is_expected_to_fail=is_expected_to_fail,
                    retry_count=retry_count + 1,
                )
            await self._handle_request_error(error)
        except (aiohttp.ClientError, asyncio.TimeoutError) as error:
            await self._handle_request_error(error)

    async def _check_response_status(
        self, response: ClientResponse, is_expected_to_fail: bool
    ):
        """Check response status and handle HTTP errors."""
        try:
            response.raise_for_status()
        except aiohttp.ClientResponseError as error:
            if error.status in [502, 503, 504]:
                raise ProviderException(
                    "Debrid service is down.",
                    "debrid_service_down_error.mp4",
                    ErrorKind.TRANSIENT_ERROR,
                    status_code=error.status,
                )
            if is_expected_to_fail:
                return

            if "application/json" in response.headers.get("Content-Type", ""):
                error_content = await response.json()
                await self._handle_service_specific_errors(error_content, error.status)
            else:
                error_content = await response.text()

            if error.status in (401, 403):
                raise ProviderException(
                    "Invalid token", "invalid_token.mp4", status_code=error.status
                )
            if error.status == 429:
                raise ProviderException(
                    "Too many requests", "too_many_requests.mp4", status_code=429
                )

            formatted_traceback = "".join(traceback.format_exception(error))
            raise ProviderException(
                f"API Error {error_content} \n{formatted_traceback}",
                "api_error.mp4",
                status_code=error.status,
            )

    @staticmethod
    async def _handle_request_error(error: Exception):
        if isinstance(error, asyncio.TimeoutError):
            raise ProviderException(
                "Request timed out.",
                "torrent_not_downloaded.mp4",
                ErrorKind.TRANSIENT_ERROR,
            )
        elif isinstance(error, aiohttp.ClientConnectorError):
            raise ProviderException(
                "Failed to connect to Debrid service.",
                "debrid_service_down_error.mp4",
                ErrorKind.TRANSIENT_ERROR,
            )
        raise ProviderException(f"Request error: {str(error)}", "api_error.mp4")

    @abstractmethod
    async def _handle_service_specific_errors(self, error_data: Any, status_code: int):
        """
        Service specific errors on api requests.
        """
        raise NotImplementedError

    @staticmethod
    async def _parse_response(
        response: ClientResponse, is_return_none: bool, is_expected_to_fail: bool
    ) -> Union[dict, list, str]:
        if is_return_none:
            return {}
        try:
            return await response.json(content_type=None)
        except (ValueError, ContentTypeError) as error:
            response_text = await response.text()
            if is_expected_to_fail:
                return response_text
            raise ProviderException(
                f"Failed to parse response error: {error}. \nresponse: {response_text}",
                "api_error.mp4",
            )

    @abstractmethod
    async def initialize_headers(self):
        raise NotImplementedError

    async def wait_for_status(
        self,
        torrent_id: str,
        target_status: Union[str, int, bool, Collection],
        max_retries: Optional[int] = None,
        retry_interval: Optional[float] = None,
        torrent_info: Optional[dict] = None,
        status_key: str = "status",
    ) -> dict:
        """Poll the torrent until its status_key reaches target_status."""
        max_retries = settings.poll_max_attempts if max_retries is None else max_retries
        retry_interval = settings.poll_interval if retry_interval is None else retry_interval
        targets = (
            set(target_status)
            if isinstance(target_status, (set, frozenset, list, tuple))
            else {target_status}
        )

        # if torrent_info is available, check the status from it
        if torrent_info and torrent_info.get(status_key) in targets:
            return torrent_info

        for attempt in range(max_retries):
            torrent_info = await self.get_torrent_info(torrent_id)
            if torrent_info and torrent_info.get(status_key) in targets:
                return torrent_info
            if attempt < max_retries - 1:
                await asyncio.sleep(retry_interval)
        logger.info(
            "%s torrent %s did not reach %s after %s polls",
            self.PROVIDER_ID,
            torrent_id,
            target_status,
            max_retries,
        )
        raise ProviderException(
            f"Torrent did not reach {target_status} status.",
            "torrent_not_downloaded.mp4",
            ErrorKind.NOT_CACHED,
        )

    @abstractmethod
    async def get_torrent_info(self, torrent_id: str) -> dict:
        raise NotImplementedError
