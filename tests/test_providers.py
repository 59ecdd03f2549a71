"""
Tests for the debrid provider adapters: cache status parsing, resolution flows, error
classification and provider configuration.
"""

from unittest.mock import AsyncMock

import pytest

from db.config import settings
from db.enums import ErrorKind
from streaming_providers.debridlink.client import DebridLink
from streaming_providers.debridlink.utils import (
    get_debridlink_cache_status,
    get_video_url_from_debridlink,
)
from streaming_providers.exceptions import (
    AvailabilityDisabled,
    InvalidMagnet,
    ProviderException,
    classify_error,
)
from streaming_providers.mapper import (
    DebridProvider,
    get_debrid_services,
    parse_api_keys,
)
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
from utils.parser import build_magnet_link

HASH_A = "a" * 40
HASH_B = "b" * 40


def mock_client(method: str, return_value):
    client = AsyncMock()
    getattr(client, method).return_value = return_value
    return client


# ---------------------------------------------------------------------------
# Cache status parsing
# ---------------------------------------------------------------------------


class TestCacheStatus:
    @pytest.mark.asyncio
    async def test_realdebrid(self):
        client = mock_client(
            "get_torrent_instant_availability",
            {
                HASH_A.upper(): {
                    "rd": [{"1": {"filename": "Movie.mkv", "filesize": 100}}]
                },
                HASH_B: [],
            },
        )

        results = await get_realdebrid_cache_status(client, [HASH_A, HASH_B])

        assert results[HASH_A].cached is True
        assert results[HASH_A].files == [
            {"id": "1", "filename": "Movie.mkv", "filesize": 100}
        ]
        assert results[HASH_B].cached is False

    @pytest.mark.asyncio
    async def test_torbox_list_response(self):
        client = mock_client(
            "get_torrent_instant_availability",
            [{"hash": HASH_A, "files": [{"name": "Movie.mkv", "size": 100}]}],
        )

        results = await get_torbox_cache_status(client, [HASH_A, HASH_B])

        assert results[HASH_A].cached is True
        assert results[HASH_A].files == [{"name": "Movie.mkv", "size": 100}]
        assert results[HASH_B].cached is False

    @pytest.mark.asyncio
    async def test_torbox_dict_response(self):
        client = mock_client(
            "get_torrent_instant_availability", {HASH_B: {"name": "Show"}}
        )
        results = await get_torbox_cache_status(client, [HASH_A, HASH_B])
        assert [results[h].cached for h in (HASH_A, HASH_B)] == [False, True]

    @pytest.mark.asyncio
    async def test_premiumize(self):
        client = mock_client(
            "get_torrent_instant_availability",
            {
                "status": "success",
                "response": [True, False],
                "filename": ["Movie.mkv", None],
                "filesize": ["1024", None],
            },
        )

        results = await get_premiumize_cache_status(client, [HASH_A, HASH_B])

        assert results[HASH_A].cached is True
        assert results[HASH_A].files == [{"name": "Movie.mkv", "size": 1024}]
        assert results[HASH_B].cached is False
        assert results[HASH_B].files is None

    @pytest.mark.asyncio
    async def test_debridlink_without_premiumize_key(self, monkeypatch):
        monkeypatch.setattr(settings, "debridlink_cache_check_premiumize_key", None)
        assert DebridLink.supports_availability() is False
        with pytest.raises(AvailabilityDisabled):
            await get_debridlink_cache_status(DebridLink(token="x"), [HASH_A])

    def test_debridlink_with_premiumize_key(self, monkeypatch):
        monkeypatch.setattr(settings, "debridlink_cache_check_premiumize_key", "key")
        assert DebridLink.supports_availability() is True


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class TestRealDebridErrors:
    @pytest.mark.asyncio
    async def test_disabled_availability_endpoint(self):
        client = RealDebrid(token="token")
        client._make_request = AsyncMock(
            return_value={"error": "disabled_endpoint", "error_code": 37}
        )
        with pytest.raises(AvailabilityDisabled):
            await client.get_torrent_instant_availability([HASH_A])

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error_code,expected",
        [
            (8, ErrorKind.NOT_ENTITLED),
            (20, ErrorKind.NOT_ENTITLED),
            (21, ErrorKind.DOWNLOAD_LIMIT_REACHED),
            (34, ErrorKind.RATE_LIMITED),
            (35, ErrorKind.PERMANENT_ERROR),
        ],
    )
    async def test_error_codes(self, error_code, expected):
        client = RealDebrid(token="token")
        with pytest.raises(ProviderException) as excinfo:
            await client._handle_service_specific_errors(
                {"error_code": error_code}, 403
            )
        assert excinfo.value.error_kind == expected


class TestTorboxErrors:
    @pytest.mark.asyncio
    async def test_active_limit(self):
        client = Torbox(token="token")
        with pytest.raises(ProviderException) as excinfo:
            await client._handle_service_specific_errors(
                {"success": False, "error": "ACTIVE_LIMIT", "detail": "limit"}, 400
            )
        assert excinfo.value.error_kind == ErrorKind.DOWNLOAD_LIMIT_REACHED


class TestClassifyError:
    @pytest.mark.parametrize(
        "message,status_code,expected",
        [
            ("whatever", 401, ErrorKind.NOT_ENTITLED),
            ("Premium account required", None, ErrorKind.NOT_ENTITLED),
            ("Active download limit reached", None, ErrorKind.DOWNLOAD_LIMIT_REACHED),
            ("slow down", 429, ErrorKind.RATE_LIMITED),
            ("Torrent is not cached", None, ErrorKind.NOT_CACHED),
            ("Invalid magnet link", None, ErrorKind.PERMANENT_ERROR),
            ("Connection reset", None, ErrorKind.TRANSIENT_ERROR),
            ("Failed to add magnet link to Premiumize", None, ErrorKind.TRANSIENT_ERROR),
            ("You need premium to use this", None, ErrorKind.NOT_ENTITLED),
            (None, None, ErrorKind.TRANSIENT_ERROR),
        ],
    )
    def test_classification(self, message, status_code, expected):
        assert classify_error(message, status_code) == expected

    def test_explicit_kind_wins(self):
        error = ProviderException("Invalid token", "x.mp4", ErrorKind.TRANSIENT_ERROR)
        assert error.error_kind == ErrorKind.TRANSIENT_ERROR


# ---------------------------------------------------------------------------
# Polling
# ---------------------------------------------------------------------------


class TestWaitForStatus:
    @pytest.mark.asyncio
    async def test_times_out_as_not_cached(self):
        client = RealDebrid(token="token")
        client.get_torrent_info = AsyncMock(return_value={"status": "downloading"})

        with pytest.raises(ProviderException) as excinfo:
            await client.wait_for_status("id", "downloaded", 3, 0)

        assert excinfo.value.error_kind == ErrorKind.NOT_CACHED
        assert client.get_torrent_info.await_count == 3

    @pytest.mark.asyncio
    async def test_returns_known_info_without_polling(self):
        client = RealDebrid(token="token")
        client.get_torrent_info = AsyncMock()
        info = {"status": "downloaded"}

        assert await client.wait_for_status("id", "downloaded", 3, 0, info) is info
        client.get_torrent_info.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reaches_any_of_several_statuses(self):
        client = RealDebrid(token="token")
        client.get_torrent_info = AsyncMock(
            side_effect=[{"status": "running"}, {"status": "seeding"}]
        )
        info = await client.wait_for_status("id", ("finished", "seeding"), 5, 0)
        assert info == {"status": "seeding"}


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TestProviderConfiguration:
    def test_parse_api_keys(self):
        assert parse_api_keys(" tb=one, rd=two ,xx=three,pr=,dl=four,tb=five") == {
            "torbox": "one",
            "realdebrid": "two",
            "debridlink": "four",
        }

    def test_parse_empty(self):
        assert parse_api_keys(None) == {}
        assert parse_api_keys("") == {}

    def test_get_debrid_services(self, monkeypatch):
        monkeypatch.setattr(settings, "disabled_providers", ["premiumize"])

        providers = get_debrid_services("pr=a,rd=b,tb=c")

        assert [p.identify() for p in providers] == ["realdebrid", "torbox"]
        assert all(isinstance(p, DebridProvider) for p in providers)
        assert providers[0].supports_precheck is True
        assert providers[1].supports_precheck is False
        assert providers[0].batch_size == 50
        assert "token" not in repr(providers[0])

    @pytest.mark.asyncio
    async def test_resolve_rejects_bad_magnet(self):
        provider = get_debrid_services("tb=token")[0]
        with pytest.raises(InvalidMagnet):
            await provider.resolve("magnet:?dn=nothing")


# ---------------------------------------------------------------------------
# Resolution flows
# ---------------------------------------------------------------------------

SEASON_FILES = [
    {"id": 1, "path": "/Show/Show.S01E01.1080p.mkv", "bytes": 2_000_000_000},
    {"id": 2, "path": "/Show/Show.S01E02.1080p.mkv", "bytes": 2_100_000_000},
    {"id": 3, "path": "/Show/Show.nfo", "bytes": 2_000},
    {"id": 4, "path": "/Show/Tiny.mkv", "bytes": 1_000_000},
]


class TestRealDebridFlow:
    @pytest.mark.asyncio
    async def test_selects_video_files_then_unrestricts(self):
        client = RealDebrid(token="token")
        client.get_available_torrent = AsyncMock(return_value=None)
        client.get_active_torrents = AsyncMock(
            return_value={"limit": 5, "nb": 1, "list": []}
        )
        client.add_magnet_link = AsyncMock(return_value={"id": "T1"})
        client.get_torrent_info = AsyncMock(
            side_effect=[
                {"id": "T1", "status": "magnet_conversion"},
                {"id": "T1", "status": "waiting_files_selection", "files": SEASON_FILES},
                {
                    "id": "T1",
                    "status": "downloaded",
                    "files": [
                        {**file, "selected": int(file["id"] in (1, 2))}
                        for file in SEASON_FILES
                    ],
                    "links": ["https://rd.example.com/l1", "https://rd.example.com/l2"],
                },
            ]
        )
        client.start_torrent_download = AsyncMock(return_value=None)
        client.create_download_link = AsyncMock(
            return_value={
                "download": "https://rd.example.com/e2.mkv",
                "mimeType": "video/x-matroska",
            }
        )

        url = await get_video_url_from_realdebrid(
            client,
            HASH_A,
            build_magnet_link(HASH_A),
            season=1,
            episode=2,
            max_retries=3,
            retry_interval=0,
        )

        assert url == "https://rd.example.com/e2.mkv"
        client.start_torrent_download.assert_awaited_once_with("T1", file_ids="1,2")
        client.create_download_link.assert_awaited_once_with("https://rd.example.com/l2")
        assert client.get_torrent_info.await_count == 3

    @pytest.mark.asyncio
    async def test_dead_torrent_is_deleted(self):
        client = RealDebrid(token="token")
        client.get_available_torrent = AsyncMock(
            return_value={"id": "T9", "status": "dead"}
        )
        client.delete_torrent = AsyncMock(return_value=None)
        client.get_torrent_info = AsyncMock()

        with pytest.raises(ProviderException) as excinfo:
            await get_video_url_from_realdebrid(
                client, HASH_A, build_magnet_link(HASH_A), retry_interval=0
            )

        assert excinfo.value.error_kind == ErrorKind.PERMANENT_ERROR
        client.delete_torrent.assert_awaited_once_with("T9")
        client.get_torrent_info.assert_not_awaited()


class TestTorboxFlow:
    @pytest.mark.asyncio
    async def test_polls_until_download_finished(self):
        client = Torbox(token="token")
        client.get_available_torrent = AsyncMock(return_value=None)
        client.add_magnet_link = AsyncMock(return_value={"data": {"torrent_id": 7}})
        client.get_torrent_info = AsyncMock(
            side_effect=[
                {"id": 7, "download_finished": False},
                {
                    "id": 7,
                    "download_finished": True,
                    "files": [
                        {"id": 0, "name": "Movie.Trailer.mkv", "size": 50_000_000},
                        {"id": 5, "name": "Movie.2160p.mkv", "size": 20_000_000_000},
                    ],
                },
            ]
        )
        client.create_download_link = AsyncMock(
            return_value={"data": "https://tb.example.com/movie.mkv"}
        )

        url = await get_video_url_from_torbox(
            client, HASH_A, build_magnet_link(HASH_A), max_retries=3, retry_interval=0
        )

        assert url == "https://tb.example.com/movie.mkv"
        client.create_download_link.assert_awaited_once_with(7, 5)
        assert client.get_torrent_info.await_count == 2


class TestPremiumizeFlow:
    @pytest.mark.asyncio
    async def test_directdl_shortcut(self):
        client = Premiumize(token="token")
        client.create_direct_download = AsyncMock(
            return_value={
                "status": "success",
                "content": [
                    {
                        "path": "Movie/readme.txt",
                        "size": 100,
                        "link": "https://pm.example.com/readme.txt",
                    },
                    {
                        "path": "Movie/Movie.1080p.mkv",
                        "size": 3_000_000_000,
                        "link": "https://pm.example.com/movie.mkv",
                        "stream_link": "https://pm.example.com/stream/movie.mkv",
                    },
                ],
            }
        )
        client.get_available_torrent = AsyncMock()
        client.add_magnet_link = AsyncMock()

        url = await get_video_url_from_premiumize(
            client, HASH_A, build_magnet_link(HASH_A), retry_interval=0
        )

        assert url == "https://pm.example.com/stream/movie.mkv"
        client.get_available_torrent.assert_not_awaited()
        client.add_magnet_link.assert_not_awaited()


class TestDebridLinkFlow:
    @pytest.mark.asyncio
    async def test_polls_until_fully_downloaded(self):
        client = DebridLink(token="token")
        client.get_available_torrent = AsyncMock(return_value=None)
        client.add_magnet_link = AsyncMock(
            return_value={"id": "D1", "downloadPercent": 40, "files": []}
        )
        client.get_torrent_info = AsyncMock(
            return_value={
                "id": "D1",
                "downloadPercent": 100,
                "files": [
                    {
                        "name": "Movie.1080p.mkv",
                        "size": 3_000_000_000,
                        "downloadPercent": 100,
                        "downloadUrl": "https://dl.example.com/movie.mkv",
                    }
                ],
            }
        )

        url = await get_video_url_from_debridlink(
            client, HASH_A, build_magnet_link(HASH_A), max_retries=3, retry_interval=0
        )

        assert url == "https://dl.example.com/movie.mkv"
        client.get_torrent_info.assert_awaited_once_with("D1")
