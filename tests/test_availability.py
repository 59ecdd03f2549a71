"""
Tests for the batched availability resolver in streaming_providers/availability.py
"""

import pytest

from streaming_providers.availability import (
    check_all_providers,
    check_availability,
    check_each_provider,
    divide_chunks,
)

HASHES = [f"{index:040x}" for index in range(1, 6)]


class TestDivideChunks:
    def test_chunks(self):
        assert list(divide_chunks([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]

    def test_empty(self):
        assert list(divide_chunks([], 3)) == []


class TestCheckAvailability:
    @pytest.mark.asyncio
    async def test_batches_respect_size(self, make_provider):
        provider = make_provider("torbox", cached=HASHES[:2], batch_size=2)

        results = await check_availability(provider, HASHES)

        assert provider.batches == [HASHES[0:2], HASHES[2:4], HASHES[4:]]
        assert set(results) == set(HASHES)
        assert [results[h].cached for h in HASHES] == [True, True, False, False, False]
        assert not any(result.degraded for result in results.values())

    @pytest.mark.asyncio
    async def test_empty_request(self, make_provider):
        provider = make_provider("torbox")
        assert await check_availability(provider, []) == {}
        assert provider.batches == []

    @pytest.mark.asyncio
    async def test_hashes_are_lowercased_and_deduplicated(self, make_provider):
        provider = make_provider("torbox", cached=[HASHES[0]])

        results = await check_availability(
            provider, [HASHES[0].upper(), HASHES[0], HASHES[1]]
        )

        assert provider.batches == [[HASHES[0], HASHES[1]]]
        assert results[HASHES[0]].cached is True
        assert results[HASHES[1]].cached is False

    @pytest.mark.asyncio
    async def test_disabled_check_degrades_everything(self, make_provider):
        provider = make_provider("realdebrid", disabled=True)

        results = await check_availability(provider, HASHES)

        assert set(results) == set(HASHES)
        assert all(r.cached and r.degraded for r in results.values())
        assert results[HASHES[0]].error == "Availability check is disabled"

    @pytest.mark.asyncio
    async def test_failed_batch_keeps_earlier_answers(self, make_provider):
        provider = make_provider(
            "torbox", cached=[HASHES[1]], batch_size=2, fail_on_batch=1
        )

        results = await check_availability(provider, HASHES)

        assert len(provider.batches) == 2
        assert results[HASHES[0]].cached is False
        assert results[HASHES[0]].degraded is False
        assert results[HASHES[1]].cached is True
        for info_hash in HASHES[2:]:
            assert results[info_hash].cached is True
            assert results[info_hash].degraded is True
            assert results[info_hash].error == "Debrid service is down."

    @pytest.mark.asyncio
    async def test_unsupported_provider_is_degraded_without_calls(self, make_provider):
        provider = make_provider("debridlink", supports_availability=False)

        results = await check_availability(provider, HASHES[:2])

        assert provider.batches == []
        assert all(r.cached and r.degraded for r in results.values())

    @pytest.mark.asyncio
    async def test_unexpected_error_degrades(self, make_provider):
        provider = make_provider("torbox")

        async def broken(client, info_hashes):
            raise KeyError("files")

        provider.fetch_cache_status = broken

        results = await check_availability(provider, HASHES[:1])

        assert results[HASHES[0]].degraded is True
        assert "unexpected error" in results[HASHES[0]].error


class TestCheckAllProviders:
    @pytest.mark.asyncio
    async def test_results_per_provider(self, make_provider):
        torbox = make_provider("torbox", cached=[HASHES[0]])
        realdebrid = make_provider("realdebrid", disabled=True)

        results = await check_all_providers([torbox, realdebrid], HASHES[:2])

        assert list(results) == ["torbox", "realdebrid"]
        assert results["torbox"][HASHES[0]].cached is True
        assert results["torbox"][HASHES[1]].cached is False
        assert all(r.degraded for r in results["realdebrid"].values())

    @pytest.mark.asyncio
    async def test_no_providers(self):
        assert await check_all_providers([], HASHES) == {}

    @pytest.mark.asyncio
    async def test_each_provider_gets_its_own_hashes(self, make_provider):
        torbox = make_provider("torbox", cached=[HASHES[0]])
        realdebrid = make_provider("realdebrid", cached=[HASHES[1]])
        premiumize = make_provider("premiumize")

        results = await check_each_provider(
            [(torbox, HASHES[:2]), (realdebrid, HASHES[1:2]), (premiumize, [])]
        )

        assert torbox.batches == [HASHES[:2]]
        assert realdebrid.batches == [HASHES[1:2]]
        assert premiumize.batches == []
        assert list(results) == ["torbox", "realdebrid"]
        assert results["realdebrid"][HASHES[1]].cached is True
