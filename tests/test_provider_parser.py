"""
Tests for torrent file selection in streaming_providers/parser.py
"""

import pytest

from db.enums import ErrorKind
from streaming_providers.exceptions import ProviderException
from streaming_providers.parser import (
    select_best_file,
    select_file_index_from_torrent,
    select_video_files,
)

GB = 1024 * 1024 * 1024
MB = 1024 * 1024


def make_files(*entries):
    return [{"name": name, "size": size} for name, size in entries]


class TestSelectBestFile:
    def test_largest_video_for_movies(self):
        files = make_files(
            ("Movie/Movie.1080p.mkv", 4 * GB),
            ("Movie/Movie.Sample.mkv", 6 * GB),
            ("Movie/Movie.nfo", 10 * GB),
            ("Movie/Movie.720p.mp4", 2 * GB),
        )
        selected = select_best_file(files)
        assert selected.index == 0
        assert selected.filename == "Movie.1080p.mkv"

    def test_matching_episode(self):
        files = make_files(
            ("Show.S02E04.mkv", 2 * GB),
            ("Show.S02E05.mkv", 1 * GB),
            ("Show.S02E06.mkv", 3 * GB),
        )
        assert select_best_file(files, season=2, episode=5).index == 1

    def test_alternate_episode_formats(self):
        files = make_files(("Show 2x05 HDTV.avi", GB), ("Show 2x06 HDTV.avi", 2 * GB))
        assert select_best_file(files, 2, 5).index == 0

    def test_missing_episode_falls_back_to_largest(self):
        files = make_files(("Show.S02E04.mkv", 2 * GB), ("Show.S02E06.mkv", 3 * GB))
        assert select_best_file(files, 2, 5).index == 1

    def test_episode_number_is_not_a_prefix(self):
        files = make_files(("Show.S02E50.mkv", 3 * GB), ("Show.S02E05.mkv", GB))
        assert select_best_file(files, 2, 5).index == 1

    def test_custom_keys(self):
        files = [
            {"path": "/a/Movie.mkv", "bytes": 3 * GB},
            {"path": "/a/Movie.trailer.mkv", "bytes": 5 * GB},
        ]
        assert select_best_file(files, name_key="path", size_key="bytes").index == 0

    def test_no_playable_files(self):
        with pytest.raises(ProviderException) as excinfo:
            select_best_file(make_files(("readme.txt", 100), ("sample.mkv", GB)))
        assert excinfo.value.error_kind == ErrorKind.PERMANENT_ERROR


class TestSelectVideoFiles:
    def test_skips_small_and_non_video(self):
        files = make_files(
            ("Movie.mkv", 4 * GB),
            ("Movie.Sample.mkv", 20 * MB),
            ("tiny.mp4", 2 * MB),
            ("poster.jpg", 10 * MB),
        )
        assert [f.index for f in select_video_files(files)] == [0, 1]

    def test_custom_min_size(self):
        files = make_files(("Movie.mkv", 4 * GB), ("tiny.mp4", 2 * MB))
        assert [f.index for f in select_video_files(files, min_size=0)] == [0, 1]


def test_select_file_index_from_torrent():
    torrent_info = {"files": make_files(("a.mkv", GB), ("b.mkv", 2 * GB))}
    assert select_file_index_from_torrent(torrent_info) == 1
