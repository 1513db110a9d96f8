"""Verification Test: concurrent cache writers.

The four sar calls of a refresh may run in parallel. Distinct tags must never
interfere, and racing writers of one tag must leave a whole file behind
(last write wins), never a torn one.
"""

import os
from concurrent.futures import ThreadPoolExecutor

import pytest

from syssnap.cache import ProcessCache


def writer_runner(payload_size: int):
    def runner(command, stdin_text=None):
        # The command's last argument names the payload character
        return command[-1] * payload_size + "\n"

    return runner


@pytest.fixture
def cache(tmp_path):
    return ProcessCache(tmp_path / "cache", trusted_uid=os.geteuid(), runner=writer_runner(200_000))


class TestConcurrentWriters:
    """Concurrent cache writer verification tests."""

    def test_distinct_tags_in_parallel(self, cache):
        tags = [f"sar{opt}_{window}" for opt in "qB" for window in ("yesterday_04", "today_05")]

        with ThreadPoolExecutor(max_workers=4) as pool:
            results = list(
                pool.map(lambda item: cache.get_or_run(item[1], ["sar", str(item[0])], ttl=600), enumerate(tags))
            )

        for index, (tag, result) in enumerate(zip(tags, results)):
            assert result == str(index) * 200_000 + "\n"
            assert cache.path_for(tag).read_text() == result

    def test_same_tag_race_leaves_a_whole_file(self, cache):
        def write(char):
            # ttl=0 forces every caller to run and write
            return cache.get_or_run("sarq_today", ["sar", char], ttl=0)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(write, "abcdefgh" * 4))

        content = cache.path_for("sarq_today").read_text()
        assert len(content) == 200_001
        assert len(set(content.strip())) == 1

    def test_no_temp_files_left_behind(self, cache):
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda char: cache.get_or_run("tag", ["sar", char], ttl=0), "abcdefgh"))

        leftovers = [p.name for p in cache.cache_dir.iterdir() if p.name.startswith(".tmp_")]
        assert leftovers == []
