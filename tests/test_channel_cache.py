"""
Tests for the channel link cache: TTL, single-flight refresh and persistence.
"""
import asyncio
import json

import pytest

from conftest import FakeResolver
from vixrelay.services.channel_cache import ChannelLinkCache


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def write_cache_file(path, timestamp_ms, links):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"timestamp": timestamp_ms, "links": links}))


class TestResolve:
    """Lookups never wait for a refresh."""

    @pytest.mark.asyncio
    async def test_absent_file_then_background_refresh(self, tmp_path):
        """Cold start: null first, cached value after the refresh, no more resolver calls."""
        resolver = FakeResolver(channels=[{"name": "Channel A", "url": "http://x/y"}], delay=0.01)
        cache = ChannelLinkCache(tmp_path / "cache.json", resolver)
        cache.load()

        assert await cache.resolve("Channel A") is None
        task = cache.refresh_in_background()
        assert task is not None
        await task

        assert resolver.dump_calls == 1
        assert await cache.resolve("Channel A") == "http://x/y"
        assert await cache.resolve("Channel A") == "http://x/y"
        await asyncio.sleep(0)
        assert resolver.dump_calls == 1
        assert resolver.resolve_calls == 0

    @pytest.mark.asyncio
    async def test_fresh_cache_hit_does_not_refresh(self, tmp_path):
        clock = FakeClock()
        path = tmp_path / "cache.json"
        write_cache_file(path, int(clock.now * 1000) - 60_000, {"Rai 1": "http://rai/1"})
        resolver = FakeResolver()
        cache = ChannelLinkCache(path, resolver, clock=clock)
        cache.load()

        assert await cache.resolve("Rai 1") == "http://rai/1"
        await asyncio.sleep(0)
        assert resolver.dump_calls == 0
        assert not cache.updating

    @pytest.mark.asyncio
    async def test_stale_cache_serves_old_value_and_refreshes(self, tmp_path):
        clock = FakeClock()
        path = tmp_path / "cache.json"
        thirteen_hours_ago = int((clock.now - 13 * 3600) * 1000)
        write_cache_file(path, thirteen_hours_ago, {"Rai 1": "http://old"})
        resolver = FakeResolver(channels=[{"name": "Rai 1", "url": "http://new"}], delay=0.01)
        cache = ChannelLinkCache(path, resolver, clock=clock)
        cache.load()

        assert cache.is_stale()
        assert await cache.resolve("Rai 1") == "http://old"
        assert cache.updating

        await cache._refresh_task
        assert await cache.resolve("Rai 1") == "http://new"
        assert resolver.dump_calls == 1

    @pytest.mark.asyncio
    async def test_list_value_returns_first_url(self, tmp_path):
        clock = FakeClock()
        path = tmp_path / "cache.json"
        write_cache_file(path, int(clock.now * 1000), {"Sky": ["http://a", "http://b"]})
        cache = ChannelLinkCache(path, FakeResolver(), clock=clock)
        cache.load()

        assert await cache.resolve("Sky") == "http://a"

    @pytest.mark.asyncio
    async def test_miss_on_populated_cache_triggers_refresh(self, tmp_path):
        clock = FakeClock()
        path = tmp_path / "cache.json"
        write_cache_file(path, int(clock.now * 1000), {"Rai 1": "http://rai/1"})
        resolver = FakeResolver(channels=[{"name": "Rai 2", "url": "http://rai/2"}], delay=0.01)
        cache = ChannelLinkCache(path, resolver, clock=clock)
        cache.load()

        assert await cache.resolve("Rai 2") is None
        await cache._refresh_task
        assert await cache.resolve("Rai 2") == "http://rai/2"

    @pytest.mark.asyncio
    async def test_resolve_any_tries_names_in_order(self, tmp_path):
        clock = FakeClock()
        path = tmp_path / "cache.json"
        write_cache_file(path, int(clock.now * 1000), {"Sky Cinema 1": "http://sky"})
        cache = ChannelLinkCache(path, FakeResolver(), clock=clock)
        cache.load()

        assert await cache.resolve_any(["SKY CINEMA UNO", "Sky Cinema 1"]) == "http://sky"

    @pytest.mark.asyncio
    async def test_resolve_uncached_keeps_result_in_memory_only(self, tmp_path):
        path = tmp_path / "cache.json"
        resolver = FakeResolver(single={"Rai 3": "http://rai/3"})
        cache = ChannelLinkCache(path, resolver)

        assert await cache.resolve_uncached("Rai 3") == "http://rai/3"
        assert await cache.resolve_uncached("Missing") is None
        assert cache.links() == {"Rai 3": "http://rai/3"}
        assert not path.exists()


class TestRefresh:
    """Single-flight bulk refresh with atomic persistence."""

    @pytest.mark.asyncio
    async def test_concurrent_refresh_runs_once(self, tmp_path):
        resolver = FakeResolver(channels=[{"name": "A", "url": "http://a"}], delay=0.05)
        cache = ChannelLinkCache(tmp_path / "cache.json", resolver)

        results = await asyncio.gather(*[cache.refresh() for _ in range(10)])

        assert resolver.dump_calls == 1
        assert results.count(True) == 1
        assert results.count(False) == 9

    @pytest.mark.asyncio
    async def test_concurrent_lookups_on_stale_cache_refresh_once(self, tmp_path):
        clock = FakeClock()
        path = tmp_path / "cache.json"
        write_cache_file(path, int((clock.now - 24 * 3600) * 1000), {"A": "http://old"})
        resolver = FakeResolver(channels=[{"name": "A", "url": "http://new"}], delay=0.05)
        cache = ChannelLinkCache(path, resolver, clock=clock)
        cache.load()

        seen = await asyncio.gather(*[cache.resolve("A") for _ in range(20)])
        await cache._refresh_task
        seen += await asyncio.gather(*[cache.resolve("A") for _ in range(5)])

        assert resolver.dump_calls == 1
        assert set(seen) <= {"http://old", "http://new"}
        assert seen[-1] == "http://new"

    @pytest.mark.asyncio
    async def test_refresh_persists_atomically(self, tmp_path):
        clock = FakeClock()
        path = tmp_path / "nested" / "cache.json"
        resolver = FakeResolver(channels=[
            {"name": "A", "url": "http://a"},
            {"name": "B", "url": ["http://b1", "http://b2"]},
            {"name": "", "url": "http://ignored"},
            {"url": "http://no-name"},
            "garbage",
        ])
        cache = ChannelLinkCache(path, resolver, clock=clock)

        assert await cache.refresh() is True

        data = json.loads(path.read_text())
        assert data["timestamp"] == int(clock.now * 1000)
        assert data["links"] == {"A": "http://a", "B": ["http://b1", "http://b2"]}
        assert not (tmp_path / "nested" / "cache.json.tmp").exists()

        reloaded = ChannelLinkCache(path, FakeResolver(), clock=clock)
        reloaded.load()
        assert reloaded.links() == data["links"]
        assert reloaded.timestamp == data["timestamp"]

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_cache(self, tmp_path):
        clock = FakeClock()
        path = tmp_path / "cache.json"
        write_cache_file(path, 1234, {"A": "http://a"})
        cache = ChannelLinkCache(path, FakeResolver(fail=True), clock=clock)
        cache.load()

        assert await cache.refresh() is False
        assert cache.links() == {"A": "http://a"}
        assert cache.timestamp == 1234
        assert json.loads(path.read_text())["links"] == {"A": "http://a"}

    @pytest.mark.asyncio
    async def test_empty_dump_keeps_previous_cache(self, tmp_path):
        path = tmp_path / "cache.json"
        write_cache_file(path, 1234, {"A": "http://a"})
        cache = ChannelLinkCache(path, FakeResolver(channels=[]))
        cache.load()

        assert await cache.refresh() is False
        assert cache.links() == {"A": "http://a"}

    @pytest.mark.asyncio
    async def test_malformed_links_keep_previous_cache(self, tmp_path):
        path = tmp_path / "cache.json"
        write_cache_file(path, 1234, {"A": "http://a"})
        resolver = FakeResolver(channels=[{"name": "B", "url": {"hls": "http://b"}}])
        cache = ChannelLinkCache(path, resolver)
        cache.load()

        assert await cache.refresh() is False
        assert cache.links() == {"A": "http://a"}
        assert cache.timestamp == 1234
        assert json.loads(path.read_text())["links"] == {"A": "http://a"}

    @pytest.mark.asyncio
    async def test_malformed_entries_are_skipped(self, tmp_path):
        clock = FakeClock()
        path = tmp_path / "cache.json"
        resolver = FakeResolver(channels=[
            {"name": "A", "url": "http://a"},
            {"name": "B", "url": {"hls": "http://b"}},
            {"name": "C", "url": 42},
            {"name": "D", "url": ["http://d", 7]},
            {"name": 5, "url": "http://numeric-name"},
            {"name": "E", "url": ["http://e1", "http://e2"]},
        ])
        cache = ChannelLinkCache(path, resolver, clock=clock)

        assert await cache.refresh() is True
        assert cache.links() == {"A": "http://a", "E": ["http://e1", "http://e2"]}
        assert json.loads(path.read_text())["links"] == cache.links()
        assert await cache.resolve("E") == "http://e1"

    @pytest.mark.asyncio
    async def test_write_failure_keeps_memory_authoritative(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")
        resolver = FakeResolver(channels=[{"name": "A", "url": "http://a"}])
        cache = ChannelLinkCache(blocker / "cache.json", resolver)

        assert await cache.refresh() is True
        assert await cache.resolve("A") == "http://a"

    def test_corrupt_cache_file_is_ignored(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{not json")
        cache = ChannelLinkCache(path, FakeResolver())
        cache.load()

        assert cache.links() == {}
        assert not cache.populated


class TestLifecycle:
    """Bootstrap and the periodic scheduler."""

    @pytest.mark.asyncio
    async def test_bootstrap_asks_resolver_when_file_missing(self, tmp_path):
        resolver = FakeResolver()
        cache = ChannelLinkCache(tmp_path / "cache.json", resolver)
        await cache.bootstrap()
        assert resolver.build_calls == 1

    @pytest.mark.asyncio
    async def test_bootstrap_skips_build_when_file_present(self, tmp_path):
        path = tmp_path / "cache.json"
        write_cache_file(path, 1, {"A": "http://a"})
        resolver = FakeResolver()
        cache = ChannelLinkCache(path, resolver)
        await cache.bootstrap()

        assert resolver.build_calls == 0
        assert cache.links() == {"A": "http://a"}

    @pytest.mark.asyncio
    async def test_scheduler_refreshes_after_startup_delay(self, tmp_path):
        resolver = FakeResolver(channels=[{"name": "A", "url": "http://a"}])
        cache = ChannelLinkCache(
            tmp_path / "cache.json",
            resolver,
            startup_delay_seconds=0.01,
            refresh_interval_seconds=0.05,
        )
        await cache.start()
        await asyncio.sleep(0.15)
        await cache.stop()

        assert resolver.dump_calls >= 2
        assert cache.links() == {"A": "http://a"}
        assert cache.get_stats()["scheduler_running"] is False
