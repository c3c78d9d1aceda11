"""
Pytest configuration and fixtures for vixrelay tests.
"""
import asyncio
import json
from typing import Optional

import pytest

from vixrelay.config import EffectiveSettings, Settings
from vixrelay.models.channel import Channel
from vixrelay.services.channel_resolver import ChannelResolver
from vixrelay.services.providers import PRIMARY, SECONDARY, StreamProvider
from vixrelay.models.media import ANIME_KINDS, MOVIE_KINDS, StreamCandidate


class FakeResolver(ChannelResolver):
    """Resolver returning canned data and counting calls."""

    def __init__(self, channels=None, single=None, delay: float = 0.0, fail: bool = False):
        self.channels = channels if channels is not None else []
        self.single = single or {}
        self.delay = delay
        self.fail = fail
        self.dump_calls = 0
        self.resolve_calls = 0
        self.build_calls = 0

    async def resolve_one(self, name: str) -> Optional[str]:
        self.resolve_calls += 1
        await asyncio.sleep(self.delay)
        return self.single.get(name)

    async def dump_all(self):
        self.dump_calls += 1
        await asyncio.sleep(self.delay)
        if self.fail:
            return None
        return list(self.channels)

    async def build_cache(self) -> bool:
        self.build_calls += 1
        return False


class FakeProvider(StreamProvider):
    """Provider with scripted results."""

    def __init__(self, name, label, role=SECONDARY, urls=(), error=None, enabled=True, kinds=None):
        self.name = name
        self.label = label
        self.role = role
        self.urls = list(urls)
        self.error = error
        self.enabled = enabled
        self.kinds = kinds or (MOVIE_KINDS if role == PRIMARY else MOVIE_KINDS + ANIME_KINDS)
        self.calls = []

    def is_enabled(self, settings):
        return self.enabled

    async def fetch(self, content_id, settings):
        self.calls.append(content_id.raw)
        if self.error:
            raise self.error
        return [StreamCandidate(url=u, title=f"{self.name} stream") for u in self.urls]


@pytest.fixture
def env_settings(tmp_path):
    """Settings isolated from the host environment."""
    return Settings(
        _env_file=None,
        mfp_url=None,
        mfp_psw=None,
        tv_proxy_url=None,
        tmdb_api_key=None,
        animeunity_enabled=None,
        animesaturn_enabled=None,
        vixsrc_extractor_url=None,
        animeunity_extractor_url=None,
        animesaturn_extractor_url=None,
        channels_file=str(tmp_path / "tv_channels.json"),
        addon_config_file=str(tmp_path / "addon-config.json"),
        channel_cache_path=str(tmp_path / "cache" / "vavoo_cache.json"),
    )


@pytest.fixture
def make_settings(env_settings):
    """Build an EffectiveSettings from a snapshot dict."""
    def _make(snapshot=None):
        return EffectiveSettings(snapshot or {}, env_settings)
    return _make


@pytest.fixture
def sample_channels():
    """A few channels covering each kind of static link."""
    return [
        {
            "id": "rai1",
            "name": "Rai 1",
            "description": "Canale generalista RAI",
            "logo": "https://example.com/rai1.png",
            "staticUrl": "https://example.com/rai1/index.m3u8",
            "freeToAir": True,
        },
        {
            "id": "skycinema",
            "name": "Sky Cinema Uno",
            "category": ["sky", "movies"],
            "staticUrl": "https://example.com/sky/manifest.mpd",
            "staticUrl2": "https://example.com/sky/hd.m3u8",
            "staticUrlD": "https://example.com/sky/d.m3u8",
            "vavooNames": ["SKY CINEMA UNO", "Sky Cinema 1"],
        },
        {
            "id": "boing",
            "name": "Boing",
            "description": "",
        },
    ]


@pytest.fixture
def channel_objects(sample_channels):
    return [Channel.model_validate(c) for c in sample_channels]


@pytest.fixture
def sample_channels_file(env_settings, sample_channels):
    """Write the sample channels where the settings expect them."""
    with open(env_settings.channels_file, "w", encoding="utf-8") as f:
        json.dump(sample_channels, f)
    return env_settings.channels_file
