"""
Upstream stream providers.

Each provider is reached over HTTP through its extractor endpoint and returns
``{"streams": [{"url", "title", "referer"?}]}``. How an extractor scrapes its
site is not our concern; we only build the request and read the streams.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

from vixrelay.config import EffectiveSettings, Settings, get_settings
from vixrelay.models.media import ANIME_KINDS, MOVIE_KINDS, ContentId, ContentKind, StreamCandidate

logger = logging.getLogger(__name__)

PRIMARY = "primary"
SECONDARY = "secondary"


class StreamProvider(ABC):
    """A source of stream candidates for movies, series or anime."""

    name: str = ""
    label: str = ""
    role: str = SECONDARY
    kinds: tuple[ContentKind, ...] = MOVIE_KINDS

    def supports(self, content_id: ContentId) -> bool:
        return content_id.kind in self.kinds

    @abstractmethod
    def is_enabled(self, settings: EffectiveSettings) -> bool:
        """Whether this provider should be queried with these settings."""

    @abstractmethod
    async def fetch(self, content_id: ContentId, settings: EffectiveSettings) -> list[StreamCandidate]:
        """Return candidates for the id. May raise; the orchestrator isolates failures."""


class RemoteExtractorProvider(StreamProvider):
    """Provider backed by an HTTP extractor endpoint."""

    TIMEOUT = 20.0

    def __init__(
        self,
        endpoint: Optional[str],
        timeout: float = TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint.rstrip("/") if endpoint else None
        self.timeout = timeout
        self.transport = transport

    def is_enabled(self, settings: EffectiveSettings) -> bool:
        return bool(self.endpoint)

    def build_params(self, content_id: ContentId, settings: EffectiveSettings) -> dict[str, Any]:
        """Query parameters sent to the extractor."""
        params: dict[str, Any] = {
            "id": content_id.raw if content_id.is_anime else content_id.id,
            "source": content_id.kind.value,
            "type": "movie" if content_id.is_movie else "series",
            "bothLinks": "on" if settings.both_links else "off",
        }
        if content_id.season is not None:
            params["season"] = content_id.season
        if content_id.episode is not None:
            params["episode"] = content_id.episode
        if settings.proxy_url:
            params["mfpUrl"] = settings.proxy_url
        if settings.proxy_password:
            params["mfpPsw"] = settings.proxy_password
        if settings.tmdb_api_key:
            params["tmdbApiKey"] = settings.tmdb_api_key
        return params

    def parse_stream(self, item: dict) -> Optional[StreamCandidate]:
        url = item.get("url") or item.get("streamUrl")
        if not url:
            return None
        return StreamCandidate(
            url=url,
            title=item.get("title") or item.get("name") or self.label,
            proxied=bool(item.get("proxied", False)),
        )

    async def fetch(self, content_id: ContentId, settings: EffectiveSettings) -> list[StreamCandidate]:
        params = self.build_params(content_id, settings)
        logger.info(f"Querying {self.name} for {content_id.raw}")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.get(self.endpoint, params=params)
            response.raise_for_status()
            data = response.json()

        items = data.get("streams") if isinstance(data, dict) else data
        candidates = []
        for item in items or []:
            if isinstance(item, dict):
                candidate = self.parse_stream(item)
                if candidate:
                    candidates.append(candidate)
        logger.info(f"{self.name} returned {len(candidates)} streams for {content_id.raw}")
        return candidates


class VixSrcProvider(RemoteExtractorProvider):
    """Default movie/series source."""

    name = "vixsrc"
    label = "StreamViX Vx"
    role = PRIMARY
    kinds = MOVIE_KINDS

    def parse_stream(self, item: dict) -> Optional[StreamCandidate]:
        url = item.get("url") or item.get("streamUrl")
        if not url:
            return None
        referer = item.get("referer")
        return StreamCandidate(
            url=url,
            title=item.get("title") or item.get("name") or self.label,
            headers={"Referer": referer} if referer else None,
            not_web_ready=True,
        )


class AnimeProvider(RemoteExtractorProvider):
    """Anime source, opted into through settings or the environment."""

    role = SECONDARY
    kinds = MOVIE_KINDS + ANIME_KINDS

    def is_enabled(self, settings: EffectiveSettings) -> bool:
        return bool(self.endpoint) and settings.provider_enabled(self.name)


class AnimeUnityProvider(AnimeProvider):
    name = "animeunity"
    label = "StreamViX AU"


class AnimeSaturnProvider(AnimeProvider):
    name = "animesaturn"
    label = "StreamViX AS"


def default_providers(settings: Optional[Settings] = None) -> list[StreamProvider]:
    """Providers in registration order: primary first, then anime fallbacks."""
    settings = settings or get_settings()
    timeout = settings.provider_timeout_seconds
    return [
        VixSrcProvider(settings.vixsrc_extractor_url, timeout=timeout),
        AnimeUnityProvider(settings.animeunity_extractor_url, timeout=timeout),
        AnimeSaturnProvider(settings.animesaturn_extractor_url, timeout=timeout),
    ]
