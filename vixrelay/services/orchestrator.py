"""
Provider orchestration for movie, series and anime ids.

The primary provider is asked first for movie/series ids; secondary (anime)
providers are only consulted when it comes back empty. Anime ids skip the
primary provider. A failing provider never affects its siblings and never
raises to the caller.
"""
import asyncio
import logging
from typing import Iterable, Optional

from vixrelay.config import EffectiveSettings
from vixrelay.models.media import ContentId, ContentKind, StreamCandidate
from vixrelay.services.providers import PRIMARY, SECONDARY, StreamProvider

logger = logging.getLogger(__name__)


class ProviderOrchestrator:
    """Queries the registered providers in priority order and merges their streams."""

    DEFAULT_TIMEOUT = 20.0

    def __init__(self, providers: Iterable[StreamProvider], timeout: Optional[float] = DEFAULT_TIMEOUT):
        self.providers = list(providers)
        self.timeout = timeout

    def _eligible(self, role: str, content_id: ContentId, settings: EffectiveSettings) -> list[StreamProvider]:
        return [
            p for p in self.providers
            if p.role == role and p.supports(content_id) and p.is_enabled(settings)
        ]

    async def _safe_fetch(
        self, provider: StreamProvider, content_id: ContentId, settings: EffectiveSettings
    ) -> tuple[list[StreamCandidate], bool]:
        """Run one provider; returns (labelled candidates, failed)."""
        try:
            if self.timeout:
                streams = await asyncio.wait_for(provider.fetch(content_id, settings), timeout=self.timeout)
            else:
                streams = await provider.fetch(content_id, settings)
        except asyncio.TimeoutError:
            logger.error(f"{provider.name} timed out after {self.timeout}s for {content_id.raw}")
            return [], True
        except Exception as e:
            logger.error(f"{provider.name} error for {content_id.raw}: {e}")
            return [], True
        return [s.labelled(provider.label) for s in streams or []], False

    async def _collect(
        self, providers: list[StreamProvider], content_id: ContentId, settings: EffectiveSettings
    ) -> list[StreamCandidate]:
        """Query providers one after another, concatenating in registration order."""
        merged: list[StreamCandidate] = []
        failures = 0
        for provider in providers:
            streams, failed = await self._safe_fetch(provider, content_id, settings)
            failures += failed
            merged.extend(streams)
        if failures:
            logger.warning(f"{failures}/{len(providers)} providers failed for {content_id.raw}")
        return merged

    async def resolve(self, content_id: ContentId, settings: EffectiveSettings) -> list[StreamCandidate]:
        """Return the merged candidate list for a movie, series or anime id."""
        if content_id.kind == ContentKind.TV:
            return []

        if not content_id.is_anime:
            primary = self._eligible(PRIMARY, content_id, settings)
            streams = await self._collect(primary, content_id, settings)
            if streams:
                return streams

        secondary = self._eligible(SECONDARY, content_id, settings)
        if not secondary:
            return []
        logger.info(f"Querying {len(secondary)} secondary providers for {content_id.raw}")
        return await self._collect(secondary, content_id, settings)
