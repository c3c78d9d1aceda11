"""
Channel Link Cache

Keeps a map of live channel name -> resolved stream URL(s), filled in bulk by
the external channel resolver. The map is persisted to a JSON file after
every successful refresh and reloaded on startup.

Staleness is judged cache-wide: stale links are still served while a
background refresh runs. At most one refresh is in flight at any time.
"""

import asyncio
import json
import logging
import os
import time
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from pydantic import TypeAdapter, ValidationError

from vixrelay.models.channel import ChannelLinkSnapshot
from vixrelay.services.channel_resolver import ChannelResolver

logger = logging.getLogger(__name__)

LinkValue = Union[str, list[str]]

_link_value = TypeAdapter(LinkValue)


def _first_link(value: Optional[LinkValue]) -> Optional[str]:
    if isinstance(value, list):
        return value[0] if value else None
    return value or None


class ChannelLinkCache:
    """TTL-refreshed, single-flight cache of resolved channel links."""

    # Configuration
    MAX_AGE_SECONDS = 12 * 60 * 60
    REFRESH_INTERVAL_SECONDS = 12 * 60 * 60
    STARTUP_DELAY_SECONDS = 2.0

    def __init__(
        self,
        cache_path: Union[str, Path],
        resolver: ChannelResolver,
        max_age_seconds: float = MAX_AGE_SECONDS,
        refresh_interval_seconds: float = REFRESH_INTERVAL_SECONDS,
        startup_delay_seconds: float = STARTUP_DELAY_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.cache_path = Path(cache_path)
        self.resolver = resolver
        self.max_age_seconds = max_age_seconds
        self.refresh_interval_seconds = refresh_interval_seconds
        self.startup_delay_seconds = startup_delay_seconds
        self._clock = clock

        # Replaced wholesale on refresh; readers never see a half-built map
        self._links: dict[str, LinkValue] = {}
        self._timestamp = 0  # ms since epoch

        self._refresh_lock = asyncio.Lock()
        self._refresh_task: Optional[asyncio.Task] = None
        self._scheduler_task: Optional[asyncio.Task] = None
        self._running = False

    # ==================== STATE ====================

    @property
    def timestamp(self) -> int:
        return self._timestamp

    @property
    def populated(self) -> bool:
        """True once the cache has been loaded or refreshed at least once."""
        return self._timestamp > 0

    @property
    def updating(self) -> bool:
        if self._refresh_lock.locked():
            return True
        return self._refresh_task is not None and not self._refresh_task.done()

    def age_seconds(self) -> float:
        return self._clock() - self._timestamp / 1000

    def is_stale(self) -> bool:
        return not self._links or self.age_seconds() > self.max_age_seconds

    def links(self) -> dict[str, LinkValue]:
        """Copy of the current link map."""
        return dict(self._links)

    def get_stats(self) -> dict:
        return {
            "channels": len(self._links),
            "timestamp": self._timestamp,
            "age_seconds": round(self.age_seconds()) if self.populated else None,
            "stale": self.is_stale(),
            "updating": self.updating,
            "scheduler_running": self._running,
        }

    # ==================== LOOKUP ====================

    async def resolve(self, name: str) -> Optional[str]:
        """
        Return the cached URL for ``name`` (first one if several).

        A stale or empty cache, or a miss on a populated cache, kicks off a
        background refresh without delaying the answer.
        """
        return await self.resolve_any([name])

    async def resolve_any(self, names: Iterable[str]) -> Optional[str]:
        """Try several names in order; the first cached hit wins."""
        if self.is_stale():
            logger.info(
                f"Channel cache stale or empty ({len(self._links)} links), refreshing in background"
            )
            self.refresh_in_background()

        names = [n for n in names if n]
        links = self._links
        for name in names:
            url = _first_link(links.get(name))
            if url:
                logger.debug(f"Channel cache hit: {name}")
                return url

        if self.populated:
            logger.info(f"Channels {names} not in cache, refreshing in background")
            self.refresh_in_background()
        return None

    async def resolve_uncached(self, name: str) -> Optional[str]:
        """
        Ask the resolver for a single channel. Only meant for a cache that
        was never populated; the result is kept in memory but not persisted.
        """
        url = await self.resolver.resolve_one(name)
        if not url:
            return None
        logger.info(f"Resolved {name} directly: {url[:50]}...")
        self._links = {**self._links, name: url}
        return url

    # ==================== REFRESH ====================

    async def refresh(self) -> bool:
        """
        Replace the whole link map from a bulk dump and persist it.

        Returns False without waiting if a refresh is already running, and
        False on any resolver failure (the previous map stays in place).
        """
        if self._refresh_lock.locked():
            logger.info("Channel cache refresh already in progress, skipping")
            return False

        async with self._refresh_lock:
            logger.info("Starting channel cache refresh...")
            try:
                channels = await self.resolver.dump_all()
            except Exception as e:
                logger.error(f"Channel resolver dump failed: {e}")
                return False
            if channels is None:
                logger.warning("Channel cache refresh failed: resolver returned nothing")
                return False

            updated: dict[str, LinkValue] = {}
            rejected = 0
            for channel in channels:
                if not isinstance(channel, dict):
                    continue
                name, url = channel.get("name"), channel.get("url")
                if not name or not url:
                    continue
                if not isinstance(name, str):
                    rejected += 1
                    continue
                try:
                    updated[name] = _link_value.validate_python(url, strict=True)
                except ValidationError:
                    rejected += 1
            if rejected:
                logger.warning(f"Channel resolver dump had {rejected} entries with unusable links, skipped")

            if not updated:
                logger.warning("Channel cache refresh returned no usable links, keeping previous cache")
                return False

            # Validated before the swap
            snapshot = ChannelLinkSnapshot(timestamp=int(self._clock() * 1000), links=updated)
            self._links = snapshot.links
            self._timestamp = snapshot.timestamp
            self._save_snapshot()
            logger.info(f"✅ Channel cache refreshed: {len(updated)} channels")
            return True

    def refresh_in_background(self) -> Optional[asyncio.Task]:
        """Spawn a refresh task unless one is already pending or running."""
        if self.updating:
            return self._refresh_task
        self._refresh_task = asyncio.create_task(self._refresh_logged("on-demand"))
        return self._refresh_task

    async def _refresh_logged(self, reason: str) -> bool:
        try:
            success = await self.refresh()
        except Exception as e:
            logger.error(f"Channel cache {reason} refresh error: {e}", exc_info=True)
            return False
        if not success:
            logger.warning(f"Channel cache {reason} refresh did not update the cache")
        return success

    # ==================== SCHEDULER ====================

    async def start(self):
        """Start the periodic refresh loop."""
        if self._running:
            logger.warning("Channel cache scheduler already running")
            return
        self._running = True
        self._scheduler_task = asyncio.create_task(self._scheduler_loop())
        logger.info("📺 Channel cache scheduler started")

    async def stop(self):
        """Stop the refresh loop and any in-flight refresh."""
        self._running = False
        for task in (self._scheduler_task, self._refresh_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        logger.info("Channel cache scheduler stopped")

    async def _scheduler_loop(self):
        # Let startup finish before the first dump
        await asyncio.sleep(self.startup_delay_seconds)
        delay = 0.0

        while self._running:
            try:
                if delay:
                    await asyncio.sleep(delay)
                await self._refresh_logged("scheduled")
                delay = self.refresh_interval_seconds
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Channel cache scheduler error: {e}")
                delay = self.refresh_interval_seconds

    # ==================== PERSISTENCE ====================

    async def bootstrap(self):
        """Build the cache file through the resolver if missing, then load it."""
        if not self.cache_path.exists():
            logger.warning(f"Channel cache not found at {self.cache_path}, asking resolver to build it...")
            try:
                built = await self.resolver.build_cache()
            except Exception as e:
                logger.error(f"Channel cache bootstrap failed: {e}")
                built = False
            if built:
                logger.info("✅ Channel cache built by resolver")
        self.load()

    def load(self):
        """Load links from the cache file, if present."""
        if not self.cache_path.exists():
            logger.info("No channel cache file found - it will be created on the first refresh")
            return

        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                snapshot = ChannelLinkSnapshot.model_validate(json.load(f))
        except Exception as e:
            logger.error(f"Failed to load channel cache: {e}")
            return

        self._links = dict(snapshot.links)
        self._timestamp = snapshot.timestamp
        logger.info(
            f"📥 Channel cache loaded: {len(self._links)} channels from {self.cache_path} "
            f"(timestamp {self._timestamp})"
        )

    def _save_snapshot(self):
        """Write to a temp file and rename it over the cache file."""
        tmp_path = self.cache_path.with_name(self.cache_path.name + ".tmp")
        try:
            snapshot = ChannelLinkSnapshot(timestamp=self._timestamp, links=self._links)
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(snapshot.model_dump(), f, indent=2)
            os.replace(tmp_path, self.cache_path)
            logger.info(f"📸 Channel cache saved: {len(self._links)} channels to {self.cache_path}")
        except (OSError, ValidationError) as e:
            logger.error(f"Failed to save channel cache: {e}")
