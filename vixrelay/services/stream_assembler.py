"""
Live TV stream assembly.
Builds the ordered stream list for a channel, wrapping links through the
configured proxies so original URLs are not handed out when a proxy exists.
"""
import logging
from typing import Optional
from urllib.parse import quote

from vixrelay.config import EffectiveSettings
from vixrelay.models.channel import Channel
from vixrelay.models.media import StreamCandidate
from vixrelay.services.channel_cache import ChannelLinkCache

logger = logging.getLogger(__name__)

TV_LABEL = "StreamViX TV"
MANIFEST_MARKER = ".mpd"


def normalize_proxy_url(url: str) -> str:
    return url[:-1] if url.endswith("/") else url


def generic_proxy_url(proxy_base: str, password: str, original_url: str) -> str:
    """MediaFlow-style proxy URL; DASH manifests go through the mpd endpoint."""
    endpoint = "mpd" if MANIFEST_MARKER in original_url else "stream"
    return f"{normalize_proxy_url(proxy_base)}/proxy/{endpoint}/?api_password={password}&d={original_url}"


def tv_proxy_url(tv_proxy_base: str, original_url: str) -> str:
    return f"{normalize_proxy_url(tv_proxy_base)}/proxy/m3u?url={quote(original_url, safe='')}"


class StreamAssembler:
    """Turns a channel's static and cached links into its stream list."""

    def __init__(self, link_cache: ChannelLinkCache):
        self.link_cache = link_cache

    def _proxy_or_direct(self, channel: Channel, url: str, title: str, settings: EffectiveSettings) -> StreamCandidate:
        if channel.free_to_air:
            return StreamCandidate(url=url, title=title, source_label=TV_LABEL)

        proxy_base, password = settings.proxy_url, settings.proxy_password
        if proxy_base and password:
            return StreamCandidate(
                url=generic_proxy_url(proxy_base, password, url),
                title=title,
                source_label=TV_LABEL,
                proxied=True,
            )

        # No proxy configured, hand out the link as is
        return StreamCandidate(url=url, title=title, source_label=TV_LABEL)

    def _tv_proxy_or_direct(self, url: str, title: str, settings: EffectiveSettings) -> StreamCandidate:
        if settings.tv_proxy_url:
            return StreamCandidate(
                url=tv_proxy_url(settings.tv_proxy_url, url),
                title=title,
                source_label=TV_LABEL,
                proxied=True,
            )
        return StreamCandidate(url=url, title=title, source_label=TV_LABEL)

    async def _dynamic_link(self, channel: Channel) -> Optional[str]:
        url = await self.link_cache.resolve_any(channel.lookup_names)
        if url or self.link_cache.populated:
            return url
        # Cache never filled yet: ask the resolver directly
        return await self.link_cache.resolve_uncached(channel.lookup_names[0])

    async def assemble(self, channel: Channel, settings: EffectiveSettings) -> list[StreamCandidate]:
        """Static links first, then the cache-resolved link; order is preserved."""
        streams: list[StreamCandidate] = []

        if channel.static_url:
            streams.append(self._proxy_or_direct(channel, channel.static_url, channel.name, settings))

        if channel.static_url2:
            streams.append(self._proxy_or_direct(channel, channel.static_url2, f"{channel.name} (HD)", settings))

        if channel.static_url_d:
            streams.append(self._tv_proxy_or_direct(channel.static_url_d, f"{channel.name} (D)", settings))

        # The raw resolved link is not playable without the TV proxy
        if settings.tv_proxy_url:
            try:
                resolved = await self._dynamic_link(channel)
            except Exception as e:
                logger.error(f"Dynamic link lookup failed for {channel.name}: {e}")
                resolved = None
            if resolved:
                streams.append(StreamCandidate(
                    url=tv_proxy_url(settings.tv_proxy_url, resolved),
                    title=f"{channel.name} (Vavoo)",
                    source_label=TV_LABEL,
                    proxied=True,
                ))

        logger.info(f"Assembled {len(streams)} streams for channel {channel.id}")
        return streams
