"""
Channel registry.
Loads the live TV channel list and answers catalog and meta lookups.
"""
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from vixrelay.models.channel import Channel

logger = logging.getLogger(__name__)

# Catalog genre (as shown in Stremio) -> internal category
GENRE_MAP = {
    "RAI": "rai",
    "Mediaset": "mediaset",
    "Sky": "sky",
    "Bambini": "kids",
    "News": "news",
    "Sport": "sport",
    "Cinema": "movies",
    "Generali": "general",
    "Documentari": "documentari",
}

# Keyword rules used when a channel declares no category:
# (category, keywords matched in the name, keywords matched in the description)
CATEGORY_KEYWORDS = [
    ("rai", ("rai",), ("rai",)),
    ("mediaset", ("mediaset", "canale 5", "italia", "rete 4"), ("mediaset",)),
    ("sky", ("sky",), ("sky",)),
    ("kids", ("gulp", "yoyo", "boing", "cartoonito"), ()),
    ("news", ("news", "tg", "focus"), ()),
    ("sport", ("sport", "tennis", "eurosport"), ()),
    ("movies", ("cinema", "movie", "warner"), ()),
]


def channel_categories(channel: Channel) -> list[str]:
    """Explicit categories, or ones inferred from the name and description."""
    if channel.categories:
        return list(channel.categories)
    if isinstance(channel.category, list) and channel.category:
        return list(channel.category)
    if isinstance(channel.category, str) and channel.category:
        return [channel.category]

    name = channel.name.lower()
    description = (channel.description or "").lower()
    categories = []
    for category, name_keywords, description_keywords in CATEGORY_KEYWORDS:
        if any(k in name for k in name_keywords) or any(k in description for k in description_keywords):
            categories.append(category)
    return categories or ["general"]


class ChannelRegistry:
    """In-memory list of live TV channels."""

    def __init__(self, channels: Optional[list[Channel]] = None):
        self.channels = channels or []
        self._by_id = {c.id: c for c in self.channels}

    @classmethod
    def from_file(cls, filepath: str | Path) -> "ChannelRegistry":
        """Load tv_channels.json; a missing or broken file gives an empty registry."""
        filepath = Path(filepath)
        if not filepath.exists():
            logger.error(f"Channel file not found: {filepath}")
            return cls()

        try:
            with open(filepath, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read channel file {filepath}: {e}")
            return cls()

        channels = []
        for entry in raw if isinstance(raw, list) else []:
            try:
                channels.append(Channel.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping invalid channel entry {entry.get('id', '?') if isinstance(entry, dict) else entry}: {e}")
        logger.info(f"✅ Loaded {len(channels)} TV channels")
        return cls(channels)

    def __len__(self) -> int:
        return len(self.channels)

    def get(self, channel_id: str) -> Optional[Channel]:
        return self._by_id.get(channel_id)

    def filter_by_genre(self, genre: Optional[str]) -> list[Channel]:
        """Channels in the category behind a catalog genre; unknown genres return all."""
        target = GENRE_MAP.get(genre) if genre else None
        if not target:
            return list(self.channels)
        return [c for c in self.channels if target in channel_categories(c)]

    @staticmethod
    def to_meta_preview(channel: Channel) -> dict:
        """Catalog entry for a channel."""
        data = channel.model_dump(by_alias=True, exclude_none=True)
        poster = channel.poster or channel.logo or ""
        data.update({
            "id": f"tv:{channel.id}",
            "type": "tv",
            "posterShape": "landscape",
            "poster": poster,
            "logo": channel.logo or channel.poster or "",
            "background": channel.background or channel.poster or "",
        })
        # Never leak the raw links through metadata
        for key in ("staticUrl", "staticUrl2", "staticUrlD", "vavooNames"):
            data.pop(key, None)
        return data

    @classmethod
    def to_meta(cls, channel: Channel) -> dict:
        """Full meta object for a channel."""
        genres = channel.category if isinstance(channel.category, list) else [channel.category or "general"]
        meta = cls.to_meta_preview(channel)
        meta.update({
            "genre": genres,
            "genres": genres,
            "year": str(datetime.now().year),
            "imdbRating": None,
            "releaseInfo": "Live TV",
            "country": "IT",
            "language": "it",
        })
        return meta
