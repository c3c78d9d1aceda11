"""
Content identifier and stream candidate models.
"""
from enum import Enum
from typing import Any, Optional
from urllib.parse import unquote

from pydantic import BaseModel, ConfigDict, model_validator


class ContentKind(str, Enum):
    """Source namespace of a requested content id."""
    IMDB = "imdb"
    TMDB = "tmdb"
    KITSU = "kitsu"
    MAL = "mal"
    TV = "tv"


MOVIE_KINDS = (ContentKind.IMDB, ContentKind.TMDB)
ANIME_KINDS = (ContentKind.KITSU, ContentKind.MAL)


class ContentId(BaseModel):
    """
    Parsed Stremio content id.

    Imdb/Tmdb ids split on ':' into id[:season]:episode. A season never
    appears without an episode.
    """

    model_config = ConfigDict(frozen=True)

    kind: ContentKind
    id: str
    season: Optional[int] = None
    episode: Optional[int] = None
    raw: str

    @model_validator(mode="after")
    def _season_needs_episode(self):
        if self.season is not None and self.episode is None:
            raise ValueError("season given without episode")
        return self

    @property
    def is_movie(self) -> bool:
        return self.season is None and self.episode is None

    @property
    def is_anime(self) -> bool:
        return self.kind in ANIME_KINDS

    @classmethod
    def parse(cls, raw: str) -> Optional["ContentId"]:
        """Parse a raw id such as ``tt0111161:1:2`` or ``kitsu:42``; None if unknown."""
        if not raw:
            return None

        if raw.startswith("tv:") or raw.startswith("tv%3A") or "%3A" in raw:
            decoded = unquote(raw)
            if decoded.startswith("tv:"):
                channel_id = decoded[len("tv:"):]
                if channel_id:
                    return cls(kind=ContentKind.TV, id=channel_id, raw=raw)
                return None
            raw = decoded

        if raw.startswith("tt"):
            kind, body = ContentKind.IMDB, raw
        elif raw.startswith("tmdb:"):
            kind, body = ContentKind.TMDB, raw[len("tmdb:"):]
        elif raw.startswith("kitsu:"):
            return cls._parse_anime(ContentKind.KITSU, raw, raw[len("kitsu:"):])
        elif raw.startswith("mal:"):
            return cls._parse_anime(ContentKind.MAL, raw, raw[len("mal:"):])
        else:
            return None

        parts = body.split(":")
        try:
            if len(parts) == 1:
                season, episode = None, None
            elif len(parts) == 2:
                season, episode = None, int(parts[1])
            elif len(parts) == 3:
                season, episode = int(parts[1]), int(parts[2])
            else:
                return None
        except ValueError:
            return None

        if not parts[0]:
            return None
        return cls(kind=kind, id=parts[0], season=season, episode=episode, raw=raw)

    @classmethod
    def _parse_anime(cls, kind: ContentKind, raw: str, body: str) -> Optional["ContentId"]:
        parts = body.split(":")
        if not parts[0]:
            return None
        episode = None
        if len(parts) > 1 and parts[-1].isdigit():
            episode = int(parts[-1])
        return cls(kind=kind, id=parts[0], episode=episode, raw=raw)


class StreamCandidate(BaseModel):
    """One playable stream. Immutable once built; lists are only filtered or reordered."""

    model_config = ConfigDict(frozen=True)

    url: str
    title: str
    source_label: str = ""
    proxied: bool = False
    headers: Optional[dict[str, str]] = None
    not_web_ready: bool = False

    def labelled(self, label: str) -> "StreamCandidate":
        return self.model_copy(update={"source_label": label})

    def to_stremio(self) -> dict[str, Any]:
        """Serialize into the Stremio stream object shape."""
        stream: dict[str, Any] = {
            "name": self.source_label,
            "title": self.title,
            "url": self.url,
        }
        hints: dict[str, Any] = {}
        if self.not_web_ready:
            hints["notWebReady"] = True
        if self.headers:
            hints["headers"] = dict(self.headers)
        if hints:
            stream["behaviorHints"] = hints
        return stream
