"""
Stremio addon endpoints.

The router is mounted twice: at the root and under ``/{config}``. The config
segment itself is consumed by the middleware in main.py, so handlers only
read the merged settings.
"""
import logging
from typing import Optional
from urllib.parse import parse_qs, unquote

from fastapi import APIRouter, Depends, Request

from vixrelay.config import EffectiveSettings, get_settings
from vixrelay.dependencies import get_app_state, get_effective_settings, limiter
from vixrelay.models.media import ContentId, ContentKind, StreamCandidate
from vixrelay.state import AppState

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stremio"])


def _stream_rate_limit() -> str:
    return f"{get_settings().stream_rate_limit_per_minute}/minute"


def _parse_extra(extra: Optional[str]) -> dict[str, str]:
    """Parse a Stremio extra segment like ``genre=News&skip=0``."""
    if not extra:
        return {}
    return {k: v[0] for k, v in parse_qs(unquote(extra)).items() if v}


def _streams_response(streams: list[StreamCandidate]) -> dict:
    return {"streams": [s.to_stremio() for s in streams]}


@router.get("/manifest.json")
async def get_manifest(app_state: AppState = Depends(get_app_state)):
    """Addon manifest."""
    return app_state.manifest


@router.get("/catalog/{type}/{id}.json")
@router.get("/catalog/{type}/{id}/{extra}.json")
async def get_catalog(
    type: str,
    id: str,
    extra: Optional[str] = None,
    app_state: AppState = Depends(get_app_state),
):
    """
    Live TV catalog.

    - **extra**: optional ``genre=<Genre>`` filter
    """
    if type != "tv":
        return {"metas": []}

    genre = _parse_extra(extra).get("genre")
    channels = app_state.registry.filter_by_genre(genre)
    return {"metas": [app_state.registry.to_meta_preview(c) for c in channels]}


@router.get("/meta/{type}/{id}.json")
async def get_meta(type: str, id: str, app_state: AppState = Depends(get_app_state)):
    """Channel details; movie/series metadata is left to other addons."""
    if type != "tv":
        return {"meta": None}

    content_id = ContentId.parse(id)
    channel_id = content_id.id if content_id and content_id.kind == ContentKind.TV else id
    channel = app_state.registry.get(channel_id)
    if not channel:
        return {"meta": None}
    return {"meta": app_state.registry.to_meta(channel)}


@router.get("/stream/{type}/{id}.json")
@limiter.limit(_stream_rate_limit)
async def get_streams(
    request: Request,
    type: str,
    id: str,
    app_state: AppState = Depends(get_app_state),
    settings: EffectiveSettings = Depends(get_effective_settings),
):
    """
    Streams for a movie, series episode, anime episode or TV channel.
    An empty list is a normal answer; failures are only logged.
    """
    try:
        content_id = ContentId.parse(id)

        if type == "tv":
            if not settings.live_tv_enabled:
                return _streams_response([])
            channel_id = content_id.id if content_id and content_id.kind == ContentKind.TV else id
            channel = app_state.registry.get(channel_id)
            if not channel:
                logger.info(f"Unknown TV channel requested: {id}")
                return _streams_response([])
            return _streams_response(await app_state.assembler.assemble(channel, settings))

        if content_id is None or content_id.kind == ContentKind.TV:
            logger.info(f"Unsupported content id: {id}")
            return _streams_response([])

        return _streams_response(await app_state.orchestrator.resolve(content_id, settings))
    except Exception as e:
        logger.error(f"Stream request failed for {type}/{id}: {e}", exc_info=True)
        return _streams_response([])
