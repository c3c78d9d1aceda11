"""
Addon manifest.
The base manifest can be rebranded through an optional addon-config.json.
"""
import copy
import json
import logging
from pathlib import Path
from typing import Optional

from vixrelay.services.channels import GENRE_MAP

logger = logging.getLogger(__name__)

CONFIG_FIELDS = [
    ("tmdbApiKey", "TMDB API Key", "text"),
    ("mediaFlowProxyUrl", "MediaFlow Proxy URL", "text"),
    ("mediaFlowProxyPassword", "MediaFlow Proxy Password", "text"),
    ("bothLinks", "Show both links (Proxy and Direct)", "checkbox"),
    ("animeunityEnabled", "Enable AnimeUnity", "checkbox"),
    ("animesaturnEnabled", "Enable AnimeSaturn", "checkbox"),
    ("enableLiveTV", "Enable Live TV", "checkbox"),
    ("mfpProxyUrl", "MFP Proxy URL", "text"),
    ("mfpProxyPassword", "MFP Proxy Password", "text"),
    ("tvProxyUrl", "TV Proxy URL", "text"),
]

BASE_MANIFEST = {
    "id": "org.stremio.vixcloud",
    "version": "4.0.1",
    "name": "StreamViX",
    "description": "Addon for Vixsrc, AnimeUnity streams and Live TV.",
    "icon": "/public/icon.png",
    "background": "/public/backround.png",
    "types": ["movie", "series", "tv"],
    "idPrefixes": ["tt", "kitsu", "tv"],
    "catalogs": [
        {
            "type": "tv",
            "id": "tv-channels",
            "name": "StreamViX TV",
            "extra": [
                {"name": "genre", "isRequired": False, "options": list(GENRE_MAP)},
            ],
        }
    ],
    "resources": ["stream", "catalog", "meta"],
    "behaviorHints": {"configurable": True},
    "config": [{"key": key, "title": title, "type": kind} for key, title, kind in CONFIG_FIELDS],
}

# addon-config.json key -> manifest key
OVERRIDES = {
    "addonId": "id",
    "addonName": "name",
    "addonDescription": "description",
    "addonVersion": "version",
    "addonLogo": "logo",
}


def load_manifest(config_path: Optional[str | Path] = None) -> dict:
    """Base manifest with any overrides from addon-config.json applied."""
    manifest = copy.deepcopy(BASE_MANIFEST)
    if not config_path:
        return manifest

    config_path = Path(config_path)
    if not config_path.exists():
        return manifest

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            custom = json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Error loading custom configuration: {e}")
        return manifest
    if not isinstance(custom, dict):
        logger.error(f"Custom configuration in {config_path} is not an object, ignoring it")
        return manifest

    for source_key, manifest_key in OVERRIDES.items():
        if custom.get(source_key):
            manifest[manifest_key] = custom[source_key]
    if custom.get("addonLogo"):
        manifest["icon"] = custom["addonLogo"]
    return manifest
