"""
Decoder for the opaque configuration segment carried in addon URLs.

Clients encode their settings in several ways (raw JSON, URL-encoded JSON,
base64 JSON with or without padding). Decoding is an ordered pipeline of
pure stages; the first stage producing a non-empty mapping wins and a total
failure yields an empty dict.
"""
import base64
import binascii
import json
import logging
import re
from typing import Any, Callable, Iterable, Optional
from urllib.parse import unquote

logger = logging.getLogger(__name__)

# Shortest segment that can carry a configuration
MIN_CONFIG_LENGTH = 11

# First path segments that are routes, never configuration
RESERVED_PREFIXES = ("stream", "meta", "manifest", "catalog", "public")

BASE64_JSON_PREFIX = "eyJ"  # base64 of '{"'
BASE64_PATTERN = re.compile(r"^[A-Za-z0-9+/_=-]+$")
BRACED_PATTERN = re.compile(r"({.*})", re.DOTALL)

Stage = Callable[[str], Optional[dict[str, Any]]]


def is_config_segment(segment: Optional[str]) -> bool:
    """Whether a path segment should be treated as configuration at all."""
    if not segment or len(segment) < MIN_CONFIG_LENGTH:
        return False
    if segment in ("undefined", "null"):
        return False
    return not segment.startswith(RESERVED_PREFIXES)


def _as_mapping(text: str) -> Optional[dict[str, Any]]:
    try:
        parsed = json.loads(text)
    except (ValueError, TypeError):
        return None
    if isinstance(parsed, dict):
        return parsed
    return None


def parse_json(raw: str) -> Optional[dict[str, Any]]:
    """Stage 1: the segment is already JSON."""
    return _as_mapping(raw)


def parse_percent_encoded(raw: str) -> Optional[dict[str, Any]]:
    """Stage 2: URL-encoded JSON."""
    if "%" not in raw:
        return None
    return _as_mapping(unquote(raw))


def _fix_padding(value: str) -> str:
    fixed = value.replace("%3D", "=").rstrip("=")
    return fixed + "=" * (-len(fixed) % 4)


def parse_base64(raw: str) -> Optional[dict[str, Any]]:
    """
    Stage 3: base64 JSON.

    Both the standard and the URL-safe alphabet are accepted, and padding
    is normalized first. The decoded text is parsed as a whole; only
    if that fails is the outermost brace-delimited substring tried.
    """
    candidate = unquote(raw) if "%" in raw else raw
    if not (candidate.startswith(BASE64_JSON_PREFIX) or BASE64_PATTERN.match(candidate)):
        return None

    try:
        # altchars maps the URL-safe "-" and "_" onto "+" and "/"
        decoded = base64.b64decode(_fix_padding(candidate), altchars=b"-_").decode("utf-8", errors="replace")
    except (binascii.Error, ValueError) as e:
        logger.debug(f"Base64 decoding failed: {e}")
        return None

    if "{" not in decoded or "}" not in decoded:
        return None

    parsed = _as_mapping(decoded)
    if parsed is not None:
        return parsed

    match = BRACED_PATTERN.search(decoded)
    if match:
        return _as_mapping(match.group(1))
    return None


DEFAULT_STAGES: tuple[Stage, ...] = (parse_json, parse_percent_encoded, parse_base64)


class ConfigDecoder:
    """Runs the decode stages in order and returns the first usable result."""

    def __init__(self, stages: Iterable[Stage] = DEFAULT_STAGES):
        self.stages = tuple(stages)

    def decode(self, raw: Optional[str]) -> dict[str, Any]:
        if not raw or raw in ("undefined", "null"):
            return {}

        for stage in self.stages:
            try:
                result = stage(raw)
            except Exception as e:
                logger.debug(f"Config stage {stage.__name__} raised: {e}")
                continue
            if result:
                logger.debug(f"Configuration decoded by {stage.__name__}")
                return result

        logger.debug(f"All config decoding stages failed for segment of length {len(raw)}")
        return {}

    def decode_segment(self, segment: Optional[str]) -> dict[str, Any]:
        """Decode a URL path segment, skipping route names and short strings."""
        if not is_config_segment(segment):
            return {}
        return self.decode(segment)
