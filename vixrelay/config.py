"""
Configuration management for the vixrelay addon.
Uses pydantic-settings for environment variable loading.

Environment values are only the fallback layer: per-request settings decoded
from the URL always win when they carry the key (see EffectiveSettings).
"""
from functools import lru_cache
from typing import Any, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    app_name: str = "StreamViX"
    app_version: str = "4.0.1"
    debug: bool = False

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 7860

    # CORS Configuration
    cors_origins: list[str] = ["*"]

    # Rate Limiting
    stream_rate_limit_per_minute: int = 120

    # Proxy defaults (MFP_URL / MFP_PSW / TV_PROXY_URL)
    mfp_url: Optional[str] = None
    mfp_psw: Optional[str] = None
    tv_proxy_url: Optional[str] = None

    # Provider defaults
    tmdb_api_key: Optional[str] = None
    animeunity_enabled: Optional[str] = None
    animesaturn_enabled: Optional[str] = None
    vixsrc_extractor_url: Optional[str] = None
    animeunity_extractor_url: Optional[str] = None
    animesaturn_extractor_url: Optional[str] = None
    provider_timeout_seconds: float = 20.0

    # Static data files
    channels_file: str = "config/tv_channels.json"
    addon_config_file: str = "addon-config.json"

    # Channel link cache / external resolver
    channel_cache_path: str = "cache/vavoo_cache.json"
    resolver_script: str = "vavoo_resolver.py"
    resolver_python: str = "python3"
    resolver_single_timeout: float = 5.0
    resolver_dump_timeout: float = 30.0
    resolver_build_timeout: float = 120.0
    channel_cache_max_age_hours: float = 12
    channel_refresh_interval_hours: float = 12
    channel_refresh_startup_delay: float = 2.0

    # Pydantic V2 configuration
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def _is_truthy_flag(value: Any) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() in ("on", "true", "1", "yes")


class EffectiveSettings:
    """
    Read-only view combining a request's settings snapshot with the
    environment defaults.

    Keys present in the snapshot always win; the environment is consulted
    only when the key is absent or empty.
    """

    PROVIDER_FLAGS = {
        "animeunity": ("animeunityEnabled", "animeunity_enabled"),
        "animesaturn": ("animesaturnEnabled", "animesaturn_enabled"),
    }

    def __init__(self, snapshot: dict[str, Any], env: Optional[Settings] = None):
        self.snapshot = snapshot
        self.env = env or get_settings()

    def get(self, key: str, default: Any = None) -> Any:
        return self.snapshot.get(key, default)

    def _pick(self, *keys: str, env_attr: Optional[str] = None) -> Optional[str]:
        for key in keys:
            value = self.snapshot.get(key)
            if value:
                return str(value)
        if env_attr:
            return getattr(self.env, env_attr) or None
        return None

    @property
    def proxy_url(self) -> Optional[str]:
        return self._pick("mediaFlowProxyUrl", "mfpProxyUrl", env_attr="mfp_url")

    @property
    def proxy_password(self) -> Optional[str]:
        return self._pick("mediaFlowProxyPassword", "mfpProxyPassword", env_attr="mfp_psw")

    @property
    def tv_proxy_url(self) -> Optional[str]:
        return self._pick("tvProxyUrl", env_attr="tv_proxy_url")

    @property
    def tmdb_api_key(self) -> Optional[str]:
        return self._pick("tmdbApiKey", env_attr="tmdb_api_key")

    @property
    def both_links(self) -> bool:
        return self.snapshot.get("bothLinks") == "on"

    @property
    def live_tv_enabled(self) -> bool:
        return str(self.snapshot.get("enableLiveTV", "on")).lower() not in ("off", "false")

    def provider_enabled(self, name: str) -> bool:
        """A provider is on when either its settings flag or its env flag says so."""
        if name not in self.PROVIDER_FLAGS:
            return False
        key, env_attr = self.PROVIDER_FLAGS[name]
        if self.snapshot.get(key) == "on":
            return True
        return _is_truthy_flag(getattr(self.env, env_attr))


def initial_addon_config() -> dict[str, Any]:
    """
    Seed values for the shared config store.

    Environment proxies are not copied in; EffectiveSettings falls back to
    them only for keys the request settings lack.
    """
    return {"enableLiveTV": "on"}
