"""Shared service container for the addon."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from vixrelay.config import EffectiveSettings, Settings, initial_addon_config
from vixrelay.services.channel_cache import ChannelLinkCache
from vixrelay.services.channel_resolver import ChannelResolver, SubprocessChannelResolver
from vixrelay.services.channels import ChannelRegistry
from vixrelay.services.config_decoder import ConfigDecoder
from vixrelay.services.config_store import ConfigStore
from vixrelay.services.manifest import load_manifest
from vixrelay.services.orchestrator import ProviderOrchestrator
from vixrelay.services.providers import StreamProvider, default_providers
from vixrelay.services.stream_assembler import StreamAssembler


@dataclass
class AppState:
    """Service objects shared by every request, built once per process."""

    settings: Settings
    decoder: ConfigDecoder
    config_store: ConfigStore
    link_cache: ChannelLinkCache
    registry: ChannelRegistry
    orchestrator: ProviderOrchestrator
    assembler: StreamAssembler
    manifest: dict = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        settings: Settings,
        resolver: Optional[ChannelResolver] = None,
        providers: Optional[list[StreamProvider]] = None,
        registry: Optional[ChannelRegistry] = None,
    ) -> "AppState":
        """Wire the default services from settings; any collaborator can be swapped."""
        if resolver is None:
            script = Path(settings.resolver_script).resolve()
            resolver = SubprocessChannelResolver(
                script=script,
                python=settings.resolver_python,
                single_timeout=settings.resolver_single_timeout,
                dump_timeout=settings.resolver_dump_timeout,
                build_timeout=settings.resolver_build_timeout,
                cwd=script.parent,
            )

        link_cache = ChannelLinkCache(
            cache_path=settings.channel_cache_path,
            resolver=resolver,
            max_age_seconds=settings.channel_cache_max_age_hours * 3600,
            refresh_interval_seconds=settings.channel_refresh_interval_hours * 3600,
            startup_delay_seconds=settings.channel_refresh_startup_delay,
        )

        return cls(
            settings=settings,
            decoder=ConfigDecoder(),
            config_store=ConfigStore(initial_addon_config()),
            link_cache=link_cache,
            registry=registry if registry is not None else ChannelRegistry.from_file(settings.channels_file),
            orchestrator=ProviderOrchestrator(
                providers if providers is not None else default_providers(settings),
                timeout=settings.provider_timeout_seconds,
            ),
            assembler=StreamAssembler(link_cache),
            manifest=load_manifest(settings.addon_config_file),
        )

    def effective_settings(self) -> EffectiveSettings:
        """Per-request view: a snapshot of the store over the environment defaults."""
        return EffectiveSettings(self.config_store.snapshot(), self.settings)
