import logging
from typing import List, Optional, Sequence

from .atmos import AtmosEnergyProvider
from .att import ATTProvider
from .base import BillProvider, ProviderError
from .manual import ManualProvider
from .methods import ApiProvider, OAuthProvider, ScrapeProvider
from .smarthub import SmartHubProvider

__all__ = [
    "BillProvider", "ProviderError", "AtmosEnergyProvider", "ATTProvider", "ManualProvider",
    "SmartHubProvider", "ApiProvider", "OAuthProvider", "ScrapeProvider", "PROVIDERS", "get_provider",
    "build_providers",
]

PROVIDERS = {
    "manual": ManualProvider,
    "smarthub": SmartHubProvider,
    "atmos": AtmosEnergyProvider,
    "att": ATTProvider,
    "api": ApiProvider,
    "oauth": OAuthProvider,
    "scrape": ScrapeProvider,
}


def get_provider(provider_type: str, settings: dict, config=None, logger=None) -> Optional[BillProvider]:
    """Factory: return provider instance for given type."""
    cls = PROVIDERS.get((provider_type or "").lower())
    if not cls:
        return None
    return cls(settings, config=config, logger=logger)


def build_providers(config, only: Optional[Sequence[str]] = None, logger=None) -> List[BillProvider]:
    """Instantiate the providers selected by config (or by `only`), in selection order."""
    logger = logger or logging.getLogger("billtracker.providers")
    entries = {e["id"]: e for e in config.provider_entries()}
    providers: List[BillProvider] = []
    for provider_id in config.selected_provider_ids(only):
        entry = entries.get(provider_id)
        if entry is None:
            if provider_id in PROVIDERS:
                # Built-in provider with no settings block; credentials come from the environment
                entry = {"id": provider_id, "type": provider_id}
            else:
                logger.warning(f"Unknown provider {provider_id!r}, skipping")
                continue
        try:
            provider = get_provider(
                entry["type"], entry, config=config, logger=logging.getLogger(f"billtracker.providers.{provider_id}")
            )
        except ValueError as e:
            logger.error(f"Provider {provider_id!r} misconfigured: {e}")
            continue
        if provider is None:
            logger.warning(f"Unknown provider type {entry['type']!r} for {provider_id!r}, skipping")
            continue
        providers.append(provider)
    return providers
