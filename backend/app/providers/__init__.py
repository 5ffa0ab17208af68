from __future__ import annotations

from typing import Mapping

from app.providers.base import BaseProvider
from app.providers.geoservice import GeoserviceProvider
from app.providers.pluto import ZolaProvider
from app.providers.zoning_resolution import ZoningResolutionProvider

GEOSERVICE = "geoservice"
ZOLA = "zola"
ZONING_RESOLUTION = "zoning_resolution"


def get_default_providers() -> dict[str, BaseProvider]:
    """Provider registry keyed by source key."""
    providers = [GeoserviceProvider(), ZolaProvider(), ZoningResolutionProvider()]
    return {p.source_key: p for p in providers}


def require_provider(providers: Mapping[str, BaseProvider], key: str) -> BaseProvider:
    provider = providers.get(key)
    if provider is None:
        raise RuntimeError(f"Provider not registered: {key}")
    return provider


__all__ = [
    "BaseProvider",
    "GEOSERVICE",
    "GeoserviceProvider",
    "ZOLA",
    "ZolaProvider",
    "ZONING_RESOLUTION",
    "ZoningResolutionProvider",
    "get_default_providers",
    "require_provider",
]
