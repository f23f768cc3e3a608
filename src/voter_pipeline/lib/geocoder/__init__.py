"""Geocoder library — pluggable address geocoding.

Public API:
    - BaseGeocoder: Abstract provider interface
    - GeocodingResult: Result dataclass
    - GeocodeQuality: Quality level enum
    - GeocodingProviderError: Transient provider failure
    - NominatimGeocoder: OpenStreetMap Nominatim provider
    - build_voter_address / build_parliament_address / build_locality_address
    - get_geocoder: Provider factory/registry
    - get_configured_geocoder: Provider built from application settings
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from voter_pipeline.lib.geocoder.address import (
    DEFAULT_REGION_SUFFIX,
    build_locality_address,
    build_parliament_address,
    build_voter_address,
)
from voter_pipeline.lib.geocoder.base import (
    BaseGeocoder,
    GeocodeQuality,
    GeocodingProviderError,
    GeocodingResult,
)
from voter_pipeline.lib.geocoder.nominatim import NominatimGeocoder

if TYPE_CHECKING:
    from voter_pipeline.core.config import Settings

# Provider registry
_PROVIDERS: dict[str, type[BaseGeocoder]] = {
    "nominatim": NominatimGeocoder,
}


def get_available_providers() -> list[str]:
    """Return the names of all registered geocoder providers."""
    return sorted(_PROVIDERS.keys())


def get_geocoder(provider: str = "nominatim", **kwargs: Any) -> BaseGeocoder:
    """Get a geocoder instance by provider name.

    Args:
        provider: Provider name (e.g., "nominatim").
        **kwargs: Additional arguments forwarded to the provider constructor
            (e.g., ``timeout=2.0``).

    Returns:
        An instance of the requested geocoder provider.

    Raises:
        ValueError: If the provider is not registered.
    """
    cls = _PROVIDERS.get(provider)
    if cls is None:
        msg = f"Unknown geocoder provider: {provider!r}. Available: {list(_PROVIDERS.keys())}"
        raise ValueError(msg)
    return cls(**kwargs)


def get_configured_geocoder(settings: Settings) -> BaseGeocoder:
    """Build the provider named by ``settings.geocoder_provider`` with its settings.

    Raises:
        ValueError: If the configured provider is not registered.
    """
    provider_kwargs: dict[str, dict[str, Any]] = {
        "nominatim": {
            "timeout": settings.geocoder_nominatim_timeout,
            "email": settings.geocoder_nominatim_email,
            "user_agent": settings.geocoder_nominatim_user_agent,
            "country_codes": settings.geocoder_country_code_list,
        },
    }
    return get_geocoder(settings.geocoder_provider, **provider_kwargs.get(settings.geocoder_provider, {}))


__all__ = [
    "DEFAULT_REGION_SUFFIX",
    "BaseGeocoder",
    "GeocodeQuality",
    "GeocodingProviderError",
    "GeocodingResult",
    "NominatimGeocoder",
    "build_locality_address",
    "build_parliament_address",
    "build_voter_address",
    "get_available_providers",
    "get_configured_geocoder",
    "get_geocoder",
]
