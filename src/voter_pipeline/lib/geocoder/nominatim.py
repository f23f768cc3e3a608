"""OpenStreetMap Nominatim provider, the default geocoder for Sabah voter rolls.

Talks to the search endpoint (https://nominatim.org/release-docs/develop/api/Search/).
The public instance's usage policy asks for an identifying User-Agent and no
more than one request per second, which is what ``rate_limit_delay`` enforces
inside the job engine.
"""

import httpx
from loguru import logger

from voter_pipeline.lib.geocoder.base import (
    BaseGeocoder,
    GeocodeQuality,
    GeocodingProviderError,
    GeocodingResult,
)

NOMINATIM_API_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_TIMEOUT = 10.0
DEFAULT_USER_AGENT = "voter-pipeline/1.0"

_PROVIDER = "nominatim"


class NominatimGeocoder(BaseGeocoder):
    """Nominatim search, restricted to ``country_codes`` (Malaysia by default)."""

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        email: str = "",
        user_agent: str = DEFAULT_USER_AGENT,
        country_codes: list[str] | None = None,
        base_url: str = NOMINATIM_API_URL,
    ) -> None:
        self._timeout = timeout
        self._email = email
        self._user_agent = user_agent
        self._country_codes = ["my"] if country_codes is None else country_codes
        self._base_url = base_url

    @property
    def provider_name(self) -> str:
        return _PROVIDER

    @property
    def rate_limit_delay(self) -> float:
        return 1.0

    def _query_params(self, address: str) -> dict[str, str | int]:
        params: dict[str, str | int] = {"q": address, "format": "json", "limit": 1}
        if self._country_codes:
            params["countrycodes"] = ",".join(self._country_codes)
        if self._email:
            params["email"] = self._email
        return params

    async def geocode(self, address: str) -> GeocodingResult | None:
        """Look up one address; the address itself never reaches the logs."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.get(
                    self._base_url,
                    params=self._query_params(address),
                    headers={"User-Agent": self._user_agent},
                )
                response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.warning("Nominatim request timed out (address redacted)")
            raise GeocodingProviderError(_PROVIDER, "Geocoding request timed out") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"Nominatim answered HTTP {status}")
            raise GeocodingProviderError(_PROVIDER, f"Provider returned HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            logger.warning(f"Nominatim unreachable: {type(e).__name__}")
            raise GeocodingProviderError(_PROVIDER, "Connection to geocoding provider failed") from e
        except ValueError as e:
            raise GeocodingProviderError(_PROVIDER, f"Invalid JSON response: {e}") from e

        return self._parse_response(data)

    def _parse_response(self, data: list[dict]) -> GeocodingResult | None:
        """Take the top hit; Nominatim's ``importance`` doubles as the confidence score."""
        if not data:
            return None

        top = data[0]
        try:
            latitude = float(top["lat"])
            longitude = float(top["lon"])
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Unreadable Nominatim hit: {e!r}")
            raise GeocodingProviderError(_PROVIDER, f"Failed to parse response: {e}") from e

        confidence = min(max(float(top.get("importance") or 0.0), 0.0), 1.0)
        return GeocodingResult(
            latitude=latitude,
            longitude=longitude,
            confidence_score=confidence,
            matched_address=top.get("display_name"),
            quality=self._map_quality(confidence),
        )

    @staticmethod
    def _map_quality(importance: float) -> GeocodeQuality:
        if importance >= 0.8:
            return GeocodeQuality.EXACT
        if importance >= 0.5:
            return GeocodeQuality.INTERPOLATED
        return GeocodeQuality.APPROXIMATE
