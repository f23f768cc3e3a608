"""Geocoder provider interface and the result and error types the job engine consumes."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum


class GeocodeQuality(StrEnum):
    """How precisely a provider resolved the query, best first."""

    EXACT = "exact"
    INTERPOLATED = "interpolated"
    APPROXIMATE = "approximate"
    NO_MATCH = "no_match"


@dataclass
class GeocodingResult:
    """Coordinates a provider returned for one query string."""

    latitude: float
    longitude: float
    confidence_score: float | None = None
    matched_address: str | None = None
    quality: GeocodeQuality | None = None

    def __post_init__(self) -> None:
        if not -90 <= self.latitude <= 90:
            msg = f"Latitude {self.latitude} is out of range"
            raise ValueError(msg)
        if not -180 <= self.longitude <= 180:
            msg = f"Longitude {self.longitude} is out of range"
            raise ValueError(msg)
        if self.confidence_score is not None and not 0 <= self.confidence_score <= 1:
            msg = f"Confidence {self.confidence_score} is out of range"
            raise ValueError(msg)

    def is_acceptable(self, min_confidence: float = 0.0) -> bool:
        """Whether the job engine should store these coordinates.

        A ``NO_MATCH`` result is never stored. A result without a confidence
        score passes any threshold.
        """
        if self.quality == GeocodeQuality.NO_MATCH:
            return False
        return self.confidence_score is None or self.confidence_score >= min_confidence


class GeocodingProviderError(Exception):
    """The provider could not answer: timeout, HTTP error or connection failure.

    A lookup that simply finds nothing returns ``None`` instead. The job
    engine retries this error and escalates a long run of them.
    """

    def __init__(self, provider_name: str, message: str, status_code: int | None = None) -> None:
        self.provider_name = provider_name
        self.message = message
        self.status_code = status_code
        super().__init__(f"{provider_name}: {message}")


class BaseGeocoder(ABC):
    """A geocoding provider the batch job engine can drive."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Registry name, also recorded in job logs."""

    @property
    def rate_limit_delay(self) -> float:
        """Seconds the engine waits after every request to this provider."""
        return 0.0

    @abstractmethod
    async def geocode(self, address: str) -> GeocodingResult | None:
        """Resolve one query string.

        Returns:
            The best result, or None when the provider has no match.

        Raises:
            GeocodingProviderError: When the provider cannot be reached or errors.
        """
