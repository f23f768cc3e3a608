"""ORM model registry — import all models so Alembic autogenerate discovers them."""

from voter_pipeline.models.base import Base
from voter_pipeline.models.geocoding_job import GeocodingJob, GeocodingJobStatus, GeocodingScope, ScopeKind
from voter_pipeline.models.reference_data import Locality, Parliament
from voter_pipeline.models.voter import Voter, VoterVersion

__all__ = [
    "Base",
    "GeocodingJob",
    "GeocodingJobStatus",
    "GeocodingScope",
    "Locality",
    "Parliament",
    "ScopeKind",
    "Voter",
    "VoterVersion",
]
