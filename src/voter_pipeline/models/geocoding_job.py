"""GeocodingJob model — one row per batch geocoding run against one scope."""

import enum
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from voter_pipeline.models.base import Base, TimestampMixin, UUIDMixin


class ScopeKind(enum.StrEnum):
    """Which record source a job scans."""

    VOTER_VERSION = "voter_version"
    PARLIAMENT_SET = "parliament_set"
    LOCALITY_SET = "locality_set"


class GeocodingJobStatus(enum.StrEnum):
    """Lifecycle state of a geocoding job.

    pending -> running <-> paused, then exactly one of completed / failed.
    """

    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        match self:
            case GeocodingJobStatus.PENDING | GeocodingJobStatus.RUNNING | GeocodingJobStatus.PAUSED:
                return True
            case GeocodingJobStatus.COMPLETED | GeocodingJobStatus.FAILED:
                return False


ACTIVE_STATUSES: tuple[GeocodingJobStatus, ...] = tuple(s for s in GeocodingJobStatus if s.is_active)

_ACTIVE_STATUS_SQL = "status IN ({})".format(", ".join(f"'{s.value}'" for s in ACTIVE_STATUSES))


@dataclass(frozen=True)
class GeocodingScope:
    """The bounded record set a job runs over.

    Voter-roll versions are identified by ``ref``; parliaments and localities
    are global sets and carry no reference.
    """

    kind: ScopeKind
    ref: uuid.UUID | None = None

    def __post_init__(self) -> None:
        match self.kind:
            case ScopeKind.VOTER_VERSION:
                if self.ref is None:
                    msg = "voter_version scope requires a version id"
                    raise ValueError(msg)
            case ScopeKind.PARLIAMENT_SET | ScopeKind.LOCALITY_SET:
                if self.ref is not None:
                    msg = f"{self.kind.value} scope does not take a reference"
                    raise ValueError(msg)

    @property
    def key(self) -> str:
        """Canonical identity used for the one-active-job-per-scope rule."""
        if self.ref is None:
            return self.kind.value
        return f"{self.kind.value}:{self.ref}"

    def __str__(self) -> str:
        return self.key


class GeocodingJob(Base, UUIDMixin, TimestampMixin):
    """Tracks a batch geocoding run: status, counters, and the resume checkpoint.

    ``processed_records`` is the checkpoint: resuming skips that many records of
    the scope's stable ordering.  ``run_token`` names the worker currently
    allowed to write counters.
    """

    __tablename__ = "geocoding_jobs"
    __table_args__ = (
        CheckConstraint(
            "processed_records = geocoded_count + failed_count + skipped_count",
            name="ck_geocoding_jobs_counters_sum",
        ),
        CheckConstraint("processed_records <= total_records", name="ck_geocoding_jobs_processed_le_total"),
        Index(
            "uq_geocoding_jobs_active_scope",
            "scope_key",
            unique=True,
            postgresql_where=text(_ACTIVE_STATUS_SQL),
            sqlite_where=text(_ACTIVE_STATUS_SQL),
        ),
    )

    scope_kind: Mapped[ScopeKind] = mapped_column(
        Enum(ScopeKind, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
    )
    scope_ref: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    scope_key: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    status: Mapped[GeocodingJobStatus] = mapped_column(
        Enum(GeocodingJobStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=GeocodingJobStatus.PENDING,
        server_default=GeocodingJobStatus.PENDING.value,
        index=True,
    )
    force_regeocode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Progress counters, written together
    total_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_records: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    geocoded_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    run_token: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # Metadata
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def scope(self) -> GeocodingScope:
        return GeocodingScope(kind=ScopeKind(self.scope_kind), ref=self.scope_ref)

    @property
    def progress_percent(self) -> int:
        if not self.total_records:
            return 100 if self.status == GeocodingJobStatus.COMPLETED else 0
        return self.processed_records * 100 // self.total_records
