"""Voter-roll models — a versioned electoral roll and its voter rows."""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from voter_pipeline.models.base import Base, TimestampMixin, UUIDMixin


class VoterVersion(Base, UUIDMixin, TimestampMixin):
    """One uploaded edition of the electoral roll (e.g. "SPR 2026 Q1")."""

    __tablename__ = "voter_versions"

    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    voters: Mapped[list["Voter"]] = relationship(
        back_populates="version", cascade="all, delete-orphan", passive_deletes=True
    )


class Voter(Base, UUIDMixin, TimestampMixin):
    """A single voter row belonging to one roll version.

    ``row_key`` identifies the row within its version so that re-importing the
    same file upserts rather than duplicates: the IC number when present,
    otherwise the source row number.
    """

    __tablename__ = "voters"
    __table_args__ = (UniqueConstraint("version_id", "row_key", name="uq_voters_version_row_key"),)

    version_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("voter_versions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    row_key: Mapped[str] = mapped_column(String(50), nullable=False)

    # Identity
    no_siri: Mapped[int | None] = mapped_column(Integer, nullable=True)
    no_kp: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    no_kp_lama: Mapped[str | None] = mapped_column(String(20), nullable=True)
    nama: Mapped[str] = mapped_column(String(200), nullable=False)
    no_hp: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Demographics
    jantina: Mapped[str | None] = mapped_column(String(10), nullable=True)
    tarikh_lahir: Mapped[date | None] = mapped_column(Date, nullable=True)
    bangsa: Mapped[str | None] = mapped_column(String(50), nullable=True)
    agama: Mapped[str | None] = mapped_column(String(50), nullable=True)
    kategori_kaum: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Address
    no_rumah: Mapped[str | None] = mapped_column(String(50), nullable=True)
    alamat: Mapped[str | None] = mapped_column(Text, nullable=True)
    poskod: Mapped[str | None] = mapped_column(String(10), nullable=True)
    daerah: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Electoral geography
    kod_lokaliti: Mapped[str | None] = mapped_column(String(50), nullable=True)
    nama_parlimen: Mapped[str | None] = mapped_column(String(100), nullable=True)
    nama_dun: Mapped[str | None] = mapped_column(String(100), nullable=True)
    nama_pdm: Mapped[str | None] = mapped_column(String(100), nullable=True)
    nama_lokaliti: Mapped[str | None] = mapped_column(String(100), nullable=True)
    kategori_undi: Mapped[str | None] = mapped_column(String(50), nullable=True)
    nama_tm: Mapped[str | None] = mapped_column(String(200), nullable=True)
    masa_undi: Mapped[str | None] = mapped_column(String(50), nullable=True)
    saluran: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Geocoding output
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    geocoded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[VoterVersion] = relationship(back_populates="voters")
