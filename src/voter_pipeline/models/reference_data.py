"""Parliament and locality reference data — the global geocoding scopes."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from voter_pipeline.models.base import Base, TimestampMixin, UUIDMixin


class Parliament(Base, UUIDMixin, TimestampMixin):
    """A parliamentary constituency."""

    __tablename__ = "parliaments"

    code: Mapped[str | None] = mapped_column(String(20), nullable=True, unique=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    geocoded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Locality(Base, UUIDMixin, TimestampMixin):
    """A polling locality (lokaliti), optionally linked to its parliament."""

    __tablename__ = "localities"

    code: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    parliament_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("parliaments.id", ondelete="SET NULL"), nullable=True
    )

    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    geocoded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
