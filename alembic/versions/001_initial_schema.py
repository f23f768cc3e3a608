"""Initial schema: voter versions, voters, reference data, geocoding jobs.

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_ACTIVE_STATUS_SQL = "status IN ('pending', 'running', 'paused')"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _coordinates() -> list[sa.Column]:
    return [
        sa.Column("lat", sa.Float, nullable=True),
        sa.Column("lng", sa.Float, nullable=True),
        sa.Column("geocoded_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "voter_versions",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_voter_versions_created_at", "voter_versions", ["created_at"])

    op.create_table(
        "voters",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column(
            "version_id", sa.Uuid, sa.ForeignKey("voter_versions.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("row_key", sa.String(50), nullable=False),
        sa.Column("no_siri", sa.Integer, nullable=True),
        sa.Column("no_kp", sa.String(20), nullable=True),
        sa.Column("no_kp_lama", sa.String(20), nullable=True),
        sa.Column("nama", sa.String(200), nullable=False),
        sa.Column("no_hp", sa.String(20), nullable=True),
        sa.Column("jantina", sa.String(10), nullable=True),
        sa.Column("tarikh_lahir", sa.Date, nullable=True),
        sa.Column("bangsa", sa.String(50), nullable=True),
        sa.Column("agama", sa.String(50), nullable=True),
        sa.Column("kategori_kaum", sa.String(50), nullable=True),
        sa.Column("no_rumah", sa.String(50), nullable=True),
        sa.Column("alamat", sa.Text, nullable=True),
        sa.Column("poskod", sa.String(10), nullable=True),
        sa.Column("daerah", sa.String(100), nullable=True),
        sa.Column("kod_lokaliti", sa.String(50), nullable=True),
        sa.Column("nama_parlimen", sa.String(100), nullable=True),
        sa.Column("nama_dun", sa.String(100), nullable=True),
        sa.Column("nama_pdm", sa.String(100), nullable=True),
        sa.Column("nama_lokaliti", sa.String(100), nullable=True),
        sa.Column("kategori_undi", sa.String(50), nullable=True),
        sa.Column("nama_tm", sa.String(200), nullable=True),
        sa.Column("masa_undi", sa.String(50), nullable=True),
        sa.Column("saluran", sa.Integer, nullable=True),
        *_coordinates(),
        *_timestamps(),
        sa.UniqueConstraint("version_id", "row_key", name="uq_voters_version_row_key"),
    )
    op.create_index("ix_voters_version_id", "voters", ["version_id"])
    op.create_index("ix_voters_no_kp", "voters", ["no_kp"])
    op.create_index("ix_voters_created_at", "voters", ["created_at"])

    op.create_table(
        "parliaments",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("code", sa.String(20), nullable=True, unique=True),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        *_coordinates(),
        *_timestamps(),
    )
    op.create_index("ix_parliaments_created_at", "parliaments", ["created_at"])

    op.create_table(
        "localities",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("code", sa.String(50), nullable=True),
        sa.Column("name", sa.String(200), nullable=True),
        sa.Column(
            "parliament_id", sa.Uuid, sa.ForeignKey("parliaments.id", ondelete="SET NULL"), nullable=True
        ),
        *_coordinates(),
        *_timestamps(),
    )
    op.create_index("ix_localities_code", "localities", ["code"])
    op.create_index("ix_localities_created_at", "localities", ["created_at"])

    op.create_table(
        "geocoding_jobs",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("scope_kind", sa.String(20), nullable=False),
        sa.Column("scope_ref", sa.Uuid, nullable=True),
        sa.Column("scope_key", sa.String(80), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("force_regeocode", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("total_records", sa.Integer, nullable=False, server_default="0"),
        sa.Column("processed_records", sa.Integer, nullable=False, server_default="0"),
        sa.Column("geocoded_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("skipped_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("run_token", sa.Uuid, nullable=True),
        sa.Column("created_by", sa.Uuid, nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "processed_records = geocoded_count + failed_count + skipped_count",
            name="ck_geocoding_jobs_counters_sum",
        ),
        sa.CheckConstraint("processed_records <= total_records", name="ck_geocoding_jobs_processed_le_total"),
    )
    op.create_index("ix_geocoding_jobs_scope_key", "geocoding_jobs", ["scope_key"])
    op.create_index("ix_geocoding_jobs_status", "geocoding_jobs", ["status"])
    op.create_index("ix_geocoding_jobs_created_at", "geocoding_jobs", ["created_at"])
    op.create_index(
        "uq_geocoding_jobs_active_scope",
        "geocoding_jobs",
        ["scope_key"],
        unique=True,
        postgresql_where=sa.text(_ACTIVE_STATUS_SQL),
        sqlite_where=sa.text(_ACTIVE_STATUS_SQL),
    )


def downgrade() -> None:
    op.drop_index("uq_geocoding_jobs_active_scope", table_name="geocoding_jobs")
    op.drop_table("geocoding_jobs")
    op.drop_table("localities")
    op.drop_table("parliaments")
    op.drop_table("voters")
    op.drop_table("voter_versions")
