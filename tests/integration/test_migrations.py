"""Alembic migrations against a file-backed SQLite database."""

from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import IntegrityError

from voter_pipeline.models import Base

ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture
def db_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    path = tmp_path / "migrations.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{path}")
    return path


@pytest.fixture
def alembic_config() -> Config:
    config = Config()
    config.set_main_option("script_location", str(ROOT / "alembic"))
    return config


class TestMigrations:
    def test_upgrade_creates_every_model_table(self, db_path: Path, alembic_config: Config) -> None:
        command.upgrade(alembic_config, "head")

        engine = create_engine(f"sqlite:///{db_path}")
        try:
            tables = set(inspect(engine).get_table_names())
        finally:
            engine.dispose()

        assert set(Base.metadata.tables) <= tables
        assert "alembic_version" in tables

    def test_active_scope_index_enforced(self, db_path: Path, alembic_config: Config) -> None:
        command.upgrade(alembic_config, "head")
        insert = text(
            "INSERT INTO geocoding_jobs (id, scope_kind, scope_key, status, force_regeocode, total_records,"
            " processed_records, geocoded_count, failed_count, skipped_count)"
            " VALUES (:id, 'parliament_set', 'parliament_set', :status, 0, 0, 0, 0, 0, 0)"
        )

        engine = create_engine(f"sqlite:///{db_path}")
        try:
            with engine.begin() as conn:
                conn.execute(insert, {"id": "a" * 32, "status": "completed"})
                conn.execute(insert, {"id": "b" * 32, "status": "running"})
            with pytest.raises(IntegrityError), engine.begin() as conn:
                conn.execute(insert, {"id": "c" * 32, "status": "paused"})
        finally:
            engine.dispose()

    def test_downgrade_to_base(self, db_path: Path, alembic_config: Config) -> None:
        command.upgrade(alembic_config, "head")
        command.downgrade(alembic_config, "base")

        engine = create_engine(f"sqlite:///{db_path}")
        try:
            tables = set(inspect(engine).get_table_names())
        finally:
            engine.dispose()

        assert tables <= {"alembic_version"}
