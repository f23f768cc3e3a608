"""Fixtures for CLI integration tests: a file-backed SQLite database in the environment."""

from collections.abc import Generator
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import Engine, create_engine

from voter_pipeline.models import Base


@pytest.fixture
def sync_engine(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Engine]:
    """Create the schema in a temp database and point the CLI's settings at it."""
    db_path = tmp_path / "cli.db"
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{db_path}")
    monkeypatch.setenv("IMPORT_RETRY_BASE_DELAY", "0")
    monkeypatch.setenv("IMPORT_INTER_CHUNK_DELAY", "0")
    monkeypatch.setenv("GEOCODER_RETRY_BASE_DELAY", "0")

    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def _quiet_logging() -> Generator[None]:
    with patch("voter_pipeline.cli.app.setup_logging"):
        yield
