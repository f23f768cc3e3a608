"""Import CLI commands for voter-roll versions and voter files."""

import asyncio
import uuid
from pathlib import Path

import typer

import_app = typer.Typer()


def _parse_version_id(version_id: str) -> uuid.UUID:
    try:
        return uuid.UUID(version_id)
    except ValueError as e:
        typer.echo(f"Error: invalid version id {version_id!r}", err=True)
        raise typer.Exit(code=1) from e


@import_app.command("create-version")
def create_version_cmd(
    name: str = typer.Argument(..., help="Version name, e.g. 'SPR 2026 Q1'"),
    description: str | None = typer.Option(None, "--description", help="Free-text description"),
) -> None:
    """Create a voter-roll version to import into."""
    asyncio.run(_create_version(name, description))


async def _create_version(name: str, description: str | None) -> None:
    from voter_pipeline.core.config import get_settings
    from voter_pipeline.core.database import dispose_engine, init_engine, open_session
    from voter_pipeline.services.import_service import create_voter_version

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with open_session() as session:
            try:
                version = await create_voter_version(session, name=name, description=description)
            except ValueError as e:
                typer.echo(f"Error: {e}", err=True)
                raise typer.Exit(code=1) from e
            typer.echo(f"Voter version created: {version.id}")
    finally:
        await dispose_engine()


@import_app.command("voters")
def import_voters(
    file: Path = typer.Argument(..., help="Path to SPR voter CSV file", exists=True, dir_okay=False),  # noqa: B008
    version_id: str = typer.Option(..., "--version-id", help="Target voter version UUID"),
    api_url: str | None = typer.Option(
        None, "--api-url", help="Upload chunks to a running server instead of the local database"
    ),
    chunk_size: int | None = typer.Option(None, "--chunk-size", min=1, help="Rows per chunk"),
) -> None:
    """Import a voter file chunk by chunk with retries and live progress."""
    vid = _parse_version_id(version_id)
    asyncio.run(_import_voters(file, vid, api_url, chunk_size))


async def _import_voters(file_path: Path, version_id: uuid.UUID, api_url: str | None, chunk_size: int | None) -> None:
    """Async implementation of voter import."""
    from tqdm import tqdm

    from voter_pipeline.core.config import get_settings
    from voter_pipeline.core.database import dispose_engine, init_engine, open_session
    from voter_pipeline.lib.importer import (
        REQUIRED_VOTER_COLUMNS,
        ChunkedImportConfig,
        HttpRowImporter,
        ImportProgress,
        ImportValidationError,
        read_dataset,
        run_chunked_import,
    )
    from voter_pipeline.services.import_service import VoterRowImporter

    settings = get_settings()
    config = ChunkedImportConfig(
        chunk_size=chunk_size or settings.import_chunk_size,
        max_attempts=settings.import_max_attempts,
        retry_base_delay=settings.import_retry_base_delay,
        inter_chunk_delay=settings.import_inter_chunk_delay,
        max_errors=settings.import_max_errors,
    )

    try:
        dataset = read_dataset(file_path)
    except ImportValidationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    typer.echo(f"Importing {dataset.total_rows} rows from {file_path.name} into version {version_id}")

    with tqdm(total=dataset.total_rows, unit="rows", desc="Importing") as bar:

        def on_progress(progress: ImportProgress) -> None:
            bar.update(progress.processed_rows - bar.n)
            bar.set_postfix(chunk=f"{progress.chunk_number}/{progress.chunk_count}")

        try:
            if api_url:
                importer = HttpRowImporter(api_url, api_prefix=settings.api_v1_prefix)
                summary = await run_chunked_import(
                    importer, version_id, dataset, REQUIRED_VOTER_COLUMNS, config=config, on_progress=on_progress
                )
            else:
                init_engine(settings.database_url, schema=settings.database_schema)
                try:
                    async with open_session() as session:
                        summary = await run_chunked_import(
                            VoterRowImporter(session),
                            version_id,
                            dataset,
                            REQUIRED_VOTER_COLUMNS,
                            config=config,
                            on_progress=on_progress,
                        )
                finally:
                    await dispose_engine()
        except ImportValidationError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(code=1) from e

    typer.echo(f"\nImport finished: {summary.message}")
    typer.echo(f"  Total rows:     {summary.total_rows}")
    typer.echo(f"  Imported:       {summary.imported_count}")
    typer.echo(f"  Chunks:         {summary.chunk_count} ({summary.failed_chunks} failed)")
    for error in summary.errors:
        typer.echo(f"  - {error}")
    if summary.failed_chunks:
        raise typer.Exit(code=1)


@import_app.command("clear")
def clear_voters_cmd(
    version_id: str = typer.Argument(..., help="Voter version UUID"),
    yes: bool = typer.Option(False, "--yes", help="Skip confirmation"),  # noqa: FBT001
) -> None:
    """Delete every voter in a version ahead of a clean re-import."""
    vid = _parse_version_id(version_id)
    if not yes:
        typer.confirm(f"Delete all voters in version {vid}?", abort=True)
    asyncio.run(_clear_voters(vid))


async def _clear_voters(version_id: uuid.UUID) -> None:
    from voter_pipeline.core.config import get_settings
    from voter_pipeline.core.database import dispose_engine, init_engine, open_session
    from voter_pipeline.services.import_service import clear_version_voters

    settings = get_settings()
    init_engine(settings.database_url, schema=settings.database_schema)

    try:
        async with open_session() as session:
            try:
                deleted = await clear_version_voters(session, version_id)
            except ValueError as e:
                typer.echo(f"Error: {e}", err=True)
                raise typer.Exit(code=1) from e
            typer.echo(f"Deleted {deleted} voters from version {version_id}")
    finally:
        await dispose_engine()
