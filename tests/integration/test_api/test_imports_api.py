"""Integration tests for the voter-version and chunk import endpoints."""

import uuid

import pytest
from httpx import ASGITransport, AsyncClient

from voter_pipeline.lib.importer import REQUIRED_VOTER_COLUMNS, Dataset, HttpRowImporter, run_chunked_import

VERSIONS_URL = "/api/v1/imports/voter-versions"
HEADER_MAP = {"NoKp": 0, "Nama": 1, "alamat": 2}


def _chunk(rows: list[list[str]], **extra: object) -> dict:
    return {"header_map": HEADER_MAP, "rows": rows, **extra}


class TestVoterVersionEndpoints:
    @pytest.mark.asyncio
    async def test_create_and_list(self, client) -> None:
        created = await client.post(VERSIONS_URL, json={"name": "SPR 2026 Q2", "description": "Second quarter"})

        assert created.status_code == 201
        body = created.json()
        assert body["name"] == "SPR 2026 Q2"
        assert body["voter_count"] == 0

        listed = await client.get(VERSIONS_URL)
        assert listed.status_code == 200
        assert [v["name"] for v in listed.json()] == ["SPR 2026 Q2"]

    @pytest.mark.asyncio
    async def test_duplicate_name(self, client, voter_version) -> None:
        response = await client.post(VERSIONS_URL, json={"name": voter_version.name})
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_empty_name(self, client) -> None:
        response = await client.post(VERSIONS_URL, json={"name": ""})
        assert response.status_code == 422


class TestChunkEndpoint:
    @pytest.mark.asyncio
    async def test_imports_chunk(self, client, voter_version) -> None:
        rows = [["900101125555", "Ali", "Jalan Tuaran"], ["900101125556", "", "Jalan Likas"]]

        response = await client.post(f"{VERSIONS_URL}/{voter_version.id}/chunks", json=_chunk(rows))

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "imported_count": 1,
            "errors": ["Row 2: Name is required"],
            "error": None,
        }

        listed = await client.get(VERSIONS_URL)
        assert listed.json()[0]["voter_count"] == 1

    @pytest.mark.asyncio
    async def test_missing_version_reported_in_body(self, client) -> None:
        response = await client.post(f"{VERSIONS_URL}/{uuid.uuid4()}/chunks", json=_chunk([["1", "Ali", ""]]))

        assert response.status_code == 200
        assert response.json()["success"] is False
        assert response.json()["error"] == "Invalid version ID"

    @pytest.mark.asyncio
    async def test_clear_voters(self, client, voter_version) -> None:
        await client.post(f"{VERSIONS_URL}/{voter_version.id}/chunks", json=_chunk([["1", "Ali", ""]]))

        response = await client.delete(f"{VERSIONS_URL}/{voter_version.id}/voters")

        assert response.status_code == 200
        assert response.json() == {"deleted_count": 1}

    @pytest.mark.asyncio
    async def test_clear_unknown_version(self, client) -> None:
        response = await client.delete(f"{VERSIONS_URL}/{uuid.uuid4()}/voters")
        assert response.status_code == 404


class TestRemoteChunkedImport:
    """The coordinator driving HttpRowImporter against the running app."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, app, voter_version, no_sleep) -> None:
        rows = [[f"9001011{i:05d}", f"Pengundi {i}", f"Jalan {i}"] for i in range(120)]
        rows[5][1] = ""
        dataset = Dataset(header=["NoKp", "Nama", "alamat"], rows=rows)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
            importer = HttpRowImporter("http://test", client=http)
            summary = await run_chunked_import(
                importer, voter_version.id, dataset, REQUIRED_VOTER_COLUMNS, sleep=no_sleep
            )
            listed = await http.get(VERSIONS_URL)

        assert summary.imported_count == 119
        assert summary.errors == ["Row 6: Name is required"]
        assert summary.message == "119 imported, 1 errors (first 100 shown)"
        assert listed.json()[0]["voter_count"] == 119
