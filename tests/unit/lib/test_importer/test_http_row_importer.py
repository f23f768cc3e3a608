"""Unit tests for the HTTP row importer."""

import json
import uuid

import httpx
import pytest

from voter_pipeline.lib.importer import ChunkTransportError, HttpRowImporter

VERSION_ID = uuid.UUID("6f1c2f9e-0000-4000-8000-000000000001")


def _importer(handler) -> HttpRowImporter:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpRowImporter("http://pipeline.test/", client=client)


class TestHttpRowImporter:
    """Tests for HttpRowImporter.import_chunk()."""

    def test_chunk_url(self) -> None:
        importer = HttpRowImporter("http://pipeline.test/", api_prefix="/api/v1")
        assert importer.chunk_url(VERSION_ID) == (
            f"http://pipeline.test/api/v1/imports/voter-versions/{VERSION_ID}/chunks"
        )

    @pytest.mark.asyncio
    async def test_posts_chunk_and_decodes_result(self) -> None:
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200, json={"success": True, "imported_count": 1, "errors": ["Row 2: Name is required"]}
            )

        result = await _importer(handler).import_chunk(
            VERSION_ID, {"Nama": 0}, [["Ali"], [""]], 250, skip_precondition_check=True
        )

        assert seen["url"].endswith(f"/imports/voter-versions/{VERSION_ID}/chunks")
        assert seen["body"] == {
            "header_map": {"Nama": 0},
            "rows": [["Ali"], [""]],
            "start_offset": 250,
            "skip_precondition_check": True,
        }
        assert result.success is True
        assert result.imported_count == 1
        assert result.errors == ["Row 2: Name is required"]

    @pytest.mark.asyncio
    async def test_application_failure_is_returned(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": False, "error": "Invalid version ID"})

        result = await _importer(handler).import_chunk(VERSION_ID, {"Nama": 0}, [["Ali"]], 0, False)

        assert result.success is False
        assert result.error == "Invalid version ID"
        assert result.imported_count == 0

    @pytest.mark.asyncio
    async def test_server_error_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        with pytest.raises(ChunkTransportError, match="HTTP 502"):
            await _importer(handler).import_chunk(VERSION_ID, {"Nama": 0}, [["Ali"]], 0, False)

    @pytest.mark.asyncio
    async def test_timeout_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ChunkTransportError, match="timed out"):
            await _importer(handler).import_chunk(VERSION_ID, {"Nama": 0}, [["Ali"]], 0, False)

    @pytest.mark.asyncio
    async def test_connection_error_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ChunkTransportError, match="Connection failed"):
            await _importer(handler).import_chunk(VERSION_ID, {"Nama": 0}, [["Ali"]], 0, False)

    @pytest.mark.asyncio
    async def test_invalid_json_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>proxy page</html>")

        with pytest.raises(ChunkTransportError, match="Invalid response body"):
            await _importer(handler).import_chunk(VERSION_ID, {"Nama": 0}, [["Ali"]], 0, False)

    @pytest.mark.asyncio
    async def test_non_object_body_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=["unexpected"])

        with pytest.raises(ChunkTransportError, match="expected an object, got list"):
            await _importer(handler).import_chunk(VERSION_ID, {"Nama": 0}, [["Ali"]], 0, False)
