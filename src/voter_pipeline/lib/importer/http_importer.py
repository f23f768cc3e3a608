"""Row importer that ships chunks to a running voter-pipeline server over HTTP."""

import httpx
from loguru import logger

from voter_pipeline.lib.importer.types import ChunkTransportError, ImportBatchResult

DEFAULT_TIMEOUT = 60.0


class HttpRowImporter:
    """Posts each chunk to ``POST {base_url}/api/v1/imports/voter-versions/{id}/chunks``.

    Transport failures and non-2xx responses raise :class:`ChunkTransportError`
    so the coordinator retries them; a 2xx body with ``success: false`` is
    returned as-is and retried by the coordinator as an application failure.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_prefix: str = "/api/v1",
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_prefix = api_prefix
        self._timeout = timeout
        self._client = client

    def chunk_url(self, scope_ref: object) -> str:
        return f"{self._base_url}{self._api_prefix}/imports/voter-versions/{scope_ref}/chunks"

    async def import_chunk(
        self,
        scope_ref: object,
        header_map: dict[str, int],
        rows: list[list[str]],
        start_offset: int,
        skip_precondition_check: bool,
    ) -> ImportBatchResult:
        """Send one chunk and decode the server's batch result.

        Raises:
            ChunkTransportError: On timeout, connection failure, non-2xx
                status or an undecodable body.
        """
        payload = {
            "header_map": header_map,
            "rows": rows,
            "start_offset": start_offset,
            "skip_precondition_check": skip_precondition_check,
        }
        url = self.chunk_url(scope_ref)

        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            logger.warning(f"Chunk upload to {url} timed out")
            msg = "Request timed out"
            raise ChunkTransportError(msg) from e
        except httpx.HTTPStatusError as e:
            logger.warning(f"Chunk upload to {url} returned HTTP {e.response.status_code}")
            msg = f"Server returned HTTP {e.response.status_code}"
            raise ChunkTransportError(msg) from e
        except httpx.HTTPError as e:
            logger.warning(f"Chunk upload to {url} failed: {e}")
            msg = f"Connection failed: {e}"
            raise ChunkTransportError(msg) from e
        except ValueError as e:
            msg = f"Invalid response body: {e}"
            raise ChunkTransportError(msg) from e

        if not isinstance(data, dict):
            msg = f"Invalid response body: expected an object, got {type(data).__name__}"
            raise ChunkTransportError(msg)

        return ImportBatchResult(
            imported_count=int(data.get("imported_count", 0)),
            errors=list(data.get("errors") or []),
            success=bool(data.get("success", True)),
            error=data.get("error"),
        )
