"""Azure AI Search client for the corporate document index."""

from collections import Counter
from typing import Any

import httpx
import structlog

from novabot.core.exceptions import DocumentIndexUnavailableError, UpstreamTimeoutError
from novabot.core.settings import SearchConfig
from novabot.schemas.document_schema import DocumentChunk

logger = structlog.get_logger()

MIN_CHUNK_LENGTH = 20
SELECT_FIELDS = "Chunk,FileName,Folder"


class DocumentIndexClient:
    """Runs text or vector queries against the search REST API.

    Hits are trimmed to at most ``max_chunks_per_source`` per file and, for
    vector queries, to scores at or above ``min_vector_score``.
    """

    def __init__(
        self,
        config: SearchConfig,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._client = client or httpx.AsyncClient(timeout=config.timeout_seconds)

    @property
    def configured(self) -> bool:
        return self._config.is_configured

    async def aclose(self) -> None:
        await self._client.aclose()

    async def search(
        self,
        query_text: str,
        vector: list[float] | None = None,
        top_k: int | None = None,
    ) -> list[DocumentChunk]:
        """Return up to ``top_k`` chunks, best first."""
        if not self.configured:
            raise DocumentIndexUnavailableError(message="Document index not configured")

        k = min(top_k or self._config.top_k, 12)
        body: dict[str, Any] = {
            "search": query_text if vector is None else "*",
            "select": SELECT_FIELDS,
            "top": k * 4,
        }
        if vector is not None:
            body["vectorQueries"] = [
                {
                    "kind": "vector",
                    "vector": vector,
                    "fields": self._config.vector_field,
                    "k": k * 3,
                }
            ]

        url = (
            f"{self._config.endpoint.rstrip('/')}/indexes/"
            f"{self._config.index_name}/docs/search"
        )
        try:
            response = await self._client.post(
                url,
                params={"api-version": self._config.api_version},
                json=body,
                headers={"api-key": self._config.api_key.get_secret_value()},
                timeout=self._config.timeout_seconds,
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(
                DocumentIndexUnavailableError, self._config.timeout_seconds
            ) from e
        except httpx.HTTPError as e:
            logger.error("Document index unreachable", error=repr(e))
            raise DocumentIndexUnavailableError(message=str(e)) from e

        if not response.is_success:
            logger.error(
                "Document index returned an error status",
                status=response.status_code,
            )
            raise DocumentIndexUnavailableError(
                message="Document index error status",
                upstream_status=response.status_code,
            )

        try:
            hits = response.json().get("value", [])
        except (ValueError, AttributeError) as e:
            raise DocumentIndexUnavailableError(message="Unreadable search response") from e

        chunks = self._select(hits, k, vector_search=vector is not None)
        logger.info(
            "Document search finished",
            mode="vector" if vector is not None else "text",
            received=len(hits),
            selected=len(chunks),
        )
        return chunks

    def _select(
        self, hits: list[dict[str, Any]], k: int, vector_search: bool
    ) -> list[DocumentChunk]:
        per_source: Counter[str] = Counter()
        chunks: list[DocumentChunk] = []
        for hit in hits:
            text = " ".join(str(hit.get("Chunk") or "").split())
            score = float(hit.get("@search.score") or 0.0)
            source = hit.get("FileName") or "(sin nombre)"

            if len(text) < MIN_CHUNK_LENGTH:
                continue
            if vector_search and 0 < score < self._config.min_vector_score:
                continue
            if per_source[source] >= self._config.max_chunks_per_source:
                continue

            per_source[source] += 1
            chunks.append(
                DocumentChunk(
                    source_id=source,
                    text=text,
                    score=score,
                    folder=hit.get("Folder"),
                )
            )
            if len(chunks) >= k:
                break

        chunks.sort(key=lambda chunk: chunk.score, reverse=True)
        return chunks
