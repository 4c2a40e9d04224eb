"""Corporate document search tool."""

import structlog
from langchain_core.embeddings import Embeddings
from langchain_core.tools import BaseTool, tool

from novabot.core.exceptions import UpstreamUnavailableError
from novabot.schemas.document_schema import DocumentChunk
from novabot.services.document_index import DocumentIndexClient

logger = structlog.get_logger()

MAX_CONTEXT_CHARS = 6000


def format_chunks(query: str, chunks: list[DocumentChunk]) -> str:
    """Render search hits as context for the model."""
    if not chunks:
        return f'No se encontraron documentos relevantes para "{query}".'

    parts = [f'Documentos relevantes para "{query}":\n']
    used = len(parts[0])
    for index, chunk in enumerate(chunks, start=1):
        section = (
            f"--- DOCUMENTO {index}: {chunk.source_id} "
            f"(relevancia {chunk.score:.2f}) ---\n{chunk.text}\n"
        )
        if used + len(section) > MAX_CONTEXT_CHARS:
            break
        parts.append(section)
        used += len(section)
    return "\n".join(parts)


def build_document_tools(
    index: DocumentIndexClient,
    embeddings: Embeddings | None,
    user_id: str,
) -> list[BaseTool]:
    """Document tools bound to one turn. Empty when the index is not configured."""
    if not index.configured:
        return []

    @tool
    async def search_documents(query: str) -> str:
        """Search Nova's internal documentation (manuals, APIs, policies).

        Use this tool when the user asks about internal procedures, products,
        APIs or any topic that may be covered by corporate documents.

        Args:
            query: What to look for, in natural language.
        """
        vector: list[float] | None = None
        if embeddings is not None:
            try:
                vector = await embeddings.aembed_query(query)
            except Exception:
                logger.warning("Embedding failed, using text search", user_id=user_id)

        try:
            chunks = await index.search(query, vector=vector)
            if not chunks and vector is not None:
                chunks = await index.search(query)
        except UpstreamUnavailableError as e:
            return e.user_message
        return format_chunks(query, chunks)

    return [search_documents]
