"""Assembles the tools offered to the model for one turn."""

from dataclasses import dataclass

from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_core.tools import BaseTool

from novabot.schemas.auth_schema import Session
from novabot.services.corporate_api import CorporateApiClient
from novabot.services.document_index import DocumentIndexClient
from novabot.services.history_reader import HistoryReader
from novabot.services.summary_store import ConversationSummaryStore
from novabot.tools.corporate import build_corporate_tools
from novabot.tools.documents import build_document_tools
from novabot.tools.session import build_session_tools


@dataclass(frozen=True)
class ToolContext:
    """Everything a turn's tools may touch."""

    session: Session
    conversation_id: str
    timezone: str
    history_reader: HistoryReader
    summary_store: ConversationSummaryStore
    corporate_api: CorporateApiClient
    document_index: DocumentIndexClient
    embeddings: Embeddings | None = None
    llm: BaseChatModel | None = None


def build_toolset(context: ToolContext) -> list[BaseTool]:
    """Tools bound to the turn's user and conversation."""
    return [
        *build_session_tools(
            session=context.session,
            conversation_id=context.conversation_id,
            timezone=context.timezone,
            history_reader=context.history_reader,
            summary_store=context.summary_store,
            llm=context.llm,
        ),
        *build_corporate_tools(context.corporate_api, context.session),
        *build_document_tools(
            context.document_index, context.embeddings, context.session.user_id
        ),
    ]
