"""Service construction and request-scoped access."""

from dataclasses import dataclass

import redis.asyncio as redis
import structlog
from fastapi import Request
from langchain_anthropic import ChatAnthropic
from langchain_core.embeddings import Embeddings
from langchain_core.language_models import BaseChatModel
from langchain_core.tools import BaseTool
from langchain_openai import (
    AzureChatOpenAI,
    AzureOpenAIEmbeddings,
    ChatOpenAI,
    OpenAIEmbeddings,
)
from sqlalchemy.ext.asyncio import AsyncEngine

from novabot.core.config import Settings
from novabot.core.database import build_engine, build_session_factory
from novabot.core.redis import close_redis, create_redis, ping_redis
from novabot.core.settings import LLMConfig
from novabot.schemas.auth_schema import Session
from novabot.services.auth_service import AuthService
from novabot.services.auth_state import (
    DurableTier,
    MemoryTier,
    ReconcilingStateSynchronizer,
)
from novabot.services.background import BackgroundDispatcher
from novabot.services.channel import ConnectorClient
from novabot.services.completion_service import CompletionService
from novabot.services.corporate_api import CorporateApiClient
from novabot.services.credential_verifier import CredentialVerifier
from novabot.services.document_index import DocumentIndexClient
from novabot.services.history_reader import HistoryReader
from novabot.services.message_store import MessageRecordStore
from novabot.services.summary_store import ConversationSummaryStore
from novabot.services.token_service import TokenService
from novabot.services.turn_handler import TurnHandler
from novabot.tools.toolset import ToolContext, build_toolset

logger = structlog.get_logger()

# Upper bound on how long shutdown waits for summary touches
DRAIN_TIMEOUT_SECONDS = 10.0


def build_llm(config: LLMConfig) -> BaseChatModel:
    """Get the chat model for the configured provider."""
    match config.provider:
        case "azure_openai":
            return AzureChatOpenAI(
                azure_deployment=config.azure_deployment,
                azure_endpoint=config.azure_endpoint,
                api_key=config.azure_api_key,
                api_version=config.azure_api_version,
                timeout=config.timeout_seconds,
            )
        case "openai":
            return ChatOpenAI(
                model=config.openai_model,
                api_key=config.openai_api_key,
                timeout=config.timeout_seconds,
            )
        case "anthropic":
            return ChatAnthropic(  # type: ignore[call-arg]
                model_name=config.anthropic_model,
                api_key=config.anthropic_api_key,
                timeout=config.timeout_seconds,
            )
        case _:
            raise ValueError(f"Unsupported LLM provider: {config.provider}")


def build_embeddings(config: LLMConfig) -> Embeddings | None:
    """Get the embeddings model used for vector document search, if any."""
    if config.provider == "azure_openai" and config.azure_endpoint:
        return AzureOpenAIEmbeddings(
            azure_deployment=config.azure_embedding_deployment,
            azure_endpoint=config.azure_endpoint,
            api_key=config.azure_api_key,
            api_version=config.azure_api_version,
        )
    if config.openai_api_key.get_secret_value():
        return OpenAIEmbeddings(api_key=config.openai_api_key)
    return None


@dataclass
class BotServices:
    """Long-lived collaborators shared by every turn."""

    settings: Settings
    engine: AsyncEngine | None
    redis: redis.Redis  # type: ignore[type-arg]
    dispatcher: BackgroundDispatcher
    summary_store: ConversationSummaryStore
    message_store: MessageRecordStore
    history_reader: HistoryReader
    synchronizer: ReconcilingStateSynchronizer
    auth_service: AuthService
    verifier: CredentialVerifier
    corporate_api: CorporateApiClient
    document_index: DocumentIndexClient
    connector: ConnectorClient
    turn_handler: TurnHandler


async def build_services(
    settings: Settings,
    *,
    llm: BaseChatModel | None = None,
    embeddings: Embeddings | None = None,
    redis_client: redis.Redis | None = None,  # type: ignore[type-arg]
    engine: AsyncEngine | None = None,
) -> BotServices:
    """Wire every service from ``settings``.

    Collaborators passed in explicitly replace the ones that would be
    built from configuration.
    """
    if engine is None and settings.store.enabled:
        engine = build_engine(settings.database)
    session_factory = build_session_factory(engine) if engine is not None else None

    if redis_client is None:
        redis_client = create_redis(settings.redis.url)
    if not await ping_redis(redis_client):
        logger.warning("Sessions will live in memory until Redis is reachable")

    dispatcher = BackgroundDispatcher()
    summary_store = ConversationSummaryStore(session_factory, settings.store)
    message_store = MessageRecordStore(
        session_factory, settings.store, summary_store, dispatcher
    )
    history_reader = HistoryReader(session_factory, settings.store, summary_store)

    ttl_hours = settings.redis.session_ttl_hours
    synchronizer = ReconcilingStateSynchronizer(
        cache=MemoryTier(),
        record=DurableTier(redis_client, ttl_seconds=ttl_hours * 3600 or None),
    )
    token_service = TokenService(
        redis_client,
        max_attempts=settings.identity.max_login_attempts,
        lockout_seconds=settings.identity.lockout_seconds,
    )
    verifier = CredentialVerifier(settings.identity)
    auth_service = AuthService(verifier, synchronizer, token_service)

    corporate_api = CorporateApiClient(settings.identity)
    document_index = DocumentIndexClient(settings.search)
    if embeddings is None and document_index.configured:
        embeddings = build_embeddings(settings.llm)

    llm = llm or build_llm(settings.llm)
    completion_service = CompletionService(llm, settings.llm, settings.app.timezone)

    def tool_factory(session: Session, conversation_id: str) -> list[BaseTool]:
        return build_toolset(
            ToolContext(
                session=session,
                conversation_id=conversation_id,
                timezone=settings.app.timezone,
                history_reader=history_reader,
                summary_store=summary_store,
                corporate_api=corporate_api,
                document_index=document_index,
                embeddings=embeddings,
                llm=llm,
            )
        )

    turn_handler = TurnHandler(
        auth_service=auth_service,
        synchronizer=synchronizer,
        message_store=message_store,
        history_reader=history_reader,
        completion_service=completion_service,
        tool_factory=tool_factory,
    )

    logger.info(
        "Services ready",
        store_enabled=session_factory is not None,
        search_configured=document_index.configured,
        channel_configured=settings.channel.is_configured,
        llm_provider=settings.llm.provider,
    )
    return BotServices(
        settings=settings,
        engine=engine,
        redis=redis_client,
        dispatcher=dispatcher,
        summary_store=summary_store,
        message_store=message_store,
        history_reader=history_reader,
        synchronizer=synchronizer,
        auth_service=auth_service,
        verifier=verifier,
        corporate_api=corporate_api,
        document_index=document_index,
        connector=ConnectorClient(settings.channel),
        turn_handler=turn_handler,
    )


async def close_services(services: BotServices) -> None:
    """Drain background work, then release every connection."""
    await services.dispatcher.drain(timeout=DRAIN_TIMEOUT_SECONDS)
    await services.verifier.aclose()
    await services.corporate_api.aclose()
    await services.document_index.aclose()
    await services.connector.aclose()
    await close_redis(services.redis)
    if services.engine is not None:
        await services.engine.dispose()


def get_services(request: Request) -> BotServices:
    """Get the services built at startup."""
    return request.app.state.services
