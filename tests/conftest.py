"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator, Iterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import fakeredis.aioredis
import pytest
from httpx import ASGITransport, AsyncClient
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, HumanMessage
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from novabot.core.config import Settings
from novabot.core.database import build_engine, build_session_factory, create_tables
from novabot.core.settings import DatabaseConfig, LLMConfig, StoreConfig
from novabot.dependencies import BotServices, build_services, close_services
from novabot.schemas.auth_schema import Session, UserProfile
from novabot.services.auth_state import (
    DurableTier,
    MemoryTier,
    ReconcilingStateSynchronizer,
)
from novabot.services.background import BackgroundDispatcher
from novabot.services.history_reader import HistoryReader
from novabot.services.message_store import MessageRecordStore
from novabot.services.summary_store import ConversationSummaryStore

# --- Test DB (SQLite file per test) ---


def make_store_config(**overrides: Any) -> StoreConfig:
    values: dict[str, Any] = {
        "enabled": True,
        "retention_days": 90,
        "message_max_chars": 4000,
        "history_limit": 20,
        "summary_max_attempts": 5,
        "upsert_strategy": "auto",
    }
    values.update(overrides)
    return StoreConfig(**values)


def make_llm_config(**overrides: Any) -> LLMConfig:
    values: dict[str, Any] = {
        "provider": "openai",
        "openai_api_key": SecretStr("sk-test"),
        "openai_model": "gpt-4o-mini",
        "anthropic_api_key": SecretStr(""),
        "anthropic_model": "claude-sonnet-4-20250514",
        "azure_endpoint": "",
        "azure_api_key": SecretStr(""),
        "azure_deployment": "",
        "azure_embedding_deployment": "",
        "azure_api_version": "2024-12-01-preview",
        "timeout_seconds": 5,
        "max_tool_rounds": 3,
    }
    values.update(overrides)
    return LLMConfig(**values)


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'store.db'}"


@pytest.fixture
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite engine so concurrent sessions see each other's commits."""
    test_engine = build_engine(DatabaseConfig(url=SecretStr(database_url)))
    await create_tables(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
def store_config() -> StoreConfig:
    return make_store_config()


@pytest.fixture
async def dispatcher() -> AsyncGenerator[BackgroundDispatcher, None]:
    background = BackgroundDispatcher()
    yield background
    await background.drain(timeout=5)


@pytest.fixture
def summary_store(
    session_factory: async_sessionmaker[AsyncSession], store_config: StoreConfig
) -> ConversationSummaryStore:
    return ConversationSummaryStore(session_factory, store_config)


@pytest.fixture
def message_store(
    session_factory: async_sessionmaker[AsyncSession],
    store_config: StoreConfig,
    summary_store: ConversationSummaryStore,
    dispatcher: BackgroundDispatcher,
) -> MessageRecordStore:
    return MessageRecordStore(session_factory, store_config, summary_store, dispatcher)


@pytest.fixture
def history_reader(
    session_factory: async_sessionmaker[AsyncSession],
    store_config: StoreConfig,
    summary_store: ConversationSummaryStore,
) -> HistoryReader:
    return HistoryReader(session_factory, store_config, summary_store)


# --- Test Redis (fakeredis) ---


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Create a fresh fake Redis client."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def synchronizer(fake_redis: fakeredis.aioredis.FakeRedis) -> ReconcilingStateSynchronizer:
    return ReconcilingStateSynchronizer(cache=MemoryTier(), record=DurableTier(fake_redis))


# --- Session helpers ---


def make_profile(name: str = "Alice", username: str = "91004") -> UserProfile:
    return UserProfile(
        display_name=name, surname1="Pérez", surname2="López", username=username
    )


def make_session(
    user_id: str = "u1",
    name: str = "Alice",
    username: str = "91004",
    token: str = "tok-abcdefghijklmnop",
) -> Session:
    return Session(
        user_id=user_id,
        display_name=name,
        surname1="Pérez",
        surname2="López",
        username=username,
        bearer_token=token,
    )


# --- Activity helpers ---


def make_activity(
    text: str | None = "hola",
    user_id: str = "u1",
    conversation_id: str = "conv1",
    value: dict[str, Any] | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """Bot Framework message activity as posted by the channel."""
    activity: dict[str, Any] = {
        "type": "message",
        "id": "act-1",
        "channelId": "msteams",
        "serviceUrl": "https://smba.example.net/amer/",
        "from": {"id": user_id, "name": "Alice"},
        "recipient": {"id": "bot-1", "name": "Nova"},
        "conversation": {"id": conversation_id},
        "text": text,
    }
    if value is not None:
        activity["value"] = value
    activity.update(fields)
    return activity


# --- Mock LLM / agent ---


@pytest.fixture
def mock_llm() -> MagicMock:
    """Create a mock LLM for testing."""
    mock = MagicMock(spec=BaseChatModel)
    mock.ainvoke = AsyncMock(return_value=AIMessage(content="Test response"))
    return mock


@pytest.fixture
def fake_agent() -> Iterator[MagicMock]:
    """Patch the ReAct agent factory; the agent answers "Respuesta de prueba"."""
    agent = MagicMock()
    agent.ainvoke = AsyncMock(
        return_value={
            "messages": [
                HumanMessage(content="hola"),
                AIMessage(content="Respuesta de prueba"),
            ]
        }
    )
    with patch(
        "novabot.services.completion_service.create_react_agent",
        return_value=agent,
    ):
        yield agent


# --- App & client fixtures ---


@pytest.fixture
def test_settings(database_url: str) -> Settings:
    return Settings(
        _env_file=None,  # type: ignore[call-arg]
        app_env="development",
        database_url=SecretStr(database_url),
        microsoft_app_id="",
        search_endpoint="",
    )


@pytest.fixture
async def services(
    test_settings: Settings,
    engine: AsyncEngine,
    fake_redis: fakeredis.aioredis.FakeRedis,
    mock_llm: MagicMock,
) -> AsyncGenerator[BotServices, None]:
    bot_services = await build_services(
        test_settings, llm=mock_llm, redis_client=fake_redis, engine=engine
    )
    yield bot_services
    await close_services(bot_services)


@pytest.fixture
async def async_client(services: BotServices) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with services attached (ASGITransport skips lifespan)."""
    from novabot.main import app

    app.state.services = services
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
