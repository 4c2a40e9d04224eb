"""Tests for HistoryReader."""

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from structlog.testing import capture_logs

from novabot.core.database import build_engine, build_session_factory
from novabot.core.settings import DatabaseConfig, StoreConfig
from novabot.models.conversation_document import MESSAGE_DOCUMENT, ConversationDocument
from novabot.schemas.conversation_schema import Role
from novabot.services.history_reader import (
    FALLBACK_STRATEGY,
    HistoryReader,
    base_conversation_id,
)
from novabot.services.message_store import MessageRecordStore
from novabot.services.summary_store import ConversationSummaryStore

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=UTC)


async def insert_rows(
    session_factory: async_sessionmaker[AsyncSession], *rows: ConversationDocument
) -> None:
    async with session_factory() as session:
        session.add_all(rows)
        await session.commit()


def legacy_row(
    row_id: str,
    conversation_id: str,
    role: str,
    text: str,
    minutes: int,
    user_id: str = "u1",
    document_type: str | None = None,
    expires_at: datetime | None = None,
) -> ConversationDocument:
    return ConversationDocument(
        id=row_id,
        document_type=document_type,
        conversation_id=conversation_id,
        user_id=user_id,
        role=role,
        text=text,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        expires_at=expires_at,
    )


class TestPrimaryStrategy:
    """Exact conversation/user lookups."""

    async def test_empty_conversation_returns_empty_list(
        self, history_reader: HistoryReader
    ) -> None:
        assert await history_reader.get_history("conv4", "u4", 5) == []

    async def test_returns_most_recent_in_ascending_order(
        self, message_store: MessageRecordStore, history_reader: HistoryReader
    ) -> None:
        for i in range(8):
            role = Role.USER if i % 2 == 0 else Role.ASSISTANT
            await message_store.append("conv1", "u1", "Alice", role, f"m{i}")

        history = await history_reader.get_history("conv1", "u1", 5)

        assert [r.text for r in history] == ["m3", "m4", "m5", "m6", "m7"]
        timestamps = [r.created_at for r in history]
        assert timestamps == sorted(timestamps)
        assert {r.role for r in history} <= {Role.USER, Role.ASSISTANT, Role.SYSTEM}

    async def test_scoped_to_user(
        self, message_store: MessageRecordStore, history_reader: HistoryReader
    ) -> None:
        await message_store.append("conv1", "u1", "Alice", "user", "de Alice")
        await message_store.append("conv1", "u2", "Bob", "user", "de Bob")

        history = await history_reader.get_history("conv1", "u1", 10)

        assert [r.text for r in history] == ["de Alice"]

    async def test_default_limit_from_config(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        summary_store: ConversationSummaryStore,
        message_store: MessageRecordStore,
    ) -> None:
        reader = HistoryReader(
            session_factory,
            StoreConfig(
                enabled=True,
                retention_days=90,
                message_max_chars=4000,
                history_limit=3,
                summary_max_attempts=5,
                upsert_strategy="auto",
            ),
            summary_store,
        )
        for i in range(5):
            await message_store.append("conv1", "u1", "Alice", "user", f"m{i}")

        assert len(await reader.get_history("conv1", "u1")) == 3

    async def test_expired_messages_are_hidden(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        history_reader: HistoryReader,
    ) -> None:
        await insert_rows(
            session_factory,
            legacy_row(
                "old",
                "conv1",
                "user",
                "caducado",
                0,
                document_type=MESSAGE_DOCUMENT,
                expires_at=datetime.now(UTC) - timedelta(days=1),
            ),
            legacy_row("live", "conv1", "user", "vigente", 1, document_type=MESSAGE_DOCUMENT),
        )

        history = await history_reader.get_history("conv1", "u1", 10)

        assert [r.text for r in history] == ["vigente"]

    async def test_ties_broken_by_id(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        history_reader: HistoryReader,
    ) -> None:
        await insert_rows(
            session_factory,
            legacy_row("msg_b", "conv1", "assistant", "segundo", 0, document_type=MESSAGE_DOCUMENT),
            legacy_row("msg_a", "conv1", "user", "primero", 0, document_type=MESSAGE_DOCUMENT),
        )

        history = await history_reader.get_history("conv1", "u1", 10)

        assert [r.id for r in history] == ["msg_a", "msg_b"]


class TestRoleNormalization:
    """Stored role spellings map onto the enum."""

    async def test_aliases_and_unknown_roles(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        history_reader: HistoryReader,
    ) -> None:
        await insert_rows(
            session_factory,
            legacy_row("r1", "conv1", "human", "hola", 0, document_type=MESSAGE_DOCUMENT),
            legacy_row("r2", "conv1", "bot", "qué tal", 1, document_type=MESSAGE_DOCUMENT),
            legacy_row("r3", "conv1", "AI", "bien", 2, document_type=MESSAGE_DOCUMENT),
            legacy_row("r4", "conv1", "tool", "{}", 3, document_type=MESSAGE_DOCUMENT),
        )

        with capture_logs() as logs:
            history = await history_reader.get_history("conv1", "u1", 10)

        assert [r.role for r in history] == [Role.USER, Role.ASSISTANT, Role.ASSISTANT]
        assert any(
            log["event"] == "Dropping stored message with unknown role" for log in logs
        )


class TestFallbackStrategy:
    """User-partition scan when the primary query misses."""

    async def test_recovers_legacy_rows_without_discriminator(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        history_reader: HistoryReader,
    ) -> None:
        await insert_rows(
            session_factory,
            legacy_row("l1", "conv1", "user", "hola", 0),
            legacy_row("l2", "conv1", "assistant", "¡hola!", 1),
            legacy_row("l3", "other", "user", "otra conversación", 2),
        )

        with capture_logs() as logs:
            history = await history_reader.get_history(
                "conv1", "u1", 10, expect_history=True
            )

        assert [r.text for r in history] == ["hola", "¡hola!"]
        fallback_logs = [
            log for log in logs if log["event"] == "History served by fallback query"
        ]
        assert len(fallback_logs) == 1
        assert fallback_logs[0]["strategy"] == FALLBACK_STRATEGY
        assert fallback_logs[0]["log_level"] == "warning"
        assert fallback_logs[0]["recovered"] == 2

    async def test_matches_thread_suffixed_conversation_ids(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        history_reader: HistoryReader,
    ) -> None:
        threaded = "19:abc@thread.tacv2;messageid=1700000000000"
        await insert_rows(
            session_factory,
            legacy_row("t1", threaded, "user", "en hilo", 0, document_type=MESSAGE_DOCUMENT),
        )

        history = await history_reader.get_history(
            "19:abc@thread.tacv2", "u1", 10, expect_history=True
        )

        assert [r.text for r in history] == ["en hilo"]

    async def test_summary_count_triggers_fallback(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        summary_store: ConversationSummaryStore,
        history_reader: HistoryReader,
    ) -> None:
        await insert_rows(session_factory, legacy_row("l1", "conv1", "user", "hola", 0))
        await summary_store.touch("conv1", "u1", "Alice")

        history = await history_reader.get_history("conv1", "u1", 10)

        assert [r.text for r in history] == ["hola"]

    async def test_no_fallback_without_expectation(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        history_reader: HistoryReader,
    ) -> None:
        await insert_rows(session_factory, legacy_row("l1", "conv1", "user", "hola", 0))

        with capture_logs() as logs:
            history = await history_reader.get_history("conv1", "u1", 10)

        assert history == []
        assert not any(
            log["event"] == "History served by fallback query" for log in logs
        )

    async def test_fallback_respects_limit(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        history_reader: HistoryReader,
    ) -> None:
        await insert_rows(
            session_factory,
            *(legacy_row(f"l{i}", "conv1", "user", f"m{i}", i) for i in range(6)),
        )

        history = await history_reader.get_history("conv1", "u1", 3, expect_history=True)

        assert [r.text for r in history] == ["m3", "m4", "m5"]


class TestHistoryFailures:
    """The reader never raises."""

    async def test_store_outage_returns_empty(
        self, tmp_path: Path, store_config: StoreConfig
    ) -> None:
        broken = build_engine(
            DatabaseConfig(
                url=SecretStr(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'x.db'}")
            )
        )
        factory = build_session_factory(broken)
        reader = HistoryReader(
            factory, store_config, ConversationSummaryStore(factory, store_config)
        )

        assert await reader.get_history("conv1", "u1", 10, expect_history=True) == []
        await broken.dispose()

    async def test_disabled_store_returns_empty(
        self, store_config: StoreConfig, summary_store: ConversationSummaryStore
    ) -> None:
        reader = HistoryReader(None, store_config, summary_store)
        assert await reader.get_history("conv1", "u1") == []


@pytest.mark.parametrize(
    ("conversation_id", "expected"),
    [
        ("a:1", "a:1"),
        ("19:x@thread.tacv2;messageid=42", "19:x@thread.tacv2"),
    ],
)
def test_base_conversation_id(conversation_id: str, expected: str) -> None:
    assert base_conversation_id(conversation_id) == expected
