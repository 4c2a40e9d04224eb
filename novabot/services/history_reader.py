"""Ordered conversation history for prompt construction."""

from collections.abc import Callable, Sequence
from datetime import datetime

import structlog
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from novabot.core.settings import StoreConfig
from novabot.models.conversation_document import ConversationDocument
from novabot.repositories.document_repo import DocumentRepository
from novabot.schemas.conversation_schema import MessageRecord, normalize_role
from novabot.services.summary_store import ConversationSummaryStore, utcnow

logger = structlog.get_logger()

PRIMARY_STRATEGY = "history.primary"
FALLBACK_STRATEGY = "history.user_partition_fallback"

# Teams appends the reply-chain anchor to channel conversation ids
THREAD_SUFFIX = ";messageid="

# Rows scanned from a user's partition by the fallback
FALLBACK_SCAN_LIMIT = 500


def base_conversation_id(conversation_id: str) -> str:
    """Strip a Teams ``;messageid=`` thread suffix."""
    return conversation_id.split(THREAD_SUFFIX, 1)[0]


class HistoryReader:
    """Reads a conversation's recent messages, oldest first.

    The primary query filters on conversation and user. When it comes back
    empty for a conversation that should have history, the reader scans the
    user's partition and matches the conversation in Python, which also
    picks up rows written without a discriminator or under a threaded id.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None,
        config: StoreConfig,
        summary_store: ConversationSummaryStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._config = config
        self._summary_store = summary_store
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._session_factory is not None and self._config.enabled

    async def get_history(
        self,
        conversation_id: str,
        user_id: str,
        limit: int | None = None,
        expect_history: bool = False,
    ) -> list[MessageRecord]:
        """Return up to ``limit`` most recent messages in ascending order.

        Never raises: an unavailable store or a new conversation both give
        an empty list.
        """
        limit = self._config.history_limit if limit is None else limit
        if not self.enabled or limit <= 0 or not conversation_id or not user_id:
            return []

        now = self._clock()
        try:
            async with self._session_factory() as session:  # type: ignore[misc]
                repo = DocumentRepository(session)
                rows = await repo.find_messages(conversation_id, user_id, limit, now)
                strategy = PRIMARY_STRATEGY

                if not rows and await self._history_expected(
                    conversation_id, expect_history
                ):
                    partition = await repo.find_user_partition(
                        user_id, now, FALLBACK_SCAN_LIMIT
                    )
                    rows = self._match_conversation(partition, conversation_id)[:limit]
                    strategy = FALLBACK_STRATEGY
                    logger.warning(
                        "History served by fallback query",
                        strategy=strategy,
                        conversation_id=conversation_id,
                        user_id=user_id,
                        scanned=len(partition),
                        recovered=len(rows),
                    )
        except (SQLAlchemyError, OSError):
            logger.exception(
                "History unavailable",
                conversation_id=conversation_id,
                user_id=user_id,
            )
            return []

        records = self._to_records(rows)
        logger.debug(
            "History loaded",
            strategy=strategy,
            conversation_id=conversation_id,
            count=len(records),
        )
        return records

    async def _history_expected(self, conversation_id: str, caller_says: bool) -> bool:
        if caller_says:
            return True
        summary = await self._summary_store.get(conversation_id)
        return summary is not None and summary.message_count > 0

    @staticmethod
    def _match_conversation(
        rows: Sequence[ConversationDocument], conversation_id: str
    ) -> list[ConversationDocument]:
        wanted = base_conversation_id(conversation_id)
        return [
            row
            for row in rows
            if row.conversation_id == conversation_id
            or base_conversation_id(row.conversation_id) == wanted
        ]

    @staticmethod
    def _to_records(rows: Sequence[ConversationDocument]) -> list[MessageRecord]:
        records: list[MessageRecord] = []
        for row in rows:
            role = normalize_role(row.role)
            if role is None:
                logger.warning(
                    "Dropping stored message with unknown role",
                    message_id=row.id,
                    role=row.role,
                )
                continue
            if not row.text:
                continue
            try:
                records.append(
                    MessageRecord(
                        id=row.id,
                        conversation_id=row.conversation_id,
                        user_id=row.user_id,
                        display_name=row.display_name,
                        role=role,
                        text=row.text,
                        created_at=row.created_at,
                        expires_at=row.expires_at,
                    )
                )
            except ValidationError:
                logger.warning("Dropping malformed stored message", message_id=row.id)
        records.sort(key=lambda record: (record.created_at, record.id))
        return records
