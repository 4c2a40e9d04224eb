"""Per-conversation summary records (message count, last activity)."""

from collections.abc import Callable
from datetime import UTC, datetime

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from novabot.core.exceptions import ConflictRetryExhaustedError
from novabot.core.settings import StoreConfig
from novabot.models.conversation_document import ConversationDocument
from novabot.repositories.document_repo import (
    NATIVE_UPSERT_DIALECTS,
    DocumentRepository,
)
from novabot.schemas.conversation_schema import ConversationSummary

logger = structlog.get_logger()


def utcnow() -> datetime:
    return datetime.now(UTC)


def to_summary(document: ConversationDocument) -> ConversationSummary:
    """Convert a summary row to its schema."""
    return ConversationSummary(
        conversation_id=document.conversation_id,
        user_id=document.user_id,
        display_name=document.display_name,
        message_count=document.message_count,
        created_at=document.created_at,
        last_activity_at=document.last_activity_at,
        is_active=document.is_active,
    )


class ConversationSummaryStore:
    """Creates and increments conversation summaries without lost updates.

    Two write paths exist. Dialects with a native insert-or-update get a
    single statement whose increment the database evaluates. Anything else
    goes through a compare-and-swap loop on the row's ``version``.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None,
        config: StoreConfig,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._config = config
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._session_factory is not None and self._config.enabled

    async def touch(
        self, conversation_id: str, user_id: str, display_name: str | None
    ) -> bool:
        """Record one more message on the conversation's summary.

        Returns False on any failure; never raises.
        """
        if not self.enabled:
            return False

        try:
            strategy = await self._write(conversation_id, user_id, display_name)
        except ConflictRetryExhaustedError as e:
            logger.warning(
                "Summary update abandoned",
                conversation_id=conversation_id,
                attempts=e.attempts,
            )
            return False
        except Exception:
            logger.exception(
                "Failed to update conversation summary",
                conversation_id=conversation_id,
            )
            return False

        logger.debug(
            "Conversation summary touched",
            conversation_id=conversation_id,
            strategy=strategy,
        )
        return True

    async def get(self, conversation_id: str) -> ConversationSummary | None:
        """Fetch a summary. Store failures read as "no summary"."""
        if not self.enabled:
            return None
        try:
            async with self._session_factory() as session:  # type: ignore[misc]
                document = await DocumentRepository(session).find_summary(
                    conversation_id
                )
        except (SQLAlchemyError, OSError):
            logger.exception(
                "Failed to read conversation summary",
                conversation_id=conversation_id,
            )
            return None
        return to_summary(document) if document is not None else None

    async def archive(self, conversation_id: str) -> bool:
        """Mark a conversation inactive. The next touch reactivates it."""
        if not self.enabled:
            return False
        try:
            async with self._session_factory() as session:  # type: ignore[misc]
                changed = await DocumentRepository(session).set_summary_active(
                    conversation_id, is_active=False
                )
                await session.commit()
        except (SQLAlchemyError, OSError):
            logger.exception(
                "Failed to archive conversation", conversation_id=conversation_id
            )
            return False
        logger.info(
            "Conversation archived", conversation_id=conversation_id, found=changed
        )
        return changed

    async def delete_conversation(self, conversation_id: str, user_id: str) -> int:
        """Delete a conversation's messages and summary. Returns rows removed."""
        if not self.enabled:
            return 0
        try:
            async with self._session_factory() as session:  # type: ignore[misc]
                removed = await DocumentRepository(session).delete_conversation(
                    conversation_id, user_id
                )
                await session.commit()
        except (SQLAlchemyError, OSError):
            logger.exception(
                "Failed to delete conversation",
                conversation_id=conversation_id,
            )
            return 0
        logger.info(
            "Conversation deleted",
            conversation_id=conversation_id,
            user_id=user_id,
            removed=removed,
        )
        return removed

    # --- Write paths ---

    async def _write(
        self, conversation_id: str, user_id: str, display_name: str | None
    ) -> str:
        async with self._session_factory() as session:  # type: ignore[misc]
            dialect = DocumentRepository(session).dialect_name

        strategy = self._config.upsert_strategy
        if strategy == "auto":
            native = dialect in NATIVE_UPSERT_DIALECTS
            strategy = "native" if native else "compare_and_swap"

        if strategy == "native":
            await self._touch_native(conversation_id, user_id, display_name)
        else:
            await self._touch_compare_and_swap(conversation_id, user_id, display_name)
        return strategy

    async def _touch_native(
        self, conversation_id: str, user_id: str, display_name: str | None
    ) -> None:
        async with self._session_factory() as session:  # type: ignore[misc]
            await DocumentRepository(session).upsert_summary(
                conversation_id=conversation_id,
                user_id=user_id,
                display_name=display_name,
                now=self._clock(),
            )
            await session.commit()

    async def _touch_compare_and_swap(
        self, conversation_id: str, user_id: str, display_name: str | None
    ) -> None:
        max_attempts = self._config.summary_max_attempts
        for attempt in range(1, max_attempts + 1):
            async with self._session_factory() as session:  # type: ignore[misc]
                repo = DocumentRepository(session)
                current = await repo.find_summary(conversation_id)
                now = self._clock()
                try:
                    if current is None:
                        await repo.insert_summary(
                            conversation_id=conversation_id,
                            user_id=user_id,
                            display_name=display_name,
                            now=now,
                        )
                        written = True
                    else:
                        written = await repo.update_summary_if_version(
                            conversation_id=conversation_id,
                            seen_version=current.version,
                            new_count=current.message_count + 1,
                            display_name=display_name,
                            now=now,
                        )
                except IntegrityError:
                    # Another writer created the row first
                    written = False

                if written:
                    await session.commit()
                    return
                await session.rollback()

            logger.debug(
                "Summary write lost a race",
                conversation_id=conversation_id,
                attempt=attempt,
            )

        raise ConflictRetryExhaustedError(conversation_id, max_attempts)
