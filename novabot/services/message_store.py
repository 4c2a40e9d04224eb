"""Append-only persistence of conversation turns."""

import itertools
import secrets
import time
from collections.abc import Callable
from datetime import datetime, timedelta

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from novabot.core.exceptions import RecordValidationError
from novabot.core.settings import StoreConfig
from novabot.models.conversation_document import (
    MESSAGE_DOCUMENT,
    SUMMARY_DOCUMENT,
    ConversationDocument,
)
from novabot.repositories.document_repo import DocumentRepository
from novabot.schemas.conversation_schema import (
    MessageRecord,
    Role,
    StoreStats,
    StoreUnavailable,
)
from novabot.services.background import BackgroundDispatcher
from novabot.services.summary_store import ConversationSummaryStore, utcnow

logger = structlog.get_logger()

_sequence = itertools.count(1)


def new_message_id() -> str:
    """Sortable, collision-resistant message id.

    Nanosecond clock, then a per-process sequence, then random hex.
    """
    return f"msg_{time.time_ns():019d}_{next(_sequence):08d}{secrets.token_hex(3)}"


class MessageRecordStore:
    """Writes MessageRecords and schedules the matching summary update."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None,
        config: StoreConfig,
        summary_store: ConversationSummaryStore,
        dispatcher: BackgroundDispatcher,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._config = config
        self._summary_store = summary_store
        self._dispatcher = dispatcher
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return self._session_factory is not None and self._config.enabled

    async def append(
        self,
        conversation_id: str,
        user_id: str,
        display_name: str | None,
        role: Role | str,
        text: str,
    ) -> MessageRecord | StoreUnavailable:
        """Durably store one message.

        Raises:
            RecordValidationError: empty ids or text, or an unknown role.
        """
        parsed_role = self._validate(conversation_id, user_id, role, text)

        if not self.enabled:
            return StoreUnavailable(reason="store not configured")

        now = self._clock()
        record = MessageRecord(
            id=new_message_id(),
            conversation_id=conversation_id,
            user_id=user_id,
            display_name=display_name,
            role=parsed_role,
            text=text[: self._config.message_max_chars],
            created_at=now,
            expires_at=now + timedelta(days=self._config.retention_days),
        )

        try:
            async with self._session_factory() as session:  # type: ignore[misc]
                await DocumentRepository(session).insert_message(
                    ConversationDocument(
                        id=record.id,
                        document_type=MESSAGE_DOCUMENT,
                        conversation_id=record.conversation_id,
                        user_id=record.user_id,
                        display_name=record.display_name,
                        role=record.role.value,
                        text=record.text,
                        created_at=record.created_at,
                        expires_at=record.expires_at,
                    )
                )
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.error(
                "Message not persisted",
                conversation_id=conversation_id,
                role=parsed_role.value,
                error=repr(e),
            )
            return StoreUnavailable(reason=type(e).__name__)

        self._dispatcher.dispatch(
            self._summary_store.touch(conversation_id, user_id, display_name),
            name=f"summary-touch:{conversation_id}",
        )
        logger.debug(
            "Message persisted",
            message_id=record.id,
            conversation_id=conversation_id,
            role=record.role.value,
            length=len(record.text),
        )
        return record

    @staticmethod
    def _validate(
        conversation_id: str, user_id: str, role: Role | str, text: str
    ) -> Role:
        if not conversation_id or not conversation_id.strip():
            raise RecordValidationError("conversation_id is required")
        if not user_id or not user_id.strip():
            raise RecordValidationError("user_id is required")
        if not isinstance(text, str) or not text.strip():
            raise RecordValidationError("text must not be empty")
        try:
            return Role(role)
        except ValueError as e:
            raise RecordValidationError(f"unknown role '{role}'") from e

    # --- Maintenance ---

    async def prune(self, conversation_id: str, user_id: str, keep_last: int = 50) -> int:
        """Keep only the newest ``keep_last`` messages of a conversation."""
        if not self.enabled:
            return 0
        try:
            async with self._session_factory() as session:  # type: ignore[misc]
                removed = await DocumentRepository(session).prune_messages(
                    conversation_id, user_id, keep_last
                )
                await session.commit()
        except (SQLAlchemyError, OSError):
            logger.exception("Failed to prune messages", conversation_id=conversation_id)
            return 0
        if removed:
            logger.info(
                "Old messages pruned",
                conversation_id=conversation_id,
                removed=removed,
                kept=keep_last,
            )
        return removed

    async def purge_expired(self) -> int | StoreUnavailable:
        """Delete every record past its retention horizon."""
        if not self.enabled:
            return StoreUnavailable(reason="store not configured")
        try:
            async with self._session_factory() as session:  # type: ignore[misc]
                removed = await DocumentRepository(session).purge_expired(self._clock())
                await session.commit()
        except (SQLAlchemyError, OSError) as e:
            logger.exception("Failed to purge expired documents")
            return StoreUnavailable(reason=type(e).__name__)
        logger.info("Expired documents purged", removed=removed)
        return removed

    async def stats(self) -> StoreStats | StoreUnavailable:
        """Document counts for diagnostics."""
        if not self.enabled:
            return StoreUnavailable(reason="store not configured")
        try:
            async with self._session_factory() as session:  # type: ignore[misc]
                repo = DocumentRepository(session)
                by_type = await repo.count_by_type()
                by_role = await repo.count_messages_by_role()
        except (SQLAlchemyError, OSError) as e:
            logger.exception("Failed to collect store stats")
            return StoreUnavailable(reason=type(e).__name__)
        return StoreStats(
            documents=sum(by_type.values()),
            conversations=by_type.get(SUMMARY_DOCUMENT, 0),
            messages=by_type.get(MESSAGE_DOCUMENT, 0),
            messages_by_role=by_role,
        )
