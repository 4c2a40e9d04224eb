"""Conversation document repository for message and summary rows."""

from datetime import datetime

from sqlalchemy import ColumnElement, and_, delete, func, or_, select, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from novabot.models.conversation_document import (
    MESSAGE_DOCUMENT,
    SUMMARY_DOCUMENT,
    ConversationDocument,
    summary_document_id,
)

# Dialects with a single-statement insert-or-update
NATIVE_UPSERT_DIALECTS = frozenset({"sqlite", "postgresql", "mysql", "mariadb"})


def _not_expired(now: datetime) -> ColumnElement[bool]:
    return or_(
        ConversationDocument.expires_at.is_(None),
        ConversationDocument.expires_at > now,
    )


class DocumentRepository:
    """Encapsulates conversation document queries."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    @property
    def dialect_name(self) -> str:
        """Name of the backing database dialect."""
        return self._session.get_bind().dialect.name

    # --- Messages ---

    async def insert_message(self, document: ConversationDocument) -> None:
        """Insert a single message row."""
        self._session.add(document)
        await self._session.flush()

    async def find_messages(
        self,
        conversation_id: str,
        user_id: str,
        limit: int,
        now: datetime,
    ) -> list[ConversationDocument]:
        """Most recent ``limit`` live messages of a conversation, oldest first."""
        result = await self._session.execute(
            select(ConversationDocument)
            .where(
                and_(
                    ConversationDocument.document_type == MESSAGE_DOCUMENT,
                    ConversationDocument.conversation_id == conversation_id,
                    ConversationDocument.user_id == user_id,
                    _not_expired(now),
                )
            )
            .order_by(
                ConversationDocument.created_at.desc(),
                ConversationDocument.id.desc(),
            )
            .limit(limit)
        )
        rows = list(result.scalars().all())
        rows.reverse()
        return rows

    async def find_user_partition(
        self,
        user_id: str,
        now: datetime,
        limit: int,
    ) -> list[ConversationDocument]:
        """Recent live non-summary rows of a user across every conversation.

        Rows with no discriminator are included. Newest first.
        """
        result = await self._session.execute(
            select(ConversationDocument)
            .where(
                and_(
                    ConversationDocument.user_id == user_id,
                    or_(
                        ConversationDocument.document_type.is_(None),
                        ConversationDocument.document_type == MESSAGE_DOCUMENT,
                    ),
                    _not_expired(now),
                )
            )
            .order_by(
                ConversationDocument.created_at.desc(),
                ConversationDocument.id.desc(),
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def prune_messages(
        self, conversation_id: str, user_id: str, keep_last: int
    ) -> int:
        """Delete all but the newest ``keep_last`` messages. Returns rows removed."""
        stale = await self._session.execute(
            select(ConversationDocument.id)
            .where(
                and_(
                    ConversationDocument.document_type == MESSAGE_DOCUMENT,
                    ConversationDocument.conversation_id == conversation_id,
                    ConversationDocument.user_id == user_id,
                )
            )
            .order_by(
                ConversationDocument.created_at.desc(),
                ConversationDocument.id.desc(),
            )
            .offset(keep_last)
        )
        stale_ids = list(stale.scalars().all())
        if not stale_ids:
            return 0
        await self._session.execute(
            delete(ConversationDocument).where(ConversationDocument.id.in_(stale_ids))
        )
        return len(stale_ids)

    # --- Summaries ---

    async def find_summary(self, conversation_id: str) -> ConversationDocument | None:
        """Find the summary row of a conversation."""
        result = await self._session.execute(
            select(ConversationDocument).where(
                ConversationDocument.id == summary_document_id(conversation_id)
            )
        )
        return result.scalar_one_or_none()

    async def upsert_summary(
        self,
        conversation_id: str,
        user_id: str,
        display_name: str | None,
        now: datetime,
    ) -> None:
        """Create the summary with count 1 or increment it, in one statement.

        The increment is evaluated by the database against the stored row.
        """
        values = {
            "id": summary_document_id(conversation_id),
            "document_type": SUMMARY_DOCUMENT,
            "conversation_id": conversation_id,
            "user_id": user_id,
            "display_name": display_name,
            "message_count": 1,
            "is_active": True,
            "version": 1,
            "created_at": now,
            "last_activity_at": now,
        }
        changes = {
            "message_count": ConversationDocument.message_count + 1,
            "version": ConversationDocument.version + 1,
            "last_activity_at": now,
            "display_name": display_name,
            "is_active": True,
        }

        match self.dialect_name:
            case "sqlite":
                stmt = sqlite.insert(ConversationDocument).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[ConversationDocument.id], set_=changes
                )
            case "postgresql":
                stmt = postgresql.insert(ConversationDocument).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[ConversationDocument.id], set_=changes
                )
            case "mysql" | "mariadb":
                stmt = mysql.insert(ConversationDocument).values(**values)
                stmt = stmt.on_duplicate_key_update(**changes)
            case other:
                raise NotImplementedError(f"No native upsert for dialect '{other}'")

        await self._session.execute(stmt)

    async def insert_summary(
        self,
        conversation_id: str,
        user_id: str,
        display_name: str | None,
        now: datetime,
    ) -> None:
        """Insert a fresh summary row. Raises IntegrityError if one appeared meanwhile."""
        self._session.add(
            ConversationDocument(
                id=summary_document_id(conversation_id),
                document_type=SUMMARY_DOCUMENT,
                conversation_id=conversation_id,
                user_id=user_id,
                display_name=display_name,
                message_count=1,
                is_active=True,
                version=1,
                created_at=now,
                last_activity_at=now,
            )
        )
        await self._session.flush()

    async def update_summary_if_version(
        self,
        conversation_id: str,
        seen_version: int,
        new_count: int,
        display_name: str | None,
        now: datetime,
    ) -> bool:
        """Write ``new_count`` only if the row still has ``seen_version``."""
        result = await self._session.execute(
            update(ConversationDocument)
            .where(
                and_(
                    ConversationDocument.id == summary_document_id(conversation_id),
                    ConversationDocument.version == seen_version,
                )
            )
            .values(
                message_count=new_count,
                version=seen_version + 1,
                last_activity_at=now,
                display_name=display_name,
                is_active=True,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    async def set_summary_active(self, conversation_id: str, is_active: bool) -> bool:
        """Flip the active flag. Returns False when no summary exists."""
        result = await self._session.execute(
            update(ConversationDocument)
            .where(ConversationDocument.id == summary_document_id(conversation_id))
            .values(
                is_active=is_active,
                version=ConversationDocument.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1  # type: ignore[attr-defined]

    # --- Maintenance ---

    async def delete_conversation(self, conversation_id: str, user_id: str) -> int:
        """Delete every message of a conversation plus its summary."""
        messages = await self._session.execute(
            delete(ConversationDocument).where(
                and_(
                    ConversationDocument.conversation_id == conversation_id,
                    ConversationDocument.user_id == user_id,
                    or_(
                        ConversationDocument.document_type.is_(None),
                        ConversationDocument.document_type == MESSAGE_DOCUMENT,
                    ),
                )
            )
        )
        summary = await self._session.execute(
            delete(ConversationDocument).where(
                ConversationDocument.id == summary_document_id(conversation_id)
            )
        )
        return messages.rowcount + summary.rowcount  # type: ignore[attr-defined]

    async def purge_expired(self, now: datetime) -> int:
        """Delete every row whose retention horizon has passed."""
        result = await self._session.execute(
            delete(ConversationDocument).where(
                and_(
                    ConversationDocument.expires_at.is_not(None),
                    ConversationDocument.expires_at <= now,
                )
            )
        )
        return result.rowcount  # type: ignore[attr-defined]

    async def count_by_type(self) -> dict[str | None, int]:
        """Row counts keyed by discriminator."""
        result = await self._session.execute(
            select(ConversationDocument.document_type, func.count()).group_by(
                ConversationDocument.document_type
            )
        )
        return {row[0]: int(row[1]) for row in result}

    async def count_messages_by_role(self) -> dict[str, int]:
        """Message counts keyed by stored role."""
        result = await self._session.execute(
            select(ConversationDocument.role, func.count())
            .where(ConversationDocument.document_type == MESSAGE_DOCUMENT)
            .group_by(ConversationDocument.role)
        )
        return {str(row[0]): int(row[1]) for row in result}
