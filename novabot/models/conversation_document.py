"""Conversation document database model."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from novabot.core.database import Base

MESSAGE_DOCUMENT = "message"
SUMMARY_DOCUMENT = "conversation_info"
SUMMARY_ID_PREFIX = "conversation_"


def summary_document_id(conversation_id: str) -> str:
    """Primary key of the summary row for a conversation."""
    return f"{SUMMARY_ID_PREFIX}{conversation_id}"


class ConversationDocument(Base):
    """One row per stored message or per conversation summary.

    ``document_type`` discriminates the two. Rows written by older bot
    versions may carry no discriminator at all.
    """

    __tablename__ = "conversation_documents"
    __table_args__ = (
        Index(
            "ix_conversation_documents_partition",
            "user_id",
            "conversation_id",
            "created_at",
        ),
    )

    id: Mapped[str] = mapped_column(String(300), primary_key=True)
    document_type: Mapped[str | None] = mapped_column(
        String(40), nullable=True, index=True
    )
    conversation_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Message fields
    role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    text: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Summary fields
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
