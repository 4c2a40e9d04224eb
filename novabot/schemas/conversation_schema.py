"""Conversation store schemas."""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator


class Role(StrEnum):
    """Who produced a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


ROLE_ALIASES: dict[str, Role] = {
    "user": Role.USER,
    "human": Role.USER,
    "assistant": Role.ASSISTANT,
    "bot": Role.ASSISTANT,
    "ai": Role.ASSISTANT,
    "system": Role.SYSTEM,
}


def normalize_role(value: str | None) -> Role | None:
    """Map stored role spellings onto ``Role``; unknown values give None."""
    if not value:
        return None
    return ROLE_ALIASES.get(value.strip().lower())


def as_utc(value: datetime) -> datetime:
    """Attach or convert to UTC. Naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class MessageRecord(BaseModel):
    """A stored conversation turn. Immutable once written."""

    model_config = ConfigDict(frozen=True)

    id: str
    conversation_id: str
    user_id: str
    display_name: str | None = None
    role: Role
    text: str
    created_at: datetime
    expires_at: datetime | None = None

    @field_validator("created_at", "expires_at")
    @classmethod
    def normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


class ConversationSummary(BaseModel):
    """Aggregate metadata of one conversation."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    user_id: str
    display_name: str | None = None
    message_count: int
    created_at: datetime
    last_activity_at: datetime | None = None
    is_active: bool = True

    @field_validator("created_at", "last_activity_at")
    @classmethod
    def normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None


@dataclass(frozen=True)
class StoreUnavailable:
    """Returned instead of raising when the conversation store cannot be used.

    Falsy, so callers can write ``if record:``.
    """

    reason: str

    def __bool__(self) -> bool:
        return False


class StoreStats(BaseModel):
    """Document counts reported by the diagnostic endpoint."""

    model_config = ConfigDict(frozen=True)

    documents: int
    conversations: int
    messages: int
    messages_by_role: dict[str, int]
