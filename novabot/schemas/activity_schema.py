"""Bot Framework activity schemas (the subset this bot reads and writes)."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

EXPECT_REPLIES = "expectReplies"


class ChannelAccount(BaseModel):
    """A user or bot on the channel."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = ""
    name: str | None = None
    aad_object_id: str | None = None


class ConversationAccount(BaseModel):
    """The conversation an activity belongs to."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str
    name: str | None = None
    conversation_type: str | None = None
    tenant_id: str | None = None


class Activity(BaseModel):
    """Inbound activity posted by the channel to /api/messages."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: str
    id: str | None = None
    timestamp: str | None = None
    service_url: str | None = None
    channel_id: str | None = None
    from_: ChannelAccount | None = Field(default=None, alias="from")
    recipient: ChannelAccount | None = None
    conversation: ConversationAccount | None = None
    text: str | None = None
    value: Any | None = None
    members_added: list[ChannelAccount] = Field(default_factory=list)
    delivery_mode: str | None = None
    reply_to_id: str | None = None
    locale: str | None = None

    @property
    def expects_replies(self) -> bool:
        return self.delivery_mode == EXPECT_REPLIES

    def reply(self, **fields: Any) -> dict[str, Any]:
        """Outbound activity addressed back to the sender of this one."""
        activity: dict[str, Any] = {
            "type": "message",
            "channelId": self.channel_id,
            "serviceUrl": self.service_url,
            "from": self.recipient.model_dump(by_alias=True, exclude_none=True)
            if self.recipient
            else None,
            "recipient": self.from_.model_dump(by_alias=True, exclude_none=True)
            if self.from_
            else None,
            "conversation": self.conversation.model_dump(by_alias=True, exclude_none=True)
            if self.conversation
            else None,
            "replyToId": self.id,
        }
        if self.locale:
            activity["locale"] = self.locale
        activity.update(fields)
        return {key: value for key, value in activity.items() if value is not None}


class InboundTurn(BaseModel):
    """What the turn handler needs from an inbound message."""

    model_config = ConfigDict(frozen=True)

    conversation_id: str
    user_id: str
    display_name: str | None = None
    text: str = ""
    value: dict[str, Any] | None = None

    @classmethod
    def from_activity(cls, activity: Activity) -> "InboundTurn":
        sender = activity.from_ or ChannelAccount()
        value = activity.value if isinstance(activity.value, dict) else None
        return cls(
            conversation_id=activity.conversation.id if activity.conversation else "",
            user_id=sender.id,
            display_name=sender.name,
            text=(activity.text or "").strip(),
            value=value,
        )
