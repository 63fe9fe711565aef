from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class MessageKey(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    remote_jid: Optional[str] = Field(default=None, validation_alias=AliasChoices("remoteJid", "remote_jid"))
    from_me: bool = Field(default=False, validation_alias=AliasChoices("fromMe", "from_me"))
    id: Optional[str] = None


class MessageEvent(BaseModel):
    """One WhatsApp message as delivered by the channel webhook."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    key: MessageKey = Field(default_factory=MessageKey)
    push_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("pushName", "push_name"))
    message: Optional[dict[str, Any]] = None
    message_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("messageType", "message_type"))
    message_timestamp: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("messageTimestamp", "message_timestamp"),
    )
    context_info: Optional[dict[str, Any]] = Field(
        default=None,
        validation_alias=AliasChoices("contextInfo", "context_info"),
    )

    def to_event(self) -> dict[str, Any]:
        """Raw dict in the channel's own key names, as the content extractor expects."""
        event: dict[str, Any] = {
            "key": {"remoteJid": self.key.remote_jid, "fromMe": self.key.from_me, "id": self.key.id},
            "pushName": self.push_name,
            "message": self.message,
        }
        if self.message_timestamp is not None:
            event["messageTimestamp"] = self.message_timestamp
        if self.context_info:
            event["contextInfo"] = self.context_info
        return event


class WebhookRequest(BaseModel):
    """Either an envelope (``{"event": ..., "data": {...}}``) or the bare message."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    event: Optional[str] = None
    data: Optional[MessageEvent] = None
    key: Optional[MessageKey] = None
    push_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("pushName", "push_name"))
    message: Optional[dict[str, Any]] = None
    message_timestamp: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices("messageTimestamp", "message_timestamp"),
    )
    context_info: Optional[dict[str, Any]] = Field(
        default=None,
        validation_alias=AliasChoices("contextInfo", "context_info"),
    )

    def message_event(self) -> MessageEvent:
        if self.data is not None:
            return self.data
        return MessageEvent(
            key=self.key or MessageKey(),
            push_name=self.push_name,
            message=self.message,
            message_timestamp=self.message_timestamp,
            context_info=self.context_info,
        )


class WebhookResponse(BaseModel):
    success: bool
    message: str
    outcomes: dict[str, str] = Field(default_factory=dict)
