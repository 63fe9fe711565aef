from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class OverrideFields(BaseModel):
    """Per-bot or instance-wide settings. None means inherit."""

    expire_minutes: Optional[int] = Field(default=None, ge=0)
    keyword_finish: Optional[str] = None
    reply_delay_ms: Optional[int] = Field(default=None, ge=0)
    unknown_message_text: Optional[str] = None
    listening_from_me: Optional[bool] = None
    stop_bot_from_me: Optional[bool] = None
    keep_open_on_close: Optional[bool] = None
    debounce_seconds: Optional[int] = Field(default=None, ge=0)
    ignored_jids: Optional[list[str]] = None
    split_messages: Optional[bool] = None
    ms_per_character: Optional[int] = Field(default=None, ge=0)


class BotCreate(OverrideFields):
    enabled: bool = True
    description: Optional[str] = None
    trigger_type: Literal["all", "keyword", "advanced", "none"] = "keyword"
    trigger_operator: Optional[Literal["equals", "contains", "startsWith", "endsWith"]] = None
    trigger_value: Optional[str] = None
    config: dict[str, Any] = Field(default_factory=dict)


class BotUpdate(OverrideFields):
    enabled: Optional[bool] = None
    description: Optional[str] = None
    trigger_type: Optional[Literal["all", "keyword", "advanced", "none"]] = None
    trigger_operator: Optional[Literal["equals", "contains", "startsWith", "endsWith"]] = None
    trigger_value: Optional[str] = None
    config: Optional[dict[str, Any]] = None


class BotResponse(OverrideFields):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family: str
    enabled: bool
    description: Optional[str] = None
    trigger_type: str
    trigger_operator: Optional[str] = None
    trigger_value: Optional[str] = None
    config: dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SettingsUpdate(OverrideFields):
    enabled: Optional[bool] = None
    fallback_bot_id: Optional[UUID] = None


class SettingsResponse(OverrideFields):
    model_config = ConfigDict(from_attributes=True)

    family: str
    enabled: bool = True
    fallback_bot_id: Optional[UUID] = None


class IgnoreJidRequest(BaseModel):
    remote_jid: str
    action: Literal["add", "remove"]


class IgnoreJidResponse(BaseModel):
    ignored_jids: list[str]


class ChangeStatusRequest(BaseModel):
    remote_jid: str
    status: Literal["opened", "paused", "closed", "delete"]


class ChangeStatusResponse(BaseModel):
    remote_jid: str
    status: str
    sessions: int


class SessionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    family: str
    remote_jid: str
    bot_id: UUID
    status: str
    awaiting_user: bool
    session_token: Optional[str] = None
    push_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
