from botrelay.schemas.bot import (
    BotCreate,
    BotResponse,
    BotUpdate,
    ChangeStatusRequest,
    ChangeStatusResponse,
    IgnoreJidRequest,
    IgnoreJidResponse,
    SessionResponse,
    SettingsResponse,
    SettingsUpdate,
)
from botrelay.schemas.webhook import MessageEvent, WebhookRequest, WebhookResponse

__all__ = [
    "BotCreate",
    "BotUpdate",
    "BotResponse",
    "SettingsUpdate",
    "SettingsResponse",
    "IgnoreJidRequest",
    "IgnoreJidResponse",
    "ChangeStatusRequest",
    "ChangeStatusResponse",
    "SessionResponse",
    "MessageEvent",
    "WebhookRequest",
    "WebhookResponse",
]
