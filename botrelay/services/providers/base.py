from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from botrelay.services.settings_resolver import EffectiveSettings


class ProviderError(Exception):
    """Backend call failed; the turn is answered with the unknown-message text."""


@dataclass
class ProviderRequest:
    remote_jid: str
    content: str
    session_token: Optional[str]
    settings: EffectiveSettings
    push_name: Optional[str] = None
    instance_name: Optional[str] = None

    @property
    def backend_conversation_id(self) -> Optional[str]:
        """Token to send to the backend; None until the backend has issued one."""
        if not self.session_token or self.session_token == self.remote_jid:
            return None
        return self.session_token


@dataclass
class ProviderReply:
    reply_text: str
    session_token: Optional[str] = None


class ProviderAdapter(ABC):
    """One bot family's backend. Connection data comes from ``bot.config``."""

    family: str = ""

    def __init__(self, timeout_seconds: float = 60.0, transport: Any = None):
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @abstractmethod
    async def send(self, bot, request: ProviderRequest) -> ProviderReply:
        """Send one coalesced turn and return the reply. Raises ProviderError."""
        pass

    @staticmethod
    def require(bot, key: str) -> str:
        value = (bot.config or {}).get(key)
        if not value:
            raise ProviderError(f"Bot {bot.id} has no {key} configured")
        return value

    @staticmethod
    def as_text(value: Any, source: str) -> str:
        """Coerce a backend reply field to text. Structured values are rejected."""
        if value is None:
            return ""
        if isinstance(value, str):
            return value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        raise ProviderError(f"{source} returned a non-text reply: {type(value).__name__}")

    @staticmethod
    def json_object(response, source: str) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"{source} returned invalid JSON") from e
        if not isinstance(data, dict):
            raise ProviderError(f"{source} returned {type(data).__name__}, expected an object")
        return data
