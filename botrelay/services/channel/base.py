from abc import ABC, abstractmethod
from typing import Optional


class ChannelClient(ABC):
    """Outbound side of the messaging channel, bound to one instance."""

    @abstractmethod
    async def send_text(self, remote_jid: str, text: str) -> bool:
        """Send a plain text message."""
        pass

    @abstractmethod
    async def send_media(
        self,
        remote_jid: str,
        media_type: str,
        url: str,
        caption: Optional[str] = None,
    ) -> bool:
        """Send image/audio/video/document by URL."""
        pass

    @abstractmethod
    async def set_presence(self, remote_jid: str, presence: str) -> bool:
        """Show 'composing' or 'paused' in the chat."""
        pass
