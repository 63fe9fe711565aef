from botrelay.services.channel.base import ChannelClient
from botrelay.services.channel.chatflow import ChatflowChannel

__all__ = ["ChannelClient", "ChatflowChannel"]
