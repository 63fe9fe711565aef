from botrelay.models.bot import BotDefinition, BotSettings
from botrelay.models.bot_session import BotSession
from botrelay.models.instance import Instance

__all__ = [
    "Instance",
    "BotDefinition",
    "BotSettings",
    "BotSession",
]
