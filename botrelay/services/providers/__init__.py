from typing import Iterable

from botrelay.services.providers.base import ProviderAdapter, ProviderError, ProviderReply, ProviderRequest
from botrelay.services.providers.dify_provider import DifyProvider
from botrelay.services.providers.flowise_provider import FlowiseProvider
from botrelay.services.providers.openai_provider import OpenAIProvider
from botrelay.services.providers.webhook_provider import WebhookProvider

PROVIDER_CLASSES = {
    OpenAIProvider.family: OpenAIProvider,
    DifyProvider.family: DifyProvider,
    FlowiseProvider.family: FlowiseProvider,
    WebhookProvider.family: WebhookProvider,
}


def build_providers(families: Iterable[str], timeout_seconds: float = 60.0) -> dict[str, ProviderAdapter]:
    """Instantiate one adapter per enabled family. Unknown names raise ValueError."""
    providers: dict[str, ProviderAdapter] = {}
    for family in families:
        cls = PROVIDER_CLASSES.get(family)
        if cls is None:
            raise ValueError(f"Unknown bot family: {family}")
        providers[family] = cls(timeout_seconds=timeout_seconds)
    return providers


__all__ = [
    "ProviderAdapter",
    "ProviderError",
    "ProviderReply",
    "ProviderRequest",
    "OpenAIProvider",
    "DifyProvider",
    "FlowiseProvider",
    "WebhookProvider",
    "PROVIDER_CLASSES",
    "build_providers",
]
