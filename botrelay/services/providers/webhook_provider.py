import httpx

from botrelay.logging_config import get_logger
from botrelay.services.providers.base import ProviderAdapter, ProviderError, ProviderReply, ProviderRequest

logger = get_logger("providers.webhook")


class WebhookProvider(ProviderAdapter):
    """Custom bot behind a plain JSON webhook (the "evolution" family).

    Request: ``{conversationId, text, from, sender: {pushName, id}, instance: {name}}``.
    Response: ``{text | message, conversationId?}`` or a bare string.
    """

    family = "evolution"

    async def send(self, bot, request: ProviderRequest) -> ProviderReply:
        api_url = self.require(bot, "api_url")
        api_key = (bot.config or {}).get("api_key")

        payload = {
            "conversationId": request.backend_conversation_id,
            "text": request.content,
            "from": request.remote_jid,
            "sender": {"pushName": request.push_name, "id": request.remote_jid},
            "instance": {"name": request.instance_name},
        }
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(api_url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(f"Webhook bot request failed: {e}") from e

        if response.status_code >= 300:
            logger.error(f"Webhook bot error: {response.status_code} {response.text[:200]}")
            raise ProviderError(f"Webhook bot error: {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            return ProviderReply(reply_text=response.text, session_token=request.session_token)

        if isinstance(data, str):
            return ProviderReply(reply_text=data, session_token=request.session_token)
        if not isinstance(data, dict):
            return ProviderReply(reply_text="", session_token=request.session_token)
        reply_text = self.as_text(data.get("text") or data.get("message"), "Webhook bot")
        return ProviderReply(
            reply_text=reply_text,
            session_token=data.get("conversationId") or request.session_token,
        )
