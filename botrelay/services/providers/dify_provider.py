import json

import httpx

from botrelay.logging_config import get_logger
from botrelay.services.providers.base import ProviderAdapter, ProviderError, ProviderReply, ProviderRequest

logger = get_logger("providers.dify")

# bot_type -> (path, field holding the answer)
BOT_TYPES = {
    "chat": ("/chat-messages", "answer"),
    "chatBot": ("/chat-messages", "answer"),
    "textGenerator": ("/completion-messages", "answer"),
    "workflow": ("/workflows/run", None),
    "agent": ("/chat-messages", "answer"),
}
STREAMING_TYPES = {"agent"}


class DifyProvider(ProviderAdapter):
    family = "dify"

    async def send(self, bot, request: ProviderRequest) -> ProviderReply:
        config = bot.config or {}
        api_url = self.require(bot, "api_url").rstrip("/")
        api_key = self.require(bot, "api_key")
        bot_type = config.get("bot_type") or "chat"
        if bot_type not in BOT_TYPES:
            raise ProviderError(f"Unknown Dify bot type: {bot_type}")
        path, answer_field = BOT_TYPES[bot_type]
        streaming = bot_type in STREAMING_TYPES

        inputs = {"remoteJid": request.remote_jid, "query": request.content}
        if request.push_name:
            inputs["pushName"] = request.push_name
        if request.instance_name:
            inputs["instanceName"] = request.instance_name

        payload = {
            "inputs": inputs,
            "query": request.content,
            "user": request.remote_jid,
            "response_mode": "streaming" if streaming else "blocking",
        }
        if request.backend_conversation_id:
            payload["conversation_id"] = request.backend_conversation_id

        url = f"{api_url}{path}"
        headers = {"Authorization": f"Bearer {api_key}"}
        logger.debug(f"Dify request: type={bot_type}, jid={request.remote_jid}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                if streaming:
                    return await self._stream(client, url, headers, payload, request)
                response = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(f"Dify request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Dify error: {response.text}")
            raise ProviderError(f"Dify API error: {response.status_code} - {response.text}")

        data = self.json_object(response, "Dify")
        if answer_field:
            answer = data.get(answer_field)
        else:
            result = data.get("data")
            outputs = result.get("outputs") if isinstance(result, dict) else None
            answer = outputs.get("text") if isinstance(outputs, dict) else None
        return ProviderReply(
            reply_text=self.as_text(answer, "Dify"),
            session_token=data.get("conversation_id") or request.session_token,
        )

    async def _stream(self, client, url: str, headers: dict, payload: dict, request: ProviderRequest) -> ProviderReply:
        """Collect the ``agent_message`` events of a server-sent event stream into one answer."""
        answer = []
        conversation_id = None
        async with client.stream("POST", url, headers=headers, json=payload) as response:
            if response.status_code != 200:
                body = (await response.aread()).decode("utf-8", errors="replace")
                logger.error(f"Dify error: {body}")
                raise ProviderError(f"Dify API error: {response.status_code} - {body}")

            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                try:
                    event = json.loads(line[len("data:"):])
                except ValueError:
                    logger.warning(f"Unparseable Dify stream line: {line[:200]}")
                    continue
                if not isinstance(event, dict) or event.get("event") != "agent_message":
                    continue
                conversation_id = conversation_id or event.get("conversation_id")
                answer.append(self.as_text(event.get("answer"), "Dify"))

        return ProviderReply(
            reply_text="".join(answer),
            session_token=conversation_id or request.session_token,
        )
