import json

import httpx

from botrelay.logging_config import get_logger
from botrelay.services.providers.base import ProviderAdapter, ProviderError, ProviderReply, ProviderRequest

logger = get_logger("providers.flowise")


class FlowiseProvider(ProviderAdapter):
    """Flowise prediction endpoint; the flow keeps memory keyed by overrideConfig.sessionId."""

    family = "flowise"

    async def send(self, bot, request: ProviderRequest) -> ProviderReply:
        api_url = self.require(bot, "api_url")
        api_key = (bot.config or {}).get("api_key")

        payload = {
            "question": request.content,
            "overrideConfig": {
                "sessionId": request.session_token or request.remote_jid,
                "vars": {
                    "remoteJid": request.remote_jid,
                    "pushName": request.push_name,
                    "instanceName": request.instance_name,
                },
            },
        }
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        logger.debug(f"Flowise request: bot={bot.id}, session={payload['overrideConfig']['sessionId']}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(api_url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise ProviderError(f"Flowise request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Flowise error: {response.text}")
            raise ProviderError(f"Flowise API error: {response.status_code} - {response.text}")

        try:
            data = response.json()
        except ValueError:
            return ProviderReply(reply_text=response.text, session_token=request.session_token)

        if isinstance(data, str):
            reply_text = data
        elif isinstance(data, dict):
            answer = data.get("text") or data.get("output")
            if answer is None:
                reply_text = json.dumps(data, ensure_ascii=False)
            else:
                reply_text = self.as_text(answer, "Flowise")
        else:
            reply_text = ""
        return ProviderReply(reply_text=reply_text, session_token=request.session_token)
