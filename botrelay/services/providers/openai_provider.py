import asyncio
from typing import Any, Optional

import httpx

from botrelay.logging_config import get_logger
from botrelay.services.providers.base import ProviderAdapter, ProviderError, ProviderReply, ProviderRequest

logger = get_logger("providers.openai")

DEFAULT_BASE_URL = "https://api.openai.com/v1"
BOT_TYPES = ("chatCompletion", "assistant")
RUN_DONE = "completed"
RUN_FAILED = {"failed", "cancelled", "expired", "incomplete", "requires_action"}


class OpenAIProvider(ProviderAdapter):
    """OpenAI backend, in one of two modes chosen by ``config["bot_type"]``.

    ``chatCompletion`` (default) is stateless: one user message per call and the
    session token is passed through unchanged. ``assistant`` keeps the
    conversation in an Assistants API thread whose id becomes the session token.
    """

    family = "openai"

    def __init__(
        self,
        timeout_seconds: float = 60.0,
        transport: Any = None,
        poll_interval: float = 1.0,
        sleep=asyncio.sleep,
    ):
        super().__init__(timeout_seconds=timeout_seconds, transport=transport)
        self.poll_interval = poll_interval
        self._sleep = sleep

    async def send(self, bot, request: ProviderRequest) -> ProviderReply:
        config = bot.config or {}
        api_key = self.require(bot, "api_key")
        base_url = (config.get("base_url") or DEFAULT_BASE_URL).rstrip("/")
        bot_type = config.get("bot_type") or "chatCompletion"
        if bot_type not in BOT_TYPES:
            raise ProviderError(f"Unknown OpenAI bot type: {bot_type}")

        headers = {
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                if bot_type == "assistant":
                    headers["OpenAI-Beta"] = "assistants=v2"
                    assistant_id = self.require(bot, "assistant_id")
                    return await self._assistant(client, base_url, headers, assistant_id, request)
                return await self._chat_completion(client, base_url, headers, config, request)
        except httpx.HTTPError as e:
            raise ProviderError(f"OpenAI request failed: {e}") from e

    async def _chat_completion(self, client, base_url, headers, config, request) -> ProviderReply:
        model = config.get("model") or "gpt-5-mini"
        messages = []
        if config.get("system_message"):
            messages.append({"role": "system", "content": config["system_message"]})
        messages.append({"role": "user", "content": request.content})

        payload = {
            "model": model,
            "messages": messages,
            "max_completion_tokens": int(config.get("max_tokens") or 1000),
            "user": request.remote_jid,
        }
        if config.get("temperature") is not None:
            payload["temperature"] = float(config["temperature"])

        logger.debug(f"OpenAI request: model={model}, jid={request.remote_jid}")
        data = await self._call(client, "POST", f"{base_url}/chat/completions", headers, payload)

        content = ""
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message") or {}
            if isinstance(message, dict):
                content = self.as_text(message.get("content"), "OpenAI")
        logger.debug(f"OpenAI content: {content[:100] if content else 'EMPTY'}")

        return ProviderReply(reply_text=content, session_token=request.session_token)

    async def _assistant(self, client, base_url, headers, assistant_id, request) -> ProviderReply:
        thread_id = request.backend_conversation_id
        if not thread_id:
            thread = await self._call(client, "POST", f"{base_url}/threads", headers, {})
            thread_id = thread.get("id")
            if not thread_id:
                raise ProviderError("OpenAI did not return a thread id")
            logger.info(f"Created OpenAI thread {thread_id} for {request.remote_jid}")

        thread_url = f"{base_url}/threads/{thread_id}"
        await self._call(client, "POST", f"{thread_url}/messages", headers, {"role": "user", "content": request.content})

        run = await self._call(client, "POST", f"{thread_url}/runs", headers, {"assistant_id": assistant_id})
        run_id = run.get("id")
        if not run_id:
            raise ProviderError("OpenAI did not return a run id")
        await self._wait_for_run(client, f"{thread_url}/runs/{run_id}", headers, run.get("status"))

        listing = await self._call(
            client, "GET", f"{thread_url}/messages", headers, params={"order": "desc", "limit": 1}
        )
        reply_text = self._latest_text(listing)
        return ProviderReply(reply_text=reply_text, session_token=thread_id)

    async def _wait_for_run(self, client, run_url: str, headers: dict, status: Optional[str]) -> None:
        attempts = max(1, int(self.timeout_seconds / self.poll_interval)) if self.poll_interval > 0 else 1
        for _ in range(attempts):
            if status == RUN_DONE:
                return
            if status in RUN_FAILED:
                raise ProviderError(f"OpenAI run ended with status {status}")
            await self._sleep(self.poll_interval)
            run = await self._call(client, "GET", run_url, headers)
            status = run.get("status")
        if status == RUN_DONE:
            return
        raise ProviderError(f"OpenAI run did not complete in time (last status {status})")

    def _latest_text(self, listing: dict) -> str:
        messages = listing.get("data")
        if not isinstance(messages, list) or not messages:
            return ""
        latest = messages[0]
        if not isinstance(latest, dict) or latest.get("role") != "assistant":
            return ""
        parts = []
        for block in latest.get("content") or []:
            if not isinstance(block, dict) or block.get("type") != "text":
                continue
            text = block.get("text")
            value = text.get("value") if isinstance(text, dict) else text
            parts.append(self.as_text(value, "OpenAI"))
        return "\n".join(part for part in parts if part)

    async def _call(self, client, method: str, url: str, headers: dict, payload: Optional[dict] = None, params=None) -> dict:
        if method == "GET":
            response = await client.get(url, headers=headers, params=params)
        else:
            response = await client.post(url, headers=headers, json=payload)

        logger.debug(f"OpenAI response status: {response.status_code}")
        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.text}")
            raise ProviderError(f"OpenAI API error: {response.status_code} - {response.text}")
        return self.json_object(response, "OpenAI")
