from typing import Optional

import httpx

from botrelay.config import settings
from botrelay.logging_config import get_logger
from botrelay.services.channel.base import ChannelClient

logger = get_logger("channel.chatflow")

# media_type -> (endpoint, url param, caption allowed)
MEDIA_ENDPOINTS = {
    "image": ("send-image", "imageurl", True),
    "audio": ("send-audio", "audiourl", False),
    "document": ("send-doc", "docurl", True),
    "video": ("send-video", "videourl", True),
}


class ChatflowChannel(ChannelClient):
    """WhatsApp delivery through the ChatFlow HTTP API."""

    def __init__(
        self,
        instance_id: str,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        media_base_url: Optional[str] = None,
        timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.instance_id = instance_id
        self.token = token if token is not None else settings.chatflow_token
        self.api_url = api_url or settings.chatflow_api_url
        self.media_base_url = media_base_url or settings.chatflow_media_base_url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @classmethod
    def for_instance(cls, instance) -> "ChatflowChannel":
        return cls(instance_id=instance.chatflow_instance_id)

    async def _get(self, url: str, params: dict) -> Optional[httpx.Response]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                return await client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.error(f"ChatFlow request failed: {e}")
            return None

    async def send_text(self, remote_jid: str, text: str) -> bool:
        if not self.token:
            logger.error("ChatFlow token is missing (CHATFLOW_TOKEN env var not set)")
            return False
        if not self.instance_id or not text:
            logger.warning(f"send_text: missing instance_id={self.instance_id} or text")
            return False

        params = {
            "token": self.token,
            "instance_id": self.instance_id,
            "jid": remote_jid,
            "msg": text,
        }
        response = await self._get(self.api_url, params)
        if response is None:
            return False
        logger.info(f"ChatFlow response: status={response.status_code}, jid={remote_jid}, body={response.text[:200]}")
        return response.status_code == 200

    async def send_media(
        self,
        remote_jid: str,
        media_type: str,
        url: str,
        caption: Optional[str] = None,
    ) -> bool:
        if not self.token:
            logger.error("ChatFlow token is missing (CHATFLOW_TOKEN env var not set)")
            return False

        endpoint = MEDIA_ENDPOINTS.get((media_type or "").strip().lower())
        if endpoint is None:
            logger.warning(f"send_media: unsupported media_type={media_type}")
            return False
        if not self.instance_id or not url:
            logger.warning("send_media: missing instance_id or url")
            return False

        path, url_param, allow_caption = endpoint
        params = {
            "token": self.token,
            "instance_id": self.instance_id,
            "jid": remote_jid,
            url_param: url,
        }
        if allow_caption:
            # ChatFlow rejects image/doc/video requests without a non-empty caption.
            params["caption"] = caption.strip() if caption and caption.strip() else " "

        response = await self._get(f"{self.media_base_url.rstrip('/')}/{path}", params)
        if response is None:
            return False
        logger.info(
            f"ChatFlow media response: status={response.status_code}, jid={remote_jid}, body={response.text[:200]}"
        )
        if response.status_code != 200:
            return False
        try:
            payload = response.json()
        except ValueError:
            return False
        return bool(payload.get("success"))

    async def set_presence(self, remote_jid: str, presence: str) -> bool:
        # ChatFlow has no presence endpoint; typing delays still apply.
        logger.debug(f"Presence {presence} for {remote_jid} (not supported by ChatFlow)")
        return True
