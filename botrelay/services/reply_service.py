"""Split a bot reply into text and media messages and deliver them in order."""

import asyncio
import re
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlparse

from botrelay.logging_config import get_logger
from botrelay.services.channel.base import ChannelClient
from botrelay.services.settings_resolver import EffectiveSettings

logger = get_logger("reply_service")

MIN_DELAY_MS = 500
MAX_DELAY_MS = 10000

LINK_PATTERN = re.compile(r"(!?)\[(.*?)\]\((.*?)\)")

MEDIA_EXTENSIONS = {
    "image": {"jpg", "jpeg", "png", "gif", "bmp", "webp"},
    "audio": {"mp3", "wav", "aac", "ogg", "opus", "m4a"},
    "video": {"mp4", "avi", "mkv", "mov", "webm"},
    "document": {"pdf", "doc", "docx", "xls", "xlsx", "ppt", "pptx", "txt", "csv"},
}


@dataclass(frozen=True)
class ReplySegment:
    kind: str  # text, media
    text: str = ""
    url: Optional[str] = None
    media_type: Optional[str] = None


@dataclass(frozen=True)
class Delivery:
    segment: ReplySegment
    delay_ms: int


def classify_media_url(url: str) -> Optional[str]:
    """Media type by file extension, ignoring query string and fragment."""
    path = urlparse((url or "").strip()).path
    if "." not in path.rsplit("/", 1)[-1]:
        return None
    extension = path.rsplit(".", 1)[-1].lower()
    for media_type, extensions in MEDIA_EXTENSIONS.items():
        if extension in extensions:
            return media_type
    return None


def segment_reply(reply_text: str) -> list[ReplySegment]:
    """Ordered text and media segments.

    A markdown link whose URL has a media extension becomes a media segment
    captioned with the link text. An image-style link (``![..](..)``) with an
    unknown extension is sent as a document. Any other link stays in the prose.
    """
    segments: list[ReplySegment] = []
    text_buffer = ""

    def flush_text() -> None:
        nonlocal text_buffer
        if text_buffer.strip():
            segments.append(ReplySegment(kind="text", text=text_buffer.strip()))
        text_buffer = ""

    last_index = 0
    for match in LINK_PATTERN.finditer(reply_text or ""):
        bang, caption, url = match.groups()
        text_buffer += reply_text[last_index : match.start()]
        last_index = match.end()

        media_type = classify_media_url(url)
        if media_type is None and bang:
            media_type = "document"
        if media_type is None:
            text_buffer += match.group(0)
            continue

        flush_text()
        segments.append(ReplySegment(kind="media", text=caption, url=url.strip(), media_type=media_type))

    text_buffer += (reply_text or "")[last_index:]
    flush_text()
    return segments


def compute_delay_ms(text: str, ms_per_character: int) -> int:
    """Typing delay for one message, clamped to [MIN_DELAY_MS, MAX_DELAY_MS]."""
    raw = len(text) * max(ms_per_character or 0, 0)
    return min(max(raw, MIN_DELAY_MS), MAX_DELAY_MS)


def plan_deliveries(reply_text: str, settings: EffectiveSettings) -> list[Delivery]:
    deliveries: list[Delivery] = []
    for segment in segment_reply(reply_text):
        if segment.kind == "media":
            deliveries.append(Delivery(segment=segment, delay_ms=settings.reply_delay_ms))
            continue
        if settings.split_messages:
            for part in re.split(r"\n\s*\n", segment.text):
                part = part.strip()
                if part:
                    deliveries.append(
                        Delivery(
                            segment=ReplySegment(kind="text", text=part),
                            delay_ms=compute_delay_ms(part, settings.ms_per_character),
                        )
                    )
        else:
            deliveries.append(Delivery(segment=segment, delay_ms=settings.reply_delay_ms))
    return deliveries


async def _send_one(channel: ChannelClient, remote_jid: str, delivery: Delivery, sleep_func) -> bool:
    segment = delivery.segment
    await channel.set_presence(remote_jid, "composing")
    await sleep_func(max(delivery.delay_ms, 0) / 1000)
    if segment.kind == "media":
        ok = await channel.send_media(remote_jid, segment.media_type, segment.url, segment.text or None)
    else:
        ok = await channel.send_text(remote_jid, segment.text)
    await channel.set_presence(remote_jid, "paused")
    return ok


async def deliver_reply(
    channel: ChannelClient,
    remote_jid: str,
    reply_text: Optional[str],
    settings: EffectiveSettings,
    *,
    sleep_func=asyncio.sleep,
) -> int:
    """Send the reply segment by segment. Returns the number of messages delivered.

    An empty reply is replaced by the unknown-message text when one is set.
    A failed send is logged and does not stop the remaining segments.
    """
    if not reply_text or not reply_text.strip():
        if not settings.unknown_message_text:
            logger.warning(f"Empty bot reply for {remote_jid}, nothing to send")
            return 0
        logger.info(f"Empty bot reply for {remote_jid}, sending unknown-message text")
        reply_text = settings.unknown_message_text

    delivered = 0
    for delivery in plan_deliveries(reply_text, settings):
        try:
            ok = await _send_one(channel, remote_jid, delivery, sleep_func)
        except Exception as e:
            logger.error(f"Reply segment failed for {remote_jid}: {e}")
            continue
        if ok:
            delivered += 1
        else:
            logger.warning(f"Channel rejected {delivery.segment.kind} segment for {remote_jid}")
    return delivered
