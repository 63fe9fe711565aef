"""Pull the conversational text out of a raw WhatsApp message event."""

import hashlib
import uuid
from dataclasses import dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class InboundMessage:
    content: str
    from_me: bool
    push_name: Optional[str]
    message_id: Optional[str]
    message_type: str


def _media_tag(kind: str, media_id: Optional[str], caption: Optional[str] = None) -> Optional[str]:
    if not media_id:
        return None
    return f"{kind}|{media_id}|{caption}" if caption else f"{kind}|{media_id}"


def _candidates(event: dict) -> list[tuple[str, Optional[str]]]:
    message = event.get("message") or {}
    key = event.get("key") or {}
    media_id = message.get("mediaUrl") or key.get("id")

    view_once = (message.get("viewOnceMessageV2") or {}).get("message") or {}
    view_once_url = None
    for kind in ("imageMessage", "videoMessage", "audioMessage"):
        if (view_once.get(kind) or {}).get("url"):
            view_once_url = view_once[kind]["url"]
            break

    buttons = message.get("templateButtonReplyMessage") or {}
    buttons_response = message.get("buttonsResponseMessage") or {}
    list_response = message.get("listResponseMessage") or {}
    location = message.get("locationMessage") or {}
    document_with_caption = ((message.get("documentWithCaptionMessage") or {}).get("message") or {}).get(
        "documentMessage"
    )

    audio = None
    if message.get("speechToText"):
        audio = message["speechToText"]
    elif message.get("audioMessage"):
        audio = _media_tag("audioMessage", media_id)

    def tagged(kind: str) -> Optional[str]:
        if not message.get(kind):
            return None
        return _media_tag(kind, media_id, message[kind].get("caption"))

    latitude = location.get("degreesLatitude")
    return [
        ("conversation", message.get("conversation")),
        ("extendedTextMessage", (message.get("extendedTextMessage") or {}).get("text")),
        ("contactMessage", (message.get("contactMessage") or {}).get("displayName")),
        ("locationMessage", str(latitude) if latitude is not None else None),
        ("viewOnceMessageV2", view_once_url),
        ("listResponseMessage", list_response.get("title")),
        ("responseRowId", (list_response.get("singleSelectReply") or {}).get("selectedRowId")),
        (
            "templateButtonReplyMessage",
            buttons.get("selectedId") or buttons_response.get("selectedButtonId"),
        ),
        ("audioMessage", audio),
        ("imageMessage", tagged("imageMessage")),
        ("videoMessage", tagged("videoMessage")),
        ("documentMessage", tagged("documentMessage")),
        (
            "documentWithCaptionMessage",
            _media_tag("documentWithCaptionMessage", media_id, document_with_caption.get("caption"))
            if document_with_caption
            else None,
        ),
    ]


def get_message_type(event: Any) -> str:
    if not isinstance(event, dict) or not event.get("message"):
        return "unknown"
    for kind, value in _candidates(event):
        if value:
            return kind
    return "unknown"


def extract_content(event: Any) -> str:
    """Text of the message, a ``kind|id|caption`` tag for media, or "" when nothing usable."""
    if not isinstance(event, dict) or not event.get("message"):
        return ""

    base = ""
    for _kind, value in _candidates(event):
        if value:
            base = str(value)
            break

    ad_body = (((event.get("contextInfo") or {}).get("externalAdReply")) or {}).get("body")
    if ad_body:
        return f"{base}\nexternalAdReplyBody|{ad_body}".strip()
    return base


def is_from_me(event: Any) -> bool:
    if not isinstance(event, dict):
        return False
    return bool((event.get("key") or {}).get("fromMe"))


def build_message_id(event: Any, remote_jid: str) -> str:
    """Stable id for logs: the channel id, else jid+timestamp, else a content digest."""
    if isinstance(event, dict):
        message_id = (event.get("key") or {}).get("id")
        if message_id:
            return str(message_id).strip()
        timestamp = event.get("messageTimestamp")
        if timestamp is not None:
            return f"{remote_jid}:{timestamp}"
        content = extract_content(event)
        if content:
            digest = hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]
            return f"{remote_jid}:{digest}"
    return str(uuid.uuid4())


def get_push_name(event: Any) -> Optional[str]:
    if not isinstance(event, dict):
        return None
    push_name = str(event.get("pushName") or "").strip()
    return push_name or None


def parse_inbound(event: Any, remote_jid: str) -> InboundMessage:
    return InboundMessage(
        content=extract_content(event),
        from_me=is_from_me(event),
        push_name=get_push_name(event),
        message_id=build_message_id(event, remote_jid),
        message_type=get_message_type(event),
    )
