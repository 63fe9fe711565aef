from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from botrelay.config import settings
from botrelay.database import get_db
from botrelay.logging_config import get_logger
from botrelay.models import Instance
from botrelay.schemas.webhook import WebhookRequest, WebhookResponse
from botrelay.services.dispatcher import Dispatcher

logger = get_logger("webhook")

router = APIRouter()


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def _get_instance_webhook_secret(instance: Instance) -> str | None:
    secret = (instance.config or {}).get("webhook_secret") or settings.webhook_secret
    if not secret:
        return None
    cleaned = str(secret).strip()
    return cleaned or None


def _get_request_webhook_secret(request: Request) -> str | None:
    header_secret = request.headers.get("X-Webhook-Secret")
    if header_secret:
        return header_secret.strip()
    query_secret = request.query_params.get("webhook_secret")
    if query_secret:
        return query_secret.strip()
    return None


@router.post("/webhook/{instance_name}", response_model=WebhookResponse)
async def handle_webhook(
    instance_name: str,
    payload: WebhookRequest,
    request: Request,
    db: Session = Depends(get_db),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """Inbound WhatsApp message for one instance; fans out to every bot family."""
    instance = db.query(Instance).filter(Instance.name == instance_name).first()
    if not instance:
        return WebhookResponse(success=False, message=f"Instance '{instance_name}' not found")

    expected_secret = _get_instance_webhook_secret(instance)
    if expected_secret and _get_request_webhook_secret(request) != expected_secret:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret")

    if payload.event and payload.event.lower().replace("_", ".") != "messages.upsert":
        return WebhookResponse(success=True, message=f"Event '{payload.event}' ignored")

    event = payload.message_event()
    remote_jid = event.key.remote_jid
    if not remote_jid:
        return WebhookResponse(success=False, message="Missing key.remoteJid")

    logger.info(f"Webhook received: instance={instance_name}, jid={remote_jid}")
    outcomes = await dispatcher.on_inbound_message(instance, remote_jid, event.to_event())
    return WebhookResponse(success=True, message="Dispatched", outcomes=outcomes)


@router.get("/webhook/{instance_name}")
async def handle_webhook_check(instance_name: str):
    """Reachability check for the channel UI; real webhooks must use POST."""
    return {"ok": True, "message": "Use POST with JSON payload", "instance": instance_name}
