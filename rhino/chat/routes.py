"""
Chat Service
Handles: relaying chat messages to n8n, receiving n8n callbacks,
         letting clients poll for callback replies.

Replies that n8n cannot give inline arrive on POST /webhooks/chat and wait in
the mailbox until a client picks them up via GET /webhooks/chat/check.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ..config import Settings, get_settings
from .exceptions import CallbackParseException, RelayFailedException, WebhookNotConfiguredException
from .extractor import extract_reply_text, resolve_callback_reply, to_json_text
from .mailbox import ResponseMailbox, get_mailbox
from .models import ChatRequest, ChatResponse, MailboxEntry, WebhookPayload
from .relay import WebhookRelay

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])


def get_relay(settings: Settings = Depends(get_settings)) -> WebhookRelay:
    return WebhookRelay(settings.n8n_webhook_url, timeout=settings.webhook_timeout)


def _preview(text: str, length: int) -> str:
    return text[:length] + ("..." if len(text) > length else "")


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.post("/chat", response_model=ChatResponse)
async def chat(
    message: ChatRequest,
    settings: Settings = Depends(get_settings),
    relay: WebhookRelay = Depends(get_relay),
):
    """
    Server-side send for thin clients. When n8n answers later, pending=true
    and the reply shows up on /webhooks/chat/check for this session_id.
    """
    if not settings.n8n_webhook_url:
        logger.error("POST /chat rejected: N8N_WEBHOOK_URL is not set")
        raise WebhookNotConfiguredException()

    session_id = message.session_id or str(uuid.uuid4())
    result = await relay.send(WebhookPayload(chat_input=message.message, session_id=session_id))

    if not result.success:
        raise RelayFailedException(result.error or "Webhook call failed", status=result.status, data=result.data)

    if result.deferred:
        return ChatResponse(session_id=session_id, pending=True)

    return ChatResponse(response=extract_reply_text(result.data), session_id=session_id)


@router.post("/webhooks/chat")
async def receive_callback(request: Request, mailbox: ResponseMailbox = Depends(get_mailbox)):
    """
    Called by n8n. Accepts any JSON. Unrecognised payloads still get a 200;
    the default message is stored together with the raw data.
    """
    try:
        data = await request.json()
    except ValueError as e:
        logger.error(f"Webhook callback body is not JSON: {e}")
        raise CallbackParseException()

    logger.info(f"Webhook received from n8n: {json.dumps(data, indent=2, ensure_ascii=False)}")

    message, source = resolve_callback_reply(data)
    logger.info(f"Reply extracted from '{source}': {_preview(message, 100)}")

    session_id: Optional[str] = None
    if isinstance(data, dict) and isinstance(data.get("sessionId"), str):
        session_id = data["sessionId"]

    mailbox.publish(MailboxEntry(message=message, raw_data=data, session_id=session_id), session_id)

    return {
        "success": True,
        "message": "Reply received and stored",
        "source": source,
        "debug": {
            "extractedMessage": message,
            "rawResponse": to_json_text(data),
            "originalData": data,
        },
    }


@router.get("/webhooks/chat/check")
async def check_reply(
    session_id: Optional[str] = Query(None, alias="sessionId"),
    mailbox: ResponseMailbox = Depends(get_mailbox),
):
    """Hands out the waiting reply (if any) and clears it."""
    entry = mailbox.consume(session_id)

    if entry is None:
        logger.debug("Reply check: nothing waiting")
        return {
            "success": True,
            "data": None,
            "debug": {
                "checkTime": datetime.now(timezone.utc).isoformat(),
                "mailboxEmpty": len(mailbox) == 0,
            },
        }

    logger.info(f"Reply check: found {_preview(entry.message, 50)!r}")
    return {
        "success": True,
        "data": entry.model_dump(mode="json", by_alias=True),
        "debug": {
            "messageLength": len(entry.message),
            "messagePreview": entry.message[:100],
            "timestamp": entry.timestamp.isoformat(),
        },
    }
