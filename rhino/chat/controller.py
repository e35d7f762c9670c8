"""
Chat session controller: the client side of a conversation.

One controller per chat "page": it owns the session id and the in-memory
transcript. A send either gets its reply inline from the webhook, or the
webhook acknowledges and the reply is picked up later by polling a reply
source (the in-process mailbox, or the /webhooks/chat/check endpoint).

Polling runs as an asyncio task bounded by reply_timeout; close() cancels it.
Cancelling only stops polling. An in-flight webhook POST is left to finish.
"""

import asyncio
import logging
import uuid
from enum import Enum
from typing import Any, Callable, List, Optional

import httpx

from .exceptions import SessionBusyError
from .extractor import extract_reply_text
from .mailbox import ResponseMailbox
from .models import ChatMessage, MailboxEntry, Sender, WebhookPayload
from .relay import WebhookRelay

logger = logging.getLogger(__name__)

SEND_FAILED_NOTICE = "Error sending message"
REPLY_TIMEOUT_NOTICE = "No reply received"
MAX_DISCARDED_REPLIES = 5


class SessionState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    AWAITING_REPLY = "awaiting_reply"
    FAILED = "failed"


# ── Reply sources ─────────────────────────────────────────────────────────────

class MailboxReplySource:
    """Reads straight from a mailbox living in the same process."""

    def __init__(self, mailbox: ResponseMailbox):
        self.mailbox = mailbox

    async def consume(self, session_id: str) -> Optional[MailboxEntry]:
        return self.mailbox.consume(session_id)


class HttpReplySource:
    """Polls GET /webhooks/chat/check on a running Rhino server."""

    def __init__(self, base_url: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.check_url = base_url.rstrip("/") + "/webhooks/chat/check"
        self.timeout = timeout
        self._transport = transport

    async def consume(self, session_id: str) -> Optional[MailboxEntry]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(self.check_url, params={"sessionId": session_id})
                resp.raise_for_status()
                data = resp.json().get("data")
            if not data:
                return None
            return MailboxEntry.model_validate(data)
        except (httpx.HTTPError, ValueError) as e:
            # ValidationError is a ValueError; all count as "nothing yet"
            logger.warning(f"Reply check failed: {e!r}")
            return None


# ── Controller ────────────────────────────────────────────────────────────────

def _log_notice(text: str) -> None:
    logger.warning(text)


class ChatSessionController:
    def __init__(
        self,
        relay: WebhookRelay,
        reply_source,
        poll_interval: float = 2.0,
        reply_timeout: Optional[float] = 120.0,
        notify: Optional[Callable[[str], None]] = None,
        session_id: Optional[str] = None,
    ):
        self.relay = relay
        self.reply_source = reply_source
        self.poll_interval = poll_interval
        self.reply_timeout = reply_timeout
        self.notify = notify or _log_notice
        self.session_id = session_id or str(uuid.uuid4())
        self.state = SessionState.IDLE
        self.transcript: List[ChatMessage] = []
        self.last_error: Optional[str] = None
        self.last_raw: Any = None
        self._poll_task: Optional[asyncio.Task] = None
        # set when a deferred reply was given up on; it may still arrive later
        self._abandoned_reply = False

    @property
    def busy(self) -> bool:
        return self.state in (SessionState.SENDING, SessionState.AWAITING_REPLY)

    def _append(self, content: str, sender: Sender) -> ChatMessage:
        message = ChatMessage(content=content, sender=sender)
        self.transcript.append(message)
        return message

    def _fail(self, error: str, notice: str) -> None:
        self.state = SessionState.FAILED
        self.last_error = error
        self.notify(notice)

    async def send_message(self, text: str) -> Optional[ChatMessage]:
        """Send one message. Returns the assistant reply, or None if there is none."""
        if not text or not text.strip():
            return None
        if self.busy:
            raise SessionBusyError(f"Session {self.session_id} is {self.state.value}")

        self.state = SessionState.SENDING
        if self._abandoned_reply:
            await self._discard_late_replies()
        self._append(text, Sender.USER)
        self.last_error = None

        result = await self.relay.send(WebhookPayload(chat_input=text, session_id=self.session_id))

        if not result.success:
            logger.error(f"Send failed for session {self.session_id}: {result.error}")
            self._fail(result.error or "send failed", SEND_FAILED_NOTICE)
            return None

        self.last_raw = result.data

        if not result.deferred:
            reply = self._append(extract_reply_text(result.data), Sender.ASSISTANT)
            self.state = SessionState.IDLE
            return reply

        self.state = SessionState.AWAITING_REPLY
        self._poll_task = asyncio.ensure_future(self._await_reply())
        try:
            await asyncio.wait({self._poll_task})
        except asyncio.CancelledError:
            self._poll_task.cancel()
            raise
        task, self._poll_task = self._poll_task, None
        if task.cancelled():
            return None
        return task.result()

    async def _discard_late_replies(self) -> None:
        """Drop replies meant for a send this session already gave up on."""
        for _ in range(MAX_DISCARDED_REPLIES):
            entry = await self.reply_source.consume(self.session_id)
            if entry is None:
                break
            logger.info(f"Discarding late reply for session {self.session_id}: {entry.message!r}")
        self._abandoned_reply = False

    async def _poll_until_reply(self) -> MailboxEntry:
        while True:
            await asyncio.sleep(self.poll_interval)
            entry = await self.reply_source.consume(self.session_id)
            if entry is not None:
                return entry

    async def _await_reply(self) -> Optional[ChatMessage]:
        try:
            entry = await asyncio.wait_for(self._poll_until_reply(), timeout=self.reply_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"No reply for session {self.session_id} after {self.reply_timeout}s")
            self._abandoned_reply = True
            self._fail("reply timed out", REPLY_TIMEOUT_NOTICE)
            return None

        self.last_raw = entry.raw_data
        content = entry.message or extract_reply_text(entry.raw_data)
        reply = self._append(content, Sender.ASSISTANT)
        self.state = SessionState.IDLE
        return reply

    async def close(self) -> None:
        """Stop waiting for a reply. Nothing is appended and nothing is reported."""
        task = self._poll_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self.state == SessionState.AWAITING_REPLY:
            self._abandoned_reply = True
            self.state = SessionState.IDLE
