"""
Tests for the chat session controller: inline replies, deferred replies via
the mailbox or the check endpoint, failures, timeout, cancellation.
"""

import asyncio
import time

import httpx
import pytest

from rhino.chat.controller import (
    REPLY_TIMEOUT_NOTICE,
    SEND_FAILED_NOTICE,
    ChatSessionController,
    HttpReplySource,
    MailboxReplySource,
    SessionState,
)
from rhino.chat.exceptions import SessionBusyError
from rhino.chat.mailbox import ResponseMailbox, mailbox as shared_mailbox
from rhino.chat.models import MailboxEntry, Sender
from rhino.chat.relay import RelayResult
from rhino.gateway.main import app


# ── Helpers ──────────────────────────────────────────────────

class FakeRelay:
    def __init__(self, result: RelayResult):
        self.result = result
        self.url = "https://n8n.example.test/webhook"
        self.payloads = []

    async def send(self, payload):
        self.payloads.append(payload)
        return self.result


class CountingSource:
    def __init__(self, inner):
        self.inner = inner
        self.calls = 0

    async def consume(self, session_id):
        self.calls += 1
        return await self.inner.consume(session_id)


INLINE = RelayResult(success=True, status=200, data={"output": "X is Y"})
DEFERRED = RelayResult(success=True, status=200, data={"message": "Workflow was started"})
FAILED = RelayResult(success=False, status=500, error="Error sending to webhook: 500")


def _controller(result, source=None, notices=None, **kwargs):
    kwargs.setdefault("poll_interval", 0.01)
    kwargs.setdefault("reply_timeout", 2.0)
    return ChatSessionController(
        FakeRelay(result),
        source or MailboxReplySource(ResponseMailbox()),
        notify=(notices.append if notices is not None else None),
        session_id="abc",
        **kwargs,
    )


@pytest.fixture(autouse=True)
def _clean_mailbox():
    shared_mailbox.clear()
    yield
    shared_mailbox.clear()


# ── Inline replies ───────────────────────────────────────────

class TestInlineReply:
    def test_transcript_has_user_then_assistant(self):
        controller = _controller(INLINE)
        reply = asyncio.run(controller.send_message("What is X?"))

        assert reply.content == "X is Y"
        assert [(m.sender, m.content) for m in controller.transcript] == [
            (Sender.USER, "What is X?"),
            (Sender.ASSISTANT, "X is Y"),
        ]
        assert controller.state == SessionState.IDLE

    def test_session_id_goes_with_the_payload(self):
        controller = _controller(INLINE)
        asyncio.run(controller.send_message("hi"))
        payload = controller.relay.payloads[0]
        assert payload.session_id == "abc"
        assert payload.chat_input == "hi"

    def test_generated_session_id(self):
        controller = ChatSessionController(FakeRelay(INLINE), MailboxReplySource(ResponseMailbox()))
        assert len(controller.session_id) == 36

    def test_blank_input_is_ignored(self):
        controller = _controller(INLINE)
        assert asyncio.run(controller.send_message("   ")) is None
        assert controller.transcript == []
        assert controller.relay.payloads == []


# ── Failures ─────────────────────────────────────────────────

class TestFailedSend:
    def test_failure_notifies_and_keeps_user_message(self):
        notices = []
        controller = _controller(FAILED, notices=notices)
        assert asyncio.run(controller.send_message("hello")) is None

        assert notices == [SEND_FAILED_NOTICE]
        assert [m.sender for m in controller.transcript] == [Sender.USER]
        assert controller.state == SessionState.FAILED
        assert controller.last_error == "Error sending to webhook: 500"

    def test_retry_after_failure(self):
        controller = _controller(FAILED, notices=[])
        asyncio.run(controller.send_message("first"))
        controller.relay.result = INLINE
        reply = asyncio.run(controller.send_message("second"))

        assert reply.content == "X is Y"
        assert [m.content for m in controller.transcript] == ["first", "second", "X is Y"]
        assert controller.last_error is None

    def test_busy_session_rejects_a_second_send(self):
        async def scenario():
            controller = _controller(DEFERRED, reply_timeout=None)
            first = asyncio.ensure_future(controller.send_message("one"))
            await asyncio.sleep(0.05)
            assert controller.state == SessionState.AWAITING_REPLY
            with pytest.raises(SessionBusyError):
                await controller.send_message("two")
            await controller.close()
            return await first

        assert asyncio.run(scenario()) is None


# ── Deferred replies ─────────────────────────────────────────

class TestDeferredReply:
    def test_reply_from_mailbox(self):
        async def scenario():
            box = ResponseMailbox()
            source = CountingSource(MailboxReplySource(box))
            controller = _controller(DEFERRED, source=source)

            async def deliver():
                await asyncio.sleep(0.05)
                box.publish(MailboxEntry(message="Deferred answer", raw_data={"response": "Deferred answer"}), "abc")

            asyncio.ensure_future(deliver())
            reply = await controller.send_message("What is X?")
            calls = source.calls
            await asyncio.sleep(0.05)
            return controller, reply, calls, source.calls

        controller, reply, calls_at_reply, calls_later = asyncio.run(scenario())
        assert reply.content == "Deferred answer"
        assert controller.transcript[-1].sender == Sender.ASSISTANT
        assert controller.state == SessionState.IDLE
        assert calls_later == calls_at_reply
        assert controller.last_raw == {"response": "Deferred answer"}

    def test_empty_message_uses_raw_data(self):
        async def scenario():
            box = ResponseMailbox()
            box.publish(MailboxEntry(message="", raw_data=[{"output": "from raw"}]))
            controller = _controller(DEFERRED, source=MailboxReplySource(box))
            return await controller.send_message("q")

        assert asyncio.run(scenario()).content == "from raw"

    def test_timeout_moves_to_failed(self):
        notices = []
        controller = _controller(DEFERRED, notices=notices, reply_timeout=0.1)
        assert asyncio.run(controller.send_message("anyone?")) is None

        assert controller.state == SessionState.FAILED
        assert notices == [REPLY_TIMEOUT_NOTICE]
        assert [m.sender for m in controller.transcript] == [Sender.USER]

    def test_late_reply_after_timeout_is_not_taken_by_next_send(self):
        async def scenario():
            box = ResponseMailbox()
            notices = []
            controller = _controller(DEFERRED, source=MailboxReplySource(box), notices=notices, reply_timeout=0.1)
            assert await controller.send_message("first") is None

            box.publish(MailboxEntry(message="answer to first"), "abc")

            async def deliver():
                await asyncio.sleep(0.05)
                box.publish(MailboxEntry(message="answer to second"), "abc")

            asyncio.ensure_future(deliver())
            controller.reply_timeout = 2.0
            reply = await controller.send_message("second")
            return controller, reply, notices

        controller, reply, notices = asyncio.run(scenario())
        assert reply.content == "answer to second"
        assert notices == [REPLY_TIMEOUT_NOTICE]
        assert [m.content for m in controller.transcript] == ["first", "second", "answer to second"]
        assert controller.state == SessionState.IDLE

    def test_replies_waiting_before_a_first_send_are_kept(self):
        async def scenario():
            box = ResponseMailbox()
            box.publish(MailboxEntry(message="early"), "abc")
            controller = _controller(DEFERRED, source=MailboxReplySource(box))
            return await controller.send_message("q")

        assert asyncio.run(scenario()).content == "early"

    def test_close_cancels_polling_quietly(self):
        async def scenario():
            notices = []
            source = CountingSource(MailboxReplySource(ResponseMailbox()))
            controller = _controller(DEFERRED, source=source, notices=notices, reply_timeout=None)
            pending = asyncio.ensure_future(controller.send_message("hello"))
            await asyncio.sleep(0.05)
            await controller.close()
            result = await pending
            calls = source.calls
            await asyncio.sleep(0.05)
            return controller, result, notices, calls, source.calls

        controller, result, notices, calls_at_close, calls_later = asyncio.run(scenario())
        assert result is None
        assert notices == []
        assert controller.state == SessionState.IDLE
        assert len(controller.transcript) == 1
        assert calls_later == calls_at_close


# ── End to end through the check endpoint ────────────────────

class TestCallbackEndToEnd:
    def test_callback_reply_surfaces_within_poll_window(self):
        """n8n acks the send, later calls /webhooks/chat; the poller picks it up and stops."""
        transport = httpx.ASGITransport(app=app)

        async def scenario():
            source = CountingSource(HttpReplySource("http://testserver", transport=transport))
            controller = ChatSessionController(
                FakeRelay(DEFERRED), source, poll_interval=2.0, reply_timeout=10.0, session_id="abc"
            )

            async def n8n_callback():
                await asyncio.sleep(0.2)
                async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
                    resp = await client.post("/webhooks/chat", json={"response": "Deferred answer"})
                    assert resp.status_code == 200

            asyncio.ensure_future(n8n_callback())
            started = time.monotonic()
            reply = await controller.send_message("What is X?")
            elapsed = time.monotonic() - started
            return controller, reply, elapsed, source.calls

        controller, reply, elapsed, calls = asyncio.run(scenario())
        assert reply.content == "Deferred answer"
        assert 2.0 <= elapsed < 4.0
        assert calls == 1
        assert [m.content for m in controller.transcript] == ["What is X?", "Deferred answer"]

    def test_http_source_treats_errors_as_nothing_yet(self):
        def broken(request):
            return httpx.Response(500, json={"error": "down"})

        source = HttpReplySource("http://rhino.test", transport=httpx.MockTransport(broken))
        assert asyncio.run(source.consume("abc")) is None

    def test_http_source_sends_session_id(self):
        seen = []

        def handler(request):
            seen.append(request.url.params.get("sessionId"))
            return httpx.Response(200, json={"success": True, "data": None})

        source = HttpReplySource("http://rhino.test/", transport=httpx.MockTransport(handler))
        assert asyncio.run(source.consume("abc")) is None
        assert seen == ["abc"]

    def test_http_source_treats_malformed_entry_as_nothing_yet(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "data": {"bogus": 1}})

        source = HttpReplySource("http://rhino.test", transport=httpx.MockTransport(handler))
        assert asyncio.run(source.consume("abc")) is None
