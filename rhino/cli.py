"""
Terminal chat client for Le Rhino.

Usage:
    rhino-chat [--server URL] [--webhook-url URL] [--timeout SECONDS]
               [--webhook-timeout SECONDS] [--debug]

Messages go straight to the n8n webhook; deferred replies are picked up by
polling the Rhino server's /webhooks/chat/check endpoint. --debug also prints
the session id and the raw data behind every reply.
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from .chat.controller import ChatSessionController, HttpReplySource
from .chat.exceptions import SessionBusyError
from .chat.relay import WebhookRelay
from .config import configure_logging, load_settings

QUIT_WORDS = {"/quit", "/exit"}


def build_parser() -> argparse.ArgumentParser:
    settings = load_settings()
    parser = argparse.ArgumentParser(prog="rhino-chat", description="Chat with Le Rhino from the terminal")
    parser.add_argument("--server", default="http://localhost:8000", help="Rhino server base URL (for deferred replies)")
    parser.add_argument("--webhook-url", default=settings.n8n_webhook_url, help="n8n webhook URL (default: N8N_WEBHOOK_URL)")
    parser.add_argument("--webhook-timeout", type=float, default=settings.webhook_timeout, help="Seconds allowed for the webhook POST")
    parser.add_argument("--timeout", type=float, default=settings.reply_timeout, help="Max seconds to wait for a deferred reply")
    parser.add_argument("--poll-interval", type=float, default=settings.poll_interval)
    parser.add_argument("--debug", action="store_true", help="Show session id and raw replies")
    return parser


def _notify(text: str) -> None:
    print(f"! {text}", file=sys.stderr)


async def chat_loop(controller: ChatSessionController, debug: bool = False) -> int:
    loop = asyncio.get_running_loop()
    print("Le Rhino: ask about your course documents. /quit to leave.")
    if debug:
        print(f"[debug] session {controller.session_id}")
        print(f"[debug] webhook {controller.relay.url or '(not configured)'}")

    try:
        while True:
            try:
                text = await loop.run_in_executor(None, input, "> ")
            except EOFError:
                break
            if text.strip() in QUIT_WORDS:
                break
            try:
                reply = await controller.send_message(text)
            except SessionBusyError as e:
                _notify(str(e))
                continue
            if reply is not None:
                print(f"🦏 {reply.content}")
                if debug:
                    print(f"[debug] raw: {controller.last_raw!r}")
            elif debug and controller.last_error:
                print(f"[debug] {controller.state.value}: {controller.last_error}")
    finally:
        await controller.close()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging("DEBUG" if args.debug else "WARNING")

    controller = ChatSessionController(
        relay=WebhookRelay(args.webhook_url, timeout=args.webhook_timeout),
        reply_source=HttpReplySource(args.server),
        poll_interval=args.poll_interval,
        reply_timeout=args.timeout,
        notify=_notify,
    )
    try:
        return asyncio.run(chat_loop(controller, debug=args.debug))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
