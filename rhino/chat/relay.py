"""Outbound relay to the n8n chat webhook."""

import logging
from typing import Any, Optional

import httpx
from pydantic import BaseModel

from .models import WebhookPayload

logger = logging.getLogger(__name__)

# What an n8n webhook set to "respond immediately" sends back.
WORKFLOW_STARTED_ACK = {"message": "Workflow was started"}


class RelayResult(BaseModel):
    success: bool
    status: Optional[int] = None
    data: Optional[Any] = None
    error: Optional[str] = None

    @property
    def deferred(self) -> bool:
        """True when the real reply will come back through the callback."""
        if not self.success:
            return False
        return (
            self.status == 202
            or self.data is None
            or self.data == ""
            or self.data == WORKFLOW_STARTED_ACK
        )


def _parse_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class WebhookRelay:
    """Sends one POST per message. No retries."""

    def __init__(self, url: str, timeout: float = 30.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def send(self, payload: WebhookPayload) -> RelayResult:
        if not self.url:
            logger.error("Webhook URL not configured (N8N_WEBHOOK_URL)")
            return RelayResult(success=False, error="Webhook URL not configured")

        body = payload.wire_body()
        logger.info(f"Sending to webhook {self.url} (session {payload.session_id})")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, json=body)
        except httpx.HTTPError as e:
            logger.error(f"Error sending to webhook: {e!r}")
            return RelayResult(success=False, error=str(e) or type(e).__name__)

        data = _parse_body(response)

        if not response.is_success:
            logger.error(f"Webhook error: {response.status_code} {data!r}")
            return RelayResult(
                success=False,
                status=response.status_code,
                error=f"Error sending to webhook: {response.status_code}",
                data=data,
            )

        return RelayResult(success=True, status=response.status_code, data=data)
