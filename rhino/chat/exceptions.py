from typing import Any, Optional

from fastapi import HTTPException


class WebhookNotConfiguredException(HTTPException):
    def __init__(self, detail: str = "Webhook URL not configured"):
        super().__init__(status_code=500, detail=detail)


class RelayFailedException(HTTPException):
    def __init__(self, error: str, status: Optional[int] = None, data: Any = None):
        super().__init__(status_code=502, detail=error)
        self.upstream_status = status
        self.upstream_data = data


class CallbackParseException(HTTPException):
    def __init__(self, detail: str = "Error processing webhook"):
        super().__init__(status_code=500, detail=detail)


class SessionBusyError(Exception):
    """A message is already in flight for this session."""
