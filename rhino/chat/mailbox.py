"""
Holding area for replies that n8n delivers through the callback endpoint.

One slot per session id, plus a shared slot (key None) for callbacks that do
not echo a sessionId back. A consume takes and clears under the lock, so a
stored entry is handed to exactly one poller. Entries nobody collected are
dropped once they are older than max_age, checked on each publish.
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from .models import MailboxEntry

logger = logging.getLogger(__name__)

MAX_ENTRY_AGE_SECONDS = 600


def _age_key(entry: MailboxEntry) -> datetime:
    stamp = entry.timestamp
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp


class ResponseMailbox:
    def __init__(self, max_age: float = MAX_ENTRY_AGE_SECONDS):
        self.max_age = timedelta(seconds=max_age)
        self._lock = threading.Lock()
        self._slots: Dict[Optional[str], MailboxEntry] = {}

    def _prune(self) -> None:
        cutoff = datetime.now(timezone.utc) - self.max_age
        stale = [key for key, entry in self._slots.items() if _age_key(entry) < cutoff]
        for key in stale:
            del self._slots[key]
        if stale:
            logger.info(f"Dropped {len(stale)} uncollected repl{'y' if len(stale) == 1 else 'ies'}")

    def publish(self, entry: MailboxEntry, session_id: Optional[str] = None) -> None:
        """Last write wins for a given key."""
        with self._lock:
            self._prune()
            self._slots[session_id] = entry

    def consume(self, session_id: Optional[str] = None) -> Optional[MailboxEntry]:
        """Take the session's entry, else the shared one. None when empty."""
        with self._lock:
            entry = None
            if session_id is not None:
                entry = self._slots.pop(session_id, None)
            if entry is None:
                entry = self._slots.pop(None, None)
            return entry

    def clear(self) -> None:
        with self._lock:
            self._slots.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._slots)


mailbox = ResponseMailbox()


def get_mailbox() -> ResponseMailbox:
    return mailbox
