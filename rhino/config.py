"""Shared configuration, read from the environment (and .env at the repo root)."""

import logging
import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


@dataclass(frozen=True)
class Settings:
    n8n_webhook_url: str
    webhook_timeout: float
    google_client_email: str
    google_private_key: str
    google_drive_folder_id: str
    poll_interval: float
    reply_timeout: float
    cors_origins: List[str]
    log_level: str

    @property
    def drive_credentials_configured(self) -> bool:
        return bool(self.google_client_email and self.google_private_key)


def load_settings() -> Settings:
    """Build Settings from the current environment.

    The private key usually arrives with literal ``\\n`` sequences (single-line
    env files), so those are unfolded into real newlines here.
    """
    private_key = os.getenv("GOOGLE_PRIVATE_KEY", "").replace("\\n", "\n")
    origins = os.getenv("CORS_ORIGINS", "http://localhost:3000")

    return Settings(
        n8n_webhook_url=os.getenv("N8N_WEBHOOK_URL", ""),
        webhook_timeout=float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "30")),
        google_client_email=os.getenv("GOOGLE_CLIENT_EMAIL", ""),
        google_private_key=private_key,
        google_drive_folder_id=os.getenv("GOOGLE_DRIVE_FOLDER_ID", ""),
        poll_interval=float(os.getenv("REPLY_POLL_INTERVAL_SECONDS", "2")),
        reply_timeout=float(os.getenv("REPLY_TIMEOUT_SECONDS", "120")),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def get_settings() -> Settings:
    """FastAPI dependency. Re-reads the environment on every request."""
    return load_settings()


def configure_logging(level_name: str = "INFO") -> None:
    level = getattr(logging, level_name, logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("rhino").setLevel(level)
