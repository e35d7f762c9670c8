"""Google Drive v3 access through a service account."""

import io
import logging
from typing import List

from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.http import MediaIoBaseUpload

from ..config import Settings

logger = logging.getLogger(__name__)

READONLY_SCOPE = "https://www.googleapis.com/auth/drive.readonly"
FULL_SCOPE = "https://www.googleapis.com/auth/drive"
TOKEN_URI = "https://oauth2.googleapis.com/token"

LIST_FIELDS = "files(id, name, mimeType, webViewLink)"
UPLOAD_FIELDS = "id,name,webViewLink,mimeType,size,createdTime"


class DriveClient:
    def __init__(self, service):
        self._service = service

    def list_files(self, folder_id: str) -> List[dict]:
        response = self._service.files().list(
            q=f"'{folder_id}' in parents and trashed = false",
            fields=LIST_FIELDS,
            orderBy="createdTime desc",
        ).execute()
        return response.get("files", [])

    def upload_file(self, content: bytes, filename: str, mime_type: str, folder_id: str) -> dict:
        media = MediaIoBaseUpload(io.BytesIO(content), mimetype=mime_type, resumable=False)
        return self._service.files().create(
            body={"name": filename, "parents": [folder_id]},
            media_body=media,
            fields=UPLOAD_FIELDS,
        ).execute()


def build_drive_client(settings: Settings, scope: str = FULL_SCOPE) -> DriveClient:
    credentials = service_account.Credentials.from_service_account_info(
        {
            "client_email": settings.google_client_email,
            "private_key": settings.google_private_key,
            "token_uri": TOKEN_URI,
        },
        scopes=[scope],
    )
    logger.debug(f"Drive client created for {settings.google_client_email}")
    return DriveClient(build("drive", "v3", credentials=credentials, cache_discovery=False))


def get_client_factory():
    """FastAPI dependency; tests swap this for a fake."""
    return build_drive_client
