"""
Drive Service
Handles: listing and uploading course documents in a shared Google Drive folder.

Both endpoints act as the configured service account. Upload requests must
carry the user's bearer token, but validating it is left to the identity
provider upstream.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from ..config import Settings, get_settings
from .client import FULL_SCOPE, READONLY_SCOPE, get_client_factory
from .dependencies import require_bearer_token
from .exceptions import (
    CredentialsNotConfiguredException,
    DriveApiException,
    FolderNotConfiguredException,
    FormParseException,
    NoFileException,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drive", tags=["drive"])


def _check_config(settings: Settings) -> None:
    if not settings.google_drive_folder_id:
        logger.error("Missing GOOGLE_DRIVE_FOLDER_ID")
        raise FolderNotConfiguredException()
    if not settings.drive_credentials_configured:
        logger.error(
            "Missing Drive service account credentials "
            f"(GOOGLE_CLIENT_EMAIL set: {bool(settings.google_client_email)}, "
            f"GOOGLE_PRIVATE_KEY set: {bool(settings.google_private_key)})"
        )
        raise CredentialsNotConfiguredException()


# ── Endpoints ─────────────────────────────────────────────────────────────────

@router.get("/files")
async def list_files(
    settings: Settings = Depends(get_settings),
    client_factory=Depends(get_client_factory),
):
    _check_config(settings)
    folder_id = settings.google_drive_folder_id

    try:
        client = client_factory(settings, READONLY_SCOPE)
        files = await run_in_threadpool(client.list_files, folder_id)
    except Exception as e:
        logger.error(f"Drive API error: {e!r}")
        raise DriveApiException(str(e) or "Drive API error")

    logger.info(f"Drive folder {folder_id}: {len(files)} files")
    return {"files": files}


@router.post("/upload")
async def upload_file(
    request: Request,
    _token: str = Depends(require_bearer_token),
    settings: Settings = Depends(get_settings),
    client_factory=Depends(get_client_factory),
):
    try:
        form = await request.form()
    except Exception as e:
        logger.error(f"Form parse error: {e!r}")
        raise FormParseException()

    upload = form.get("file")
    if not isinstance(upload, UploadFile):
        raise NoFileException()

    _check_config(settings)

    filename = upload.filename or "upload"
    mime_type = upload.content_type or "application/octet-stream"

    try:
        content = await upload.read()
        client = client_factory(settings, FULL_SCOPE)
        result = await run_in_threadpool(
            client.upload_file, content, filename, mime_type, settings.google_drive_folder_id
        )
    except Exception as e:
        logger.error(f"Upload to Drive failed: {e!r}")
        raise DriveApiException(str(e) or "Upload failed")
    finally:
        await upload.close()

    logger.info(f"Uploaded '{filename}' to Drive as {result.get('id')}")
    return {"file": result}
