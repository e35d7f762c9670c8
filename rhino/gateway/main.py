"""
Gateway
Single FastAPI app in front of the chat and drive routers.
Port: 8000

Errors leave here as {"error": ...}, the field the web client reads.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..chat.exceptions import RelayFailedException
from ..chat.routes import router as chat_router
from ..config import configure_logging, load_settings
from ..drive.routes import router as drive_router

logger = logging.getLogger(__name__)

settings = load_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    current = load_settings()
    if not current.n8n_webhook_url:
        logger.warning("N8N_WEBHOOK_URL is not set, POST /chat will answer 500")
    if not current.google_drive_folder_id:
        logger.warning("GOOGLE_DRIVE_FOLDER_ID is not set, drive endpoints will answer 500")
    logger.info("[rhino-gateway] Started")
    yield


app = FastAPI(
    title="Le Rhino",
    description="Chat relay to n8n and Google Drive documents.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(chat_router)
app.include_router(drive_router)


@app.get("/")
async def root():
    return {"app": "Le Rhino", "version": __version__, "status": "operational", "docs": "/docs"}


@app.get("/health")
async def health():
    current = load_settings()
    checks = {
        "webhook": "ok" if current.n8n_webhook_url else "unconfigured",
        "drive": "ok" if current.google_drive_folder_id and current.drive_credentials_configured else "unconfigured",
    }
    overall = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
    return {"status": overall, "services": checks}


# ── Error rendering ───────────────────────────────────────────────────────────

@app.exception_handler(RelayFailedException)
async def relay_failed(request: Request, exc: RelayFailedException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "status": exc.upstream_status, "data": exc.upstream_data},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


@app.exception_handler(Exception)
async def server_error(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal Server Error", "message": str(exc)})


def run():
    import uvicorn
    uvicorn.run("rhino.gateway.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
