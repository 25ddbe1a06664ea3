import logging

from dotenv import load_dotenv

# Load environment variables FIRST - before any other imports
load_dotenv()

# fmt: off
# ruff: noqa: E402
# fmt: on

from fastapi import FastAPI
from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatsync.config import get_settings
from chatsync.constants import API_PREFIX
from chatsync.constants import CONVERSATIONS_PREFIX
from chatsync.database import initialize_database
from chatsync.errors import StoreError
from chatsync.errors import SyncError
from chatsync.routers.conversations import router as conversations_router

_settings = get_settings()

# --------------------------------------------------------------------------
# LOGGING CONFIGURATION
# --------------------------------------------------------------------------
#
# Stdlib loggers (HTTP + database layers) follow LOG_LEVEL; sync decisions
# are emitted as JSON through structlog (see chatsync.utils.log).
#
_log_level_name = _settings.log_level.upper()
try:
    _log_level = getattr(logging, _log_level_name)
except AttributeError:
    _log_level = logging.INFO

logging.basicConfig(level=_log_level, format="%(levelname)s - %(message)s", handlers=[logging.StreamHandler()])

logger = logging.getLogger(__name__)

# HTTP status per SyncError code; anything unlisted is a plain 400.
ERROR_STATUS = {
    "conversation_not_found": 404,
    "message_not_found": 404,
    "seq_mismatch": 409,
    "not_last_message": 409,
    "edit_not_allowed": 403,
    "message_limit_exceeded": 429,
    "conversation_limit_exceeded": 429,
}

# ---------------------------------------------------------------------------
# FastAPI application instance
# ---------------------------------------------------------------------------

app = FastAPI(redirect_slashes=True)

# ------------------------------------------------------------------
# CORS – open wildcard in dev/tests, restricted list when
# `ALLOWED_CORS_ORIGINS` (comma-separated) is set.
# ------------------------------------------------------------------
if _settings.allowed_cors_origins.strip():
    cors_origins = [o.strip() for o in _settings.allowed_cors_origins.split(",") if o.strip()]
else:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SyncError)
async def sync_error_handler(request: Request, exc: SyncError):
    """Render client-correctable failures as the intent error envelope."""

    return JSONResponse(status_code=ERROR_STATUS.get(exc.code, 400), content=exc.to_response())


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Message store failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "internal_error", "message": "Internal server error"},
    )


app.include_router(conversations_router, prefix=f"{API_PREFIX}{CONVERSATIONS_PREFIX}")


@app.on_event("startup")
async def startup_event():
    """Create DB tables if they don't exist."""
    initialize_database()
    logger.info("Database tables initialized")


@app.get("/")
async def read_root():
    """Return a simple message to indicate the API is running."""
    return {"message": "chatsync API is running"}
