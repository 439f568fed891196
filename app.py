#!/usr/bin/env python3
"""EasyPrompt - analyze, optimize and compare prompts across LLM providers.

Usage:
    python app.py                  # Start on port 8501
    python app.py --port 3333      # Custom port
"""

import argparse
import json
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

# Load .env before anything reads provider keys or the master key
_dir = Path(__file__).parent
load_dotenv(_dir / ".env")

APP_VERSION = os.getenv("APP_VERSION", "dev")

from actions import AppContext  # noqa: E402
from db import Database  # noqa: E402
from errors import (  # noqa: E402
    APIError,
    AuthenticationError,
    ConfigNotFoundError,
    ConfigurationError,
    DecryptionError,
    EasyPromptError,
    InvalidInputError,
    ModelNotFoundError,
    ParseError,
    ProviderUnavailableError,
    RateLimitError,
)
from keyvault import vault  # noqa: E402
from routers import all_routers  # noqa: E402
from settings import Settings  # noqa: E402


# ---------------------------------------------------------------------------
# Logging configuration
# ---------------------------------------------------------------------------

class _JSONFormatter(logging.Formatter):
    """JSON log formatter for container stdout (machine-parseable)."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "time": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        # Merge any extra fields passed via extra={...}
        for key in ("user_id", "method", "path", "status", "duration_ms",
                    "provider", "model", "action"):
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, default=str)


def configure_logging() -> None:
    """Set up application-wide logging.

    Reads LOG_LEVEL from env (default: 'warning').
    """
    level_name = os.environ.get("LOG_LEVEL", "warning").upper()
    level = getattr(logging, level_name, logging.WARNING)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove any existing handlers to avoid duplicates on reload
    root.handlers.clear()

    handler = logging.StreamHandler()
    handler.setFormatter(_JSONFormatter())
    root.addHandler(handler)

    for uv_logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(uv_logger_name).setLevel(level)

    # Quiet noisy third-party loggers unless explicitly debugging
    if level > logging.DEBUG:
        logging.getLogger("httpcore").setLevel(logging.WARNING)
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("litellm").setLevel(logging.WARNING)
        logging.getLogger("LiteLLM").setLevel(logging.WARNING)


configure_logging()

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    """Build the settings and data store, and check the encryption setup."""
    settings = Settings.from_env()
    logger.info("EasyPrompt starting (version=%s)", APP_VERSION)

    database = Database(settings.db_path)
    await database.init_db()
    expired = await database.cleanup_expired_sessions()
    if expired:
        logger.info("Removed %d expired session(s)", expired)

    try:
        vault.validate_config()
    except EasyPromptError as e:
        # Env-only credentials still work; saving per-user keys will fail until fixed
        logger.warning("Encryption not configured, per-user provider keys disabled: %s", e.message)

    app_instance.state.settings = settings
    app_instance.state.db = database
    app_instance.state.ctx = AppContext(db=database, settings=settings)
    yield


app = FastAPI(title="EasyPrompt", version=APP_VERSION, lifespan=lifespan)


# ---------------------------------------------------------------------------
# Request Logging Middleware
# ---------------------------------------------------------------------------

_SKIP_LOG_PATHS = frozenset({"/healthz", "/favicon.ico"})


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log HTTP requests with method, path, status and duration."""

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in _SKIP_LOG_PATHS:
            return await call_next(request)

        request_id = uuid.uuid4().hex[:12]
        request.state.request_id = request_id
        method = request.method
        logger.info("REQ %s %s %s", request_id, method, path, extra={"method": method, "path": path})

        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000)

        status = response.status_code
        log_level = logging.INFO
        if 400 <= status < 500:
            log_level = logging.WARNING
        elif status >= 500:
            log_level = logging.ERROR

        logger.log(
            log_level,
            "RES %s %d %dms",
            request_id, status, duration_ms,
            extra={"method": method, "path": path, "status": status, "duration_ms": duration_ms},
        )

        response.headers["X-Request-ID"] = request_id
        return response


app.add_middleware(RequestLoggingMiddleware)

# CORS configuration (only enabled when CORS_ORIGINS is set)
_cors_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
if _cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type"],
    )


# ---------------------------------------------------------------------------
# Error responses
# ---------------------------------------------------------------------------

# First match wins, so subclasses come before their bases
_STATUS_CODES: list[tuple[type[EasyPromptError], int]] = [
    (InvalidInputError, 400),
    (AuthenticationError, 401),
    (ConfigNotFoundError, 404),
    (ModelNotFoundError, 404),
    (RateLimitError, 429),
    (ParseError, 502),
    (APIError, 502),
    (ProviderUnavailableError, 503),
    (DecryptionError, 500),
    (ConfigurationError, 500),
]


def status_for(exc: EasyPromptError) -> int:
    for exc_type, status in _STATUS_CODES:
        if isinstance(exc, exc_type):
            return status
    return 500


@app.exception_handler(EasyPromptError)
async def easyprompt_error_handler(request: Request, exc: EasyPromptError):
    headers = {}
    if isinstance(exc, RateLimitError) and exc.retry_after is not None:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(exc.to_dict(), status_code=status_for(exc), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        {"error": message.removeprefix("Value error, "), "code": InvalidInputError.code},
        status_code=400,
    )


for _router in all_routers:
    app.include_router(_router)


@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    if not os.environ.get("ENCRYPTION_MASTER_KEY"):
        logger.warning("ENCRYPTION_MASTER_KEY not set. Generate one with: python keyvault.py")

    parser = argparse.ArgumentParser(description="EasyPrompt")
    parser.add_argument("--port", type=int, default=8501, help="Port (default: 8501)")
    parser.add_argument("--host", default="0.0.0.0", help="Host (default: 0.0.0.0)")
    args = parser.parse_args()

    logger.info("EasyPrompt starting on http://localhost:%d", args.port)
    log_level = os.environ.get("LOG_LEVEL", "warning").lower()
    uvicorn.run(app, host=args.host, port=args.port, log_level=log_level)
