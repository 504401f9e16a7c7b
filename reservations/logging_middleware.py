"""File loggers and the HTTP access-log middleware shared by the services.

Each service writes its access lines to ``<log_dir>/http-<service>.log``;
the booking audit trail goes to ``<log_dir>/bookings.log``.
"""
from __future__ import annotations

import logging
import uuid
from pathlib import Path
from time import perf_counter

from fastapi import FastAPI, Request

from .config import get_settings

REQUEST_ID_HEADER = "X-Request-ID"
SLOW_REQUEST_MS = 1000.0


def _log_dir() -> Path:
    configured = get_settings().log_dir
    path = Path(configured) if configured else Path(__file__).resolve().parent.parent / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def build_file_logger(name: str) -> logging.Logger:
    """Logger ``audit.<name>`` appending to ``<log_dir>/<name>.log``; handlers are attached once."""
    logger = logging.getLogger(f"audit.{name}")
    if logger.handlers:
        return logger

    logger.setLevel(logging.INFO)
    handler = logging.FileHandler(_log_dir() / f"{name}.log")
    handler.setFormatter(
        logging.Formatter("%(asctime)s | %(levelname)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    logger.addHandler(handler)
    return logger


def add_audit_middleware(app: FastAPI, service_name: str) -> None:
    logger = build_file_logger(f"http-{service_name}")

    @app.middleware("http")
    async def access_logger(request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        started = perf_counter()
        response = await call_next(request)
        duration_ms = (perf_counter() - started) * 1000
        response.headers[REQUEST_ID_HEADER] = request_id

        if response.status_code >= 500:
            level = logging.ERROR
        elif response.status_code >= 400 or duration_ms > SLOW_REQUEST_MS:
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(
            level,
            "%s %s | status=%s | client=%s | request=%s | duration=%.2fms",
            request.method,
            request.url.path,
            response.status_code,
            request.client.host if request.client else "unknown",
            request_id,
            duration_ms,
        )
        return response
