"""Logging configuration and the JSON access-log middleware."""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

SENSITIVE_HEADERS = {"authorization", "cookie"}

access_log = logging.getLogger("sheetcms.access")


def init_logging(level: str = "INFO"):
    """Configure root logging once at startup."""

    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=getattr(logging, level.upper(), logging.INFO),
    )


def _req_id(req: Request) -> str:
    """Return the inbound request ID or generate a UUID4."""

    return req.headers.get("x-request-id") or str(uuid.uuid4())


def _redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Mask credentials before headers reach the access log."""

    return {
        key: ("<redacted>" if key.lower() in SENSITIVE_HEADERS else value)
        for key, value in headers.items()
    }


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Log one JSON record per request and echo `X-Request-ID`."""

    async def dispatch(self, request: Request, call_next: Callable):  # type: ignore[override]
        request_id = _req_id(request)
        request.state.request_id = request_id
        start = time.time()
        status = 500
        error: str | None = None
        response: Response | None = None
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        except Exception as exc:
            error = repr(exc)
            logging.getLogger(__name__).exception("unhandled error on %s", request.url.path)
            response = JSONResponse({"detail": "internal server error"}, status_code=500)
            return response
        finally:
            record = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "query": str(request.url.query),
                "status": status,
                "duration_ms": int((time.time() - start) * 1000),
                "client_ip": request.client.host if request.client else None,
                "headers": _redact_headers(
                    {
                        key: value
                        for key, value in request.headers.items()
                        if key.lower() in {"authorization", "user-agent"}
                    }
                ),
            }
            if error:
                record["error"] = error
                access_log.error(json.dumps(record))
            else:
                access_log.info(json.dumps(record))
            if response is not None:
                response.headers["X-Request-ID"] = request_id
