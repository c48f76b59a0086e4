from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware

log = logging.getLogger("vouchers.http")


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Una línea por request: método, ruta, status y duración (sin cabeceras)."""

    async def dispatch(self, request, call_next):
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            ms = int((time.perf_counter() - start) * 1000)
            log.exception("%s %s -> 500 (%dms)", request.method, request.url.path, ms)
            raise
        ms = int((time.perf_counter() - start) * 1000)
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        log.log(
            level,
            "%s %s -> %s (%dms) user=%s",
            request.method,
            request.url.path,
            response.status_code,
            ms,
            request.headers.get("X-User", "-"),
        )
        return response


def install_request_log(app):
    app.add_middleware(RequestLogMiddleware)
