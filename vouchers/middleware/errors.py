import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..core.errors import VoucherError

log = logging.getLogger("vouchers.http")


async def _voucher_error(request: Request, exc: VoucherError):
    if exc.status_code >= 500:
        log.error("%s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    else:
        log.info("%s %s -> %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.code, "message": exc.message})


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VoucherError, _voucher_error)
