"""
App factory.

    uvicorn vouchers.main:create_app --factory --port 8010
"""
import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from sqlalchemy.engine import Engine

from .core.config import Settings, settings as default_settings
from .db import init_db, make_engine, make_session_factory
from .middleware.errors import install_error_handlers
from .middleware.request_log import install_request_log
from .routers import health, partners, vouchers
from .services.audit import AuditTrail
from .services.codes import CodeGenerator
from .services.lifecycle import VoucherService, utcnow
from .services.notify import LogNotifier, Notifier, SmtpNotifier, ThreadedNotifier, WebhookNotifier
from .services.partners import PartnerDirectory
from .services.qr import QRCodec
from .services.store import VoucherStore

log = logging.getLogger("vouchers.main")


def build_notifier(cfg: Settings, directory: PartnerDirectory) -> Notifier:
    backend = (cfg.notify_backend or "log").strip().lower()
    if backend == "smtp" and cfg.smtp_host:
        inner = SmtpNotifier(
            cfg.smtp_host,
            directory.member_email,
            port=cfg.smtp_port,
            from_addr=cfg.smtp_from,
            username=cfg.smtp_user,
            password=cfg.smtp_password,
            starttls=cfg.smtp_starttls,
            timeout=cfg.notify_timeout,
        )
    elif backend == "webhook" and cfg.notify_webhook_url:
        inner = WebhookNotifier(cfg.notify_webhook_url, token=cfg.notify_webhook_token, timeout=cfg.notify_timeout)
    else:
        if backend != "log":
            log.warning("notify backend %r not configured, falling back to log", backend)
        return LogNotifier()
    return ThreadedNotifier(inner, workers=cfg.notify_workers)


def create_app(
    cfg: Optional[Settings] = None,
    *,
    engine: Optional[Engine] = None,
    notifier: Optional[Notifier] = None,
    clock: Callable = utcnow,
) -> FastAPI:
    cfg = cfg or default_settings
    logging.basicConfig(
        level=getattr(logging, cfg.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = engine or make_engine(cfg.database_url)
    # Crea tablas faltantes
    init_db(engine)
    session_factory = make_session_factory(engine)

    directory = PartnerDirectory(session_factory)
    service = VoucherService(
        VoucherStore(session_factory),
        directory,
        AuditTrail(session_factory),
        generator=CodeGenerator(cfg.code_prefix, cfg.code_segments, cfg.code_segment_length),
        codec=QRCodec(cfg.qr_type),
        notifier=notifier or build_notifier(cfg, directory),
        clock=clock,
        max_code_attempts=cfg.code_max_attempts,
    )

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        yield
        # Vacía la cola de notificaciones pendientes antes de salir
        shutdown = getattr(service.notifier, "shutdown", None)
        if callable(shutdown):
            log.info("waiting for pending notifications")
            shutdown(wait=True)

    app = FastAPI(title=cfg.app_name, version=cfg.app_version, lifespan=lifespan)
    app.state.settings = cfg
    app.state.engine = engine
    app.state.voucher_service = service

    install_error_handlers(app)
    install_request_log(app)

    app.include_router(health.router)
    app.include_router(vouchers.router)
    app.include_router(partners.router)

    log.info("%s %s ready (env=%s)", cfg.app_name, cfg.app_version, cfg.app_env)
    return app
