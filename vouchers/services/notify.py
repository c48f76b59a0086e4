"""
Notificaciones de vouchers (email / webhook).

Todas son fire-and-forget para el ciclo de vida: un error de envío se
registra en el log y nunca llega al caller.

    notifier = ThreadedNotifier(SmtpNotifier(...), workers=2)
    notifier.notify_issued(owner_ref, voucher, partner)
"""
from __future__ import annotations

import logging
import smtplib
import ssl
from concurrent.futures import Future, ThreadPoolExecutor
from email.message import EmailMessage
from typing import Callable, Optional, Protocol

import requests

from ..core.schemas import PartnerInfo, VoucherRecord

log = logging.getLogger("vouchers.notify")


class Notifier(Protocol):
    def notify_issued(self, owner_ref: str, voucher: VoucherRecord, partner: PartnerInfo) -> None: ...

    def notify_redeemed(self, owner_ref: str, voucher: VoucherRecord, partner: PartnerInfo) -> None: ...


class LogNotifier:
    """Por defecto (dev): solo deja rastro en el log."""

    def notify_issued(self, owner_ref, voucher, partner):
        log.info("voucher issued: code=%s owner=%s partner=%s", voucher.code, owner_ref, partner.name)

    def notify_redeemed(self, owner_ref, voucher, partner):
        log.info("voucher redeemed: code=%s owner=%s partner=%s", voucher.code, owner_ref, partner.name)


class SmtpNotifier:
    """Email por SMTP. La dirección del miembro se resuelve con `lookup_email`."""

    def __init__(
        self,
        host: str,
        lookup_email: Callable[[str], Optional[str]],
        *,
        port: int = 587,
        from_addr: str = "",
        username: Optional[str] = None,
        password: Optional[str] = None,
        starttls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.from_addr = from_addr
        self.username = username
        self.password = password
        self.starttls = starttls
        self.timeout = timeout
        self._lookup_email = lookup_email

    def notify_issued(self, owner_ref, voucher, partner):
        subject = f"Ihr Gutschein für {partner.name}"
        body = "\n".join(
            [
                f"Ihr Gutschein für {partner.name} ist bereit.",
                "",
                f"Code: {voucher.code}",
                f"Beschreibung: {voucher.description or '-'}",
                f"Gültig bis: {voucher.expires_at.date().isoformat() if voucher.expires_at else 'unbegrenzt'}",
            ]
        )
        # Cada destinatario por separado: un fallo no bloquea al otro
        errors = []
        try:
            self._send_to_member(owner_ref, subject, body)
        except Exception as e:
            errors.append(e)
        if partner.contact_email:
            try:
                self._send(partner.contact_email, f"Neuer Gutschein generiert - {voucher.code}", body)
            except Exception as e:
                errors.append(e)
        if errors:
            raise errors[0]

    def notify_redeemed(self, owner_ref, voucher, partner):
        subject = f"Gutschein bei {partner.name} eingelöst"
        redeemed = voucher.redeemed_at.isoformat() if voucher.redeemed_at else "-"
        body = f"Ihr Gutschein {voucher.code} wurde am {redeemed} bei {partner.name} eingelöst."
        self._send_to_member(owner_ref, subject, body)

    def _send_to_member(self, owner_ref: str, subject: str, body: str) -> None:
        to_addr = self._lookup_email(owner_ref)
        if not to_addr:
            log.warning("no email address for member %s, skipping %r", owner_ref, subject)
            return
        self._send(to_addr, subject, body)

    def _send(self, to_addr: str, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = to_addr
        msg.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.starttls:
                smtp.starttls(context=ssl.create_default_context())
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(msg)
        log.info("email sent to %s: %s", to_addr, subject)


class WebhookNotifier:
    """POST JSON a un endpoint externo (p.ej. el workflow que envía los correos)."""

    def __init__(self, url: str, token: Optional[str] = None, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()
        self._headers = {"Content-Type": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def notify_issued(self, owner_ref, voucher, partner):
        self._post("voucher.issued", owner_ref, voucher, partner)

    def notify_redeemed(self, owner_ref, voucher, partner):
        self._post("voucher.redeemed", owner_ref, voucher, partner)

    def _post(self, event: str, owner_ref: str, voucher: VoucherRecord, partner: PartnerInfo) -> None:
        body = {
            "event": event,
            "owner_ref": owner_ref,
            "voucher_code": voucher.code,
            "voucher_id": voucher.id,
            "partner_id": partner.id,
            "partner_name": partner.name,
            "description": voucher.description,
        }
        r = self._session.post(self.url, json=body, headers=self._headers, timeout=self.timeout)
        r.raise_for_status()


class ThreadedNotifier:
    """Despacha al notifier real en un pool; el caller no espera al envío."""

    def __init__(self, inner: Notifier, workers: int = 2):
        self.inner = inner
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify")

    def notify_issued(self, owner_ref, voucher, partner):
        self._submit("issued", self.inner.notify_issued, owner_ref, voucher, partner)

    def notify_redeemed(self, owner_ref, voucher, partner):
        self._submit("redeemed", self.inner.notify_redeemed, owner_ref, voucher, partner)

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)

    def _submit(self, kind: str, fn, owner_ref, voucher, partner) -> None:
        fut = self._pool.submit(fn, owner_ref, voucher, partner)
        fut.add_done_callback(lambda f: _log_failure(f, kind, voucher.code))


def _log_failure(fut: Future, kind: str, code: str) -> None:
    exc = fut.exception()
    if exc is not None:
        log.error("notification %s failed for %s: %s", kind, code, exc, exc_info=exc)
