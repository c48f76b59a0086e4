"""
Voucher Lifecycle Service
=========================

Orquesta emisión, consulta, validación QR y canje.

- Dependencias explícitas (store, directorio, generador, codec, auditoría,
  notifier, reloj): nada global, se sustituyen por fakes en los tests.
- Auditoría y notificaciones son best-effort: nunca fallan la operación.
- El store es la autoridad en carreras de canje; las comprobaciones previas
  solo dan errores más claros en el caso normal.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from ..core.errors import (
    AlreadyRedeemed,
    CodeSpaceExhausted,
    DuplicateCode,
    Expired,
    InvalidPayloadType,
    NotFound,
    PartnerInactive,
    PayloadError,
    Unauthorized,
    WrongPartner,
)
from ..core.schemas import (
    AuditEntry,
    PartnerInfo,
    QRValidation,
    VoucherOut,
    VoucherRecord,
    VoucherStats,
    VoucherTerms,
)
from .audit import AuditTrail
from .codes import CodeGenerator
from .notify import LogNotifier, Notifier
from .partners import PartnerDirectory
from .qr import QRCodec
from .stats import voucher_stats
from .store import VoucherStore

log = logging.getLogger("vouchers.lifecycle")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VoucherService:
    def __init__(
        self,
        store: VoucherStore,
        partners: PartnerDirectory,
        audit: AuditTrail,
        *,
        generator: Optional[CodeGenerator] = None,
        codec: Optional[QRCodec] = None,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = utcnow,
        max_code_attempts: int = 10,
    ):
        self.store = store
        self.partners = partners
        self.audit = audit
        self.generator = generator or CodeGenerator()
        self.codec = codec or QRCodec()
        self.notifier = notifier or LogNotifier()
        self.clock = clock
        self.max_code_attempts = max_code_attempts

    # -----------------------------
    # Emisión
    # -----------------------------
    def issue(self, owner_ref: str, partner_ref: str, terms: Optional[VoucherTerms] = None) -> VoucherOut:
        terms = terms or VoucherTerms()
        partner = self.partners.get_partner(partner_ref)
        if not partner.is_active:
            raise PartnerInactive(f"partner {partner_ref} is inactive")

        rec = None
        for attempt in range(1, self.max_code_attempts + 1):
            code = self.generator.generate()
            if self.store.code_exists(code):
                log.warning("voucher code collision (attempt %d/%d)", attempt, self.max_code_attempts)
                continue
            now = self.clock()
            candidate = VoucherRecord(
                id=uuid.uuid4().hex,
                code=code,
                partner_ref=partner.id,
                owner_ref=owner_ref,
                title=partner.name,
                description=terms.description or partner.description_default,
                value=terms.value,
                discount_percentage=terms.discount_percentage,
                qr_payload=self.codec.encode(code, partner.id, now),
                created_at=now,
                expires_at=terms.expires_at,
            )
            try:
                rec = self.store.create(candidate)
                break
            except DuplicateCode:
                log.warning("voucher code taken on insert (attempt %d/%d)", attempt, self.max_code_attempts)
        if rec is None:
            log.error("could not generate a unique voucher code after %d attempts", self.max_code_attempts)
            raise CodeSpaceExhausted(f"no unique code after {self.max_code_attempts} attempts")

        self._audit("created", rec.id, owner_ref, {"code": rec.code, "partner_id": partner.id})
        log.info("voucher issued: %s for member %s", rec.code, owner_ref)
        self._notify_issued(owner_ref, rec, partner)
        return self._out(rec)

    # -----------------------------
    # Consulta
    # -----------------------------
    def lookup(self, voucher_id: str, requesting_owner_ref: Optional[str] = None) -> VoucherOut:
        rec = self.store.find_by_id(voucher_id)
        # Miembros solo ven los suyos; partners/empleados pasan None
        if requesting_owner_ref is not None and rec.owner_ref != requesting_owner_ref:
            raise Unauthorized("unauthorized access to voucher")
        return self._out(rec)

    def list_for_owner(self, owner_ref: str, redeemed: Optional[bool] = None) -> List[VoucherOut]:
        return [self._out(r) for r in self.store.list_by_owner(owner_ref, redeemed)]

    # -----------------------------
    # Canje
    # -----------------------------
    def redeem(self, voucher_id: str, redeemer_ref: str, partner_ref: str) -> VoucherOut:
        rec = self.store.find_by_id(voucher_id)
        now = self.clock()
        self._check_redeemable(rec, partner_ref, now)

        updated = self.store.redeem(rec.id, redeemer_ref, partner_ref, now)

        self._audit("redeemed", updated.id, redeemer_ref, {"code": updated.code, "partner_id": partner_ref})
        log.info("voucher redeemed: %s by %s", updated.code, redeemer_ref)
        self._notify_redeemed(updated)
        return self._out(updated)

    def redeem_by_code(self, code: str, redeemer_ref: str, partner_ref: str) -> VoucherOut:
        rec = self.store.find_by_code(self.generator.normalize(code))
        return self.redeem(rec.id, redeemer_ref, partner_ref)

    def validate_qr(self, payload: str, partner_ref: str) -> QRValidation:
        """Dry-run del canje para entrada de escáner: nunca lanza, nunca muta."""
        try:
            data = self.codec.decode(payload)
        except InvalidPayloadType:
            log.info("qr rejected: invalid payload type")
            return QRValidation(valid=False, reason="invalid_type")
        except PayloadError:
            log.info("qr rejected: malformed payload")
            return QRValidation(valid=False, reason="malformed")

        try:
            rec = self.store.find_by_code(self.generator.normalize(data.code))
        except NotFound:
            return QRValidation(valid=False, reason="not_found")

        now = self.clock()
        try:
            self._check_redeemable(rec, partner_ref, now)
        except AlreadyRedeemed:
            return QRValidation(valid=False, reason="already_redeemed")
        except Expired:
            return QRValidation(valid=False, reason="expired")
        except WrongPartner:
            return QRValidation(valid=False, reason="wrong_partner")

        if data.partner_id != rec.partner_ref:
            return QRValidation(valid=False, reason="payload_mismatch")
        return QRValidation(valid=True, voucher=VoucherOut.from_record(rec, now))

    # -----------------------------
    # Estadísticas
    # -----------------------------
    def stats(self, partner_ref: Optional[str] = None) -> VoucherStats:
        return voucher_stats(self.store, partner_ref, self.clock())

    def audit_trail(self, voucher_id: str) -> List[AuditEntry]:
        self.store.find_by_id(voucher_id)
        return self.audit.entries_for("voucher", voucher_id)

    # -----------------------------
    # Helpers
    # -----------------------------
    @staticmethod
    def _check_redeemable(rec: VoucherRecord, partner_ref: str, now: datetime) -> None:
        if rec.is_redeemed:
            raise AlreadyRedeemed(f"voucher {rec.code} already redeemed")
        if rec.state_at(now) == "expired":
            raise Expired(f"voucher {rec.code} has expired")
        if rec.partner_ref != partner_ref:
            raise WrongPartner(f"voucher {rec.code} is not valid for this partner")

    def _out(self, rec: VoucherRecord) -> VoucherOut:
        return VoucherOut.from_record(rec, self.clock())

    def _audit(self, action: str, voucher_id: str, actor_ref: str, changes: dict) -> None:
        self.audit.append(
            AuditEntry(
                entity_type="voucher",
                entity_id=voucher_id,
                action=action,
                actor_ref=actor_ref,
                changes=changes,
                timestamp=self.clock(),
            )
        )

    def _notify_issued(self, owner_ref: str, rec: VoucherRecord, partner: PartnerInfo) -> None:
        try:
            self.notifier.notify_issued(owner_ref, rec, partner)
        except Exception:
            log.exception("issue notification failed for %s", rec.code)

    def _notify_redeemed(self, rec: VoucherRecord) -> None:
        try:
            partner = self.partners.get_partner(rec.partner_ref)
            self.notifier.notify_redeemed(rec.owner_ref, rec, partner)
        except Exception:
            log.exception("redeem notification failed for %s", rec.code)
