"""
Voucher Store (adaptador SQLAlchemy)
====================================

Cada operación abre su propia sesión y transacción: el store es el único
recurso mutable compartido entre handlers concurrentes.

El canje es un UPDATE condicional (compare-and-swap sobre is_redeemed):
con dos canjes simultáneos del mismo id solo uno actualiza la fila; el
otro ve rowcount == 0 y relee el registro para devolver la causa real.
No hay locks en memoria, así que la garantía vale también entre procesos.
"""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from ..core.errors import AlreadyRedeemed, DuplicateCode, Expired, NotFound, WrongPartner
from ..core.schemas import VoucherCounts, VoucherRecord, as_utc
from ..models.voucher import Voucher


class VoucherStore:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # -----------------------------
    # Escritura
    # -----------------------------
    def create(self, rec: VoucherRecord) -> VoucherRecord:
        row = Voucher(
            id=rec.id,
            code=rec.code,
            partner_ref=rec.partner_ref,
            owner_ref=rec.owner_ref,
            title=rec.title,
            description=rec.description,
            value=rec.value,
            discount_percentage=rec.discount_percentage,
            qr_payload=rec.qr_payload,
            created_at=as_utc(rec.created_at),
            expires_at=as_utc(rec.expires_at),
            is_redeemed=False,
            redeemed_at=None,
            redeemed_by_ref=None,
        )
        s = self._session_factory()
        try:
            s.add(row)
            s.commit()
        except IntegrityError as e:
            s.rollback()
            # Otro insert ganó el mismo código entre el check y el insert
            if self._code_taken(rec.code):
                raise DuplicateCode(f"code already in use: {rec.code}") from e
            raise
        finally:
            s.close()
        return self._to_record(row)

    def redeem(self, voucher_id: str, redeemer_ref: str, partner_ref: str, now: datetime) -> VoucherRecord:
        now = as_utc(now)
        s = self._session_factory()
        try:
            res = s.execute(
                update(Voucher)
                .where(
                    Voucher.id == voucher_id,
                    Voucher.is_redeemed.is_(False),
                    Voucher.partner_ref == partner_ref,
                    or_(Voucher.expires_at.is_(None), Voucher.expires_at >= now),
                )
                .values(is_redeemed=True, redeemed_at=now, redeemed_by_ref=redeemer_ref)
                .execution_options(synchronize_session=False)
            )
            updated = res.rowcount
            s.commit()
        finally:
            s.close()

        rec = self.find_by_id(voucher_id)
        if updated == 1:
            return rec
        # rowcount 0: la relectura decide la causa (redeemed manda en carreras)
        if rec.is_redeemed:
            raise AlreadyRedeemed(f"voucher {voucher_id} already redeemed")
        if rec.state_at(now) == "expired":
            raise Expired(f"voucher {voucher_id} has expired")
        if rec.partner_ref != partner_ref:
            raise WrongPartner(f"voucher {voucher_id} is not valid for this partner")
        raise AlreadyRedeemed(f"voucher {voucher_id} could not be redeemed")

    # -----------------------------
    # Lectura
    # -----------------------------
    def find_by_id(self, voucher_id: str) -> VoucherRecord:
        s = self._session_factory()
        try:
            row = s.get(Voucher, voucher_id)
            if row is None:
                raise NotFound(f"voucher {voucher_id} not found")
            return self._to_record(row)
        finally:
            s.close()

    def find_by_code(self, code: str) -> VoucherRecord:
        s = self._session_factory()
        try:
            row = s.execute(select(Voucher).where(Voucher.code == code)).scalar_one_or_none()
            if row is None:
                raise NotFound(f"voucher code {code} not found")
            return self._to_record(row)
        finally:
            s.close()

    def code_exists(self, code: str) -> bool:
        return self._code_taken(code)

    def list_by_owner(self, owner_ref: str, redeemed: Optional[bool] = None) -> List[VoucherRecord]:
        q = select(Voucher).where(Voucher.owner_ref == owner_ref)
        if redeemed is not None:
            q = q.where(Voucher.is_redeemed.is_(redeemed))
        q = q.order_by(Voucher.created_at.desc(), Voucher.id)
        s = self._session_factory()
        try:
            return [self._to_record(r) for r in s.execute(q).scalars()]
        finally:
            s.close()

    def count_by_partner(self, partner_ref: Optional[str], now: datetime) -> VoucherCounts:
        """Una sola consulta agregada: los conteos salen del mismo snapshot."""
        now = as_utc(now)
        expired_cond = (Voucher.is_redeemed.is_(False)) & (Voucher.expires_at.is_not(None)) & (
            Voucher.expires_at < now
        )
        q = select(
            func.count(Voucher.id),
            func.coalesce(func.sum(case((Voucher.is_redeemed.is_(True), 1), else_=0)), 0),
            func.coalesce(func.sum(case((expired_cond, 1), else_=0)), 0),
        )
        if partner_ref is not None:
            q = q.where(Voucher.partner_ref == partner_ref)
        s = self._session_factory()
        try:
            total, redeemed, expired = s.execute(q).one()
        finally:
            s.close()
        total, redeemed, expired = int(total or 0), int(redeemed or 0), int(expired or 0)
        return VoucherCounts(
            total=total,
            active=total - redeemed - expired,
            redeemed=redeemed,
            expired=expired,
        )

    # -----------------------------
    # Helpers
    # -----------------------------
    def _code_taken(self, code: str) -> bool:
        s = self._session_factory()
        try:
            return s.execute(select(Voucher.id).where(Voucher.code == code)).first() is not None
        finally:
            s.close()

    @staticmethod
    def _to_record(row: Voucher) -> VoucherRecord:
        return VoucherRecord(
            id=row.id,
            code=row.code,
            partner_ref=row.partner_ref,
            owner_ref=row.owner_ref,
            title=row.title,
            description=row.description,
            value=row.value,
            discount_percentage=row.discount_percentage,
            qr_payload=row.qr_payload,
            created_at=as_utc(row.created_at),
            expires_at=as_utc(row.expires_at),
            is_redeemed=bool(row.is_redeemed),
            redeemed_at=as_utc(row.redeemed_at),
            redeemed_by_ref=row.redeemed_by_ref,
        )
