from __future__ import annotations

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..core.errors import PartnerNotFound
from ..core.schemas import PartnerInfo, PartnerUpdate
from ..models.voucher import Member, Partner


class PartnerDirectory:
    """Lectura (y edición administrativa) de partners y contactos de miembros."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def get_partner(self, partner_ref: str) -> PartnerInfo:
        s = self._session_factory()
        try:
            p = s.get(Partner, partner_ref)
            if p is None:
                raise PartnerNotFound(f"partner {partner_ref} not found")
            return PartnerInfo.model_validate(p)
        finally:
            s.close()

    def list_partners(self, active_only: bool = True) -> List[PartnerInfo]:
        q = select(Partner)
        if active_only:
            q = q.where(Partner.is_active.is_(True))
        q = q.order_by(Partner.name)
        s = self._session_factory()
        try:
            return [PartnerInfo.model_validate(p) for p in s.execute(q).scalars()]
        finally:
            s.close()

    def add_partner(self, info: PartnerInfo) -> PartnerInfo:
        s = self._session_factory()
        try:
            s.add(Partner(**info.model_dump()))
            s.commit()
        finally:
            s.close()
        return info

    def update_partner(self, partner_ref: str, changes: PartnerUpdate) -> PartnerInfo:
        s = self._session_factory()
        try:
            p = s.get(Partner, partner_ref)
            if p is None:
                raise PartnerNotFound(f"partner {partner_ref} not found")
            for k, v in changes.model_dump(exclude_unset=True).items():
                setattr(p, k, v)
            s.commit()
            return PartnerInfo.model_validate(p)
        finally:
            s.close()

    # -----------------------------
    # Contactos (solo para notificaciones)
    # -----------------------------
    def member_email(self, member_ref: str) -> Optional[str]:
        s = self._session_factory()
        try:
            m = s.get(Member, member_ref)
            return m.email if m else None
        finally:
            s.close()

    def add_member(self, member_ref: str, email: Optional[str], name: Optional[str] = None) -> None:
        s = self._session_factory()
        try:
            s.merge(Member(id=member_ref, email=email, name=name))
            s.commit()
        finally:
            s.close()
