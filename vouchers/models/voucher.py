from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, String, Text

from ..db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Partner(Base):
    __tablename__ = "partner"
    id = Column(String(64), primary_key=True)
    name = Column(String(200), nullable=False)
    category = Column(String(80), nullable=True)
    description_default = Column(Text, nullable=True)
    contact_email = Column(String(200), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class Member(Base):
    # Solo lo que necesitan las notificaciones (no es gestión de usuarios)
    __tablename__ = "member"
    id = Column(String(64), primary_key=True)
    email = Column(String(200), nullable=True)
    name = Column(String(200), nullable=True)


class Voucher(Base):
    __tablename__ = "voucher"
    __table_args__ = (
        Index("ix_voucher_owner_created", "owner_ref", "created_at"),
        Index("ix_voucher_partner_redeemed", "partner_ref", "is_redeemed"),
    )

    id = Column(String(32), primary_key=True)
    code = Column(String(64), unique=True, index=True, nullable=False)
    partner_ref = Column(String(64), ForeignKey("partner.id"), nullable=False)
    owner_ref = Column(String(64), nullable=False)
    title = Column(String(200), nullable=True)
    description = Column(Text, nullable=True)
    value = Column(Numeric(12, 2), nullable=True)
    discount_percentage = Column(Integer, nullable=True)
    qr_payload = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    # 'expired' nunca se guarda: se calcula al leer (ver services/store.py)
    is_redeemed = Column(Boolean, nullable=False, default=False)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    redeemed_by_ref = Column(String(64), nullable=True)
