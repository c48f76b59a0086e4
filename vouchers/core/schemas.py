from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

VoucherState = Literal["active", "redeemed", "expired"]

# Un QR real no pasa de unos cientos de bytes
QR_MAX_LENGTH = 4096


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Fechas siempre aware en UTC; las naive (SQLite) se asumen UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def compute_state(is_redeemed: bool, expires_at: Optional[datetime], now: datetime) -> VoucherState:
    if is_redeemed:
        return "redeemed"
    if expires_at is not None and as_utc(expires_at) < as_utc(now):
        return "expired"
    return "active"


# ====== Directorio de partners ======
class PartnerInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    is_active: bool = True
    description_default: Optional[str] = None
    category: Optional[str] = None
    contact_email: Optional[str] = None


class PartnerUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    category: Optional[str] = None
    description_default: Optional[str] = None
    contact_email: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name", "is_active")
    @classmethod
    def _not_null(cls, v, info):
        # Solo corre si el campo viene en el body: null explícito no se acepta
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


# ====== Vouchers ======
class VoucherTerms(BaseModel):
    description: Optional[str] = None
    value: Optional[Decimal] = None
    discount_percentage: Optional[int] = None
    expires_at: Optional[datetime] = None


class VoucherRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    partner_ref: str
    owner_ref: str
    title: Optional[str] = None
    description: Optional[str] = None
    value: Optional[Decimal] = None
    discount_percentage: Optional[int] = None
    qr_payload: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    is_redeemed: bool = False
    redeemed_at: Optional[datetime] = None
    redeemed_by_ref: Optional[str] = None

    def state_at(self, now: datetime) -> VoucherState:
        return compute_state(self.is_redeemed, self.expires_at, now)


class VoucherOut(VoucherRecord):
    state: VoucherState

    @classmethod
    def from_record(cls, rec: VoucherRecord, now: datetime) -> "VoucherOut":
        return cls(**rec.model_dump(), state=rec.state_at(now))


class VoucherCounts(BaseModel):
    total: int = 0
    active: int = 0
    redeemed: int = 0
    expired: int = 0


class VoucherStats(VoucherCounts):
    redemption_rate: float = 0


class QRPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    code: str = Field(min_length=1)
    partner_id: str = Field(alias="partnerId", min_length=1)
    timestamp: datetime


class QRValidation(BaseModel):
    valid: bool
    voucher: Optional[VoucherOut] = None
    reason: Optional[str] = None


class AuditEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_type: str
    entity_id: str
    action: str
    actor_ref: Optional[str] = None
    changes: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ====== Requests (frontera HTTP) ======
class IssueRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    partner_id: str = Field(..., min_length=1)
    description: Optional[str] = None
    value: Optional[Decimal] = Field(default=None, ge=0)
    discount_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    expires_at: Optional[datetime] = None

    @field_validator("description", mode="before")
    @classmethod
    def _strip_description(cls, v):
        if v is None:
            return None
        s = str(v).strip()
        return s or None

    @field_validator("expires_at")
    @classmethod
    def _expires_in_future(cls, v):
        # La regla "expires_at > created_at" se valida aquí, no en el core
        if v is None:
            return None
        v = as_utc(v)
        if v <= datetime.now(timezone.utc):
            raise ValueError("expires_at must be in the future")
        return v

    def terms(self) -> VoucherTerms:
        return VoucherTerms(
            description=self.description,
            value=self.value,
            discount_percentage=self.discount_percentage,
            expires_at=self.expires_at,
        )


class ValidateQRRequest(BaseModel):
    qr_data: str = Field(..., min_length=1, max_length=QR_MAX_LENGTH, alias="qrData")

    model_config = ConfigDict(populate_by_name=True)


class RedeemCodeRequest(BaseModel):
    code: str = Field(..., min_length=1)
