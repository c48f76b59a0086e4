"""
Frontera de autenticación.

El gateway ya verificó el token; aquí solo se leen las cabeceras que deja
(X-User, X-User-Type, X-Partner-Id) y se aplican los roles por ruta.
"""
from dataclasses import dataclass
from typing import Literal, Optional

from fastapi import Depends, Header, HTTPException

RequesterType = Literal["member", "partner", "employee"]
_TYPES = ("member", "partner", "employee")


@dataclass(frozen=True)
class Requester:
    requester_id: str
    requester_type: RequesterType
    partner_ref: Optional[str] = None

    @property
    def owner_scope(self) -> Optional[str]:
        # Miembros solo ven lo suyo; partners y empleados no tienen filtro
        return self.requester_id if self.requester_type == "member" else None


def get_requester(
    x_user: Optional[str] = Header(default=None, alias="X-User", convert_underscores=False),
    x_user_type: Optional[str] = Header(default=None, alias="X-User-Type", convert_underscores=False),
    x_partner_id: Optional[str] = Header(default=None, alias="X-Partner-Id", convert_underscores=False),
) -> Requester:
    if not x_user or not x_user_type:
        raise HTTPException(status_code=401, detail="AUTH_REQUIRED")
    kind = x_user_type.strip().lower()
    if kind not in _TYPES:
        raise HTTPException(status_code=401, detail="AUTH_INVALID_USER_TYPE")
    return Requester(requester_id=x_user.strip(), requester_type=kind, partner_ref=(x_partner_id or "").strip() or None)


def require_role(*allowed: str):
    def _dep(req: Requester = Depends(get_requester)) -> Requester:
        if req.requester_type not in allowed:
            raise HTTPException(status_code=403, detail="FORBIDDEN")
        return req

    return _dep


require_member = require_role("member", "employee")
require_partner = require_role("partner", "employee")
require_employee = require_role("employee")


def partner_scope(req: Requester) -> str:
    """Partner con el que se canjea; sin X-Partner-Id no se puede canjear."""
    if not req.partner_ref:
        raise HTTPException(status_code=400, detail="PARTNER_ID_REQUIRED")
    return req.partner_ref
