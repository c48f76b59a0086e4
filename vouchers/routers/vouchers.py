from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from ..core.auth import Requester, get_requester, partner_scope, require_employee, require_member, require_partner
from ..core.deps import get_service
from ..core.schemas import (
    AuditEntry,
    IssueRequest,
    QRValidation,
    RedeemCodeRequest,
    ValidateQRRequest,
    VoucherOut,
    VoucherStats,
)
from ..services.lifecycle import VoucherService

router = APIRouter(prefix="/vouchers", tags=["vouchers"])


@router.get("", response_model=List[VoucherOut])
def list_my_vouchers(
    redeemed: Optional[bool] = Query(default=None),
    req: Requester = Depends(require_member),
    svc: VoucherService = Depends(get_service),
):
    return svc.list_for_owner(req.requester_id, redeemed)


@router.post("", response_model=VoucherOut, status_code=201)
def issue_voucher(
    body: IssueRequest,
    req: Requester = Depends(require_member),
    svc: VoucherService = Depends(get_service),
):
    return svc.issue(req.requester_id, body.partner_id, body.terms())


@router.get("/stats/overview", response_model=VoucherStats)
def stats_overview(
    partner_id: Optional[str] = Query(default=None),
    req: Requester = Depends(require_partner),
    svc: VoucherService = Depends(get_service),
):
    # Partners solo ven sus propias estadísticas
    scope = partner_scope(req) if req.requester_type == "partner" else partner_id
    return svc.stats(scope)


@router.post("/validate", response_model=QRValidation)
def validate_qr(
    body: ValidateQRRequest,
    req: Requester = Depends(require_partner),
    svc: VoucherService = Depends(get_service),
):
    return svc.validate_qr(body.qr_data, partner_scope(req))


@router.post("/redeem-code", response_model=VoucherOut)
def redeem_by_code(
    body: RedeemCodeRequest,
    req: Requester = Depends(require_partner),
    svc: VoucherService = Depends(get_service),
):
    return svc.redeem_by_code(body.code, req.requester_id, partner_scope(req))


@router.get("/{voucher_id}", response_model=VoucherOut)
def get_voucher(
    voucher_id: str,
    req: Requester = Depends(get_requester),
    svc: VoucherService = Depends(get_service),
):
    return svc.lookup(voucher_id, req.owner_scope)


@router.post("/{voucher_id}/redeem", response_model=VoucherOut)
def redeem_voucher(
    voucher_id: str,
    req: Requester = Depends(require_partner),
    svc: VoucherService = Depends(get_service),
):
    return svc.redeem(voucher_id, req.requester_id, partner_scope(req))


@router.get("/{voucher_id}/audit", response_model=List[AuditEntry])
def voucher_audit(
    voucher_id: str,
    _: Requester = Depends(require_employee),
    svc: VoucherService = Depends(get_service),
):
    return svc.audit_trail(voucher_id)
