from fastapi import Request

from ..services.lifecycle import VoucherService
from ..services.partners import PartnerDirectory


def get_service(request: Request) -> VoucherService:
    return request.app.state.voucher_service


def get_partners(request: Request) -> PartnerDirectory:
    return request.app.state.voucher_service.partners
