from typing import List

from fastapi import APIRouter, Depends

from ..core.auth import Requester, require_employee
from ..core.deps import get_partners, get_service
from ..core.errors import PartnerNotFound
from ..core.schemas import PartnerInfo, PartnerUpdate, VoucherStats
from ..services.lifecycle import VoucherService
from ..services.partners import PartnerDirectory

router = APIRouter(prefix="/partners", tags=["partners"])


@router.get("", response_model=List[PartnerInfo])
def list_partners(directory: PartnerDirectory = Depends(get_partners)):
    return directory.list_partners(active_only=True)


@router.get("/{partner_id}", response_model=PartnerInfo)
def get_partner(partner_id: str, directory: PartnerDirectory = Depends(get_partners)):
    p = directory.get_partner(partner_id)
    # Público: los inactivos no se exponen
    if not p.is_active:
        raise PartnerNotFound(f"partner {partner_id} not found")
    return p


@router.put("/{partner_id}", response_model=PartnerInfo)
def update_partner(
    partner_id: str,
    body: PartnerUpdate,
    _: Requester = Depends(require_employee),
    directory: PartnerDirectory = Depends(get_partners),
):
    return directory.update_partner(partner_id, body)


@router.get("/{partner_id}/stats", response_model=VoucherStats)
def partner_stats(
    partner_id: str,
    _: Requester = Depends(require_employee),
    svc: VoucherService = Depends(get_service),
):
    svc.partners.get_partner(partner_id)
    return svc.stats(partner_id)
