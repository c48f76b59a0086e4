from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..core.schemas import VoucherCounts, VoucherStats
from .store import VoucherStore


def redemption_rate(counts: VoucherCounts) -> float:
    if counts.total <= 0:
        return 0
    return round(counts.redeemed / counts.total * 100, 2)


def voucher_stats(store: VoucherStore, partner_ref: Optional[str], now: datetime) -> VoucherStats:
    counts = store.count_by_partner(partner_ref, now)
    return VoucherStats(**counts.model_dump(), redemption_rate=redemption_rate(counts))
