from datetime import datetime, timedelta, timezone

import pytest

from vouchers.core.schemas import PartnerInfo
from vouchers.db import init_db, make_engine, make_session_factory
from vouchers.services.audit import AuditTrail
from vouchers.services.codes import CodeGenerator
from vouchers.services.lifecycle import VoucherService
from vouchers.services.partners import PartnerDirectory
from vouchers.services.qr import QRCodec
from vouchers.services.store import VoucherStore

PARTNER = "p-cafe"
OTHER_PARTNER = "p-books"
INACTIVE_PARTNER = "p-closed"
MEMBER = "m-100"


class FixedClock:
    def __init__(self, now=None):
        self.now = now or datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kw):
        self.now = self.now + timedelta(**kw)


class RecordingNotifier:
    def __init__(self, fail=False):
        self.fail = fail
        self.issued = []
        self.redeemed = []

    def notify_issued(self, owner_ref, voucher, partner):
        if self.fail:
            raise RuntimeError("smtp down")
        self.issued.append((owner_ref, voucher.code, partner.id))

    def notify_redeemed(self, owner_ref, voucher, partner):
        if self.fail:
            raise RuntimeError("smtp down")
        self.redeemed.append((owner_ref, voucher.code, partner.id))


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'vouchers.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def directory(session_factory):
    d = PartnerDirectory(session_factory)
    d.add_partner(PartnerInfo(id=PARTNER, name="Café Babsy", description_default="10% auf alle Getränke",
                              contact_email="cafe@partner.babsy.ch"))
    d.add_partner(PartnerInfo(id=OTHER_PARTNER, name="Buchhandlung", description_default="5 CHF Rabatt"))
    d.add_partner(PartnerInfo(id=INACTIVE_PARTNER, name="Geschlossen", is_active=False))
    d.add_member(MEMBER, "member@example.ch", "Anna")
    return d


@pytest.fixture
def store(session_factory):
    return VoucherStore(session_factory)


@pytest.fixture
def audit(session_factory):
    return AuditTrail(session_factory)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(store, directory, audit, clock, notifier):
    return VoucherService(
        store,
        directory,
        audit,
        generator=CodeGenerator(),
        codec=QRCodec(),
        notifier=notifier,
        clock=clock,
    )
