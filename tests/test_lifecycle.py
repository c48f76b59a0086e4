import concurrent.futures as cf
import json
import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import INACTIVE_PARTNER, MEMBER, OTHER_PARTNER, PARTNER, RecordingNotifier
from vouchers.core.errors import (
    AlreadyRedeemed,
    CodeSpaceExhausted,
    Expired,
    NotFound,
    PartnerInactive,
    PartnerNotFound,
    Unauthorized,
    WrongPartner,
)
from vouchers.core.schemas import VoucherTerms
from vouchers.models.audit import AuditLog
from vouchers.models.voucher import Voucher
from vouchers.services.audit import AuditTrail
from vouchers.services.lifecycle import VoucherService


def _rows(session_factory, model):
    s = session_factory()
    try:
        return s.query(model).count()
    finally:
        s.close()


# ====== Emisión ======
def test_issue_defaults_from_partner(service, notifier, clock):
    v = service.issue(MEMBER, PARTNER)
    assert v.state == "active"
    assert v.title == "Café Babsy"
    assert v.description == "10% auf alle Getränke"
    assert v.owner_ref == MEMBER and v.partner_ref == PARTNER
    assert v.created_at == clock.now
    assert v.expires_at is None
    assert service.generator.matches(v.code)

    qr = json.loads(v.qr_payload)
    assert qr == {"type": "BABSY_VOUCHER", "code": v.code, "partnerId": PARTNER, "timestamp": clock.now.isoformat()}
    assert notifier.issued == [(MEMBER, v.code, PARTNER)]


def test_issue_with_terms(service, clock):
    terms = VoucherTerms(
        description="Gratis Kaffee",
        value=Decimal("12.50"),
        discount_percentage=15,
        expires_at=clock.now + timedelta(days=30),
    )
    v = service.issue(MEMBER, PARTNER, terms)
    assert v.description == "Gratis Kaffee"
    assert v.value == Decimal("12.50")
    assert v.discount_percentage == 15
    assert v.expires_at == clock.now + timedelta(days=30)
    assert service.lookup(v.id).value == Decimal("12.50")


def test_issue_writes_created_audit(service):
    v = service.issue(MEMBER, PARTNER)
    trail = service.audit_trail(v.id)
    assert [e.action for e in trail] == ["created"]
    assert trail[0].actor_ref == MEMBER
    assert trail[0].changes == {"code": v.code, "partner_id": PARTNER}


def test_issue_inactive_partner_leaves_no_trace(service, session_factory, notifier):
    with pytest.raises(PartnerInactive):
        service.issue(MEMBER, INACTIVE_PARTNER)
    assert _rows(session_factory, Voucher) == 0
    assert _rows(session_factory, AuditLog) == 0
    assert notifier.issued == []


def test_issue_unknown_partner(service, session_factory):
    with pytest.raises(PartnerNotFound):
        service.issue(MEMBER, "p-ghost")
    assert _rows(session_factory, Voucher) == 0


def test_issue_survives_notifier_failure(store, directory, audit, clock):
    svc = VoucherService(store, directory, audit, notifier=RecordingNotifier(fail=True), clock=clock)
    v = svc.issue(MEMBER, PARTNER)
    assert store.find_by_id(v.id).code == v.code


def test_issue_survives_audit_failure(store, directory, clock, notifier):
    def broken_sessions():
        raise RuntimeError("db gone")

    svc = VoucherService(store, directory, AuditTrail(broken_sessions), notifier=notifier, clock=clock)
    v = svc.issue(MEMBER, PARTNER)
    assert store.find_by_id(v.id).code == v.code
    assert notifier.issued == [(MEMBER, v.code, PARTNER)]


def test_redeem_survives_missing_audit_table(service, engine):
    v = service.issue(MEMBER, PARTNER)
    AuditLog.__table__.drop(engine)
    # Sin tabla de auditoría el canje sigue funcionando
    done = service.redeem(v.id, "staff-1", PARTNER)
    assert done.state == "redeemed"


class _StuckGenerator:
    def __init__(self, code):
        self.code = code

    def generate(self):
        return self.code

    def normalize(self, code):
        return code.strip().upper()


def test_code_space_exhausted(store, directory, audit, clock, notifier, session_factory):
    svc = VoucherService(store, directory, audit, notifier=notifier, clock=clock)
    first = svc.issue(MEMBER, PARTNER)

    stuck = VoucherService(
        store, directory, audit, generator=_StuckGenerator(first.code), notifier=notifier, clock=clock,
        max_code_attempts=3,
    )
    with pytest.raises(CodeSpaceExhausted):
        stuck.issue(MEMBER, PARTNER)
    assert _rows(session_factory, Voucher) == 1


def test_codes_unique_across_many_issues(service):
    codes = {service.issue(MEMBER, PARTNER).code for _ in range(50)}
    assert len(codes) == 50


# ====== Consulta ======
def test_lookup_ownership(service):
    v = service.issue(MEMBER, PARTNER)
    assert service.lookup(v.id, MEMBER).id == v.id
    assert service.lookup(v.id, None).id == v.id
    with pytest.raises(Unauthorized):
        service.lookup(v.id, "m-intruder")
    with pytest.raises(NotFound):
        service.lookup("missing", None)


def test_list_for_owner(service):
    a = service.issue(MEMBER, PARTNER)
    b = service.issue(MEMBER, OTHER_PARTNER)
    service.issue("m-200", PARTNER)
    service.redeem(a.id, "staff-1", PARTNER)

    assert {v.id for v in service.list_for_owner(MEMBER)} == {a.id, b.id}
    assert [v.id for v in service.list_for_owner(MEMBER, redeemed=True)] == [a.id]
    assert [v.id for v in service.list_for_owner(MEMBER, redeemed=False)] == [b.id]


# ====== Canje ======
def test_redeem_twice(service, notifier, clock):
    v = service.issue(MEMBER, PARTNER)
    done = service.redeem(v.id, "staff-1", PARTNER)
    assert done.state == "redeemed"
    assert done.redeemed_at == clock.now
    assert done.redeemed_by_ref == "staff-1"
    assert notifier.redeemed == [(MEMBER, v.code, PARTNER)]

    with pytest.raises(AlreadyRedeemed):
        service.redeem(v.id, "staff-1", PARTNER)
    assert [e.action for e in service.audit_trail(v.id)] == ["created", "redeemed"]


def test_redeem_expired(service, clock):
    v = service.issue(MEMBER, PARTNER, VoucherTerms(expires_at=clock.now + timedelta(hours=1)))
    assert service.lookup(v.id).state == "active"
    clock.advance(hours=2)
    assert service.lookup(v.id).state == "expired"
    with pytest.raises(Expired):
        service.redeem(v.id, "staff-1", PARTNER)
    assert not service.lookup(v.id).is_redeemed


def test_redeem_expired_in_the_past_at_issue(service, clock):
    v = service.issue(MEMBER, PARTNER, VoucherTerms(expires_at=clock.now - timedelta(days=1)))
    with pytest.raises(Expired):
        service.redeem(v.id, "staff-1", PARTNER)


def test_redeem_at_exact_expiry_boundary(service, clock):
    expires = clock.now + timedelta(hours=1)
    edge = service.issue(MEMBER, PARTNER, VoucherTerms(expires_at=expires))
    late = service.issue(MEMBER, PARTNER, VoucherTerms(expires_at=expires))

    # En el instante exacto de expires_at todavía vale
    clock.advance(hours=1)
    assert clock.now == expires
    assert service.lookup(edge.id).state == "active"
    assert service.redeem(edge.id, "staff-1", PARTNER).state == "redeemed"

    clock.advance(microseconds=1)
    assert service.lookup(late.id).state == "expired"
    with pytest.raises(Expired):
        service.redeem(late.id, "staff-1", PARTNER)


def test_store_redeem_at_exact_expiry_boundary(service, store, clock):
    expires = clock.now + timedelta(minutes=5)
    edge = service.issue(MEMBER, PARTNER, VoucherTerms(expires_at=expires))
    late = service.issue(MEMBER, PARTNER, VoucherTerms(expires_at=expires))

    # Sin el pre-check del servicio: el UPDATE condicional decide solo
    assert store.redeem(edge.id, "staff-1", PARTNER, expires).is_redeemed
    with pytest.raises(Expired):
        store.redeem(late.id, "staff-1", PARTNER, expires + timedelta(microseconds=1))


def test_redeem_wrong_partner(service):
    v = service.issue(MEMBER, PARTNER)
    with pytest.raises(WrongPartner):
        service.redeem(v.id, "staff-9", OTHER_PARTNER)
    assert service.lookup(v.id).state == "active"


def test_redeem_missing(service):
    with pytest.raises(NotFound):
        service.redeem("missing", "staff-1", PARTNER)


def test_redeem_by_code_is_case_insensitive(service):
    v = service.issue(MEMBER, PARTNER)
    done = service.redeem_by_code("  " + v.code.lower() + " ", "staff-1", PARTNER)
    assert done.id == v.id and done.state == "redeemed"
    with pytest.raises(NotFound):
        service.redeem_by_code("BABSY-0000-0000-0000-0000", "staff-1", PARTNER)


def test_concurrent_redeem_only_one_wins(service, notifier):
    v = service.issue(MEMBER, PARTNER)
    barrier = threading.Barrier(2)

    def attempt(staff):
        barrier.wait()
        try:
            return service.redeem(v.id, staff, PARTNER)
        except AlreadyRedeemed as e:
            return e

    with cf.ThreadPoolExecutor(max_workers=2) as ex:
        results = list(ex.map(attempt, ["staff-1", "staff-2"]))

    wins = [r for r in results if not isinstance(r, Exception)]
    losses = [r for r in results if isinstance(r, AlreadyRedeemed)]
    assert len(wins) == 1 and len(losses) == 1

    final = service.lookup(v.id)
    assert final.state == "redeemed"
    assert final.redeemed_by_ref == wins[0].redeemed_by_ref
    assert len(notifier.redeemed) == 1
    assert [e.action for e in service.audit_trail(v.id)].count("redeemed") == 1


# ====== Validación QR ======
def test_validate_qr_ok_is_dry_run(service):
    v = service.issue(MEMBER, PARTNER)
    res = service.validate_qr(v.qr_payload, PARTNER)
    assert res.valid is True and res.reason is None
    assert res.voucher.id == v.id
    assert service.lookup(v.id).state == "active"
    assert [e.action for e in service.audit_trail(v.id)] == ["created"]


def test_validate_qr_wrong_partner_does_not_mutate(service):
    v = service.issue(MEMBER, PARTNER)
    res = service.validate_qr(v.qr_payload, OTHER_PARTNER)
    assert res.valid is False and res.reason == "wrong_partner"
    assert res.voucher is None
    assert service.lookup(v.id).state == "active"


@pytest.mark.parametrize(
    "payload, reason",
    [
        ("not json", "malformed"),
        ("", "malformed"),
        ('{"type":"OTHER","code":"X"}', "invalid_type"),
        ('{"type":"BABSY_VOUCHER"}', "malformed"),
        ("[" * 100000, "malformed"),
        (
            '{"type":"BABSY_VOUCHER","code":"BABSY-0000-0000-0000-0000","partnerId":"p-cafe",'
            '"timestamp":"2025-09-01T12:00:00+00:00"}',
            "not_found",
        ),
    ],
)
def test_validate_qr_garbage(service, payload, reason):
    res = service.validate_qr(payload, PARTNER)
    assert res.valid is False
    assert res.reason == reason


def test_validate_qr_redeemed_and_expired(service, clock):
    used = service.issue(MEMBER, PARTNER)
    service.redeem(used.id, "staff-1", PARTNER)
    assert service.validate_qr(used.qr_payload, PARTNER).reason == "already_redeemed"

    short = service.issue(MEMBER, PARTNER, VoucherTerms(expires_at=clock.now + timedelta(minutes=5)))
    clock.advance(minutes=10)
    assert service.validate_qr(short.qr_payload, PARTNER).reason == "expired"


def test_validate_qr_payload_partner_mismatch(service):
    v = service.issue(MEMBER, PARTNER)
    forged = service.codec.encode(v.code, OTHER_PARTNER)
    res = service.validate_qr(forged, PARTNER)
    assert res.valid is False and res.reason == "payload_mismatch"
