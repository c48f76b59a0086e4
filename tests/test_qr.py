import json
from datetime import datetime, timezone

import pytest

from vouchers.core.errors import InvalidPayloadType, MalformedPayload
from vouchers.services.qr import QRCodec

TS = datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)


def test_encode_wire_shape():
    payload = QRCodec().encode("BABSY-AAAA-BBBB-CCCC-DDDD", "p-cafe", TS)
    data = json.loads(payload)
    assert data == {
        "type": "BABSY_VOUCHER",
        "code": "BABSY-AAAA-BBBB-CCCC-DDDD",
        "partnerId": "p-cafe",
        "timestamp": TS.isoformat(),
    }


def test_decode_encoded_payload():
    codec = QRCodec()
    out = codec.decode(codec.encode("BABSY-AAAA-BBBB-CCCC-DDDD", "p-cafe", TS))
    assert out.type == "BABSY_VOUCHER"
    assert out.code == "BABSY-AAAA-BBBB-CCCC-DDDD"
    assert out.partner_id == "p-cafe"
    assert out.timestamp == TS


def test_other_type_is_invalid_type():
    with pytest.raises(InvalidPayloadType):
        QRCodec().decode('{"type":"OTHER","code":"X"}')


def test_missing_type_is_invalid_type():
    with pytest.raises(InvalidPayloadType):
        QRCodec().decode('{"code":"X","partnerId":"p","timestamp":"2025-09-01T12:00:00+00:00"}')


@pytest.mark.parametrize(
    "payload",
    [
        "not json",
        "",
        "[1, 2, 3]",
        '"BABSY_VOUCHER"',
        '{"type":"BABSY_VOUCHER","code":"X"}',
        '{"type":"BABSY_VOUCHER","code":"","partnerId":"p","timestamp":"2025-09-01T12:00:00Z"}',
        '{"type":"BABSY_VOUCHER","code":"X","partnerId":"p","timestamp":"yesterday"}',
        "[" * 100000,
        '{"a":' * 50000,
    ],
)
def test_garbage_is_malformed(payload):
    with pytest.raises(MalformedPayload):
        QRCodec().decode(payload)


def test_custom_discriminator():
    codec = QRCodec("ACME_VOUCHER")
    payload = codec.encode("ACME-1234", "p1", TS)
    assert codec.decode(payload).code == "ACME-1234"
    with pytest.raises(InvalidPayloadType):
        QRCodec().decode(payload)
