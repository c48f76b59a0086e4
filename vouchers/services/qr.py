"""
Codec del payload QR que leen los escáneres de los partners.

Forma en el cable (contrato con los clientes escáner):
    {"type": "BABSY_VOUCHER", "code": "...", "partnerId": "...", "timestamp": "..."}
"""
from __future__ import annotations

import json
from datetime import datetime, timezone

from pydantic import ValidationError

from ..core.errors import InvalidPayloadType, MalformedPayload
from ..core.schemas import QRPayload, as_utc


class QRCodec:
    def __init__(self, payload_type: str = "BABSY_VOUCHER"):
        self.payload_type = payload_type

    def encode(self, code: str, partner_ref: str, timestamp: datetime | None = None) -> str:
        ts = as_utc(timestamp) or datetime.now(timezone.utc)
        return json.dumps(
            {
                "type": self.payload_type,
                "code": code,
                "partnerId": partner_ref,
                "timestamp": ts.isoformat(),
            },
            separators=(",", ":"),
        )

    def decode(self, payload: str | bytes) -> QRPayload:
        try:
            data = json.loads(payload)
        except (TypeError, ValueError, RecursionError) as e:
            # RecursionError: anidamiento patológico desde un escáner hostil
            raise MalformedPayload("payload is not valid JSON") from e
        if not isinstance(data, dict):
            raise MalformedPayload("payload must be a JSON object")

        # El discriminador se valida antes de confiar en cualquier otro campo
        ptype = data.get("type")
        if ptype != self.payload_type:
            raise InvalidPayloadType(f"unexpected payload type: {ptype!r}")

        try:
            return QRPayload.model_validate(data)
        except ValidationError as e:
            raise MalformedPayload("payload is missing required fields") from e
