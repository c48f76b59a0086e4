"""
Errores de dominio del ciclo de vida de vouchers.

Cada error lleva un `code` estable (lo que ve el cliente en `detail`) y el
status HTTP con el que lo traduce la capa web (ver middleware/errors.py).
"""


class VoucherError(Exception):
    code = "VOUCHER_ERROR"
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.code)
        self.message = message or self.code


class NotFound(VoucherError):
    code = "VOUCHER_NOT_FOUND"
    status_code = 404


class AlreadyRedeemed(VoucherError):
    code = "VOUCHER_ALREADY_REDEEMED"
    status_code = 409


class Expired(VoucherError):
    code = "VOUCHER_EXPIRED"
    status_code = 410


class WrongPartner(VoucherError):
    code = "VOUCHER_WRONG_PARTNER"
    status_code = 403


class Unauthorized(VoucherError):
    code = "VOUCHER_UNAUTHORIZED"
    status_code = 403


class PartnerNotFound(NotFound):
    code = "PARTNER_NOT_FOUND"
    status_code = 404


class PartnerInactive(VoucherError):
    code = "PARTNER_INACTIVE"
    status_code = 409


class CodeSpaceExhausted(VoucherError):
    code = "CODE_SPACE_EXHAUSTED"
    status_code = 503


class DuplicateCode(VoucherError):
    """El índice único rechazó el código al insertar (colisión en carrera)."""

    code = "VOUCHER_CODE_TAKEN"
    status_code = 409


class PayloadError(VoucherError):
    code = "QR_INVALID"
    status_code = 400


class MalformedPayload(PayloadError):
    code = "QR_MALFORMED"


class InvalidPayloadType(PayloadError):
    code = "QR_INVALID_TYPE"
