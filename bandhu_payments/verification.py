"""Authenticity checks for inbound gateway callbacks.

Each gateway signs differently, so verification dispatches on the record's
``gateway`` tag. A failed check is an ordinary outcome and comes back as a
``VerificationResult``; nothing here raises.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from paytmchecksum import PaytmChecksum

from bandhu_payments.config import Settings
from bandhu_payments.exceptions import ConfigurationError
from bandhu_payments.hashing import compute_response_hash, digests_match, sha256_hex
from bandhu_payments.razorpay_service import verify_signature as verify_razorpay_signature
from bandhu_payments.schemas import (
    GatewayCallback,
    PaytmCallback,
    PayUCallback,
    PhonePeCallback,
    RazorpayCallback,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    ok: bool
    reason: Optional[str] = None

    def __bool__(self) -> bool:
        return self.ok


VERIFIED = VerificationResult(ok=True)


def _reject(reason: str) -> VerificationResult:
    return VerificationResult(ok=False, reason=reason)


def verify_payu(callback: PayUCallback, settings: Settings) -> VerificationResult:
    if not callback.hash:
        return _reject("missing hash")
    # Hash what the gateway posted, not the parsed record.
    fields = callback.raw_response
    fields["key"] = fields.get("key") or settings.payu.merchant_key or ""
    expected = compute_response_hash(fields, settings.payu.merchant_salt)
    if not digests_match(expected, callback.hash.lower()):
        return _reject("hash mismatch")
    return VERIFIED


def verify_razorpay(callback: RazorpayCallback, settings: Settings) -> VerificationResult:
    if not callback.razorpay_signature:
        return _reject("missing signature")
    if not verify_razorpay_signature(
        settings.razorpay,
        callback.razorpay_order_id,
        callback.razorpay_payment_id,
        callback.razorpay_signature,
    ):
        return _reject("signature mismatch")
    return VERIFIED


def phonepe_checksum(response: str, salt_key: str, salt_index: str) -> str:
    return f"{sha256_hex(response + salt_key)}###{salt_index}"


def verify_phonepe(callback: PhonePeCallback, settings: Settings) -> VerificationResult:
    config = settings.phonepe
    if not callback.x_verify:
        return _reject("missing X-VERIFY header")
    if not (config.salt_key and config.salt_index):
        raise ConfigurationError("PhonePe salt key/index not configured")
    if callback.merchant_id != config.merchant_id:
        return _reject("merchant id mismatch")
    expected = phonepe_checksum(callback.response, config.salt_key, config.salt_index)
    if not digests_match(expected, callback.x_verify):
        return _reject("checksum mismatch")
    return VERIFIED


def verify_paytm(callback: PaytmCallback, settings: Settings) -> VerificationResult:
    if not callback.checksum:
        return _reject("missing checksum")
    if not settings.paytm.merchant_key:
        raise ConfigurationError("Paytm merchant key not configured")
    params = {key: value for key, value in callback.raw_response.items() if key != "CHECKSUMHASH"}
    try:
        valid = PaytmChecksum.verifySignature(params, settings.paytm.merchant_key, callback.checksum)
    except (ValueError, TypeError) as exc:
        return _reject(f"unreadable checksum: {exc}")
    if not valid:
        return _reject("checksum mismatch")
    return VERIFIED


VERIFIERS = {
    "payu": verify_payu,
    "razorpay": verify_razorpay,
    "phonepe": verify_phonepe,
    "paytm": verify_paytm,
}


def verify(callback: GatewayCallback, settings: Settings) -> VerificationResult:
    verifier = VERIFIERS.get(callback.gateway)
    if verifier is None:
        result = _reject(f"unsupported gateway {callback.gateway!r}")
    else:
        try:
            result = verifier(callback, settings)
        except ConfigurationError as exc:
            result = _reject(f"not configured: {exc}")

    if not result.ok:
        logger.warning(
            "Rejected %s callback for transaction %s: %s",
            callback.gateway,
            getattr(callback, "transaction_id", "?"),
            result.reason,
        )
    return result
