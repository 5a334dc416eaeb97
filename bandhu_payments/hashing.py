"""Keyed digests used by the payment gateways.

PayU signs with a salted SHA-512 over pipe-delimited fields. The request and
response sequences run in opposite directions, and both carry a run of empty
reserved slots; the strings must match the gateway's bit for bit.
"""
import hashlib
import hmac
import secrets
import string
import time
from typing import Any, Mapping, Optional

from bandhu_payments.exceptions import ConfigurationError

USER_FIELDS = ("udf1", "udf2", "udf3", "udf4", "udf5")
RESERVED_SLOTS = 5

REQUEST_FIELDS = ("key", "txnid", "amount", "productinfo", "firstname", "email") + USER_FIELDS
RESPONSE_FIELDS = tuple(reversed(USER_FIELDS)) + (
    "email", "firstname", "productinfo", "amount", "txnid", "key",
)

_ID_ALPHABET = string.ascii_lowercase + string.digits


def require_secret(secret: Optional[str], name: str = "secret") -> str:
    if not secret:
        raise ConfigurationError(f"Refusing to hash without a {name}")
    return secret


def _field(fields: Mapping[str, Any], name: str) -> str:
    value = fields.get(name)
    return "" if value is None else str(value)


def _sha512(text: str) -> str:
    return hashlib.sha512(text.encode("utf-8")).hexdigest()


def request_hash_string(fields: Mapping[str, Any], secret: str) -> str:
    parts = [_field(fields, name) for name in REQUEST_FIELDS]
    parts += [""] * RESERVED_SLOTS
    parts.append(secret)
    return "|".join(parts)


def response_hash_string(fields: Mapping[str, Any], secret: str) -> str:
    parts = [secret, _field(fields, "status")]
    parts += [""] * RESERVED_SLOTS
    parts += [_field(fields, name) for name in RESPONSE_FIELDS]
    return "|".join(parts)


def compute_request_hash(fields: Mapping[str, Any], secret: Optional[str]) -> str:
    """SHA-512 for the outbound payment form:
    ``key|txnid|amount|productinfo|firstname|email|udf1..udf5||||||salt``.
    """
    return _sha512(request_hash_string(fields, require_secret(secret, "merchant salt")))


def compute_response_hash(fields: Mapping[str, Any], secret: Optional[str]) -> str:
    """SHA-512 the gateway returns with a callback:
    ``salt|status||||||udf5..udf1|email|firstname|productinfo|amount|txnid|key``.
    """
    return _sha512(response_hash_string(fields, require_secret(secret, "merchant salt")))


def hmac_sha256_hex(message: str, secret: Optional[str]) -> str:
    key = require_secret(secret).encode("utf-8")
    return hmac.new(key, message.encode("utf-8"), hashlib.sha256).hexdigest()


def sha256_hex(message: str) -> str:
    return hashlib.sha256(message.encode("utf-8")).hexdigest()


def digests_match(expected: str, received: Optional[str]) -> bool:
    return hmac.compare_digest(expected, (received or "").strip())


def generate_transaction_id(prefix: str = "TXN") -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(8))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"
